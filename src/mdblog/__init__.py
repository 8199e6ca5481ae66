"""mdblog: a markdown blog served from flat files."""

__version__ = "0.1.0"
