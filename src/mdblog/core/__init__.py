"""Storage, indexing, querying and rendering of blog posts."""
