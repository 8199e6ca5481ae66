"""Exception types shared by the store, services and HTTP layer."""


class BlogError(Exception):
    """Base class for all blog errors."""


class NotFoundError(BlogError):
    """A post (or other addressed resource) does not exist."""

    def __init__(self, message: str = "Post not found"):
        super().__init__(message)
        self.message = message


class ValidationError(BlogError):
    """A request is missing a required field or carries an invalid one."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class FrontMatterError(ValidationError):
    """A markdown document's front matter is missing or malformed."""

    def __init__(self, message: str, slug: str | None = None):
        super().__init__("content", message)
        self.slug = slug


class StorageError(BlogError):
    """Reading, writing or deleting a file on disk failed."""
