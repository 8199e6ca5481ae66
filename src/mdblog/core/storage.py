"""Storage abstraction for blog posts."""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import unquote

import pydantic
import yaml

from mdblog.core.models import Post, PostMetadata
from mdblog.errors import FrontMatterError, StorageError, ValidationError

logger = logging.getLogger(__name__)


class Storage(ABC):
    """Abstract base class for post storage."""

    @abstractmethod
    async def get_post(self, slug: str) -> Post | None:
        """Get a post by slug. Returns None if not found."""
        ...

    @abstractmethod
    async def get_raw_content(self, slug: str) -> str | None:
        """Get raw file content including frontmatter for editing."""
        ...

    @abstractmethod
    async def write_file(self, filename: str, content: str) -> str:
        """Write a markdown file. Returns the slug it was stored under."""
        ...

    @abstractmethod
    async def delete_post(self, slug: str) -> bool:
        """Delete a post. Returns True if deleted, False if not found."""
        ...

    @abstractmethod
    async def exists(self, slug: str) -> bool:
        """Check if a post exists."""
        ...

    @abstractmethod
    async def list_slugs(self) -> list[str]:
        """List all post slugs."""
        ...

    @abstractmethod
    async def read_documents(self) -> list[tuple[str, str]]:
        """Return (slug, raw content) for every stored post."""
        ...


class FileStorage(Storage):
    """File-based storage implementation.

    Posts are stored as Markdown files with YAML frontmatter.
    File naming: <slug>.md, where the slug is whatever the admin chose
    (normally YYYY-MM-DD-title-words).
    """

    FRONTMATTER_PATTERN = re.compile(
        r"^---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)",
        re.DOTALL,
    )
    EXTENSION = ".md"

    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _slug_to_filename(self, slug: str) -> str:
        """Convert slug to filename."""
        return slug + self.EXTENSION

    def _filename_to_slug(self, filename: str) -> str:
        """Convert filename to slug."""
        return filename.removesuffix(self.EXTENSION)

    def _get_path(self, slug: str) -> Path | None:
        """Get full path for a slug, or None if the slug is not addressable.

        Slugs arrive URL-encoded from routes and are decoded here. Anything
        that could leave the posts directory is refused.
        """
        slug = unquote(slug).strip()
        if not slug or slug.startswith(".") or any(c in slug for c in "/\\\x00"):
            return None
        return self.base_path / self._slug_to_filename(slug)

    def parse_document(self, raw: str, slug: str | None = None) -> tuple[PostMetadata, str]:
        """Parse YAML frontmatter from a markdown document.

        Returns (metadata, body). Raises FrontMatterError when the
        frontmatter is missing, is not a YAML mapping, or fails validation.
        """
        raw = raw.lstrip("\ufeff")
        match = self.FRONTMATTER_PATTERN.match(raw)
        if not match:
            raise FrontMatterError("missing frontmatter block", slug=slug)
        try:
            data = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as e:
            raise FrontMatterError(f"invalid YAML in frontmatter: {e}", slug=slug) from e
        if not isinstance(data, dict):
            raise FrontMatterError("frontmatter must be a mapping", slug=slug)
        try:
            metadata = PostMetadata.model_validate(data)
        except pydantic.ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise FrontMatterError(f"invalid frontmatter: {errors}", slug=slug) from e
        body = raw[match.end() :].lstrip("\r\n")
        return metadata, body

    def render_document(self, metadata: PostMetadata, body: str) -> str:
        """Create a markdown document with YAML frontmatter from metadata."""
        data = metadata.model_dump(exclude_none=True)
        frontmatter = yaml.safe_dump(
            data,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        body = body.lstrip("\r\n")
        return f"---\n{frontmatter}---\n\n{body}"

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.exception("Failed to read %s", path)
            raise StorageError(f"could not read {path.name}") from e

    async def get_post(self, slug: str) -> Post | None:
        """Get a post by slug."""
        path = self._get_path(slug)
        if path is None or not path.exists():
            return None

        decoded = self._filename_to_slug(path.name)
        metadata, content = self.parse_document(self._read(path), slug=decoded)
        return Post(slug=decoded, content=content, metadata=metadata)

    async def get_raw_content(self, slug: str) -> str | None:
        """Get raw file content including frontmatter for editing."""
        path = self._get_path(slug)
        if path is None or not path.exists():
            return None
        return self._read(path)

    async def write_file(self, filename: str, content: str) -> str:
        """Write content to a markdown file in the posts directory."""
        if Path(filename).name != filename or filename.startswith("."):
            raise ValidationError("filename", "must be a bare file name")
        if not filename.endswith(self.EXTENSION) or filename == self.EXTENSION:
            raise ValidationError("filename", f"must end with {self.EXTENSION}")

        path = self.base_path / filename
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.exception("Failed to write %s", path)
            raise StorageError(f"could not write {filename}") from e
        return self._filename_to_slug(filename)

    async def delete_post(self, slug: str) -> bool:
        """Delete a post."""
        path = self._get_path(slug)
        if path is None or not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.exception("Failed to delete %s", path)
            raise StorageError(f"could not delete {path.name}") from e
        return True

    async def exists(self, slug: str) -> bool:
        """Check if a post exists."""
        path = self._get_path(slug)
        return path is not None and path.exists()

    async def list_slugs(self) -> list[str]:
        """List all post slugs."""
        return sorted(
            self._filename_to_slug(path.name)
            for path in self.base_path.glob(f"*{self.EXTENSION}")
        )

    async def read_documents(self) -> list[tuple[str, str]]:
        """Return (slug, raw content) for every post file, by filename."""
        documents = []
        for path in sorted(self.base_path.glob(f"*{self.EXTENSION}")):
            documents.append((self._filename_to_slug(path.name), self._read(path)))
        return documents
