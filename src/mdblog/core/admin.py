"""Write-side operations used by the admin interface."""

import logging
import re
from datetime import date, datetime, timezone
from urllib.parse import unquote

from mdblog.core.index import IndexBuildResult, IndexBuilder
from mdblog.core.models import PostForm, PostMetadata
from mdblog.core.posts import parse_post_date
from mdblog.core.storage import FileStorage
from mdblog.errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

# Runs of anything that is not a lowercase letter or digit
NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def slugify_title(title: str) -> str:
    """Lowercase a title and collapse non-alphanumeric runs to single hyphens."""
    return NON_SLUG_CHARS.sub("-", title.lower()).strip("-")


def generate_filename(title: str, today: date | None = None) -> str:
    """Build a post filename of the form YYYY-MM-DD-title-words.md."""
    today = today or datetime.now(timezone.utc).date()
    slug = slugify_title(title) or "post"
    return f"{today.isoformat()}-{slug}.md"


class AdminService:
    """Creates, updates and deletes posts, reindexing after every change."""

    def __init__(self, storage: FileStorage, index: IndexBuilder):
        self.storage = storage
        self.index = index

    async def save_markdown(
        self,
        content: str | None,
        filename: str | None,
        old_slug: str | None = None,
    ) -> str:
        """Write a complete markdown document and reindex.

        When old_slug names a different post, that file is removed after the
        new one is written. Failing to remove it is logged and does not fail
        the save. Returns the slug the post now lives under.
        """
        if not content or not content.strip():
            raise ValidationError("content", "content is required")
        if not filename or not filename.strip():
            raise ValidationError("filename", "filename is required")
        filename = filename.strip()

        # Refuse documents the index could not read back
        self.storage.parse_document(content)

        slug = await self.storage.write_file(filename, content)
        logger.info("Saved post %s", slug)

        if old_slug and unquote(old_slug) != slug:
            try:
                if await self.storage.delete_post(old_slug):
                    logger.info("Removed superseded post %s", old_slug)
                else:
                    logger.warning("Superseded post %s was already gone", old_slug)
            except StorageError:
                logger.warning("Could not remove superseded post %s", old_slug)

        await self.index.build()
        return slug

    async def create_post(self, form: PostForm, body: str, now: datetime | None = None) -> str:
        """Create a post from the admin form. Never overwrites another post."""
        now = now or datetime.now(timezone.utc)
        metadata = self._build_metadata(form, {"date": now.strftime(DATE_FORMAT)})
        filename = await self._unique_filename(generate_filename(form.title, now.date()))
        content = self.storage.render_document(metadata, body)
        return await self.save_markdown(content, filename)

    async def update_post(self, slug: str, form: PostForm, body: str) -> str:
        """Update a post from the admin form, renaming it if its title changed.

        The original publication date is kept, and the filename's date
        prefix follows it.
        """
        existing = await self.storage.get_post(slug)
        if existing is None:
            raise NotFoundError()

        base = existing.metadata.model_dump(exclude={"title"})
        metadata = self._build_metadata(form, base)

        published = parse_post_date(metadata.date)
        day = published.date() if published else None
        filename = await self._unique_filename(
            generate_filename(form.title, day), own_slug=existing.slug
        )
        content = self.storage.render_document(metadata, body)
        return await self.save_markdown(content, filename, old_slug=existing.slug)

    async def delete_post(self, slug: str) -> None:
        """Delete a post and reindex."""
        if not slug:
            raise ValidationError("slug", "slug is required")
        if not await self.storage.delete_post(slug):
            raise NotFoundError()
        logger.info("Deleted post %s", slug)
        await self.index.build()

    async def regenerate_index(self) -> IndexBuildResult:
        """Rebuild the index from the files on disk."""
        return await self.index.build()

    def _build_metadata(self, form: PostForm, base: dict) -> PostMetadata:
        data = dict(base)
        data.update(
            title=form.title,
            author=form.author,
            tags=form.tag_list(),
            reading_time=form.reading_time,
            category=form.category,
            thumbnail=form.thumbnail,
            description=form.description,
        )
        data.setdefault("layout", "blog")
        return PostMetadata.model_validate(data)

    async def _unique_filename(self, filename: str, own_slug: str | None = None) -> str:
        """Append -2, -3, ... until the filename is free (or is the post's own)."""
        stem = filename.removesuffix(FileStorage.EXTENSION)
        candidate = stem
        n = 2
        while candidate != own_slug and await self.storage.exists(candidate):
            candidate = f"{stem}-{n}"
            n += 1
        return candidate + FileStorage.EXTENSION
