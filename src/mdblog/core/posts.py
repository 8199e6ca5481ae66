"""Read-side access to posts: listing, pagination, search and lookup."""

import logging
from datetime import datetime, timezone

from mdblog.core.index import IndexBuilder
from mdblog.core.models import Post, PostPage, PostSummary
from mdblog.core.storage import FileStorage
from mdblog.errors import ValidationError

logger = logging.getLogger(__name__)


def parse_post_date(value: str | None) -> datetime | None:
    """Parse a frontmatter date into a naive UTC datetime.

    Accepts ISO dates and datetimes, with or without an offset or a
    trailing Z. Returns None when the value is missing or unparseable.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable post date %r", value)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def date_sort_key(value: str | None) -> datetime:
    """Sort key for newest-first listings; undated posts sort last."""
    return parse_post_date(value) or datetime.min


class PostService:
    """Queries over the post index and the markdown store."""

    def __init__(self, storage: FileStorage, index: IndexBuilder, search_min_length: int = 3):
        self.storage = storage
        self.index = index
        self.search_min_length = search_min_length

    async def list_posts(self) -> list[PostSummary]:
        """All posts, newest first. Equal dates keep index order."""
        entries = await self.index.load()
        return sorted(entries, key=lambda p: date_sort_key(p.date), reverse=True)

    async def get_paginated_posts(self, page: int, page_size: int) -> PostPage:
        """Return one 1-indexed page of the sorted list plus the total count."""
        if page < 1:
            raise ValidationError("page", "must be at least 1")
        if page_size < 1:
            raise ValidationError("page_size", "must be at least 1")

        posts = await self.list_posts()
        start = (page - 1) * page_size
        return PostPage(
            posts=posts[start : start + page_size],
            total=len(posts),
            page=page,
            page_size=page_size,
        )

    async def get_post_by_slug(self, slug: str) -> Post | None:
        """Full post from its markdown file, or None when there is no such post."""
        return await self.storage.get_post(slug)

    async def search_posts(self, query: str) -> list[PostSummary]:
        """Case-insensitive title search over every post.

        Queries shorter than search_min_length (after stripping) return
        nothing, so as-you-type callers can send every keystroke.
        """
        query = (query or "").strip()
        if len(query) < self.search_min_length:
            return []
        query_lower = query.lower()
        return [p for p in await self.list_posts() if query_lower in p.title.lower()]

    async def posts_by_tag(self, tag: str) -> list[PostSummary]:
        """Posts carrying the tag (case-insensitive), newest first."""
        tag_lower = tag.strip().lower()
        return [
            p for p in await self.list_posts() if any(t.lower() == tag_lower for t in p.tags)
        ]

    async def tag_counts(self) -> list[tuple[str, int]]:
        """Every tag with the number of posts using it, sorted by name."""
        counts: dict[str, int] = {}
        for post in await self.index.load():
            for tag in post.tags:
                counts[tag] = counts.get(tag, 0) + 1
        return sorted(counts.items(), key=lambda x: x[0].lower())
