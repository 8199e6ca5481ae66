"""Data models for mdblog."""

import math
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class PostMetadata(BaseModel):
    """Metadata extracted from post frontmatter.

    Field order is the canonical order used when writing frontmatter.
    Unknown keys are kept so that hand-written frontmatter survives a save.
    """

    model_config = ConfigDict(extra="allow")

    layout: str = "blog"
    title: str
    date: str | None = None
    author: str = ""
    tags: list[str] = Field(default_factory=list)
    reading_time: int | str | None = None
    category: str = ""
    thumbnail: str | None = None
    description: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def _check_title(cls, value):
        if value is None or not str(value).strip():
            raise ValueError("title is required")
        return str(value).strip()

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_date(cls, value):
        # YAML turns unquoted timestamps into date/datetime objects
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("layout", "author", "category", "description", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else str(value)

    @field_validator("thumbnail", mode="before")
    @classmethod
    def _empty_thumbnail(cls, value):
        if value is None or str(value).strip() == "":
            return None
        return str(value).strip()

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(tag).strip() for tag in value if tag is not None and str(tag).strip()]

    @field_validator("reading_time", mode="before")
    @classmethod
    def _coerce_reading_time(cls, value):
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            return str(value)
        if isinstance(value, float):
            return int(value) if value.is_integer() else str(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return value


class PostSummary(PostMetadata):
    """An index entry: frontmatter plus slug, never the body."""

    slug: str


class PostDetail(PostSummary):
    """A post as returned by the JSON API: frontmatter, slug and body."""

    content: str


class Post(BaseModel):
    """Represents a blog post with its markdown body."""

    slug: str
    content: str
    metadata: PostMetadata

    @property
    def title(self) -> str:
        return self.metadata.title

    @property
    def date(self) -> str | None:
        return self.metadata.date

    @property
    def tags(self) -> list[str]:
        return self.metadata.tags

    @property
    def word_count(self) -> int:
        """Approximate word count of post content."""
        return len(self.content.split())

    def summary(self) -> PostSummary:
        """Build the index entry for this post."""
        data = self.metadata.model_dump()
        data["slug"] = self.slug
        return PostSummary.model_validate(data)

    def detail(self) -> PostDetail:
        """Build the JSON API representation of this post."""
        data = self.metadata.model_dump()
        data.update(slug=self.slug, content=self.content)
        return PostDetail.model_validate(data)


class PostPage(BaseModel):
    """One page of the date-sorted post list."""

    posts: list[PostSummary]
    total: int
    page: int
    page_size: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    @computed_field
    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @computed_field
    @property
    def has_previous(self) -> bool:
        return self.page > 1


class PostForm(BaseModel):
    """Fields submitted by the admin post form."""

    title: str
    author: str = ""
    tags: str = ""
    reading_time: int | str | None = 10
    category: str = ""
    thumbnail: str = ""
    description: str = ""

    @field_validator("title")
    @classmethod
    def _check_title(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title is required")
        return value.strip()

    @field_validator("reading_time", mode="before")
    @classmethod
    def _check_reading_time(cls, value):
        # Free text such as "5 min" is kept as written
        if value is None or str(value).strip() == "":
            return None
        text = str(value).strip()
        if text.lstrip("-").isdigit():
            minutes = int(text)
            if minutes < 1:
                raise ValueError("reading time must be at least 1 minute")
            return minutes
        return text

    def tag_list(self) -> list[str]:
        """Split the comma separated tags field."""
        return [tag.strip() for tag in self.tags.split(",") if tag.strip()]


class SaveMarkdownRequest(BaseModel):
    """Body of POST /api/save-markdown."""

    model_config = ConfigDict(populate_by_name=True)

    content: str | None = None
    filename: str | None = None
    old_slug: str | None = Field(default=None, alias="oldSlug")


class DeletePostRequest(BaseModel):
    """Body of POST /api/delete-post."""

    slug: str | None = None
