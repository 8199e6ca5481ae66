"""Post index: a JSON cache of every post's frontmatter.

The index is rebuilt from scratch after every store mutation and is only
ever read for listing metadata. Post bodies are always read from the
markdown files themselves.
"""

import json
import logging
from pathlib import Path

import pydantic
from pydantic import BaseModel, Field

from mdblog.core.models import PostSummary
from mdblog.core.storage import FileStorage
from mdblog.errors import FrontMatterError, StorageError

logger = logging.getLogger(__name__)


class IndexBuildResult(BaseModel):
    """Outcome of a rebuild: the entries written and the slugs left out."""

    entries: list[PostSummary] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


class IndexBuilder:
    """Builds and loads the index file for a FileStorage."""

    def __init__(self, storage: FileStorage, index_path: Path, strict: bool = False):
        self.storage = storage
        self.index_path = index_path
        self.strict = strict

    async def build(self) -> IndexBuildResult:
        """Scan every post and overwrite the index file.

        A post whose frontmatter cannot be parsed is skipped with a warning,
        unless the builder is strict, in which case the whole build fails
        and the existing index is left untouched.
        """
        result = IndexBuildResult()
        for slug, raw in await self.storage.read_documents():
            try:
                metadata, _ = self.storage.parse_document(raw, slug=slug)
            except FrontMatterError as e:
                if self.strict:
                    logger.error("Index build aborted at %s: %s", slug, e.message)
                    raise
                logger.warning("Skipping %s in index: %s", slug, e.message)
                result.skipped.append(slug)
                continue
            data = metadata.model_dump()
            data["slug"] = slug
            result.entries.append(PostSummary.model_validate(data))

        self._write(result.entries)
        logger.info(
            "Index rebuilt: %d posts, %d skipped",
            len(result.entries),
            len(result.skipped),
        )
        return result

    def _write(self, entries: list[PostSummary]) -> None:
        payload = []
        for entry in entries:
            data = entry.model_dump(exclude_none=True)
            # slug first, as readers of the raw file expect
            payload.append({"slug": data.pop("slug"), **data})

        tmp_path = self.index_path.with_name(self.index_path.name + ".tmp")
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(payload, indent=2, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
            tmp_path.replace(self.index_path)
        except OSError as e:
            logger.exception("Failed to write index %s", self.index_path)
            raise StorageError("could not write post index") from e

    async def load(self) -> list[PostSummary]:
        """Read the index, building it first if it does not exist yet."""
        if not self.index_path.exists():
            logger.info("No index at %s, building one", self.index_path)
            return (await self.build()).entries

        try:
            data = json.loads(self.index_path.read_text(encoding="utf-8"))
        except OSError as e:
            logger.exception("Failed to read index %s", self.index_path)
            raise StorageError("could not read post index") from e
        except json.JSONDecodeError as e:
            logger.error("Index %s is not valid JSON: %s", self.index_path, e)
            raise StorageError("post index is corrupt") from e

        if not isinstance(data, list):
            raise StorageError("post index is corrupt")
        try:
            return [PostSummary.model_validate(item) for item in data]
        except pydantic.ValidationError as e:
            logger.error("Index %s has invalid entries: %s", self.index_path, e)
            raise StorageError("post index is corrupt") from e
