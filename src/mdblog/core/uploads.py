"""Image uploads written to the public static directory."""

import logging
import re
import time
from pathlib import Path, PurePosixPath, PureWindowsPath

from mdblog.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

WHITESPACE = re.compile(r"\s+")


class ImageStore:
    """Stores uploaded files as <epoch-millis>-<name> under upload_dir."""

    def __init__(self, upload_dir: Path, url_prefix: str = "/images/uploads"):
        self.upload_dir = upload_dir
        self.url_prefix = "/" + url_prefix.strip("/")
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def _clean_name(self, filename: str) -> str:
        # Browsers may send a full client-side path
        name = PureWindowsPath(PurePosixPath(filename).name).name
        name = WHITESPACE.sub("-", name.strip()).lstrip(".")
        if not name:
            raise ValidationError("file", "uploaded file has no name")
        return name

    def save(self, filename: str | None, data: bytes) -> str:
        """Write the upload and return its public URL."""
        if not filename:
            raise ValidationError("file", "no file uploaded")
        name = f"{int(time.time() * 1000)}-{self._clean_name(filename)}"
        path = self.upload_dir / name
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.exception("Failed to store upload %s", path)
            raise StorageError("could not store uploaded file") from e
        logger.info("Stored upload %s (%d bytes)", name, len(data))
        return f"{self.url_prefix}/{name}"
