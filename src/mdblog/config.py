"""Application configuration."""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    posts_dir: Path = Path("content/blog")
    index_path: Path | None = None
    upload_dir: Path = Path("public/images/uploads")
    upload_url_prefix: str = "/images/uploads"
    page_size: int = 6
    search_min_length: int = 3
    strict_index: bool = False
    admin_api_key: str = ""
    debug: bool = False
    app_title: str = "mdblog"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="MDBLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _default_index_path(self) -> "Settings":
        # The index lives beside the posts unless configured elsewhere
        if self.index_path is None:
            self.index_path = self.posts_dir / "index.json"
        self.upload_url_prefix = "/" + self.upload_url_prefix.strip("/")
        return self


settings = Settings()
