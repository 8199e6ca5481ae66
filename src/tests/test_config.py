"""Unit tests for application configuration."""

from pathlib import Path
from unittest.mock import patch

from mdblog.config import Settings


class TestSettings:
    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            s = Settings(_env_file=None)
            assert s.posts_dir == Path("content/blog")
            assert s.index_path == Path("content/blog/index.json")
            assert s.upload_dir == Path("public/images/uploads")
            assert s.upload_url_prefix == "/images/uploads"
            assert s.page_size == 6
            assert s.search_min_length == 3
            assert s.strict_index is False
            assert s.admin_api_key == ""
            assert s.debug is False
            assert s.app_title == "mdblog"

    def test_from_env(self):
        env = {
            "MDBLOG_POSTS_DIR": "/tmp/blog",
            "MDBLOG_DEBUG": "true",
            "MDBLOG_APP_TITLE": "My Blog",
            "MDBLOG_PAGE_SIZE": "10",
            "MDBLOG_STRICT_INDEX": "true",
            "MDBLOG_ADMIN_API_KEY": "s3cret",
        }
        with patch.dict("os.environ", env, clear=True):
            s = Settings(_env_file=None)
            assert s.posts_dir == Path("/tmp/blog")
            assert s.debug is True
            assert s.app_title == "My Blog"
            assert s.page_size == 10
            assert s.strict_index is True
            assert s.admin_api_key == "s3cret"

    def test_index_path_follows_posts_dir(self):
        with patch.dict("os.environ", {"MDBLOG_POSTS_DIR": "/srv/posts"}, clear=True):
            s = Settings(_env_file=None)
            assert s.index_path == Path("/srv/posts/index.json")

    def test_explicit_index_path(self):
        env = {"MDBLOG_POSTS_DIR": "/srv/posts", "MDBLOG_INDEX_PATH": "/var/cache/index.json"}
        with patch.dict("os.environ", env, clear=True):
            s = Settings(_env_file=None)
            assert s.index_path == Path("/var/cache/index.json")

    def test_upload_prefix_normalized(self):
        with patch.dict("os.environ", {"MDBLOG_UPLOAD_URL_PREFIX": "media/uploads/"}, clear=True):
            s = Settings(_env_file=None)
            assert s.upload_url_prefix == "/media/uploads"
