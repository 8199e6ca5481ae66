"""End-to-end smoke tests for the mdblog application.

Starts the app against temp directories and exercises the public pages,
the JSON API and the admin flows: create, read, update, delete, search.
"""

import importlib
import os

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


def _doc(title, date, tags=None, body="Body text.", extra=""):
    tag_line = f"tags: [{', '.join(tags)}]\n" if tags else ""
    return f"---\ntitle: {title}\ndate: '{date}'\n{tag_line}{extra}---\n\n{body}\n"


@pytest.fixture()
def admin_key():
    """Admin API key for the app under test. Empty means localhost only."""
    return ""


@pytest.fixture()
def blog_app(tmp_path, admin_key):
    """Create a fresh app instance pointing at temp directories.

    Reloads config and main modules so the app picks up the temp
    directories. Yields the FastAPI app object.
    """
    env = {
        "MDBLOG_POSTS_DIR": str(tmp_path / "posts"),
        "MDBLOG_UPLOAD_DIR": str(tmp_path / "uploads"),
        "MDBLOG_ADMIN_API_KEY": admin_key,
        "MDBLOG_PAGE_SIZE": "2",
    }
    os.environ.update(env)
    os.environ.pop("MDBLOG_INDEX_PATH", None)

    import mdblog.config
    importlib.reload(mdblog.config)
    import mdblog.main
    importlib.reload(mdblog.main)

    yield mdblog.main.app

    # Cleanup env
    for key in env:
        os.environ.pop(key, None)


@pytest_asyncio.fixture()
async def client(blog_app):
    """Async HTTP client on localhost, so the admin routes are open."""
    transport = ASGITransport(app=blog_app)
    async with AsyncClient(
        transport=transport,
        base_url="http://localhost",
        follow_redirects=False,
    ) as c:
        yield c


@pytest_asyncio.fixture()
async def public_client(blog_app):
    """Async HTTP client on a public host name."""
    transport = ASGITransport(app=blog_app)
    async with AsyncClient(transport=transport, base_url="http://blog.example.com") as c:
        yield c


async def _save(client, filename, content, old_slug=None):
    payload = {"content": content, "filename": filename}
    if old_slug:
        payload["oldSlug"] = old_slug
    resp = await client.post("/api/save-markdown", json=payload)
    assert resp.status_code == 200, resp.text
    return resp.json()["slug"]


# ============================================================
# Public pages
# ============================================================


class TestHome:
    @pytest.mark.asyncio
    async def test_empty_blog(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert "No posts yet." in resp.text

    @pytest.mark.asyncio
    async def test_lists_newest_first_with_pagination(self, client):
        await _save(client, "a.md", _doc("Oldest Post", "2024-01-01"))
        await _save(client, "b.md", _doc("Middle Post", "2024-02-01"))
        await _save(client, "c.md", _doc("Newest Post", "2024-03-01"))

        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.text.index("Newest Post") < resp.text.index("Middle Post")
        assert "Oldest Post" not in resp.text
        assert 'href="/?page=2"' in resp.text
        assert "March 1, 2024" in resp.text

        resp = await client.get("/?page=2")
        assert "Oldest Post" in resp.text
        assert "Newest Post" not in resp.text

    @pytest.mark.asyncio
    async def test_invalid_page(self, client):
        resp = await client.get("/?page=0")
        assert resp.status_code == 422


class TestViewPost:
    @pytest.mark.asyncio
    async def test_renders_markdown(self, client):
        body = "## Section\n\n**bold** ~~gone~~\n\n```python\nprint('hi')\n```"
        await _save(client, "hello.md", _doc("Hello", "2024-06-01", ["python"], body))

        resp = await client.get("/posts/hello")
        assert resp.status_code == 200
        assert "<h1>Hello</h1>" in resp.text
        assert "<strong>bold</strong>" in resp.text
        assert "<del>gone</del>" in resp.text
        assert 'class="code-block"' in resp.text
        assert 'href="/tags/python"' in resp.text
        assert "mermaid.esm" not in resp.text

    @pytest.mark.asyncio
    async def test_mermaid_loads_renderer(self, client):
        body = "```mermaid\ngraph TD\n  A-->B\n```"
        await _save(client, "diagram.md", _doc("Diagram", "2024-06-01", body=body))

        resp = await client.get("/posts/diagram")
        assert 'class="mermaid-diagram"' in resp.text
        assert "mermaid.esm" in resp.text

    @pytest.mark.asyncio
    async def test_encoded_slug(self, client):
        await _save(client, "hello world.md", _doc("Spaced Out", "2024-06-01"))
        resp = await client.get("/posts/hello%20world")
        assert resp.status_code == 200
        assert "Spaced Out" in resp.text

    @pytest.mark.asyncio
    async def test_missing_post_is_404(self, client):
        resp = await client.get("/posts/does-not-exist")
        assert resp.status_code == 404
        assert "Post not found" in resp.text

    @pytest.mark.asyncio
    async def test_broken_file_is_500(self, client, blog_app, tmp_path):
        (tmp_path / "posts" / "broken.md").write_text("no frontmatter", encoding="utf-8")
        resp = await client.get("/posts/broken")
        assert resp.status_code == 500


class TestSearchPage:
    @pytest.mark.asyncio
    async def test_htmx_partial(self, client):
        await _save(client, "py.md", _doc("Learning Python", "2024-06-01"))

        resp = await client.get("/search", params={"q": "python"}, headers={"HX-Request": "true"})
        assert resp.status_code == 200
        assert "Learning Python" in resp.text
        assert "<html" not in resp.text

    @pytest.mark.asyncio
    async def test_short_query_hint(self, client):
        resp = await client.get("/search", params={"q": "py"}, headers={"HX-Request": "true"})
        assert "Type at least 3 characters." in resp.text

    @pytest.mark.asyncio
    async def test_no_results(self, client):
        resp = await client.get("/search", params={"q": "haskell"})
        assert resp.status_code == 200
        assert "No posts found for" in resp.text
        assert "<html" in resp.text


class TestTagPages:
    @pytest.mark.asyncio
    async def test_tag_index_and_tag_page(self, client):
        await _save(client, "a.md", _doc("Alpha", "2024-01-01", ["python", "web"]))
        await _save(client, "b.md", _doc("Beta", "2024-02-01", ["python"]))

        resp = await client.get("/tags")
        assert resp.status_code == 200
        assert 'href="/tags/python"' in resp.text
        assert 'href="/tags/web"' in resp.text

        resp = await client.get("/tags/web")
        assert "Alpha" in resp.text
        assert "Beta" not in resp.text

    @pytest.mark.asyncio
    async def test_tag_with_slash(self, client):
        await _save(client, "ci.md", _doc("Pipelines", "2024-01-01", ["CI/CD"]))

        resp = await client.get("/posts/ci")
        assert 'href="/tags/CI/CD"' in resp.text

        resp = await client.get("/tags/CI/CD")
        assert resp.status_code == 200
        assert "Pipelines" in resp.text


# ============================================================
# Public JSON API
# ============================================================


class TestJsonApi:
    @pytest.mark.asyncio
    async def test_list_posts(self, client):
        await _save(client, "a.md", _doc("Alpha", "2024-01-01"))
        await _save(client, "b.md", _doc("Beta", "2024-02-01"))

        resp = await client.get("/api/posts")
        assert resp.status_code == 200
        data = resp.json()
        assert [p["slug"] for p in data] == ["b", "a"]
        assert "content" not in data[0]

    @pytest.mark.asyncio
    async def test_paginated(self, client):
        for i in range(1, 4):
            await _save(client, f"p{i}.md", _doc(f"Post {i}", f"2024-01-0{i}"))

        resp = await client.get("/api/posts/paginated", params={"page": 2, "page_size": 2})
        data = resp.json()
        assert [p["slug"] for p in data["posts"]] == ["p1"]
        assert data["total"] == 3
        assert data["total_pages"] == 2
        assert data["has_next"] is False
        assert data["has_previous"] is True

    @pytest.mark.asyncio
    async def test_paginated_bad_page(self, client):
        resp = await client.get("/api/posts/paginated", params={"page": 0})
        assert resp.status_code == 400
        assert resp.json()["field"] == "page"

    @pytest.mark.asyncio
    async def test_get_post(self, client):
        await _save(client, "hello.md", _doc("Hello", "2024-06-01", body="# Hi"))
        resp = await client.get("/api/posts/hello")
        assert resp.status_code == 200
        data = resp.json()
        assert data["slug"] == "hello"
        assert data["title"] == "Hello"
        assert data["content"] == "# Hi\n"

    @pytest.mark.asyncio
    async def test_get_missing_post(self, client):
        resp = await client.get("/api/posts/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Post not found"}

    @pytest.mark.asyncio
    async def test_search(self, client):
        await _save(client, "py.md", _doc("Python Tips", "2024-06-01"))
        assert [p["slug"] for p in (await client.get("/api/search?q=TIPS")).json()] == ["py"]
        assert (await client.get("/api/search?q=ti")).json() == []


# ============================================================
# Admin JSON API
# ============================================================


class TestAdminApi:
    @pytest.mark.asyncio
    async def test_save_validation(self, client):
        resp = await client.post("/api/save-markdown", json={"filename": "a.md"})
        assert resp.status_code == 400
        assert resp.json()["field"] == "content"

        resp = await client.post("/api/save-markdown", json={"content": _doc("A", "2024-01-01")})
        assert resp.status_code == 400
        assert resp.json()["field"] == "filename"

    @pytest.mark.asyncio
    async def test_save_rejects_bad_frontmatter(self, client):
        resp = await client.post(
            "/api/save-markdown", json={"content": "no frontmatter", "filename": "a.md"}
        )
        assert resp.status_code == 400
        assert resp.json()["field"] == "content"

    @pytest.mark.asyncio
    async def test_save_rejects_path_filename(self, client):
        resp = await client.post(
            "/api/save-markdown",
            json={"content": _doc("A", "2024-01-01"), "filename": "../escape.md"},
        )
        assert resp.status_code == 400
        assert resp.json()["field"] == "filename"

    @pytest.mark.asyncio
    async def test_rename(self, client, tmp_path):
        await _save(client, "old.md", _doc("Title", "2024-01-01"))
        slug = await _save(client, "new.md", _doc("Title", "2024-01-01"), old_slug="old")
        assert slug == "new"
        assert sorted(p.name for p in (tmp_path / "posts").glob("*.md")) == ["new.md"]
        assert [p["slug"] for p in (await client.get("/api/posts")).json()] == ["new"]

    @pytest.mark.asyncio
    async def test_delete(self, client):
        await _save(client, "a.md", _doc("A", "2024-01-01"))
        resp = await client.post("/api/delete-post", json={"slug": "a"})
        assert resp.json() == {"success": True}
        assert (await client.get("/api/posts/a")).status_code == 404
        assert (await client.get("/api/posts")).json() == []

    @pytest.mark.asyncio
    async def test_delete_missing(self, client):
        resp = await client.post("/api/delete-post", json={"slug": "nope"})
        assert resp.status_code == 404
        resp = await client.post("/api/delete-post", json={})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_generate_index_picks_up_manual_files(self, client, tmp_path):
        await client.get("/api/posts")
        (tmp_path / "posts" / "manual.md").write_text(_doc("Manual", "2024-01-01"), encoding="utf-8")
        (tmp_path / "posts" / "broken.md").write_text("oops", encoding="utf-8")

        resp = await client.post("/api/generate-index")
        assert resp.json() == {"success": True, "posts": 1, "skipped": ["broken"]}
        assert [p["slug"] for p in (await client.get("/api/posts")).json()] == ["manual"]

    @pytest.mark.asyncio
    async def test_upload_image(self, client):
        resp = await client.post(
            "/api/upload-image",
            files={"file": ("my photo.png", b"\x89PNG data", "image/png")},
        )
        assert resp.status_code == 200
        url = resp.json()["url"]
        assert url.startswith("/images/uploads/")
        assert url.endswith("-my-photo.png")

        resp = await client.get(url)
        assert resp.status_code == 200
        assert resp.content == b"\x89PNG data"

    @pytest.mark.asyncio
    async def test_upload_without_file(self, client):
        resp = await client.post("/api/upload-image")
        assert resp.status_code == 400
        assert resp.json()["field"] == "file"


class TestAdminAccess:
    @pytest.mark.asyncio
    async def test_public_host_sees_404(self, public_client):
        assert (await public_client.get("/admin")).status_code == 404
        resp = await public_client.post(
            "/api/save-markdown", json={"content": _doc("A", "2024-01-01"), "filename": "a.md"}
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_public_pages_still_served(self, public_client):
        assert (await public_client.get("/")).status_code == 200


# ============================================================
# Admin HTML flows
# ============================================================


class TestAdminPages:
    @pytest.mark.asyncio
    async def test_dashboard_lists_posts(self, client):
        await _save(client, "a.md", _doc("Dashboard Post", "2024-01-01"))
        resp = await client.get("/admin")
        assert resp.status_code == 200
        assert "Dashboard Post" in resp.text
        assert 'href="/admin/a/edit"' in resp.text

    @pytest.mark.asyncio
    async def test_new_form(self, client):
        resp = await client.get("/admin/new")
        assert resp.status_code == 200
        assert "Creating New Post" in resp.text
        assert "Publish Post" in resp.text

    @pytest.mark.asyncio
    async def test_create_edit_delete_lifecycle(self, client, tmp_path):
        resp = await client.post(
            "/admin/new",
            data={
                "title": "Form Post",
                "author": "alice",
                "tags": "python, web",
                "reading_time": "5",
                "content": "# From the form",
            },
        )
        assert resp.status_code == 302
        slug = resp.headers["location"].split("saved=")[1]
        assert slug.endswith("-form-post")

        resp = await client.get(f"/posts/{slug}")
        assert "From the form" in resp.text
        assert "5 mins read" in resp.text

        resp = await client.get(f"/admin/{slug}/edit")
        assert resp.status_code == 200
        assert "Editing Post" in resp.text
        assert 'value="python, web"' in resp.text

        resp = await client.post(
            f"/admin/{slug}/edit",
            data={"title": "Renamed Post", "reading_time": "5", "content": "Updated"},
        )
        assert resp.status_code == 302
        new_slug = resp.headers["location"].split("saved=")[1]
        assert new_slug == slug[:10] + "-renamed-post"
        assert [p.name for p in (tmp_path / "posts").glob("*.md")] == [f"{new_slug}.md"]

        resp = await client.post(f"/admin/{new_slug}/delete")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/admin?deleted=1"
        assert (await client.get(f"/posts/{new_slug}")).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_form_rerenders(self, client):
        resp = await client.post("/admin/new", data={"title": "   ", "content": "x"})
        assert resp.status_code == 400
        assert "form-errors" in resp.text
        assert "Creating New Post" in resp.text

    @pytest.mark.asyncio
    async def test_edit_missing_post(self, client):
        assert (await client.get("/admin/nope/edit")).status_code == 404

    @pytest.mark.asyncio
    async def test_preview(self, client):
        resp = await client.post("/admin/preview", data={"content": "**bold**"})
        assert resp.status_code == 200
        assert "<strong>bold</strong>" in resp.text

    @pytest.mark.asyncio
    async def test_free_text_reading_time_round_trips(self, client):
        await _save(client, "b.md", _doc("Beta", "2024-01-01", extra="reading_time: 5 min\n"))

        resp = await client.get("/admin/b/edit")
        assert 'value="5 min"' in resp.text

        resp = await client.post(
            "/admin/b/edit",
            data={"title": "Beta", "reading_time": "5 min", "content": "Body"},
        )
        assert resp.status_code == 302
        slug = resp.headers["location"].split("saved=")[1]
        assert (await client.get(f"/api/posts/{slug}")).json()["reading_time"] == "5 min"

    @pytest.mark.asyncio
    async def test_bad_reading_time_rerenders(self, client):
        await _save(client, "b.md", _doc("Beta", "2024-01-01"))
        resp = await client.post(
            "/admin/b/edit",
            data={"title": "Beta", "reading_time": "0", "content": "Body"},
        )
        assert resp.status_code == 400
        assert "form-errors" in resp.text
        assert "reading_time" in resp.text
        assert "Editing Post" in resp.text


class TestAdminWithKey:
    @pytest.fixture()
    def admin_key(self):
        return "s3cret"

    @pytest.mark.asyncio
    async def test_browser_is_challenged(self, client):
        resp = await client.get("/admin")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"].startswith("Basic")

    @pytest.mark.asyncio
    async def test_html_admin_with_basic_auth(self, client):
        auth = ("admin", "s3cret")
        assert (await client.get("/admin", auth=auth)).status_code == 200
        assert (await client.get("/admin/new", auth=auth)).status_code == 200

        resp = await client.post(
            "/admin/new", data={"title": "Keyed Post", "content": "Hi"}, auth=auth
        )
        assert resp.status_code == 302

        resp = await client.post(
            "/api/upload-image",
            files={"file": ("thumb.png", b"png", "image/png")},
            auth=auth,
        )
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_api_uses_header(self, client):
        assert (await client.post("/api/generate-index")).status_code == 403
        resp = await client.post("/api/generate-index", headers={"X-Admin-Key": "s3cret"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    @pytest.mark.asyncio
    async def test_public_pages_open(self, client):
        assert (await client.get("/")).status_code == 200
