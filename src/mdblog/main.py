"""mdblog FastAPI application."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError as PydanticValidationError

from mdblog.config import settings
from mdblog.core.admin import AdminService
from mdblog.core.index import IndexBuilder
from mdblog.core.models import DeletePostRequest, PostForm, SaveMarkdownRequest
from mdblog.core.parser import (
    extract_mermaid_blocks,
    render_markdown,
    render_markdown_with_toc,
)
from mdblog.core.posts import PostService, parse_post_date
from mdblog.core.storage import FileStorage
from mdblog.core.uploads import ImageStore
from mdblog.errors import FrontMatterError, NotFoundError, StorageError, ValidationError
from mdblog.security import AdminGuard

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize storage and services
storage = FileStorage(settings.posts_dir)
index = IndexBuilder(storage, settings.index_path, strict=settings.strict_index)
posts = PostService(storage, index, search_min_length=settings.search_min_length)
admin = AdminService(storage, index)
images = ImageStore(settings.upload_dir, settings.upload_url_prefix)
require_admin = AdminGuard(api_key=settings.admin_api_key)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: bring the index in line with the files on disk."""
    result = await index.build()
    logger.info("mdblog started with %d posts", len(result.entries))
    yield


# Initialize app
app = FastAPI(
    title=settings.app_title,
    debug=settings.debug,
    lifespan=lifespan,
)

# Setup templates and static files
templates_path = Path(__file__).parent / "templates"
static_path = Path(__file__).parent / "static"

templates = Jinja2Templates(directory=str(templates_path))
app.mount("/static", StaticFiles(directory=str(static_path)), name="static")
app.mount(
    images.url_prefix,
    StaticFiles(directory=str(images.upload_dir)),
    name="uploads",
)


def date_filter(value: str | None) -> str:
    """Format a frontmatter date as e.g. "June 1, 2024"."""
    parsed = parse_post_date(value)
    if parsed is None:
        return value or ""
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


templates.env.filters["post_date"] = date_filter


# Template context helper
def get_context(request: Request, **kwargs) -> dict:
    """Create base context for templates."""
    return {
        "request": request,
        "app_title": settings.app_title,
        **kwargs,
    }


def _wants_json(request: Request) -> bool:
    return request.url.path.startswith("/api/")


# ========== Error handling ==========


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    if _wants_json(request):
        return JSONResponse({"error": exc.message}, status_code=404)
    return templates.TemplateResponse(
        request,
        "404.html",
        get_context(request, message=exc.message),
        status_code=404,
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        {"error": exc.message, "field": exc.field},
        status_code=400,
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    if _wants_json(request):
        return JSONResponse({"error": "Internal storage error"}, status_code=500)
    return templates.TemplateResponse(
        request,
        "error.html",
        get_context(request, message="Something went wrong reading the blog."),
        status_code=500,
    )


@app.exception_handler(FrontMatterError)
async def front_matter_error_handler(request: Request, exc: FrontMatterError):
    # On reads a broken file is a server-side problem, not a bad request
    if request.method == "GET":
        logger.error("Unreadable post %s: %s", exc.slug, exc.message)
        return await storage_error_handler(request, StorageError(exc.message))
    return await validation_error_handler(request, exc)


# ========== Public pages ==========


@app.get("/", response_class=HTMLResponse)
async def home(request: Request, page: int = Query(1, ge=1)):
    """Home page - paginated list of posts, newest first."""
    result = await posts.get_paginated_posts(page, settings.page_size)
    return templates.TemplateResponse(
        request,
        "posts/list.html",
        get_context(request, result=result),
    )


@app.get("/posts/{slug}", response_class=HTMLResponse)
async def view_post(request: Request, slug: str):
    """View a single post."""
    post = await posts.get_post_by_slug(slug)
    if post is None:
        raise NotFoundError()

    html_content, toc_html = render_markdown_with_toc(post.content)
    return templates.TemplateResponse(
        request,
        "posts/view.html",
        get_context(
            request,
            post=post,
            html_content=html_content,
            toc_html=toc_html,
            has_diagrams=bool(extract_mermaid_blocks(post.content)),
        ),
    )


@app.get("/search", response_class=HTMLResponse)
async def search_page(request: Request, q: str = ""):
    """Search posts by title."""
    results = await posts.search_posts(q)
    context = {
        "results": results,
        "query": q,
        "min_length": settings.search_min_length,
    }

    if request.headers.get("HX-Request"):
        return templates.TemplateResponse(
            request,
            "partials/search_results.html",
            {"request": request, **context},
        )
    return templates.TemplateResponse(
        request,
        "search.html",
        get_context(request, **context),
    )


@app.get("/tags", response_class=HTMLResponse)
async def tags_page(request: Request):
    """Tag index page with counts."""
    tags_sorted = await posts.tag_counts()
    return templates.TemplateResponse(
        request,
        "tags.html",
        get_context(request, tags=tags_sorted),
    )


@app.get("/tags/{tag:path}", response_class=HTMLResponse)
async def tag_page(request: Request, tag: str):
    """Posts carrying one tag."""
    tagged = await posts.posts_by_tag(tag)
    return templates.TemplateResponse(
        request,
        "tag.html",
        get_context(request, tag=tag, posts=tagged),
    )


# ========== Public JSON API ==========


@app.get("/api/posts")
async def api_list_posts():
    """All posts' metadata, newest first."""
    return [p.model_dump(exclude_none=True) for p in await posts.list_posts()]


@app.get("/api/posts/paginated")
async def api_paginated_posts(page: int = 1, page_size: int | None = None):
    """One page of posts plus the total count."""
    size = settings.page_size if page_size is None else page_size
    result = await posts.get_paginated_posts(page, size)
    return result.model_dump(exclude_none=True)


@app.get("/api/posts/{slug}")
async def api_get_post(slug: str):
    """A full post, body included."""
    post = await posts.get_post_by_slug(slug)
    if post is None:
        raise NotFoundError()
    return post.detail().model_dump(exclude_none=True)


@app.get("/api/search")
async def api_search(q: str = ""):
    """Title search. Short queries return nothing."""
    return [p.model_dump(exclude_none=True) for p in await posts.search_posts(q)]


# ========== Admin ==========

admin_router = APIRouter(dependencies=[Depends(require_admin)])


@admin_router.get("/admin", response_class=HTMLResponse)
async def admin_dashboard(request: Request):
    """Admin dashboard - table of every post."""
    all_posts = await posts.list_posts()
    return templates.TemplateResponse(
        request,
        "admin/dashboard.html",
        get_context(request, posts=all_posts),
    )


@admin_router.get("/admin/new", response_class=HTMLResponse)
async def new_post_form(request: Request):
    """Empty post form."""
    form = {"author": "", "category": "", "reading_time": 10}
    return templates.TemplateResponse(
        request,
        "admin/edit.html",
        get_context(request, form=form, content="", slug=None, errors={}),
    )


def _form_errors(exc: PydanticValidationError) -> dict[str, str]:
    return {str(err["loc"][0]): err["msg"] for err in exc.errors() if err["loc"]}


async def _submit_post_form(
    request: Request,
    slug: str | None,
    form_data: dict,
    content: str,
):
    """Shared create/update flow for the HTML post form."""
    try:
        form = PostForm(**form_data)
        if slug is None:
            new_slug = await admin.create_post(form, content)
        else:
            new_slug = await admin.update_post(slug, form, content)
    except PydanticValidationError as e:
        errors = _form_errors(e)
    except ValidationError as e:
        errors = {e.field: e.message}
    else:
        return RedirectResponse(url=f"/admin?saved={new_slug}", status_code=302)

    return templates.TemplateResponse(
        request,
        "admin/edit.html",
        get_context(request, form=form_data, content=content, slug=slug, errors=errors),
        status_code=400,
    )


@admin_router.post("/admin/new")
async def create_post(
    request: Request,
    title: str = Form(""),
    author: str = Form(""),
    tags: str = Form(""),
    reading_time: str = Form(""),
    category: str = Form(""),
    thumbnail: str = Form(""),
    description: str = Form(""),
    content: str = Form(""),
):
    """Create a post from the admin form."""
    form_data = {
        "title": title,
        "author": author,
        "tags": tags,
        "reading_time": reading_time,
        "category": category,
        "thumbnail": thumbnail,
        "description": description,
    }
    return await _submit_post_form(request, None, form_data, content)


@admin_router.get("/admin/{slug}/edit", response_class=HTMLResponse)
async def edit_post_form(request: Request, slug: str):
    """Post form filled in from an existing post."""
    post = await posts.get_post_by_slug(slug)
    if post is None:
        raise NotFoundError()
    meta = post.metadata
    form = {
        "title": meta.title,
        "author": meta.author,
        "tags": ", ".join(meta.tags),
        "reading_time": meta.reading_time or "",
        "category": meta.category,
        "thumbnail": meta.thumbnail or "",
        "description": meta.description,
    }
    return templates.TemplateResponse(
        request,
        "admin/edit.html",
        get_context(request, form=form, content=post.content, slug=post.slug, errors={}),
    )


@admin_router.post("/admin/{slug}/edit")
async def update_post(
    request: Request,
    slug: str,
    title: str = Form(""),
    author: str = Form(""),
    tags: str = Form(""),
    reading_time: str = Form(""),
    category: str = Form(""),
    thumbnail: str = Form(""),
    description: str = Form(""),
    content: str = Form(""),
):
    """Save an edited post. A changed title renames the file."""
    form_data = {
        "title": title,
        "author": author,
        "tags": tags,
        "reading_time": reading_time,
        "category": category,
        "thumbnail": thumbnail,
        "description": description,
    }
    return await _submit_post_form(request, slug, form_data, content)


@admin_router.post("/admin/{slug}/delete")
async def delete_post_form(slug: str):
    """Delete a post from the dashboard."""
    await admin.delete_post(slug)
    return RedirectResponse(url="/admin?deleted=1", status_code=302)


@admin_router.post("/admin/preview", response_class=HTMLResponse)
async def admin_preview(content: str = Form("")):
    """Render markdown preview for the editor."""
    return HTMLResponse(render_markdown(content))


# ========== Admin JSON API ==========


@admin_router.post("/api/save-markdown")
async def api_save_markdown(body: SaveMarkdownRequest):
    """Write a complete markdown document, removing the superseded one on rename."""
    slug = await admin.save_markdown(body.content, body.filename, old_slug=body.old_slug)
    return {"success": True, "slug": slug}


@admin_router.post("/api/delete-post")
async def api_delete_post(body: DeletePostRequest):
    """Delete a post by slug."""
    await admin.delete_post(body.slug or "")
    return {"success": True}


@admin_router.post("/api/generate-index")
async def api_generate_index():
    """Rebuild the index from the markdown files."""
    result = await admin.regenerate_index()
    return {"success": True, "posts": len(result.entries), "skipped": result.skipped}


@admin_router.post("/api/upload-image")
async def api_upload_image(file: UploadFile | None = File(None)):
    """Store an uploaded image and return its public URL."""
    if file is None:
        raise ValidationError("file", "no file uploaded")
    data = await file.read()
    url = images.save(file.filename, data)
    return {"url": url}


app.include_router(admin_router)
