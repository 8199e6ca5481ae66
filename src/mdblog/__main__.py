"""Command line entry point: serve the blog or rebuild its index."""

import argparse
import asyncio
import logging
import sys

from mdblog.config import settings
from mdblog.core.index import IndexBuilder
from mdblog.core.storage import FileStorage
from mdblog.errors import BlogError

logger = logging.getLogger("mdblog")


def reindex() -> int:
    """Rebuild index.json from the posts directory."""
    storage = FileStorage(settings.posts_dir)
    builder = IndexBuilder(storage, settings.index_path, strict=settings.strict_index)
    try:
        result = asyncio.run(builder.build())
    except BlogError as e:
        logger.error("Index build failed: %s", e)
        return 1
    print(f"Blog index generated: {len(result.entries)} posts -> {settings.index_path}")
    for slug in result.skipped:
        print(f"  skipped {slug}", file=sys.stderr)
    return 0


def serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("mdblog.main:app", host=host, port=port, reload=reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="mdblog", description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)

    serve_cmd = sub.add_parser("serve", help="run the web application")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8000)
    serve_cmd.add_argument("--reload", action="store_true")

    sub.add_parser("reindex", help="rebuild the post index")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "reindex":
        return reindex()
    return serve(args.host, args.port, args.reload)


if __name__ == "__main__":
    sys.exit(main())
