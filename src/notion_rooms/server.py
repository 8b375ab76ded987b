"""Notion Rooms server: HTTP routes and an MCP tool over the renderer.

Routes:
- GET /renderer?id=<page>       → {"metadata": {...}, "html": "..."}
- GET /pages/<page>             → full HTML document
- GET /bookmark-metadata?url=   → {"title", "description", "favicon", "image"}
- GET /crawl?id=<page>          → {"blocks": [{id, type, title, url}, ...]}
- GET /treemap?id=<page>        → {"treemap": [...]}
- GET /health

Token: passed via --token-file <path> or $NOTION_KEY at startup.
"""

import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse

from .client import NotionClient
from .config import DEFAULT_HOST, DEFAULT_PORT, Settings, build_parser, load_settings
from .crawl import build_tree, crawl, treemap
from .enrichment import fetch_link_metadata
from .errors import (
    HINTS,
    NotionRoomsError,
    UpstreamNotFoundError,
    UpstreamValidationError,
    error_fragment,
    format_error,
)
from .loader import load_entries
from .page import render_document, render_page

logger = logging.getLogger(__name__)

mcp = FastMCP("notion-rooms", host=DEFAULT_HOST, port=DEFAULT_PORT)

_settings: Optional[Settings] = None


def _get_settings() -> Settings:
    """Get the active settings (set by ``main`` or ``create_app``)."""
    if _settings is None:
        raise RuntimeError(
            "No Notion token. Pass --token-file <path> on the command line."
        )
    return _settings


async def render_ref(ref: str, settings: Settings):
    """Fetch and render one page reference."""
    entries = await load_entries(ref, settings)
    return render_page(entries, service_url=settings.service_url, max_depth=settings.max_depth)


def _upstream_error(e: NotionRoomsError) -> JSONResponse:
    return JSONResponse({"error": e.message}, status_code=e.status_code)


# =============================================================================
# MCP Tool
# =============================================================================


@mcp.tool()
async def notion_render(ref: str) -> str:
    """Render a Notion page to an HTML fragment.

    Args:
        ref: Page UUID (with or without dashes) or a Notion page URL.

    Returns:
        The page HTML, or an error message with a hint.
    """
    try:
        result = await render_ref(ref, _get_settings())
    except UpstreamNotFoundError as e:
        return format_error("NOT_FOUND", e.message, hint=HINTS["not_found"], ref=ref)
    except UpstreamValidationError as e:
        return format_error("INVALID_ID", e.message, hint=HINTS["invalid_id"], ref=ref)
    except RuntimeError as e:
        return format_error("NO_TOKEN", str(e), hint=HINTS["invalid_token"])
    except Exception as e:
        logger.exception(f"Rendering {ref} failed")
        return format_error("UNEXPECTED", f"{type(e).__name__}: {e}", ref=ref)
    return result.html


# =============================================================================
# HTTP Endpoints
# =============================================================================


async def renderer_endpoint(request: Request) -> JSONResponse:
    settings = _get_settings()
    ref = request.query_params.get("id") or settings.root_id
    if not ref:
        return JSONResponse({"error": "Missing id parameter"}, status_code=400)
    try:
        result = await render_ref(ref, settings)
    except (UpstreamNotFoundError, UpstreamValidationError) as e:
        return _upstream_error(e)
    except Exception:
        logger.exception(f"Rendering {ref} failed")
        return JSONResponse(
            {"metadata": {"title": "Error", "favicon": None}, "html": error_fragment()},
            status_code=500,
        )
    return JSONResponse(result.to_dict())


async def page_endpoint(request: Request) -> HTMLResponse:
    settings = _get_settings()
    ref = request.path_params["page_id"]
    try:
        result = await render_ref(ref, settings)
    except (UpstreamNotFoundError, UpstreamValidationError) as e:
        return HTMLResponse(error_fragment(e.message), status_code=e.status_code)
    except Exception:
        logger.exception(f"Rendering {ref} failed")
        return HTMLResponse(error_fragment(), status_code=500)
    return HTMLResponse(render_document(result))


async def bookmark_metadata_endpoint(request: Request) -> JSONResponse:
    settings = _get_settings()
    url = request.query_params.get("url")
    if not url:
        return JSONResponse({"error": "Missing URL parameter"}, status_code=400)
    metadata = await fetch_link_metadata(url, timeout=settings.metadata_timeout)
    return JSONResponse(metadata.to_dict(), headers={"Cache-Control": "public, s-maxage=86400"})


async def _crawl_entries(request: Request):
    settings = _get_settings()
    ref = request.query_params.get("id") or settings.root_id
    if not ref:
        raise UpstreamValidationError("Missing id parameter")
    async with NotionClient(settings) as client:
        return await crawl(ref, client, max_depth=settings.max_depth)


async def crawl_endpoint(request: Request) -> JSONResponse:
    try:
        entries = await _crawl_entries(request)
    except (UpstreamNotFoundError, UpstreamValidationError) as e:
        return _upstream_error(e)
    except Exception:
        logger.exception("Crawl failed")
        return JSONResponse({"error": "Failed to process blocks"}, status_code=500)
    return JSONResponse({"blocks": [entry.to_dict() for entry in entries]})


async def treemap_endpoint(request: Request) -> JSONResponse:
    try:
        entries = await _crawl_entries(request)
    except (UpstreamNotFoundError, UpstreamValidationError) as e:
        return _upstream_error(e)
    except Exception:
        logger.exception("Treemap failed")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"treemap": treemap(build_tree(entries))})


async def health_endpoint(request: Request) -> JSONResponse:
    """Health check endpoint for easy testing."""
    return JSONResponse({
        "status": "ok",
        "token_loaded": _settings is not None and bool(_settings.token),
    })


ROUTES = [
    ("/renderer", renderer_endpoint),
    ("/pages/{page_id}", page_endpoint),
    ("/bookmark-metadata", bookmark_metadata_endpoint),
    ("/crawl", crawl_endpoint),
    ("/treemap", treemap_endpoint),
    ("/health", health_endpoint),
]


def create_app(settings: Settings, with_mcp: bool = True) -> Starlette:
    """Build the HTTP app; ``with_mcp`` also mounts the streamable MCP endpoint."""
    global _settings
    _settings = settings

    app = mcp.streamable_http_app() if with_mcp else Starlette()
    for path, endpoint in ROUTES:
        app.add_route(path, endpoint, methods=["GET"])
    return app


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    """Run the Notion Rooms server.

    Supports two transport modes:
    - stdio (default): MCP client launches this process
    - http: standalone server with the render routes

    Usage:
        notion-rooms --token-file ~/.notion-token          # stdio MCP
        notion-rooms --token-file ~/.notion-token --http   # HTTP on 127.0.0.1:2052
    """
    global _settings
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    settings = load_settings(args)

    if args.http:
        import uvicorn

        app = create_app(settings)
        logger.info(f"Starting Notion Rooms server on http://{settings.host}:{settings.port}")
        uvicorn.run(app, host=settings.host, port=settings.port, log_level="warning")
    else:
        _settings = settings
        mcp.run()


if __name__ == "__main__":
    main()
