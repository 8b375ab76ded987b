"""Page assembly: marker header, breadcrumb and ordered block fragments."""

import logging
from dataclasses import asdict, dataclass
from typing import Optional, Sequence, Union
from urllib.parse import quote

from .blocks import render_breadcrumb
from .errors import MissingRootError
from .formatting import escape_html, safe_url
from .lists import render_blocks
from .models import (
    DEFAULT_MAX_DEPTH,
    BlockEntry,
    Entry,
    PageMarker,
    RenderContext,
    file_url,
    parse_entries,
)

logger = logging.getLogger(__name__)

STYLESHEET_URL = "/notion.css"
CLIENT_SCRIPT_URL = "/notion-renderer.js"
MATHJAX_URL = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"
FONT_AWESOME_URL = "https://kit.fontawesome.com/7594385887.js"


@dataclass
class PageMetadata:
    title: str
    favicon: Optional[str] = None


@dataclass
class RenderResult:
    """What the renderer hands back to the caller."""
    metadata: PageMetadata
    html: str

    def to_dict(self) -> dict:
        return {"metadata": asdict(self.metadata), "html": self.html}


def page_favicon(icon: Optional[dict]) -> Optional[str]:
    """Favicon URL for a page icon.

    Emoji icons become an inline SVG data URI; file icons use their URL.
    """
    if not isinstance(icon, dict):
        return None
    emoji = icon.get("emoji")
    if emoji:
        svg = (
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">'
            f'<text y=".9em" font-size="90">{emoji}</text></svg>'
        )
        return f"data:image/svg+xml,{quote(svg)}"
    return file_url(icon)


def _render_header(marker: PageMarker) -> str:
    html = ""
    if marker.cover:
        html += (
            '<div class="notion-page-cover">'
            f'<img src="{safe_url(marker.cover)}" alt="" /></div>'
        )
    html += "<div class='layout-content'>"
    icon = marker.icon or {}
    if icon.get("emoji"):
        html += f"<div class='notion-header-icon'>{escape_html(icon['emoji'])}</div>"
    elif file_url(icon):
        html += (
            "<div class='notion-header-icon'>"
            f'<img src="{safe_url(file_url(icon))}" alt="" /></div>'
        )
    html += f"<div class='notion-header-title'><h1>{escape_html(marker.title)}</h1></div>"
    html += "</div>"
    return html


def _coerce_entries(entries: Sequence[Union[dict, Entry]], max_depth: int) -> list[Entry]:
    if entries and isinstance(entries[0], (PageMarker, BlockEntry)):
        return list(entries)
    return parse_entries(list(entries), max_depth=max_depth)


def render_page(
    entries: Sequence[Union[dict, Entry]],
    service_url: str = "/",
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> RenderResult:
    """Render an entry sequence to one HTML fragment plus page metadata.

    ``entries`` may be the raw JSON payload (``[{"master": ...}, {"block":
    ...}, ...]``) or already-parsed entries. Block entries render in input
    order, each wrapped in a container keyed by its block id.

    Raises:
        MissingRootError: If the sequence does not start with a page marker.
    """
    parsed = _coerce_entries(entries, max_depth)
    if not parsed or not isinstance(parsed[0], PageMarker):
        raise MissingRootError()

    marker = parsed[0]
    blocks = [entry.block for entry in parsed[1:] if isinstance(entry, BlockEntry)]

    context = RenderContext(marker=marker, service_url=service_url, max_depth=max_depth)
    context.index(blocks, marker.id)

    html = '<div class="layout-full">'
    html += _render_header(marker)
    if marker.breadcrumb:
        html += f"<div class='layout-content'>{render_breadcrumb(marker.breadcrumb, context)}</div>"
    html += "<div class='layout-content'><div class='notion-page-content'>"
    html += render_blocks(blocks, context)
    html += "</div></div></div>"

    logger.debug(f"Rendered {len(blocks)} top-level blocks for {marker.id}")
    return RenderResult(
        metadata=PageMetadata(title=marker.title, favicon=page_favicon(marker.icon)),
        html=html,
    )


def render_document(result: RenderResult, description: str = "Rendered Notion Page") -> str:
    """Wrap a rendered fragment in a standalone HTML document."""
    title = escape_html(result.metadata.title or "Untitled")
    favicon = ""
    if result.metadata.favicon:
        favicon = f'<link rel="icon" href="{safe_url(result.metadata.favicon)}" />'
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head>'
        '<meta charset="utf-8" />'
        '<meta name="viewport" content="width=device-width, initial-scale=1" />'
        f"<title>{title}</title>"
        f'<meta name="description" content="{escape_html(description)}" />'
        f"{favicon}"
        f'<link href="{STYLESHEET_URL}" rel="stylesheet" />'
        f'<script src="{FONT_AWESOME_URL}" defer></script>'
        f'<script src="{MATHJAX_URL}" async></script>'
        f'<script src="{CLIENT_SCRIPT_URL}" defer></script>'
        "</head><body><main>"
        f"{result.html}"
        "</main></body></html>"
    )
