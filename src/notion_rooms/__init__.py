"""Render Notion pages to HTML.

The fetch phase (``loader``) builds a materialized entry payload; the
render phase (``page.render_page``) turns it into an HTML fragment plus
page metadata without any I/O.
"""

from .errors import (
    MissingRootError,
    NotionRoomsError,
    RenderCycleError,
    RenderDepthError,
    UpstreamNotFoundError,
    UpstreamValidationError,
)
from .page import PageMetadata, RenderResult, render_document, render_page

__all__ = [
    "MissingRootError",
    "NotionRoomsError",
    "PageMetadata",
    "RenderCycleError",
    "RenderDepthError",
    "RenderResult",
    "UpstreamNotFoundError",
    "UpstreamValidationError",
    "render_document",
    "render_page",
]
