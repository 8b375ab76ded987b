"""Error taxonomy for the render pipeline.

Only failures to resolve the root page reach the caller as request errors.
Everything below the root degrades into the rendered output and is logged.
"""

from .formatting import escape_html


class NotionRoomsError(Exception):
    """Base class for all notion-rooms errors."""

    status_code = 500
    message = "Failed to render page"

    def __init__(self, message: str | None = None, ref: str | None = None):
        self.ref = ref
        if message is not None:
            self.message = message
        super().__init__(self.message)


class UpstreamNotFoundError(NotionRoomsError):
    """The requested root id does not resolve to a page or database."""

    status_code = 404
    message = "Page not found"


class UpstreamValidationError(NotionRoomsError):
    """The requested root id is malformed."""

    status_code = 400
    message = "Invalid page id"


class MissingRootError(NotionRoomsError):
    """The entry sequence does not start with a well-formed page marker."""

    message = "Missing page metadata"


class RenderCycleError(NotionRoomsError):
    """A block appears on its own ancestor path."""

    message = "Cyclic block structure"


class RenderDepthError(NotionRoomsError):
    """Block nesting exceeds the configured maximum depth."""

    message = "Block nesting too deep"


# Raised by render handlers on a malformed block payload
MALFORMED_BLOCK_ERRORS = (AttributeError, IndexError, KeyError, TypeError, ValueError)


# =============================================================================
# Error Output
# =============================================================================


def format_error(code: str, message: str, hint: str | None = None, ref: str | None = None) -> str:
    """Plain-text error for MCP callers.

    The first line is ``error: CODE - message``; the failing ref and a hint
    on how to recover follow on their own lines when given.
    """
    lines = [f"error: {code} - {message}"]
    lines.extend(f"{label}: {value}" for label, value in (("ref", ref), ("hint", hint)) if value)
    return "\n".join(lines)


HINTS = {
    "not_found": "Check that the page still exists and is shared with the integration.",
    "invalid_id": "Use a page id (32 hex digits, dashes optional) or a notion.so / notion.site page URL.",
    "invalid_token": "Set $NOTION_KEY or pass --token-file with a valid integration token.",
}


def error_fragment(message: str = "Something went wrong while rendering this page.") -> str:
    """Final-resort HTML shown when the pipeline produced no content."""
    return (
        '<div class="layout-full"><div class="notion-error">'
        f"<h1>Unable to display page</h1><p>{escape_html(message)}</p>"
        "</div></div>"
    )
