"""Small text helpers shared by the rich-text, property and block renderers."""

import html
import re
from datetime import date
from typing import Optional
from urllib.parse import urlparse

# Schemes that are safe to place in href/src attributes
SAFE_URL_SCHEMES = {"http", "https", "mailto", "tel", "data", ""}

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

DATE_RANGE_ARROW = "→"

_ISO_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def escape_html(text: object) -> str:
    """Escape &, <, >, " and ' for safe inclusion in HTML text or attributes."""
    if text is None:
        return ""
    return html.escape(str(text), quote=True)


def safe_url(url: Optional[str]) -> str:
    """Escape a URL for an attribute, neutralising script-capable schemes."""
    if not url:
        return ""
    scheme = urlparse(url.strip()).scheme.lower()
    if scheme not in SAFE_URL_SCHEMES:
        return "#"
    return escape_html(url.strip())


def hostname(url: Optional[str]) -> str:
    """Return the host of a URL without a leading ``www.``."""
    if not url:
        return ""
    host = urlparse(url).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Cut text to ``limit`` characters, appending ``suffix`` when cut."""
    if text is None:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


# =============================================================================
# Dates and Numbers
# =============================================================================


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse the date part of an ISO-8601 date or timestamp string.

    Only the leading ``YYYY-MM-DD`` is used, so the result never depends on
    the server's time zone.
    """
    if not value or not isinstance(value, str):
        return None
    match = _ISO_DATE_PATTERN.match(value)
    if not match:
        return None
    year, month, day = (int(g) for g in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_date(value: Optional[str]) -> str:
    """Render an ISO date as a long date, e.g. ``January 5, 2025``."""
    parsed = parse_date(value)
    if parsed is None:
        return ""
    return f"{MONTH_NAMES[parsed.month - 1]} {parsed.day}, {parsed.year}"


def format_date_range(start: Optional[str], end: Optional[str] = None) -> str:
    """Render a date or date range; the end is shown only when present."""
    first = format_date(start)
    last = format_date(end) if end else ""
    if first and last:
        return f"{first} {DATE_RANGE_ARROW} {last}"
    return first or last


def format_number(value: object) -> str:
    """Format a number with thousands separators and at most 2 decimals."""
    if value is None or isinstance(value, bool):
        return ""
    if not isinstance(value, (int, float)):
        return ""
    if isinstance(value, int):
        return f"{value:,}"
    if value != value or value in (float("inf"), float("-inf")):
        return ""
    text = f"{value:,.2f}".rstrip("0").rstrip(".")
    if text == "-0":
        return "0"
    return text

