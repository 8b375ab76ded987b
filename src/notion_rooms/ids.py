"""Page references: bare ids (dashed or not) and notion.so / notion.site URLs."""

import re
from typing import Optional
from urllib.parse import urlparse

NOTION_DOMAINS = ("notion.so", "notion.site")

_HEX_ID = re.compile(r"[0-9a-f]{32}")
# Id at the end of a URL path, usually after a title slug
_TRAILING_ID = re.compile(r"([0-9a-f]{32}|[0-9a-f]{8}(?:-[0-9a-f]{4}){3}-[0-9a-f]{12})$", re.IGNORECASE)


def normalize_uuid(value: str) -> str:
    """Return ``value`` as a lowercase 8-4-4-4-12 UUID.

    Raises:
        ValueError: If ``value`` is not 32 hex digits once dashes are dropped.
    """
    digits = value.replace("-", "").lower()
    if not _HEX_ID.fullmatch(digits):
        raise ValueError(f"Not a Notion id: {value!r}")
    return "-".join((digits[:8], digits[8:12], digits[12:16], digits[16:20], digits[20:]))


def _is_notion_host(host: str) -> bool:
    return any(host == domain or host.endswith("." + domain) for domain in NOTION_DOMAINS)


def extract_uuid_from_url(url: str) -> Optional[str]:
    """Id of the page a Notion URL points at, or None for any other URL."""
    parsed = urlparse(url)
    if not _is_notion_host((parsed.hostname or "").lower()):
        return None
    match = _TRAILING_ID.search(parsed.path.rstrip("/"))
    return normalize_uuid(match.group(1)) if match else None


def resolve_ref(ref: Optional[str]) -> Optional[str]:
    """Turn a page reference (id or Notion URL) into a dashed UUID."""
    ref = (ref or "").strip()
    if not ref:
        return None
    if "://" in ref:
        return extract_uuid_from_url(ref)
    try:
        return normalize_uuid(ref)
    except ValueError:
        return None
