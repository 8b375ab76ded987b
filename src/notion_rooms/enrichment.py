"""Link metadata scraping and image sniffing.

Both lookups are best-effort: every failure resolves to a fixed fallback
so a slow or broken external site never blocks a render.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

FAVICON_SERVICE = "https://www.google.com/s2/favicons?domain={host}&sz=64"

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


@dataclass
class LinkMetadata:
    title: str
    description: str = ""
    favicon: Optional[str] = None
    image: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def fallback_metadata(url: str) -> LinkMetadata:
    """Metadata used when a page cannot be fetched or parsed."""
    host = urlparse(url).hostname or url
    return LinkMetadata(
        title=host,
        description="",
        favicon=FAVICON_SERVICE.format(host=host),
        image=None,
    )


def _meta(soup: BeautifulSoup, name: str) -> Optional[str]:
    # twitter:, then plain name=, then og:
    for attrs in ({"property": f"twitter:{name}"}, {"name": name}, {"property": f"og:{name}"}):
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return tag["content"]
    return None


def parse_metadata(html: str, final_url: str) -> LinkMetadata:
    """Pull title, description, favicon and preview image out of a page."""
    soup = BeautifulSoup(html, "html.parser")
    parsed = urlparse(final_url)
    origin = f"{parsed.scheme}://{parsed.netloc}"

    title_tag = soup.find("title")
    title = title_tag.get_text().strip() if title_tag else ""

    icon = soup.find("link", rel="icon")
    if icon and icon.get("href"):
        favicon = urljoin(final_url, icon["href"])
    else:
        favicon = f"{origin}/favicon.ico"

    image = _meta(soup, "image")
    if image and image.startswith("/"):
        image = f"{origin}{image}"

    return LinkMetadata(
        title=title or parsed.hostname or final_url,
        description=_meta(soup, "description") or "",
        favicon=favicon,
        image=image,
    )


async def fetch_link_metadata(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> LinkMetadata:
    """Fetch a page and scrape its link-preview metadata.

    Never raises: network errors, bad status codes and unparsable pages all
    return ``fallback_metadata(url)``.
    """
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    try:
        response = await client.get(url, headers=BROWSER_HEADERS)
        response.raise_for_status()
        return parse_metadata(response.text, str(response.url))
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Metadata fetch failed for {url}: {type(e).__name__}: {e}")
        return fallback_metadata(url)
    finally:
        if owns_client:
            await client.aclose()


async def is_image(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> bool:
    """Check whether a URL serves an image, via a HEAD request.

    Returns False on any failure.
    """
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    try:
        response = await client.head(url)
        response.raise_for_status()
        return response.headers.get("content-type", "").lower().startswith("image/")
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Image check failed for {url}: {type(e).__name__}: {e}")
        return False
    finally:
        if owns_client:
            await client.aclose()
