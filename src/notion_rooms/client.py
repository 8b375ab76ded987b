"""Async Notion API client with rate limiting and retry.

All methods raise ``httpx.HTTPStatusError`` for non-success responses;
callers decide whether a failure is fatal (the root page) or skippable
(a child block, a user lookup).
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0  # seconds
RETRY_JITTER_MAX = 0.5  # max random jitter to add (seconds)

# Concurrent in-flight requests per client
MAX_CONCURRENT_REQUESTS = 50

PAGE_SIZE = 100


def _compute_retry_delay(attempt: int, retry_after: float | None = None) -> float:
    """Seconds to wait before retry ``attempt`` (0-based).

    Doubles from ``RETRY_BASE_DELAY`` each attempt, never waits less than the
    server's Retry-After, and adds up to ``RETRY_JITTER_MAX`` of jitter.
    """
    delay = max(RETRY_BASE_DELAY * 2 ** attempt, retry_after or 0.0)
    return delay + random.uniform(0, RETRY_JITTER_MAX)


def http_error_detail(e: Exception, max_len: int = 300) -> str:
    """One-line description of a failed call for log messages."""
    status = status_of(e)
    if status is not None:
        return f"HTTP {status}: {e.response.text[:max_len]}"
    return f"{type(e).__name__}: {e}"[:max_len]


def status_of(e: Exception) -> Optional[int]:
    """HTTP status code of a client error, if it carries one."""
    if isinstance(e, httpx.HTTPStatusError) and e.response is not None:
        return e.response.status_code
    return None


@dataclass
class ChildrenPage:
    """One page of a block's children listing."""
    items: list[dict] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class NotionClient:
    """Thin async wrapper over the Notion REST API.

    Use as an async context manager so the underlying connection pool is
    closed::

        async with NotionClient(settings) as client:
            page = await client.get_page(page_id)
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)
        self._client = httpx.AsyncClient(
            base_url=settings.api_base,
            timeout=settings.timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {settings.token}",
                "Notion-Version": settings.notion_version,
                "Content-Type": "application/json",
            },
        )

    async def __aenter__(self) -> "NotionClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict:
        """Make an authenticated request with rate limiting and retry.

        Uses a semaphore to limit concurrent requests and exponential backoff
        for rate limit errors (429).
        """
        if method not in ("GET", "POST", "PATCH", "DELETE"):
            raise ValueError(f"Unsupported method: {method}")

        async with self._semaphore:
            response = None
            for attempt in range(MAX_RETRIES):
                response = await self._client.request(
                    method,
                    endpoint,
                    json=json_body if method in ("POST", "PATCH") else None,
                    params=params,
                )
                if response.status_code == 429 and attempt < MAX_RETRIES - 1:
                    retry_after = float(response.headers.get("Retry-After", RETRY_BASE_DELAY))
                    delay = _compute_retry_delay(attempt, retry_after)
                    logger.warning(f"Rate limited, waiting {delay:.1f}s (attempt {attempt + 1})")
                    await asyncio.sleep(delay)
                    continue
                break

            response.raise_for_status()
            return response.json()

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    async def get_children(self, block_id: str, cursor: Optional[str] = None) -> ChildrenPage:
        params = {"page_size": PAGE_SIZE}
        if cursor:
            params["start_cursor"] = cursor
        result = await self.request("GET", f"/blocks/{block_id}/children", params=params)
        return ChildrenPage(
            items=result.get("results", []),
            next_cursor=result.get("next_cursor"),
            has_more=bool(result.get("has_more")),
        )

    async def get_all_children(self, block_id: str) -> list[dict]:
        """Fetch every immediate child of a block, following pagination."""
        blocks = []
        cursor = None
        while True:
            page = await self.get_children(block_id, cursor)
            blocks.extend(page.items)
            if not page.has_more or not page.next_cursor:
                break
            cursor = page.next_cursor
        return blocks

    # -------------------------------------------------------------------------
    # Pages, databases, users
    # -------------------------------------------------------------------------

    async def get_page(self, page_id: str) -> dict:
        return await self.request("GET", f"/pages/{page_id}")

    async def get_database(self, database_id: str) -> dict:
        """Fetch database container metadata (title, data_sources list)."""
        return await self.request("GET", f"/databases/{database_id}")

    async def get_data_source(self, data_source_id: str) -> dict:
        """Fetch data source metadata; the schema lives here, not on the database."""
        return await self.request("GET", f"/data_sources/{data_source_id}")

    async def query_data_source(self, data_source_id: str, limit: int = 100) -> tuple[list[dict], bool]:
        """Query data source rows.

        Returns:
            Tuple of (rows, has_more).
        """
        rows = []
        start_cursor = None
        has_more = False

        while len(rows) < limit:
            body: dict = {"page_size": min(PAGE_SIZE, limit - len(rows))}
            if start_cursor:
                body["start_cursor"] = start_cursor

            result = await self.request("POST", f"/data_sources/{data_source_id}/query", json_body=body)

            rows.extend(result.get("results", []))
            has_more = result.get("has_more", False)

            if not has_more or len(rows) >= limit:
                break
            start_cursor = result.get("next_cursor")

        return rows[:limit], has_more

    async def get_database_schema(self, database_id: str) -> tuple[dict, Optional[str]]:
        """Resolve a database to its first data source.

        Returns:
            Tuple of (database with ``properties`` merged in, data source id).
        """
        database = await self.get_database(database_id)
        data_sources = database.get("data_sources") or []
        data_source_id = data_sources[0].get("id") if data_sources else None
        if data_source_id and "properties" not in database:
            data_source = await self.get_data_source(data_source_id)
            database = {**database, "properties": data_source.get("properties", {})}
        return database, data_source_id

    async def get_user(self, user_id: str) -> dict:
        return await self.request("GET", f"/users/{user_id}")

    async def get_me(self) -> dict:
        return await self.request("GET", "/users/me")
