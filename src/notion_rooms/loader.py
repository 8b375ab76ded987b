"""Fetch phase: build the fully materialized entry payload for one root id.

The output is the JSON-shaped sequence the renderer consumes::

    [{"master": page, "breadcrumb": [...]}, {"block": block}, ...]

Blocks carry their resolved ``children`` plus underscore-prefixed
enrichment (``_page``, ``_database``, ``_rows``, ``_metadata``, ...).
Only failure to resolve the root raises; every other failed call is
logged and the affected node or field is skipped.
"""

import asyncio
import logging
from typing import Optional

import httpx

from .client import NotionClient, http_error_detail, status_of
from .config import Settings
from .enrichment import fetch_link_metadata, is_image
from .errors import UpstreamNotFoundError, UpstreamValidationError
from .ids import resolve_ref
from .models import get_database_title, get_page_title

logger = logging.getLogger(__name__)

# Blocks whose children are part of the page body (child pages and
# databases are linked, not inlined)
CONTAINER_TYPES = frozenset({
    "paragraph", "quote", "callout", "to_do", "toggle", "template",
    "bulleted_list_item", "numbered_list_item",
    "heading_1", "heading_2", "heading_3",
    "column_list", "column", "synced_block", "table",
})

BOOKMARK_TYPES = {"bookmark", "link_preview"}

DATABASE_ROW_LIMIT = 100

# Failures of a single non-root call: HTTP errors, transport errors, bad JSON
FETCH_ERRORS = (httpx.HTTPError, ValueError)


class EntryLoader:
    """Loads one page (or database) and everything its render needs.

    Args:
        client: Notion API client.
        settings: Runtime settings (depth bound, metadata timeout).
        http: Client for external enrichment requests (link metadata,
            image sniffing). Created on demand when omitted.
    """

    def __init__(self, client: NotionClient, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self.client = client
        self.settings = settings
        self.http = http
        self._users: dict[str, asyncio.Future] = {}

    # -------------------------------------------------------------------------
    # Root
    # -------------------------------------------------------------------------

    async def load(self, ref: str) -> list[dict]:
        """Build the entry payload for a page or database reference.

        Raises:
            UpstreamValidationError: If ``ref`` is not a page id or URL, or
                the API rejects it.
            UpstreamNotFoundError: If it resolves to neither a page nor a
                database.
        """
        root_id = resolve_ref(ref)
        if not root_id:
            raise UpstreamValidationError(ref=ref)

        owns_http = self.http is None
        if owns_http:
            self.http = httpx.AsyncClient(timeout=self.settings.metadata_timeout, follow_redirects=True)
        try:
            page = await self._fetch_root_page(root_id)
            if page is not None:
                return await self._load_page(page)
            return await self._load_database(root_id)
        finally:
            if owns_http:
                await self.http.aclose()
                self.http = None

    async def _fetch_root_page(self, root_id: str) -> Optional[dict]:
        """Fetch the root as a page; None means "try it as a database"."""
        try:
            return await self.client.get_page(root_id)
        except httpx.HTTPStatusError as e:
            if status_of(e) in (404, 400):
                return None
            raise

    async def _load_page(self, page: dict) -> list[dict]:
        page_id = page["id"]
        breadcrumb, children = await asyncio.gather(
            self._breadcrumb(page),
            self._load_children(page_id, path=frozenset({page_id})),
        )
        entries = [{"master": page, "breadcrumb": breadcrumb}]

        row = await self._database_row(page)
        if row is not None:
            entries.append({"block": row})

        entries.extend({"block": block} for block in children)
        logger.info(f"Loaded page {page_id} with {len(children)} top-level blocks")
        return entries

    async def _load_database(self, database_id: str) -> list[dict]:
        try:
            database, data_source_id = await self.client.get_database_schema(database_id)
        except httpx.HTTPStatusError as e:
            status = status_of(e)
            if status == 404:
                raise UpstreamNotFoundError(ref=database_id) from e
            if status == 400:
                raise UpstreamValidationError(ref=database_id) from e
            raise

        rows = await self._query_rows(data_source_id)
        block = {
            "object": "block",
            "id": database["id"],
            "type": "child_database",
            "child_database": {"title": get_database_title(database)},
            "_database": {**database, "is_inline": True},
            "_rows": rows,
        }
        logger.info(f"Loaded database {database_id} with {len(rows)} rows")
        return [{"master": database, "breadcrumb": []}, {"block": block}]

    async def _breadcrumb(self, page: dict) -> list[dict]:
        """Ancestor pages of ``page``, outermost first."""
        ancestors = []
        parent = page.get("parent") or {}
        seen = {page["id"]}
        while parent.get("type") == "page_id" and len(ancestors) < self.settings.max_depth:
            parent_id = parent["page_id"]
            if parent_id in seen:
                break
            seen.add(parent_id)
            try:
                ancestor = await self.client.get_page(parent_id)
            except FETCH_ERRORS as e:
                logger.warning(f"Breadcrumb stops at {parent_id}: {http_error_detail(e, 100)}")
                break
            ancestors.append({
                "id": ancestor["id"],
                "title": get_page_title(ancestor),
                "icon": ancestor.get("icon"),
            })
            parent = ancestor.get("parent") or {}
        ancestors.reverse()
        return ancestors

    async def _database_row(self, page: dict) -> Optional[dict]:
        """Synthesize a ``database_row`` block for a page living in a database."""
        parent = page.get("parent") or {}
        try:
            if parent.get("type") == "data_source_id":
                schema = (await self.client.get_data_source(parent["data_source_id"])).get("properties", {})
            elif parent.get("type") == "database_id":
                database, _ = await self.client.get_database_schema(parent["database_id"])
                schema = database.get("properties", {})
            else:
                return None
        except FETCH_ERRORS as e:
            logger.warning(f"Skipping properties of {page['id']}: {http_error_detail(e, 100)}")
            return None

        properties = dict(page.get("properties") or {})
        await self._resolve_properties(properties)
        return {
            "object": "block",
            "id": f"{page['id']}-properties",
            "type": "database_row",
            "database_row": {},
            "_schema": schema,
            "_properties": properties,
        }

    # -------------------------------------------------------------------------
    # Children
    # -------------------------------------------------------------------------

    async def _load_children(self, block_id: str, path: frozenset) -> list[dict]:
        """Fetch a block's children recursively.

        ``path`` holds the ids on the way down from the root; an id that
        reappears on it is a cycle and is not expanded. The same block may
        still load in several places (a synced original and its copies).
        A failed listing yields ``[]`` for that block only; its siblings and
        their subtrees still load.
        """
        if len(path) > self.settings.max_depth:
            logger.warning(f"Not descending into {block_id}: depth limit {self.settings.max_depth}")
            return []
        try:
            blocks = await self.client.get_all_children(block_id)
        except FETCH_ERRORS as e:
            logger.warning(f"Failed to fetch children of {block_id}: {http_error_detail(e, 100)}")
            return []

        await asyncio.gather(*(self._expand(block, path) for block in blocks))
        return blocks

    async def _expand(self, block: dict, path: frozenset) -> None:
        block_id = block.get("id", "")
        if block_id in path:
            logger.error(f"Block {block_id} is its own ancestor; not expanding it")
            return
        path = path | {block_id}

        block_type = block.get("type")
        tasks = []
        # Synced copies render the children of their original
        source_id = None
        if block_type == "synced_block":
            source_id = ((block.get("synced_block") or {}).get("synced_from") or {}).get("block_id")
        if source_id:
            tasks.append(self._attach_children(block, source_id, path))
        elif block.get("has_children") and block_type in CONTAINER_TYPES:
            tasks.append(self._attach_children(block, block_id, path))
        if block_type == "child_page":
            tasks.append(self._attach_page(block))
        if block_type == "child_database":
            tasks.append(self._attach_database(block))
        if block_type in BOOKMARK_TYPES:
            tasks.append(self._attach_metadata(block))
        await asyncio.gather(*tasks)

    async def _attach_children(self, block: dict, source_id: str, path: frozenset) -> None:
        if source_id != block["id"] and source_id in path:
            logger.error(f"Synced block {block['id']} copies its own ancestor {source_id}")
            block["children"] = []
            return
        block["children"] = await self._load_children(source_id, path | {source_id})

    async def _attach_page(self, block: dict) -> None:
        try:
            block["_page"] = await self.client.get_page(block["id"])
        except FETCH_ERRORS as e:
            logger.warning(f"Skipping child page metadata {block['id']}: {http_error_detail(e, 100)}")

    async def _attach_database(self, block: dict) -> None:
        try:
            database, data_source_id = await self.client.get_database_schema(block["id"])
        except FETCH_ERRORS as e:
            logger.warning(f"Skipping child database {block['id']}: {http_error_detail(e, 100)}")
            return
        block["_database"] = database
        if database.get("is_inline"):
            block["_rows"] = await self._query_rows(data_source_id)

    async def _attach_metadata(self, block: dict) -> None:
        url = (block.get(block["type"]) or {}).get("url")
        if url:
            metadata = await fetch_link_metadata(url, client=self.http, timeout=self.settings.metadata_timeout)
            block["_metadata"] = metadata.to_dict()

    # -------------------------------------------------------------------------
    # Database rows and property enrichment
    # -------------------------------------------------------------------------

    async def _query_rows(self, data_source_id: Optional[str]) -> list[dict]:
        if not data_source_id:
            return []
        try:
            rows, has_more = await self.client.query_data_source(data_source_id, limit=DATABASE_ROW_LIMIT)
        except FETCH_ERRORS as e:
            logger.warning(f"Failed to query rows of {data_source_id}: {http_error_detail(e, 100)}")
            return []
        if has_more:
            logger.info(f"Data source {data_source_id} truncated at {DATABASE_ROW_LIMIT} rows")
        await asyncio.gather(*(self._resolve_properties(row.get("properties") or {}) for row in rows))
        return rows

    async def _resolve_properties(self, properties: dict) -> None:
        """Mark image files and resolve people in place."""
        tasks = []
        for value in properties.values():
            if not isinstance(value, dict):
                continue
            if value.get("type") == "files":
                tasks.extend(self._mark_image(item) for item in value.get("files") or [])
            elif value.get("type") == "people":
                tasks.append(self._resolve_people(value))
        await asyncio.gather(*tasks)

    async def _mark_image(self, item: dict) -> None:
        url = (item.get(item.get("type", "")) or {}).get("url")
        item["_is_image"] = bool(url) and await is_image(url, client=self.http, timeout=self.settings.metadata_timeout)

    async def _resolve_people(self, value: dict) -> None:
        people = value.get("people") or []
        value["people"] = list(await asyncio.gather(*(self._resolve_user(person) for person in people)))

    async def _resolve_user(self, person: dict) -> dict:
        if person.get("name") or not person.get("id"):
            return person
        user_id = person["id"]
        # Cache the in-flight lookup so concurrent rows share one request
        if user_id not in self._users:
            self._users[user_id] = asyncio.ensure_future(self._fetch_user(user_id))
        return await self._users[user_id]

    async def _fetch_user(self, user_id: str) -> dict:
        try:
            return await self.client.get_user(user_id)
        except FETCH_ERRORS as e:
            # Permission failures stay unresolved; the error body is not kept
            logger.warning(f"Could not resolve user {user_id}: HTTP {status_of(e)}")
            return {"object": "error", "id": user_id}


async def load_entries(
    ref: str,
    settings: Settings,
    client: Optional[NotionClient] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> list[dict]:
    """Fetch everything needed to render ``ref``.

    Opens (and closes) its own ``NotionClient`` unless one is given.
    """
    if client is not None:
        return await EntryLoader(client, settings, http).load(ref)
    async with NotionClient(settings) as owned:
        return await EntryLoader(owned, settings, http).load(ref)
