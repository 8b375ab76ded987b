"""Page-tree crawl and treemap listing for a workspace subtree."""

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .client import NotionClient, http_error_detail, status_of
from .errors import UpstreamNotFoundError, UpstreamValidationError
from .ids import resolve_ref
from .loader import CONTAINER_TYPES, FETCH_ERRORS
from .models import DEFAULT_MAX_DEPTH, get_page_title

logger = logging.getLogger(__name__)

TREEMAP_INDENT = "---"


@dataclass
class CrawlEntry:
    id: str
    type: str
    title: str
    url: Optional[str] = None
    parent_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "type": self.type, "title": self.title, "url": self.url}


@dataclass
class TreeNode:
    entry: CrawlEntry
    children: list["TreeNode"] = field(default_factory=list)


async def crawl(ref: str, client: NotionClient, max_depth: int = DEFAULT_MAX_DEPTH) -> list[CrawlEntry]:
    """List the root page and every page nested below it.

    Child pages are found anywhere in the block tree (inside toggles,
    columns, ...). Databases are not descended into.

    Raises:
        UpstreamValidationError: If ``ref`` is not a page id or URL.
        UpstreamNotFoundError: If the root page does not exist.
    """
    root_id = resolve_ref(ref)
    if not root_id:
        raise UpstreamValidationError(ref=ref)
    try:
        root = await client.get_page(root_id)
    except httpx.HTTPStatusError as e:
        if status_of(e) == 404:
            raise UpstreamNotFoundError(ref=root_id) from e
        if status_of(e) == 400:
            raise UpstreamValidationError(ref=root_id) from e
        raise

    entries = [CrawlEntry(id=root["id"], type=root.get("object", "page"), title=get_page_title(root), url=root.get("url"))]
    seen = {root["id"]}
    await _crawl_children(client, root["id"], root["id"], entries, seen, 0, max_depth)
    return entries


async def _crawl_children(
    client: NotionClient,
    block_id: str,
    page_id: str,
    entries: list[CrawlEntry],
    seen: set[str],
    depth: int,
    max_depth: int,
) -> None:
    if depth >= max_depth:
        return
    try:
        blocks = await client.get_all_children(block_id)
    except FETCH_ERRORS as e:
        logger.warning(f"Failed to crawl children of {block_id}: {http_error_detail(e, 100)}")
        return

    pages = []
    containers = []
    for block in blocks:
        if block.get("id") in seen:
            continue
        if block.get("type") == "child_page":
            seen.add(block["id"])
            pages.append(block)
        elif block.get("has_children") and block.get("type") in CONTAINER_TYPES:
            containers.append(block)

    # Container blocks belong to the same page
    for block in containers:
        await _crawl_children(client, block["id"], page_id, entries, seen, depth + 1, max_depth)

    for block in pages:
        title = (block.get("child_page") or {}).get("title") or "Untitled"
        url = None
        try:
            page = await client.get_page(block["id"])
            title = get_page_title(page) if page.get("properties") else title
            url = page.get("url")
        except FETCH_ERRORS as e:
            logger.warning(f"Using block title for {block['id']}: {http_error_detail(e, 100)}")
        entries.append(CrawlEntry(id=block["id"], type="child_page", title=title, url=url, parent_id=page_id))
        if block.get("has_children"):
            await _crawl_children(client, block["id"], block["id"], entries, seen, depth + 1, max_depth)


def build_tree(entries: list[CrawlEntry]) -> list[TreeNode]:
    """Nest crawl entries under their parents; entries without one are roots."""
    nodes = {entry.id: TreeNode(entry) for entry in entries}
    roots = []
    for entry in entries:
        parent = nodes.get(entry.parent_id) if entry.parent_id else None
        if parent is not None and parent is not nodes[entry.id]:
            parent.children.append(nodes[entry.id])
        else:
            roots.append(nodes[entry.id])
    return roots


def treemap(tree: list[TreeNode], prefix: str = "") -> list[list]:
    """Render a tree as nested ``[line]`` / ``[line, children]`` lists.

    Each line is ``"<prefix><id> <title>"``; the prefix grows by ``---``
    per level.
    """
    result = []
    for node in tree:
        line = f"{prefix}{node.entry.id} {node.entry.title}"
        if node.children:
            result.append([line, treemap(node.children, prefix + TREEMAP_INDENT)])
        else:
            result.append([line])
    return result
