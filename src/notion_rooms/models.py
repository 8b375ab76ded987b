"""Data model for the render pipeline.

Entries arrive as JSON mirroring the Notion API: a page marker
(``{"master": page}``) followed by wrapped blocks (``{"block": block}``).
Each block keeps its type-named payload dict untouched; enrichment resolved
during the fetch phase travels in underscore-prefixed keys (``_page``,
``_database``, ``_rows``, ``_metadata``, ...).
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

from .errors import MissingRootError, RenderCycleError, RenderDepthError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32

HEADING_TYPES = ("heading_1", "heading_2", "heading_3")

# Keys of a raw block that are not enrichment data
_RESERVED_KEYS = {"_children"}


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


# =============================================================================
# Rich Text
# =============================================================================


@dataclass
class RichTextSpan:
    """A span of rich text with formatting."""
    text: str
    bold: bool = False
    italic: bool = False
    strikethrough: bool = False
    underline: bool = False
    code: bool = False
    color: str = "default"
    link: Optional[str] = None
    # text, equation, link_mention, link_preview, mention_page,
    # mention_database, mention_user, mention_date
    span_type: str = "text"
    expression: Optional[str] = None
    href: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    icon_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    page_id: Optional[str] = None
    user_name: Optional[str] = None
    date: Optional[str] = None
    end_date: Optional[str] = None

    @classmethod
    def from_api(cls, item: dict) -> "RichTextSpan":
        """Build a span from one element of a Notion ``rich_text`` array."""
        annotations = _as_dict(item.get("annotations"))
        plain = item.get("plain_text")
        span = cls(
            text=plain if isinstance(plain, str) else "",
            bold=bool(annotations.get("bold")),
            italic=bool(annotations.get("italic")),
            strikethrough=bool(annotations.get("strikethrough")),
            underline=bool(annotations.get("underline")),
            code=bool(annotations.get("code")),
            color=annotations.get("color") or "default",
            href=item.get("href"),
        )
        item_type = item.get("type", "text")

        if item_type == "equation":
            span.span_type = "equation"
            span.expression = _as_dict(item.get("equation")).get("expression", "")
            return span

        if item_type == "mention":
            mention = _as_dict(item.get("mention"))
            mention_type = mention.get("type")
            data = _as_dict(mention.get(mention_type))
            if mention_type == "link_mention":
                span.span_type = "link_mention"
                span.href = data.get("href") or span.href
                span.title = data.get("title") or span.text
                span.description = data.get("description")
                span.icon_url = data.get("icon_url")
                span.thumbnail_url = data.get("thumbnail_url")
            elif mention_type == "link_preview":
                span.span_type = "link_preview"
                span.href = data.get("url") or span.href
            elif mention_type in ("page", "database"):
                span.span_type = f"mention_{mention_type}"
                span.page_id = data.get("id")
            elif mention_type == "user":
                span.span_type = "mention_user"
                span.user_name = data.get("name") or span.text.lstrip("@")
            elif mention_type == "date":
                span.span_type = "mention_date"
                span.date = data.get("start")
                span.end_date = data.get("end")
            return span

        text_obj = _as_dict(item.get("text"))
        if isinstance(text_obj.get("content"), str):
            span.text = text_obj["content"]
        link = _as_dict(text_obj.get("link"))
        if link:
            span.link = link.get("url")
        elif span.href:
            span.link = span.href
        return span


def parse_rich_text(items: Optional[list]) -> list[RichTextSpan]:
    """Convert a Notion ``rich_text`` array (or already-parsed spans) to spans."""
    spans = []
    for item in items or []:
        if isinstance(item, RichTextSpan):
            spans.append(item)
        elif isinstance(item, dict):
            spans.append(RichTextSpan.from_api(item))
    return spans


# =============================================================================
# Blocks
# =============================================================================


@dataclass
class Block:
    """One node of the document tree.

    ``payload`` is the type-named sub-object of the API block (for a
    paragraph, ``block["paragraph"]``). ``parent_id`` is the id of the
    enclosing block, or of the page for top-level blocks.
    """
    id: str
    type: str
    payload: dict = field(default_factory=dict)
    children: list["Block"] = field(default_factory=list)
    has_children: bool = False
    parent_id: Optional[str] = None
    enrichment: dict = field(default_factory=dict)

    @property
    def color(self) -> str:
        color = self.payload.get("color") if isinstance(self.payload, dict) else None
        return color or "default"

    @property
    def rich_text(self) -> list[RichTextSpan]:
        return parse_rich_text(self.payload.get("rich_text"))

    @classmethod
    def from_api(
        cls,
        raw: dict,
        parent_id: Optional[str] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        _path: tuple = (),
    ) -> "Block":
        """Build a block tree from an API block dict.

        Children are read from ``children`` (or ``_children``). A block that
        appears on its own ancestor path raises ``RenderCycleError``.

        Raises:
            RenderCycleError: If the raw structure is cyclic.
            RenderDepthError: If nesting exceeds ``max_depth``.
        """
        block_id = raw.get("id") or ""
        if id(raw) in _path or (block_id and block_id in _path):
            raise RenderCycleError(ref=block_id)
        if len(_path) // 2 >= max_depth:
            raise RenderDepthError(ref=block_id)

        block_type = raw.get("type") or "unsupported"
        payload = raw.get(block_type)
        if not isinstance(payload, dict):
            payload = {}

        enrichment = {
            key[1:]: value for key, value in raw.items()
            if key.startswith("_") and key not in _RESERVED_KEYS
        }

        parent = raw.get("parent")
        if parent_id is None and isinstance(parent, dict):
            parent_id = parent.get(parent.get("type", ""))
        elif parent_id is None and isinstance(parent, str):
            parent_id = parent

        block = cls(
            id=block_id,
            type=block_type,
            payload=payload,
            has_children=bool(raw.get("has_children")),
            parent_id=parent_id,
            enrichment=enrichment,
        )

        raw_children = raw.get("children")
        if raw_children is None:
            raw_children = raw.get("_children")
        if raw_children is None and isinstance(payload.get("children"), list):
            raw_children = payload["children"]

        child_path = _path + (id(raw), block_id)
        for child in raw_children or []:
            if not isinstance(child, dict):
                continue
            block.children.append(
                cls.from_api(child, parent_id=block_id, max_depth=max_depth, _path=child_path)
            )
        block.has_children = block.has_children or bool(block.children)
        return block


# =============================================================================
# Entries
# =============================================================================


def get_page_title(page: dict) -> str:
    """Extract title from page properties."""
    props = page.get("properties") or {}

    # Try common title property names
    for key in ["title", "Title", "Name", "name"]:
        if key in props:
            title_prop = props[key] or {}
            if title_prop.get("type", "title") == "title":
                title_array = title_prop.get("title") or []
                return "".join(t.get("plain_text", "") for t in title_array)

    # Fallback: find any title-type property
    for prop in props.values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            title_array = prop.get("title") or []
            return "".join(t.get("plain_text", "") for t in title_array)

    return "Untitled"


def get_database_title(database: dict) -> str:
    """Extract title from database metadata."""
    title_array = database.get("title") or []
    return "".join(t.get("plain_text", "") for t in title_array) or "Untitled"


def file_url(obj: Optional[dict]) -> Optional[str]:
    """Return the URL of a Notion file object (``external`` or ``file``)."""
    if not isinstance(obj, dict):
        return None
    obj_type = obj.get("type")
    data = obj.get(obj_type) if obj_type else None
    if isinstance(data, dict) and data.get("url"):
        return data["url"]
    for key in ("external", "file"):
        data = obj.get(key)
        if isinstance(data, dict) and data.get("url"):
            return data["url"]
    return obj.get("url")


@dataclass
class PageMarker:
    """Page or database metadata heading the entry sequence."""
    id: str
    title: str
    object_kind: str = "page"
    icon: Optional[dict] = None
    cover: Optional[str] = None
    breadcrumb: list[dict] = field(default_factory=list)
    url: Optional[str] = None

    @classmethod
    def from_api(cls, raw: dict, breadcrumb: Optional[list] = None) -> "PageMarker":
        """Build a marker from a page or database object.

        Raises:
            MissingRootError: If ``raw`` is not a page/database object.
        """
        if not isinstance(raw, dict) or not raw.get("id"):
            raise MissingRootError()
        object_kind = raw.get("object", "page")
        if object_kind == "database" or object_kind == "data_source":
            title = get_database_title(raw)
        else:
            title = get_page_title(raw)
        return cls(
            id=raw["id"],
            title=title,
            object_kind=object_kind,
            icon=raw.get("icon") or None,
            cover=file_url(raw.get("cover")),
            breadcrumb=list(breadcrumb or raw.get("_breadcrumb") or []),
            url=raw.get("url"),
        )


@dataclass
class BlockEntry:
    """A wrapped block in the entry sequence."""
    block: Block


Entry = Union[PageMarker, BlockEntry]


def parse_entries(payload: list, max_depth: int = DEFAULT_MAX_DEPTH) -> list[Entry]:
    """Convert the JSON entry sequence into ``PageMarker``/``BlockEntry`` items.

    The first entry must be a page marker. Malformed block entries are
    skipped with a warning; order is preserved.

    Raises:
        MissingRootError: If the first entry is not a valid page marker.
    """
    if not payload or not isinstance(payload[0], dict) or "master" not in payload[0]:
        raise MissingRootError()

    first = payload[0]
    marker = PageMarker.from_api(first["master"], first.get("breadcrumb"))
    entries: list[Entry] = [marker]

    for position, item in enumerate(payload[1:], start=1):
        if not isinstance(item, dict):
            logger.warning(f"Skipping entry {position}: not an object")
            continue
        if "master" in item:
            logger.warning(f"Skipping entry {position}: unexpected second page marker")
            continue
        raw = item.get("block") if "block" in item else item
        if not isinstance(raw, dict) or not raw.get("type"):
            logger.warning(f"Skipping entry {position}: no block type")
            continue
        # Wrapper-level extras ({block, page}, {block, children}) act as enrichment
        merged = dict(raw)
        for key, value in item.items():
            if key == "block":
                continue
            if key == "children" and "children" not in merged:
                merged["children"] = value
            elif key != "children":
                merged.setdefault(f"_{key}", value)
        try:
            block = Block.from_api(merged, parent_id=_top_level_parent(raw, marker), max_depth=max_depth)
        except (RenderCycleError, RenderDepthError) as e:
            logger.error(f"Skipping entry {position}: {e.message} ({e.ref})")
            continue
        entries.append(BlockEntry(block))

    return entries


def _top_level_parent(raw: dict, marker: PageMarker) -> str:
    parent = raw.get("parent")
    if isinstance(parent, dict):
        value = parent.get(parent.get("type", ""))
        if isinstance(value, str):
            return value
    if isinstance(parent, str):
        return parent
    return marker.id


# =============================================================================
# Render Context
# =============================================================================


@dataclass
class RenderContext:
    """Per-request state threaded through every render call.

    Holds root metadata, the link base for rendered pages, and an index of
    every sibling scope so list numbering can locate a block's full parent
    child list.
    """
    marker: Optional[PageMarker] = None
    service_url: str = "/"
    max_depth: int = DEFAULT_MAX_DEPTH
    scopes: dict[str, list[Block]] = field(default_factory=dict)
    headings: list[Block] = field(default_factory=list)
    _path: list[str] = field(default_factory=list)

    def page_url(self, page_id: str) -> str:
        """Link to the rendered version of a page."""
        base = self.service_url or "/"
        if not base.endswith("/"):
            base += "/"
        return f"{base}pages/{page_id.replace('-', '')}"

    def index(self, blocks: list[Block], root_id: Optional[str] = None) -> None:
        """Register sibling scopes and headings for a block tree."""
        root = root_id or (self.marker.id if self.marker else "")
        self.scopes[root] = list(blocks)
        self._index_children(blocks, depth=0)

    def _index_children(self, blocks: list[Block], depth: int) -> None:
        if depth > self.max_depth:
            return
        for block in blocks:
            if block.type in HEADING_TYPES:
                self.headings.append(block)
            if block.children:
                self.scopes[block.id] = block.children
                self._index_children(block.children, depth + 1)

    def scope_of(self, block: Block) -> list[Block]:
        """Return the full child list of ``block``'s parent (or ``[block]``)."""
        siblings = self.scopes.get(block.parent_id or "")
        if siblings is None:
            for candidates in self.scopes.values():
                if any(candidate is block for candidate in candidates):
                    return candidates
            return [block]
        return siblings

    @contextmanager
    def descend(self, block: Block) -> Iterator[None]:
        """Track ``block`` on the current render path.

        Raises:
            RenderCycleError: If the block is already on the path.
            RenderDepthError: If the path exceeds ``max_depth``.
        """
        if block.id and block.id in self._path:
            raise RenderCycleError(ref=block.id)
        if len(self._path) >= self.max_depth:
            raise RenderDepthError(ref=block.id)
        self._path.append(block.id)
        try:
            yield
        finally:
            self._path.pop()
