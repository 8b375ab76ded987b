"""Sibling sequence rendering, list runs and numbering.

A run is a maximal stretch of consecutive siblings of the same list kind. It
renders as one ``<ul>``/``<ol>``; each item's children render inside its
``<li>`` through ``render_blocks``, so nested runs number from their own
scope.
"""

import logging
from typing import Optional

from .errors import MALFORMED_BLOCK_ERRORS, RenderCycleError, RenderDepthError
from .formatting import escape_html
from .models import Block, RenderContext
from .rich_text import color_class, render_rich_text

logger = logging.getLogger(__name__)

LIST_KINDS = {
    "bulleted_list_item": "bulleted",
    "numbered_list_item": "numbered",
}


def explicit_start(block: Block) -> Optional[int]:
    """Start value set on a numbered item, if any."""
    for key in ("list_start_index", "start"):
        value = block.payload.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return value
    return None


def effective_start(first: Block, context: RenderContext) -> int:
    """Start number for a numbered run beginning at ``first``.

    Counts the numbered siblings directly preceding ``first`` in its
    parent's full child list (the run may have been entered part-way), then
    adds the explicit start of the first item (default 1).
    """
    siblings = context.scope_of(first)
    position = next((i for i, sibling in enumerate(siblings) if sibling is first or sibling.id == first.id), None)

    preceding = 0
    if position is not None:
        index = position - 1
        while index >= 0 and siblings[index].type == "numbered_list_item":
            preceding += 1
            index -= 1
        if preceding:
            first = siblings[position - preceding]

    return (explicit_start(first) or 1) + preceding


def _render_item(item: Block, context: RenderContext) -> str:
    from .blocks import render_children

    classes = " ".join(filter(None, ["block", color_class(item.color)]))
    text = render_rich_text(item.payload.get("rich_text"), context)
    nested = render_children(item, context) if item.children else ""
    return f'<li class="{classes}" id="{escape_html(item.id)}">{text}{nested}</li>'


def list_open_tag(kind: str, start: int = 1) -> tuple[str, str]:
    """Opening and closing tags for a run of ``kind``."""
    if kind == "numbered":
        return f'<ol class="notion-list notion-list-numbered" start="{start}">', "</ol>"
    return '<ul class="notion-list notion-list-bulleted">', "</ul>"


def render_single_item(item: Block, context: RenderContext) -> str:
    """Render one list item as its own list.

    The caller is already tracking ``item`` on the render path.
    """
    kind = LIST_KINDS[item.type]
    start = effective_start(item, context) if kind == "numbered" else 1
    opening, closing = list_open_tag(kind, start)
    return opening + _render_item(item, context) + closing


def render_run(
    items: list[Block],
    kind: str,
    context: RenderContext,
    start: Optional[int] = None,
) -> str:
    """Render consecutive list items of one kind as a single list.

    Args:
        items: The run, in document order.
        kind: ``"bulleted"`` or ``"numbered"``.
        context: Render context.
        start: Start number override; computed with ``effective_start`` when
            omitted for numbered runs.
    """
    if not items:
        return ""

    if kind == "numbered" and start is None:
        start = effective_start(items[0], context)
    html, closing = list_open_tag(kind, start or 1)

    for item in items:
        try:
            with context.descend(item):
                html += _render_item(item, context)
        except (RenderCycleError, RenderDepthError) as e:
            logger.error(f"Skipping list item {item.id}: {e.message}")
        except MALFORMED_BLOCK_ERRORS as e:
            logger.warning(f"Failed to render list item {item.id}: {type(e).__name__}: {e}")

    return html + closing


def render_blocks(blocks: list[Block], context: RenderContext) -> str:
    """Render a sibling sequence, grouping list runs.

    Non-list blocks are rendered by the block renderer and wrapped in a
    container keyed by block id.
    """
    from .blocks import render_block, wrap_block

    parts = []
    index = 0
    while index < len(blocks):
        block = blocks[index]
        kind = LIST_KINDS.get(block.type)
        if kind is None:
            parts.append(wrap_block(block, render_block(block, context)))
            index += 1
            continue

        end = index
        while end < len(blocks) and blocks[end].type == block.type:
            end += 1
        parts.append(render_run(blocks[index:end], kind, context))
        index = end

    return "".join(parts)
