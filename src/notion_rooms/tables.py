"""Table blocks, inline databases and database-row property tables."""

import logging
from typing import Optional

import parsy as P

from .formatting import escape_html, safe_url
from .models import Block, RenderContext, file_url, get_database_title
from .properties import PROPERTY_TYPE_ICONS, format_property, property_plain_text
from .rich_text import render_rich_text

logger = logging.getLogger(__name__)

# Magic text property carrying the column-order directive
ORDER_PROPERTY = "notionrooms"
ORDER_DIRECTIVE_PREFIX = "[Order:"

DEFAULT_ROW_ICON = "📄"


# =============================================================================
# Column Order Directive (Parsy-based)
# =============================================================================

_ws = P.regex(r"\s*")
_column_name = P.regex(r"[^,\]]+").map(str.strip)

# [Order: Status, Owner, Due date]
ORDER_DIRECTIVE = (
    P.string(ORDER_DIRECTIVE_PREFIX)
    >> _ws
    >> _column_name.sep_by(P.string(","), min=1)
    << P.string("]")
)


def parse_order_directive(text: Optional[str]) -> Optional[list[str]]:
    """Find an ``[Order: a, b, c]`` directive anywhere in ``text``.

    Returns:
        The trimmed, non-empty column names, or None if no directive parses.
    """
    if not text:
        return None
    start = text.find(ORDER_DIRECTIVE_PREFIX)
    while start != -1:
        try:
            names, _ = ORDER_DIRECTIVE.parse_partial(text[start:])
        except P.ParseError:
            start = text.find(ORDER_DIRECTIVE_PREFIX, start + 1)
            continue
        names = [name for name in names if name]
        return names or None
    return None


def resolve_column_order(schema: dict, rows: list[dict]) -> list[str]:
    """Decide the display order of database columns.

    Schema declaration order is the default. The first row whose
    ``notionrooms`` text holds a directive overrides it: listed columns come
    first in the listed order, unlisted ones follow in schema order. The
    title column is always moved to position 0 and the ``notionrooms``
    column itself is never displayed.
    """
    columns = [name for name in schema if name != ORDER_PROPERTY]

    directive = None
    for row in rows or []:
        props = row.get("properties") or {}
        directive = parse_order_directive(property_plain_text(props.get(ORDER_PROPERTY)))
        if directive:
            break

    if directive:
        listed = []
        for name in directive:
            if name in schema and name != ORDER_PROPERTY and name not in listed:
                listed.append(name)
        columns = listed + [name for name in columns if name not in listed]

    title_columns = [name for name in columns if (schema.get(name) or {}).get("type") == "title"]
    if title_columns:
        columns.remove(title_columns[0])
        columns.insert(0, title_columns[0])
    return columns


# =============================================================================
# Simple Tables
# =============================================================================


def render_simple_table(columns: list[str], rows: list[list[str]]) -> str:
    """Render a plain header + body table.

    Args:
        columns: Column labels (plain text, escaped here).
        rows: Cell HTML per row, already rendered.
    """
    html = '<table class="notion-simple-table"><thead><tr>'
    html += "".join(f"<th>{escape_html(column)}</th>" for column in columns)
    html += "</tr></thead><tbody>"
    for row in rows:
        html += "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>"
    html += "</tbody></table>"
    return html


def _cell_is_empty(cell: list) -> bool:
    return not cell or all(not (item.get("plain_text") or (item.get("text") or {}).get("content")) for item in cell if isinstance(item, dict))


def render_table(block: Block, context: Optional[RenderContext] = None) -> str:
    """Render a ``table`` block from its ``table_row`` children.

    Rows whose cells are all empty are skipped.
    """
    has_column_header = bool(block.payload.get("has_column_header"))
    has_row_header = bool(block.payload.get("has_row_header"))

    html = '<table class="notion-table">'
    rows = [child for child in block.children if child.type == "table_row"]
    for row_index, row in enumerate(rows):
        cells = row.payload.get("cells") or []
        if all(_cell_is_empty(cell) for cell in cells):
            continue

        is_header_row = has_column_header and row_index == 0
        html += '<tr class="notion-table-row">'
        for cell_index, cell in enumerate(cells):
            is_row_header = has_row_header and cell_index == 0
            tag = "th" if is_header_row or is_row_header else "td"
            classes = " ".join(filter(None, [
                "notion-table-row-header" if is_row_header else "",
                "notion-table-column-header" if is_header_row else "",
            ]))
            class_attr = f' class="{classes}"' if classes else ""
            html += (
                f"<{tag}{class_attr}><span class=\"notion-table-cell-text\">"
                f"{render_rich_text(cell, context)}</span></{tag}>"
            )
        html += "</tr>"
    html += "</table>"
    return html


# =============================================================================
# Databases
# =============================================================================


def render_icon(icon: Optional[dict], default: str = "") -> str:
    """Emoji/text icons verbatim, URL icons as ``<img>``."""
    if not isinstance(icon, dict):
        return escape_html(default)
    if icon.get("type") == "emoji" or "emoji" in icon:
        return escape_html(icon.get("emoji") or default)
    url = file_url(icon)
    if url:
        return f'<img class="notion-icon" src="{safe_url(url)}" alt="" />'
    return escape_html(default)


def _header_cell(name: str, schema_entry: dict) -> str:
    glyph = PROPERTY_TYPE_ICONS.get(schema_entry.get("type", ""), "")
    display = schema_entry.get("name") or name
    return (
        f'<th><span class="notion-property-icon">{escape_html(glyph)}</span>'
        f'<span class="notion-property-name">{escape_html(display)}</span></th>'
    )


def _title_cell(row: dict, value: Optional[dict], context: RenderContext) -> str:
    icon = render_icon(row.get("icon"), DEFAULT_ROW_ICON)
    title = format_property(value, "title", context) or "Untitled"
    href = context.page_url(row["id"]) if row.get("id") else "#"
    return (
        f'<a class="notion-database-row-link" href="{safe_url(href)}">'
        f'<span class="notion-row-icon">{icon}</span>'
        f'<span class="notion-row-title">{title}</span></a>'
    )


def render_database(
    schema: dict,
    rows: list[dict],
    context: Optional[RenderContext] = None,
) -> str:
    """Render a database schema and row set as an HTML table."""
    context = context if context is not None else RenderContext()
    columns = resolve_column_order(schema, rows)

    html = '<table class="notion-database-table"><thead><tr>'
    html += "".join(_header_cell(name, schema.get(name) or {}) for name in columns)
    html += "</tr></thead><tbody>"

    for row in rows or []:
        props = row.get("properties") or {}
        html += f'<tr class="notion-database-row" id="{escape_html(row.get("id", ""))}">'
        for name in columns:
            prop_type = (schema.get(name) or {}).get("type")
            if prop_type == "title":
                cell = _title_cell(row, props.get(name), context)
            else:
                cell = format_property(props.get(name), prop_type, context)
            html += f'<td class="notion-database-cell notion-property-{escape_html(prop_type or "unknown")}">{cell}</td>'
        html += "</tr>"

    html += "</tbody></table>"
    return html


def render_database_block(block: Block, context: RenderContext) -> str:
    """Render a ``child_database`` block.

    Inline databases with a resolved schema render the full table; anything
    else renders a link card to the database page.
    """
    database = block.enrichment.get("database") or {}
    title = block.payload.get("title") or (get_database_title(database) if database else "Untitled")
    icon = render_icon(database.get("icon"), "🗃️")
    schema = database.get("properties")

    if database.get("is_inline") and isinstance(schema, dict):
        rows = block.enrichment.get("rows") or []
        return (
            '<div class="notion-database">'
            f'<div class="notion-database-title">{escape_html(title)}</div>'
            f"{render_database(schema, rows, context)}"
            "</div>"
        )

    return (
        '<div class="child-page child-database">'
        f'<a href="{safe_url(context.page_url(block.id))}">'
        f'<span class="emoji">{icon}</span> <span class="alink">{escape_html(title)}</span>'
        "</a></div>"
    )


def render_database_row(block: Block, context: RenderContext) -> str:
    """Render the properties of a page that is itself a database row."""
    schema = block.enrichment.get("schema") or {}
    properties = block.enrichment.get("properties") or {}
    page = {"properties": properties}
    columns = [
        name for name in resolve_column_order(schema, [page])
        if (schema.get(name) or {}).get("type") != "title"
    ]
    if not columns:
        return ""
    labels = [(schema.get(name) or {}).get("name") or name for name in columns]
    values = [format_property(properties.get(name), (schema.get(name) or {}).get("type"), context) for name in columns]
    return render_simple_table(labels, [values])
