"""Block → HTML fragment.

Each block kind has one handler registered in ``BLOCK_HANDLERS`` with the
``@handler`` decorator. ``render_block`` dispatches, tracks the render path
for cycle/depth detection, and turns handler failures into an empty
fragment so one bad block never aborts the page.
"""

import logging
from html import escape as escape_markup
from typing import Callable, Optional

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import TextLexer, get_lexer_by_name
from pygments.util import ClassNotFound

from .embeds import render_embed, render_video
from .errors import MALFORMED_BLOCK_ERRORS, RenderCycleError, RenderDepthError
from .formatting import escape_html, hostname, safe_url
from .properties import CHECK_ICON
from .lists import LIST_KINDS, render_blocks, render_single_item
from .models import HEADING_TYPES, Block, RenderContext, file_url
from .rich_text import (
    color_class,
    color_style,
    is_background,
    plain_text,
    render_rich_text,
)
from .tables import render_database_block, render_database_row, render_icon, render_table

logger = logging.getLogger(__name__)

BlockHandler = Callable[[Block, RenderContext], str]

BLOCK_HANDLERS: dict[str, BlockHandler] = {}

# Horizontal space (px) taken by the dividers between columns
COLUMN_DIVIDER_WIDTH = 46


def handler(*kinds: str) -> Callable[[BlockHandler], BlockHandler]:
    """Register a render function for one or more block kinds."""
    def register(fn: BlockHandler) -> BlockHandler:
        for kind in kinds:
            BLOCK_HANDLERS[kind] = fn
        return fn
    return register


def render_block(block: Block, context: Optional[RenderContext] = None) -> str:
    """Render one block to an HTML fragment (no outer container).

    Unknown kinds fall back to rendering any ``rich_text`` payload, else
    ``""``. Handler failures are logged and render ``""``.
    """
    context = context if context is not None else RenderContext()
    render = BLOCK_HANDLERS.get(block.type)
    if render is None:
        logger.debug(f"No handler for block type {block.type!r} ({block.id})")
        render = _render_fallback

    try:
        with context.descend(block):
            return render(block, context)
    except (RenderCycleError, RenderDepthError) as e:
        logger.error(f"Dropping {block.type} block {block.id}: {e.message}")
    except MALFORMED_BLOCK_ERRORS as e:
        logger.warning(f"Failed to render {block.type} block {block.id}: {type(e).__name__}: {e}")
    return ""


def wrap_block(block: Block, fragment: str) -> str:
    """Wrap a fragment in the per-block container keyed by block id."""
    classes = ["block"]
    if is_background(block.color):
        classes.append(color_class(block.color))
    return f'<div class="{" ".join(classes)}" id="{escape_html(block.id)}">{fragment}</div>'


def render_children(block: Block, context: RenderContext) -> str:
    return render_blocks(block.children, context)


def _class_attr(*names: str) -> str:
    names = [name for name in names if name]
    return f' class="{" ".join(names)}"' if names else ""


def _caption(block: Block, context: RenderContext) -> str:
    return render_rich_text(block.payload.get("caption"), context)


def _caption_div(caption: str, css_class: str) -> str:
    return f'<div class="{css_class}">{caption}</div>' if caption else ""


def _render_fallback(block: Block, context: RenderContext) -> str:
    if block.payload.get("rich_text"):
        return f"<p>{render_rich_text(block.payload['rich_text'], context)}</p>"
    return ""


# =============================================================================
# Text Blocks
# =============================================================================


@handler("paragraph")
def _render_paragraph(block, context):
    html = f"<p{_class_attr(color_class(block.color))}>{render_rich_text(block.rich_text, context)}</p>"
    if block.children:
        html += f'<div class="block-children">{render_children(block, context)}</div>'
    return html


@handler(*HEADING_TYPES)
def _render_heading(block, context):
    # heading_1 renders as <h2>; the page title owns <h1>
    tag = f"h{int(block.type[-1]) + 1}"
    bg = color_class(block.color)
    text = render_rich_text(block.rich_text, context)
    if block.payload.get("is_toggleable"):
        return (
            f"<details{_class_attr('notion-toggle', bg)}>"
            f"<summary><{tag}>{text}</{tag}></summary>"
            f"<div class='toggle-children'>{render_children(block, context)}</div>"
            "</details>"
        )
    return f"<{tag}{_class_attr(bg)}>{text}</{tag}>"


@handler(*LIST_KINDS)
def _render_list_item(block, context):
    # Outside a run (e.g. rendered on its own), still produce a proper list
    return render_single_item(block, context)


@handler("toggle")
def _render_toggle(block, context):
    return (
        f"<details{_class_attr('notion-toggle', color_class(block.color))}>"
        f"<summary>{render_rich_text(block.rich_text, context)}</summary>"
        f"<div class='toggle-children'>{render_children(block, context)}</div>"
        "</details>"
    )


@handler("callout")
def _render_callout(block, context):
    icon = block.payload.get("icon")
    icon_html = f'<span class="callout-icon">{render_icon(icon)}</span>' if icon else ""
    style = color_style(block.color)
    style_attr = f' style="{style}"' if style else ""
    return (
        f"<div{_class_attr('callout', color_class(block.color))}{style_attr}>"
        f"{icon_html}"
        f'<div class="callout-content">{render_rich_text(block.rich_text, context)}'
        f"<div class='callout-children'>{render_children(block, context)}</div></div>"
        "</div>"
    )


@handler("quote")
def _render_quote(block, context):
    color = block.color if not is_background(block.color) else "default"
    html = (
        f'<blockquote style="border-left: 4px solid var(--color-text-{color}); '
        'padding-left: 10px; margin: 10px 0;">'
        f"{render_rich_text(block.rich_text, context)}"
    )
    if block.children:
        html += render_children(block, context)
    return html + "</blockquote>"


@handler("to_do")
def _render_to_do(block, context):
    checked = bool(block.payload.get("checked"))
    classes = ["notion-todo"]
    if block.color != "default":
        classes.append(f"notion-todo-{block.color}")
    if checked:
        classes.append("checked")
    html = (
        f'<div class="{" ".join(classes)}">'
        f'<div class="notion-todo-checkbox">{CHECK_ICON if checked else ""}</div>'
        f'<div class="notion-todo-text">{render_rich_text(block.rich_text, context)}</div>'
        "</div>"
    )
    if block.children:
        html += f'<div class="block-children">{render_children(block, context)}</div>'
    return html


@handler("divider")
def _render_divider(block, context):
    return '<div class="divider"></div>'


@handler("equation")
def _render_equation(block, context):
    expression = escape_markup(block.payload.get("expression") or "", quote=False)
    return f'<div class="math-block">\\[{expression}\\]</div>'


@handler("code")
def _render_code(block, context):
    source = plain_text(block.payload.get("rich_text"))
    language = block.payload.get("language") or "plaintext"
    try:
        lexer = get_lexer_by_name(language)
    except ClassNotFound:
        lexer = TextLexer()
    highlighted = highlight(source, lexer, HtmlFormatter(nowrap=True))
    caption = _caption(block, context)
    return (
        '<div class="code-block-container">'
        '<div class="code-block-header">'
        f'<span class="code-language">{escape_html(language)}</span>'
        f'<button class="copy-button" data-code="{escape_html(source)}">Copy</button>'
        "</div>"
        '<pre class="code-block" style="overflow-x: auto; white-space: pre;">'
        f'<code class="language-{escape_html(language)}">{highlighted}</code></pre>'
        f"{_caption_div(caption, 'code-caption')}"
        "</div>"
    )


# =============================================================================
# Media Blocks
# =============================================================================


@handler("image")
def _render_image(block, context):
    url = file_url(block.payload)
    if not url:
        return ""
    alt = escape_html(plain_text(block.payload.get("caption")))
    caption = _caption(block, context)
    return (
        '<div class="image-block">'
        f'<img src="{safe_url(url)}" alt="{alt}" />'
        f"{_caption_div(caption, 'image-caption')}"
        "</div>"
    )


@handler("video")
def _render_video(block, context):
    url = file_url(block.payload)
    is_upload = block.payload.get("type") in ("file", "file_upload")
    return render_video(url, is_upload, _caption(block, context))


@handler("audio")
def _render_audio(block, context):
    url = file_url(block.payload)
    if not url:
        return ""
    caption = _caption(block, context)
    return (
        '<div class="audio-block">'
        f'<audio controls src="{safe_url(url)}"></audio>'
        f"{_caption_div(caption, 'audio-caption')}"
        "</div>"
    )


@handler("pdf")
def _render_pdf(block, context):
    url = file_url(block.payload)
    if not url:
        return ""
    caption = _caption(block, context)
    return (
        '<div class="pdf-block">'
        f'<iframe src="{safe_url(url)}" width="100%" height="600px" style="border: none;" allowfullscreen></iframe>'
        f"{_caption_div(caption, 'pdf-caption')}"
        "</div>"
    )


@handler("file")
def _render_file(block, context):
    url = file_url(block.payload)
    if not url:
        return ""
    name = block.payload.get("name") or url.split("?")[0].rstrip("/").rsplit("/", 1)[-1]
    caption = _caption(block, context)
    return (
        '<div class="file-block">'
        f'<a class="file-link" href="{safe_url(url)}" download>'
        f'<span class="file-icon">📎</span><span class="file-name">{escape_html(name)}</span></a>'
        f"{_caption_div(caption, 'file-caption')}"
        "</div>"
    )


@handler("embed")
def _render_embed(block, context):
    return render_embed(block.payload.get("url"), _caption(block, context))


@handler("bookmark", "link_preview")
def _render_bookmark(block, context):
    url = block.payload.get("url")
    if not url:
        return ""
    metadata = block.enrichment.get("metadata") or {}
    host = hostname(url)
    title = metadata.get("title") or host
    description = metadata.get("description") or ""
    favicon = metadata.get("favicon") or f"https://www.google.com/s2/favicons?domain={host}&sz=64"
    image = metadata.get("image")

    html = (
        '<div class="notion-bookmark">'
        f'<a href="{safe_url(url)}" target="_blank" class="notion-bookmark-link">'
        '<div class="notion-bookmark-content">'
        '<div class="notion-bookmark-text">'
        f'<div class="notion-bookmark-title">{escape_html(title)}</div>'
    )
    if description:
        html += f'<div class="notion-bookmark-description">{escape_html(description)}</div>'
    html += (
        "</div>"
        '<div class="notion-bookmark-href">'
        f'<img src="{safe_url(favicon)}" class="notion-bookmark-favicon" alt="" />'
        f"<span>{escape_html(url)}</span>"
        "</div></div>"
    )
    if image:
        html += (
            '<div class="notion-bookmark-image">'
            f'<img src="{safe_url(image)}" alt="{escape_html(description)}" />'
            "</div>"
        )
    html += "</a></div>"
    caption = _caption(block, context)
    if caption:
        html += f'<div class="image-caption">{caption}</div>'
    return html


# =============================================================================
# Containers
# =============================================================================


@handler("column_list")
def _render_column_list(block, context):
    columns = [child for child in block.children if child.type == "column"]
    count = len(columns)
    width = column_width(count)
    parts = []
    for index, column in enumerate(columns):
        try:
            with context.descend(column):
                parts.append(_column_html(column, context, width))
        except (RenderCycleError, RenderDepthError) as e:
            logger.error(f"Dropping column {column.id}: {e.message}")
        if index < count - 1:
            parts.append('<div class="column-divider"></div>')
    return f'<div class="column-list">{"".join(parts)}</div>'


def column_width(count: int) -> str:
    """CSS width of one column in a list of ``count`` columns."""
    count = max(count, 1)
    adjustment = round(COLUMN_DIVIDER_WIDTH * (count - 1) / count, 2)
    return f"calc(100% / {count} - {adjustment:g}px)"


def _column_html(block: Block, context: RenderContext, width: str) -> str:
    return (
        f'<div class="column" style="width: {width};">'
        f"{render_children(block, context)}"
        "</div>"
    )


@handler("column")
def _render_column(block, context):
    # A column outside a column list spans the full width
    return _column_html(block, context, column_width(1))


@handler("synced_block")
def _render_synced_block(block, context):
    return f'<div class="synced-block">{render_children(block, context)}</div>'


@handler("table")
def _render_table(block, context):
    return render_table(block, context)


@handler("table_row")
def _render_table_row(block, context):
    # Rows are rendered by their table
    return ""


# =============================================================================
# Pages, Databases and Navigation
# =============================================================================


@handler("child_page")
def _render_child_page(block, context):
    page = block.enrichment.get("page") or {}
    title = block.payload.get("title") or "Untitled"
    icon = render_icon(page.get("icon"), "📄")
    return (
        '<div class="child-page">'
        f'<a href="{safe_url(context.page_url(block.id))}">'
        f'<span class="emoji">{icon}</span> <span class="alink">{escape_html(title)}</span>'
        "</a></div>"
    )


@handler("child_database")
def _render_child_database(block, context):
    return render_database_block(block, context)


@handler("database_row")
def _render_database_row(block, context):
    return render_database_row(block, context)


@handler("table_of_contents")
def _render_table_of_contents(block, context):
    if not context.headings:
        return ""
    html = '<div class="table-of-contents"><ul>'
    for heading in context.headings:
        level = heading.type[-1]
        html += (
            f'<li class="toc-heading-{level}">'
            f'<a href="#{escape_html(heading.id)}"><span class="link">'
            f"{escape_html(plain_text(heading.payload.get('rich_text')))}</span></a></li>"
        )
    return html + "</ul></div>"


def render_breadcrumb(items: list[dict], context: RenderContext) -> str:
    """Render a page ancestry bar from ``[{id, title, icon}]`` items."""
    if not items:
        return ""
    links = []
    for item in items:
        icon = render_icon(item.get("icon"))
        icon_html = f'<span class="breadcrumb-icon">{icon}</span>' if icon else ""
        links.append(
            f'<a class="breadcrumb-item" href="{safe_url(context.page_url(item.get("id", "")))}">'
            f'{icon_html}<span class="breadcrumb-title">{escape_html(item.get("title") or "Untitled")}</span></a>'
        )
    separator = '<span class="breadcrumb-separator">/</span>'
    return f'<nav class="notion-breadcrumb">{separator.join(links)}</nav>'


@handler("breadcrumb")
def _render_breadcrumb(block, context):
    items = context.marker.breadcrumb if context.marker else []
    return render_breadcrumb(items, context)
