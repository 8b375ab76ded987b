"""Rich text → inline HTML.

Annotation wrapping order is fixed, innermost first: bold, italic,
strikethrough, underline, code, then the color span, then the link.
"""

import re
from html import escape as escape_markup
from typing import Optional

from .formatting import (
    escape_html,
    format_date_range,
    hostname,
    safe_url,
    truncate,
)
from .models import RenderContext, RichTextSpan, parse_rich_text

# Link preview cards cut titles at this many characters
LINK_PREVIEW_TEXT_LIMIT = 30

GITHUB_DEEP_LINK = re.compile(r"^https://github\.com/.+/.+/.+/.+$")
GITHUB_ICON = '<i class="fab fa-github"></i> '

_ANNOTATION_TAGS = (
    ("bold", "b"),
    ("italic", "i"),
    ("strikethrough", "s"),
    ("underline", "u"),
    ("code", "code"),
)


# =============================================================================
# Colors
# =============================================================================


def is_background(color: Optional[str]) -> bool:
    return bool(color) and color.endswith("_background")


def color_token(color: str) -> str:
    """CSS variable for a Notion color name.

    ``red`` → ``var(--color-text-red)``; ``red_background`` → ``var(--color-bg-red)``.
    """
    if is_background(color):
        return f"var(--color-bg-{color[:-len('_background')]})"
    return f"var(--color-text-{color})"


def color_style(color: Optional[str]) -> str:
    """Inline style declaration for a color, or ``""`` for default."""
    if not color or color == "default":
        return ""
    if is_background(color):
        return f"background-color:{color_token(color)};"
    return f"color:{color_token(color)};"


def color_class(color: Optional[str]) -> str:
    """Class name for a block-level color, or ``""`` for default."""
    if not color or color == "default":
        return ""
    if is_background(color):
        return f"notion-bg-{color[:-len('_background')]}"
    return f"notion-text-{color}"


def _wrap_color(html: str, color: Optional[str]) -> str:
    style = color_style(color)
    if not style:
        return html
    return f'<span style="{style}">{html}</span>'


# =============================================================================
# Span Rendering
# =============================================================================


def plain_text(items: Optional[list]) -> str:
    """Concatenate the unformatted text of a rich text array."""
    parts = []
    for span in parse_rich_text(items):
        if span.span_type == "equation":
            parts.append(span.expression or "")
        else:
            parts.append(span.text or "")
    return "".join(parts)


def _render_equation(span: RichTextSpan) -> str:
    # MathJax reads text content, so only markup characters are escaped
    expression = escape_markup(span.expression or "", quote=False)
    html = f'<span class="math-expression">\\({expression}\\)</span>'
    return _wrap_color(html, span.color)


def _render_link_card(span: RichTextSpan) -> str:
    """Compact inline card for a link mention, with a hover detail box."""
    href = span.href or ""
    domain = escape_html(hostname(href))
    title = span.title or span.text or hostname(href)
    description = span.description or ""

    favicon = ""
    if span.icon_url:
        favicon = f'<img class="link-preview-favicon" src="{safe_url(span.icon_url)}" alt="">'
    thumbnail = ""
    if span.thumbnail_url:
        thumbnail = f'<img class="link-preview-thumbnail" src="{safe_url(span.thumbnail_url)}" alt="">'

    return (
        f'<a class="link-preview" href="{safe_url(href)}" target="_blank">'
        f"{favicon}"
        f'<span class="link-preview-domain">{domain}</span>'
        f'<span class="link-preview-title">{escape_html(truncate(title, LINK_PREVIEW_TEXT_LIMIT))}</span>'
        '<span class="link-preview-hover"><span class="hover-box">'
        f"{thumbnail}"
        f'<span class="link-preview-full-title">{escape_html(title)}</span>'
        f'<span class="link-preview-full-description">{escape_html(description)}</span>'
        f'<span class="link-preview-footer">{favicon}<span>{domain}</span></span>'
        "</span></span></a>"
    )


def _render_link_preview(span: RichTextSpan) -> str:
    href = span.href or ""
    return (
        f'<a class="link-preview" href="{safe_url(href)}" target="_blank">'
        f'<span class="link-preview-domain">{escape_html(hostname(href))}</span>'
        "</a>"
    )


def _render_mention(span: RichTextSpan, context: Optional[RenderContext]) -> str:
    if span.span_type == "mention_date":
        html = escape_html(format_date_range(span.date, span.end_date) or span.text)
        return _wrap_color(f'<span class="notion-date-mention">{html}</span>', span.color)

    if span.span_type == "mention_user":
        name = span.user_name or span.text.lstrip("@")
        return _wrap_color(f'<span class="notion-user-mention">@{escape_html(name)}</span>', span.color)

    # page / database mention
    if context is not None and span.page_id:
        href = context.page_url(span.page_id)
    else:
        href = span.href or "#"
    html = f'<a class="notion-page-mention" href="{safe_url(href)}">{escape_html(span.text)}</a>'
    return _wrap_color(html, span.color)


def render_span(span: RichTextSpan, context: Optional[RenderContext] = None) -> str:
    """Render one span to HTML."""
    if span.span_type == "equation":
        return _render_equation(span)
    if span.span_type == "link_mention":
        return _render_link_card(span)
    if span.span_type == "link_preview":
        return _render_link_preview(span)
    if span.span_type.startswith("mention_"):
        return _render_mention(span, context)

    html = escape_html(span.text)
    for attr, tag in _ANNOTATION_TAGS:
        if getattr(span, attr):
            html = f"<{tag}>{html}</{tag}>"
    html = _wrap_color(html, span.color)

    if span.link:
        url = span.link
        icon = ""
        if url.startswith("https://github.com"):
            icon = GITHUB_ICON
            if GITHUB_DEEP_LINK.match(url):
                html = escape_html(url.rstrip("/").rsplit("/", 1)[-1])
        html = f'{icon}<a href="{safe_url(url)}">{html}</a>'

    return html


def render_rich_text(items: Optional[list], context: Optional[RenderContext] = None) -> str:
    """Render a rich text array (API dicts or spans) to inline HTML."""
    return "".join(render_span(span, context) for span in parse_rich_text(items))
