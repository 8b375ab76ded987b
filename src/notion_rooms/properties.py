"""Database property values → display HTML.

``format_property`` is total: unknown types, missing values and malformed
payloads all render as ``""``.
"""

import logging
from typing import Callable, Optional

from .formatting import (
    escape_html,
    format_date,
    format_date_range,
    format_number,
    safe_url,
)
from .models import RenderContext, file_url
from .rich_text import plain_text, render_rich_text

logger = logging.getLogger(__name__)

# Select/multi-select pill colors: name → (text token, background token)
SELECT_PALETTE = {
    name: (f"var(--color-text-{name})", f"var(--color-bg-{name})")
    for name in (
        "default", "gray", "brown", "orange", "yellow",
        "green", "blue", "purple", "pink", "red",
    )
}

CHECK_ICON = (
    '<svg viewBox="0 0 14 14" class="checkmark">'
    '<path d="M5.5 12L14 3.5 12.5 2l-7 7-4-4.003L0 6.499z" fill="currentColor"/>'
    "</svg>"
)

PEOPLE_PLACEHOLDER = "N/A"

# Small glyph shown next to each column name in database headers
PROPERTY_TYPE_ICONS = {
    "title": "Aa",
    "rich_text": "≡",
    "number": "#",
    "select": "▾",
    "status": "◐",
    "multi_select": "☰",
    "date": "📅",
    "created_time": "🕒",
    "last_edited_time": "🕒",
    "checkbox": "☑",
    "url": "🔗",
    "email": "@",
    "phone_number": "☎",
    "files": "📎",
    "people": "👤",
    "formula": "Σ",
    "unique_id": "№",
}


def option_style(color: Optional[str]) -> str:
    """Inline style for a select option pill."""
    text, background = SELECT_PALETTE.get(color or "default", SELECT_PALETTE["default"])
    return f"color: {text}; background-color: {background}"


def render_pill(option: Optional[dict]) -> str:
    if not option or not option.get("name"):
        return ""
    return (
        f'<span class="notion-pill" style="{option_style(option.get("color"))}">'
        f'{escape_html(option["name"])}</span>'
    )


# =============================================================================
# Per-type Formatters
# =============================================================================


def _format_text(value, prop_type, context):
    return render_rich_text(value, context)


def _format_number(value, prop_type, context):
    return escape_html(format_number(value))


def _format_select(value, prop_type, context):
    return render_pill(value)


def _format_multi_select(value, prop_type, context):
    return "".join(render_pill(option) for option in value or [])


def _format_date(value, prop_type, context):
    if not value:
        return ""
    return escape_html(format_date_range(value.get("start"), value.get("end")))


def _format_timestamp(value, prop_type, context):
    return escape_html(format_date(value))


def _format_checkbox(value, prop_type, context):
    if value:
        return f'<div class="notion-property-checkbox checked">{CHECK_ICON}</div>'
    return '<div class="notion-property-checkbox"></div>'


def _format_url(value, prop_type, context):
    if not value:
        return ""
    return f'<a class="notion-property-url" href="{safe_url(value)}" target="_blank">{escape_html(value)}</a>'


def _format_email(value, prop_type, context):
    if not value:
        return ""
    return f'<a class="notion-property-email" href="mailto:{escape_html(value)}">{escape_html(value)}</a>'


def _format_phone(value, prop_type, context):
    if not value:
        return ""
    return f'<a class="notion-property-phone" href="tel:{escape_html(value)}">{escape_html(value)}</a>'


def _format_files(value, prop_type, context):
    parts = []
    for item in value or []:
        url = file_url(item)
        if not url:
            continue
        name = escape_html(item.get("name") or url)
        if item.get("_is_image"):
            parts.append(f'<img class="notion-property-file-image" src="{safe_url(url)}" alt="{name}" />')
        else:
            parts.append(f'<a class="notion-property-file" href="{safe_url(url)}" download>{name}</a>')
    return "".join(parts)


def _format_person(person) -> str:
    if not isinstance(person, dict) or person.get("object") == "error" or not person.get("name"):
        return f'<span class="notion-person notion-person-unknown">{PEOPLE_PLACEHOLDER}</span>'
    avatar = ""
    if person.get("avatar_url"):
        avatar = f'<img class="notion-person-avatar" src="{safe_url(person["avatar_url"])}" alt="" />'
    return f'<span class="notion-person">{avatar}<span>{escape_html(person["name"])}</span></span>'


def _format_people(value, prop_type, context):
    return "".join(_format_person(person) for person in value or [])


def _format_formula(value, prop_type, context):
    if not value:
        return ""
    inner_type = value.get("type")
    inner = value.get(inner_type)
    if inner_type == "string":
        return escape_html(inner or "")
    if inner_type == "number":
        return _format_number(inner, inner_type, context)
    if inner_type == "boolean":
        return _format_checkbox(inner, inner_type, context)
    if inner_type == "date":
        return _format_date(inner, inner_type, context)
    return ""


def _format_unique_id(value, prop_type, context):
    if not value or value.get("number") is None:
        return ""
    prefix = value.get("prefix")
    number = value["number"]
    return escape_html(f"{prefix}-{number}" if prefix else str(number))


PROPERTY_FORMATTERS: dict[str, Callable] = {
    "title": _format_text,
    "rich_text": _format_text,
    "number": _format_number,
    "select": _format_select,
    "status": _format_select,
    "multi_select": _format_multi_select,
    "date": _format_date,
    "created_time": _format_timestamp,
    "last_edited_time": _format_timestamp,
    "checkbox": _format_checkbox,
    "url": _format_url,
    "email": _format_email,
    "phone_number": _format_phone,
    "files": _format_files,
    "people": _format_people,
    "formula": _format_formula,
    "unique_id": _format_unique_id,
}


def format_property(
    value: Optional[dict],
    schema_type: Optional[str] = None,
    context: Optional[RenderContext] = None,
) -> str:
    """Format a database property value for display.

    Args:
        value: Property object from ``page.properties`` (``{"type": ..., <type>: ...}``).
        schema_type: Column type from the database schema; defaults to the
            value's own ``type``.
        context: Render context, used for page mention links in text values.

    Returns:
        HTML fragment, or ``""`` when the value is missing or unrecognised.
    """
    if not isinstance(value, dict):
        return ""
    prop_type = schema_type or value.get("type")
    formatter = PROPERTY_FORMATTERS.get(prop_type or "")
    if formatter is None:
        return ""
    try:
        return formatter(value.get(prop_type), prop_type, context)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Malformed {prop_type} property value: {e}")
        return ""


def property_plain_text(value: Optional[dict]) -> str:
    """Plain text of a title/rich_text property, ``""`` for other types."""
    if not isinstance(value, dict):
        return ""
    prop_type = value.get("type")
    if prop_type not in ("title", "rich_text"):
        return ""
    return plain_text(value.get(prop_type))
