"""Tests for database property formatting."""

import pytest

from notion_rooms.formatting import format_date, format_date_range, format_number, safe_url
from notion_rooms.properties import CHECK_ICON, format_property, property_plain_text


def prop(prop_type, value):
    return {"type": prop_type, prop_type: value}


class TestNumbers:
    """Numbers get thousands separators and at most two decimals."""

    @pytest.mark.parametrize("value,expected", [
        (1234567, "1,234,567"),
        (3.14159, "3.14"),
        (2.5, "2.5"),
        (10.0, "10"),
        (-0.001, "0"),
        (None, ""),
        (True, ""),
        (float("nan"), ""),
    ])
    def test_format_number(self, value, expected):
        assert format_number(value) == expected

    def test_number_property(self):
        assert format_property(prop("number", 1500.256)) == "1,500.26"


class TestDates:
    """Dates render as long dates; ranges only show the end if present."""

    def test_single_date(self):
        assert format_date("2025-01-05") == "January 5, 2025"

    def test_timestamp_uses_date_part(self):
        assert format_date("2024-12-31T23:30:00.000-05:00") == "December 31, 2024"

    def test_range(self):
        assert format_date_range("2025-01-05", "2025-02-01") == "January 5, 2025 → February 1, 2025"

    def test_date_property_without_end(self):
        assert format_property(prop("date", {"start": "2025-03-09", "end": None})) == "March 9, 2025"

    def test_created_time(self):
        assert format_property(prop("created_time", "2023-07-04T10:00:00.000Z")) == "July 4, 2023"


class TestCheckbox:
    def test_checked_has_icon(self):
        html = format_property(prop("checkbox", True))
        assert CHECK_ICON in html
        assert 'class="notion-property-checkbox checked"' in html

    def test_unchecked_keeps_container(self):
        assert format_property(prop("checkbox", False)) == '<div class="notion-property-checkbox"></div>'


class TestSelect:
    def test_select_pill(self):
        html = format_property(prop("select", {"name": "Done", "color": "green"}))
        assert html == (
            '<span class="notion-pill" style="color: var(--color-text-green); '
            'background-color: var(--color-bg-green)">Done</span>'
        )

    def test_multi_select_keeps_order(self):
        html = format_property(prop("multi_select", [
            {"name": "b", "color": "red"},
            {"name": "a", "color": "unknown-color"},
        ]))
        assert html.index(">b<") < html.index(">a<")
        # Unknown colors fall back to the default palette entry
        assert "var(--color-text-default)" in html

    def test_empty_select(self):
        assert format_property(prop("select", None)) == ""


class TestFilesAndPeople:
    def test_image_file_renders_img(self):
        html = format_property(prop("files", [
            {"name": "cat.png", "type": "file", "file": {"url": "https://files.example/cat.png"}, "_is_image": True},
        ]))
        assert html.startswith('<img class="notion-property-file-image" src="https://files.example/cat.png"')

    def test_other_file_renders_download_link(self):
        html = format_property(prop("files", [
            {"name": "report.pdf", "type": "external", "external": {"url": "https://files.example/r.pdf"}},
        ]))
        assert html == '<a class="notion-property-file" href="https://files.example/r.pdf" download>report.pdf</a>'

    def test_resolved_person(self):
        html = format_property(prop("people", [{"object": "user", "id": "u1", "name": "Grace"}]))
        assert "<span>Grace</span>" in html

    def test_permission_error_never_leaks(self):
        html = format_property(prop("people", [
            {"object": "error", "status": 403, "code": "restricted_resource", "message": "Insufficient permissions"},
        ]))
        assert "N/A" in html
        assert "restricted_resource" not in html
        assert "Insufficient" not in html


class TestTotality:
    """format_property never raises."""

    def test_unknown_type(self):
        assert format_property(prop("rollup", {"type": "array", "array": []})) == ""

    def test_none_value(self):
        assert format_property(None) == ""

    def test_malformed_payload(self):
        assert format_property({"type": "date", "date": "not-a-dict"}) == ""

    def test_schema_type_overrides(self):
        assert format_property({"url": "https://a.example"}, "url").startswith('<a class="notion-property-url"')

    def test_text_escaped(self):
        value = prop("rich_text", [{"type": "text", "text": {"content": "<b>"}, "plain_text": "<b>"}])
        assert format_property(value) == "&lt;b&gt;"

    def test_plain_text_only_for_text_types(self):
        assert property_plain_text(prop("title", [{"plain_text": "T", "text": {"content": "T"}}])) == "T"
        assert property_plain_text(prop("number", 3)) == ""


class TestSafeUrl:
    def test_data_and_mailto_allowed(self):
        assert safe_url("mailto:a@b.c") == "mailto:a@b.c"

    def test_script_scheme_blocked(self):
        assert safe_url(" JavaScript:alert(1)") == "#"
