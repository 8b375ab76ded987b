"""Tests for list runs and numbering."""

import re

from notion_rooms.lists import effective_start, render_blocks, render_run
from notion_rooms.models import Block, RenderContext


def item(block_id, kind, content, children=None, **extra):
    short = {"n": "numbered_list_item", "b": "bulleted_list_item", "p": "paragraph", "t": "toggle"}[kind]
    return {
        "object": "block",
        "id": block_id,
        "type": short,
        short: {"rich_text": [{"type": "text", "text": {"content": content}, "plain_text": content}], **extra},
        "children": children or [],
    }


def build(raws, parent_id="page"):
    blocks = [Block.from_api(raw, parent_id=parent_id) for raw in raws]
    context = RenderContext()
    context.index(blocks, parent_id)
    return blocks, context


def list_openings(html):
    return re.findall(r"<(ol|ul)[^>]*?(?: start=\"(\d+)\")?>", html)


class TestRuns:
    """Consecutive same-kind siblings form one list."""

    def test_interrupted_numbered_run_restarts(self):
        blocks, context = build([
            item("n1", "n", "one"),
            item("n2", "n", "two"),
            item("n3", "n", "three"),
            item("b1", "b", "bullet"),
            item("n4", "n", "again one"),
            item("n5", "n", "again two"),
        ])
        html = render_blocks(blocks, context)
        assert list_openings(html) == [("ol", "1"), ("ul", ""), ("ol", "1")]
        assert html.count("<li ") == 6

    def test_explicit_start_override(self):
        blocks, context = build([
            item("n1", "n", "one"),
            item("p1", "p", "break"),
            item("n2", "n", "five", list_start_index=5),
            item("n3", "n", "six"),
        ])
        html = render_blocks(blocks, context)
        assert list_openings(html) == [("ol", "1"), ("ol", "5")]

    def test_bulleted_run_is_single_list(self):
        blocks, context = build([item("b1", "b", "a"), item("b2", "b", "b")])
        html = render_blocks(blocks, context)
        assert html.count("<ul") == 1
        assert html.count("</ul>") == 1

    def test_items_keyed_by_block_id(self):
        blocks, context = build([item("n1", "n", "one")])
        assert '<li class="block" id="n1">one</li>' in render_blocks(blocks, context)

    def test_malformed_item_skipped_run_kept(self):
        broken = item("b2", "b", "x")
        broken["bulleted_list_item"]["rich_text"] = 42
        blocks, context = build([item("b1", "b", "one"), broken, item("b3", "b", "three")])
        html = render_run(blocks, "bulleted", context)
        assert html == (
            '<ul class="notion-list notion-list-bulleted">'
            '<li class="block" id="b1">one</li><li class="block" id="b3">three</li></ul>'
        )

    def test_item_text_escaped(self):
        blocks, context = build([item("b1", "b", "<img src=x>")])
        assert "&lt;img src=x&gt;" in render_blocks(blocks, context)


class TestNesting:
    """Nested lists live inside their item and number from their own scope."""

    def test_nested_numbered_list_restarts_at_one(self):
        blocks, context = build([
            item("n1", "n", "one"),
            item("n2", "n", "two", children=[
                item("c1", "n", "inner one"),
                item("c2", "n", "inner two"),
            ]),
        ])
        html = render_blocks(blocks, context)
        assert list_openings(html) == [("ol", "1"), ("ol", "1")]
        # Nested list is inside the second item
        assert re.search(r'<li class="block" id="n2">two<ol[^>]*>.*</ol></li></ol>$', html)

    def test_mixed_children_inside_item(self):
        blocks, context = build([
            item("b1", "b", "parent", children=[item("p1", "p", "note"), item("c1", "n", "sub")]),
        ])
        html = render_blocks(blocks, context)
        assert '<div class="block" id="p1"><p>note</p></div>' in html
        assert '<ol class="notion-list notion-list-numbered" start="1">' in html

    def test_run_inside_toggle_uses_toggle_scope(self):
        blocks, context = build([
            item("n1", "n", "top one"),
            item("n2", "n", "top two"),
            item("t1", "t", "toggle", children=[item("c1", "n", "inside")]),
        ])
        toggle = blocks[2]
        assert effective_start(toggle.children[0], context) == 1


class TestEffectiveStart:
    """Start number is derived from the parent's full child list."""

    def test_run_entered_part_way(self):
        blocks, context = build([
            item("n1", "n", "one"),
            item("n2", "n", "two"),
            item("n3", "n", "three"),
        ])
        html = render_run(blocks[1:], "numbered", context)
        assert html.startswith('<ol class="notion-list notion-list-numbered" start="2">')

    def test_explicit_start_of_true_first_item(self):
        blocks, context = build([
            item("n1", "n", "ten", list_start_index=10),
            item("n2", "n", "eleven"),
        ])
        assert effective_start(blocks[1], context) == 11

    def test_unindexed_block_starts_at_one(self):
        block = Block.from_api(item("n1", "n", "solo"))
        assert effective_start(block, RenderContext()) == 1
