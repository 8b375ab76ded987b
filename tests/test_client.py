"""Tests for the Notion API client, ids and settings."""

import asyncio
import json
from argparse import Namespace

import httpx
import pytest

from notion_rooms import client as client_module
from notion_rooms.client import NotionClient, _compute_retry_delay, http_error_detail, status_of
from notion_rooms.config import Settings, load_settings
from notion_rooms.ids import extract_uuid_from_url, normalize_uuid, resolve_ref

SETTINGS = Settings(token="secret-token")


def run(coro_factory, handler):
    """Run ``coro_factory(client)`` against a mock transport."""
    async def go():
        async with NotionClient(SETTINGS, transport=httpx.MockTransport(handler)) as client:
            return await coro_factory(client)
    return asyncio.run(go())


class TestRequests:
    def test_headers_and_base_url(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["version"] = request.headers["Notion-Version"]
            return httpx.Response(200, json={"object": "page", "id": "p"})

        page = run(lambda c: c.get_page("p"), handler)
        assert page["id"] == "p"
        assert seen["url"] == "https://api.notion.com/v1/pages/p"
        assert seen["auth"] == "Bearer secret-token"
        assert seen["version"] == "2025-09-03"

    def test_children_pagination(self):
        def handler(request):
            cursor = request.url.params.get("start_cursor")
            if cursor is None:
                return httpx.Response(200, json={"results": [{"id": "a"}], "has_more": True, "next_cursor": "c2"})
            return httpx.Response(200, json={"results": [{"id": "b"}], "has_more": False, "next_cursor": None})

        blocks = run(lambda c: c.get_all_children("parent"), handler)
        assert [b["id"] for b in blocks] == ["a", "b"]

    def test_single_children_page(self):
        def handler(request):
            return httpx.Response(200, json={"results": [{"id": "a"}], "has_more": True, "next_cursor": "n"})

        page = run(lambda c: c.get_children("parent"), handler)
        assert page.items == [{"id": "a"}]
        assert page.next_cursor == "n"
        assert page.has_more is True

    def test_not_found_raises(self):
        def handler(request):
            return httpx.Response(404, json={"object": "error", "code": "object_not_found"})

        with pytest.raises(httpx.HTTPStatusError) as info:
            run(lambda c: c.get_page("missing"), handler)
        assert status_of(info.value) == 404
        assert "object_not_found" in http_error_detail(info.value)

    def test_transport_error_detail(self):
        request = httpx.Request("GET", "https://api.notion.com/v1/pages/p")
        error = httpx.ReadTimeout("timed out", request=request)
        assert status_of(error) is None
        assert http_error_detail(error) == "ReadTimeout: timed out"

    def test_query_data_source_posts_body(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"results": [{"id": "r1"}, {"id": "r2"}], "has_more": True, "next_cursor": "x"})

        rows, has_more = run(lambda c: c.query_data_source("ds", limit=2), handler)
        assert [r["id"] for r in rows] == ["r1", "r2"]
        assert has_more is True
        assert bodies == [{"page_size": 2}]

    def test_database_schema_from_data_source(self):
        def handler(request):
            if request.url.path.endswith("/databases/db"):
                return httpx.Response(200, json={"object": "database", "id": "db", "data_sources": [{"id": "ds"}]})
            return httpx.Response(200, json={"object": "data_source", "properties": {"Name": {"type": "title"}}})

        database, data_source_id = run(lambda c: c.get_database_schema("db"), handler)
        assert data_source_id == "ds"
        assert database["properties"] == {"Name": {"type": "title"}}


class TestRetry:
    def test_rate_limit_retried(self, monkeypatch):
        calls = []

        async def no_sleep(delay):
            calls.append(delay)

        monkeypatch.setattr(client_module.asyncio, "sleep", no_sleep)

        def handler(request):
            if len(calls) < 2:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return httpx.Response(200, json={"ok": True})

        assert run(lambda c: c.request("GET", "/users/me"), handler) == {"ok": True}
        assert len(calls) == 2

    def test_rate_limit_exhausted_raises(self, monkeypatch):
        async def no_sleep(delay):
            pass

        monkeypatch.setattr(client_module.asyncio, "sleep", no_sleep)

        with pytest.raises(httpx.HTTPStatusError) as info:
            run(lambda c: c.request("GET", "/users/me"), lambda request: httpx.Response(429))
        assert status_of(info.value) == 429

    def test_backoff_grows(self, monkeypatch):
        monkeypatch.setattr(client_module.random, "uniform", lambda a, b: 0)
        assert _compute_retry_delay(0) == 1.0
        assert _compute_retry_delay(2) == 4.0
        assert _compute_retry_delay(0, retry_after=3.0) == 3.0

    def test_unsupported_method(self):
        with pytest.raises(ValueError):
            run(lambda c: c.request("PUT", "/x"), lambda request: httpx.Response(200))


class TestIds:
    def test_normalize(self):
        assert normalize_uuid("1C4AAA7B984780FAA521E1585038A94B") == "1c4aaa7b-9847-80fa-a521-e1585038a94b"

    def test_invalid(self):
        with pytest.raises(ValueError):
            normalize_uuid("abc")

    def test_url(self):
        url = "https://www.notion.so/team/Roadmap-1c4aaa7b984780faa521e1585038a94b?pvs=4"
        assert extract_uuid_from_url(url) == "1c4aaa7b-9847-80fa-a521-e1585038a94b"

    def test_resolve_ref(self):
        assert resolve_ref(" 1c4aaa7b-9847-80fa-a521-e1585038a94b ") == "1c4aaa7b-9847-80fa-a521-e1585038a94b"
        assert resolve_ref("not an id") is None
        assert resolve_ref(None) is None

    def test_notion_site_and_dashed_url(self):
        assert extract_uuid_from_url("https://team.notion.site/1c4aaa7b984780faa521e1585038a94b") == (
            "1c4aaa7b-9847-80fa-a521-e1585038a94b"
        )
        dashed = "https://notion.so/Page-1c4aaa7b-9847-80fa-a521-e1585038a94b/"
        assert resolve_ref(dashed) == "1c4aaa7b-9847-80fa-a521-e1585038a94b"

    def test_other_hosts_rejected(self):
        assert extract_uuid_from_url("https://example.com/1c4aaa7b984780faa521e1585038a94b") is None
        assert extract_uuid_from_url("https://notnotion.so/1c4aaa7b984780faa521e1585038a94b") is None
        assert extract_uuid_from_url("https://www.notion.so/Page-without-id") is None


class TestSettings:
    def args(self, **kwargs):
        defaults = {"token_file": None, "service_url": None, "root_id": None, "http": False, "host": None, "port": None}
        return Namespace(**{**defaults, **kwargs})

    def test_env_then_cli(self, tmp_path):
        token_file = tmp_path / "token"
        token_file.write_text("file-token\n")
        settings = load_settings(
            self.args(token_file=str(token_file), port=9000),
            environ={"NOTION_KEY": "env-token", "NOTION_ROOMS_SERVICE_URL": "https://rooms.example/"},
        )
        assert settings.token == "file-token"
        assert settings.service_url == "https://rooms.example/"
        assert settings.port == 9000
        assert settings.host == "127.0.0.1"

    def test_env_token_only(self):
        settings = load_settings(self.args(), environ={"NOTION_KEY": "env-token"})
        assert settings.token == "env-token"

    def test_missing_token_exits(self):
        with pytest.raises(SystemExit):
            load_settings(self.args(), environ={})

    def test_empty_token_file_exits(self, tmp_path):
        token_file = tmp_path / "token"
        token_file.write_text("  \n")
        with pytest.raises(SystemExit):
            load_settings(self.args(token_file=str(token_file)), environ={})

    def test_missing_token_file_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            load_settings(self.args(token_file=str(tmp_path / "nope")), environ={})
