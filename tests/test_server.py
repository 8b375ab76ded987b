"""Tests for the HTTP routes and the MCP tool."""

import asyncio

import pytest
from starlette.testclient import TestClient

from notion_rooms import server
from notion_rooms.config import Settings
from notion_rooms.crawl import CrawlEntry
from notion_rooms.enrichment import LinkMetadata
from notion_rooms.errors import UpstreamNotFoundError, UpstreamValidationError

PAGE_ID = "1c4aaa7b-9847-80fa-a521-e1585038a94b"

ENTRIES = [
    {"master": {"object": "page", "id": PAGE_ID, "icon": None,
                "properties": {"title": {"type": "title", "title": [{"plain_text": "Lobby"}]}}}},
    {"block": {"id": "p1", "type": "paragraph",
               "paragraph": {"rich_text": [{"type": "text", "text": {"content": "Welcome"}, "plain_text": "Welcome"}]}}},
]


class FakeNotionClient:
    def __init__(self, settings):
        self.settings = settings

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        pass


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(server, "NotionClient", FakeNotionClient)
    app = server.create_app(Settings(token="t", service_url="/"), with_mcp=False)
    return TestClient(app)


def serve_entries(monkeypatch, result=None, error=None):
    async def fake_load_entries(ref, settings):
        if error is not None:
            raise error
        return result if result is not None else ENTRIES
    monkeypatch.setattr(server, "load_entries", fake_load_entries)


class TestRenderer:
    """JSON render route."""

    def test_renders_page(self, client, monkeypatch):
        serve_entries(monkeypatch)
        response = client.get("/renderer", params={"id": PAGE_ID})
        assert response.status_code == 200
        body = response.json()
        assert body["metadata"] == {"title": "Lobby", "favicon": None}
        assert '<div class="block" id="p1"><p>Welcome</p></div>' in body["html"]

    def test_missing_id(self, client):
        response = client.get("/renderer")
        assert response.status_code == 400

    def test_root_id_default(self, monkeypatch):
        serve_entries(monkeypatch)
        app = server.create_app(Settings(token="t", root_id=PAGE_ID), with_mcp=False)
        assert TestClient(app).get("/renderer").status_code == 200

    def test_not_found(self, client, monkeypatch):
        serve_entries(monkeypatch, error=UpstreamNotFoundError(ref=PAGE_ID))
        response = client.get("/renderer", params={"id": PAGE_ID})
        assert response.status_code == 404
        assert response.json() == {"error": "Page not found"}

    def test_invalid_id(self, client, monkeypatch):
        serve_entries(monkeypatch, error=UpstreamValidationError(ref="x"))
        response = client.get("/renderer", params={"id": "x"})
        assert response.status_code == 400

    def test_unexpected_failure(self, client, monkeypatch):
        serve_entries(monkeypatch, error=RuntimeError("boom"))
        response = client.get("/renderer", params={"id": PAGE_ID})
        assert response.status_code == 500
        body = response.json()
        assert body["metadata"]["title"] == "Error"
        assert "notion-error" in body["html"]


class TestPages:
    def test_document(self, client, monkeypatch):
        serve_entries(monkeypatch)
        response = client.get(f"/pages/{PAGE_ID.replace('-', '')}")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "<title>Lobby</title>" in response.text

    def test_not_found(self, client, monkeypatch):
        serve_entries(monkeypatch, error=UpstreamNotFoundError())
        response = client.get(f"/pages/{PAGE_ID}")
        assert response.status_code == 404
        assert "Page not found" in response.text


class TestBookmarkMetadata:
    def test_missing_url(self, client):
        response = client.get("/bookmark-metadata")
        assert response.status_code == 400
        assert response.json() == {"error": "Missing URL parameter"}

    def test_metadata(self, client, monkeypatch):
        async def fake_fetch(url, timeout):
            return LinkMetadata(title="Example", description="d", favicon="f", image=None)

        monkeypatch.setattr(server, "fetch_link_metadata", fake_fetch)
        response = client.get("/bookmark-metadata", params={"url": "https://example.org"})
        assert response.json() == {"title": "Example", "description": "d", "favicon": "f", "image": None}
        assert "s-maxage" in response.headers["cache-control"]


class TestCrawlRoutes:
    ENTRIES = [
        CrawlEntry(PAGE_ID, "page", "Lobby", url="https://www.notion.so/lobby"),
        CrawlEntry("c1", "child_page", "Kitchen", parent_id=PAGE_ID),
    ]

    def serve_crawl(self, monkeypatch):
        async def fake_crawl(ref, client, max_depth):
            return self.ENTRIES
        monkeypatch.setattr(server, "crawl", fake_crawl)

    def test_crawl(self, client, monkeypatch):
        self.serve_crawl(monkeypatch)
        body = client.get("/crawl", params={"id": PAGE_ID}).json()
        assert [block["id"] for block in body["blocks"]] == [PAGE_ID, "c1"]

    def test_treemap(self, client, monkeypatch):
        self.serve_crawl(monkeypatch)
        body = client.get("/treemap", params={"id": PAGE_ID}).json()
        assert body == {"treemap": [[f"{PAGE_ID} Lobby", [["---c1 Kitchen"]]]]}

    def test_crawl_missing_id(self, client):
        assert client.get("/crawl").status_code == 400


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "token_loaded": True}


class TestMcpTool:
    """The tool returns text, never raises."""

    def test_render(self, client, monkeypatch):
        serve_entries(monkeypatch)
        html = asyncio.run(server.notion_render(PAGE_ID))
        assert "<p>Welcome</p>" in html

    def test_not_found_hint(self, client, monkeypatch):
        serve_entries(monkeypatch, error=UpstreamNotFoundError())
        text = asyncio.run(server.notion_render(PAGE_ID))
        assert text.startswith("error: NOT_FOUND - Page not found")
        assert "hint:" in text

    def test_no_settings(self, monkeypatch):
        monkeypatch.setattr(server, "_settings", None)
        text = asyncio.run(server.notion_render(PAGE_ID))
        assert text.startswith("error: NO_TOKEN")
