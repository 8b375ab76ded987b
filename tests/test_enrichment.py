"""Tests for link metadata scraping and image sniffing."""

import asyncio

import httpx

from notion_rooms.enrichment import fallback_metadata, fetch_link_metadata, is_image, parse_metadata

PAGE = """
<html><head>
  <title> Example Post </title>
  <meta property="og:description" content="From open graph">
  <meta name="description" content="From name">
  <meta property="og:image" content="/static/preview.png">
  <link rel="icon" href="/icons/fav.png">
</head><body></body></html>
"""


def with_client(handler, coro_factory):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await coro_factory(client)
    return asyncio.run(go())


class TestParseMetadata:
    """Title, description, favicon and image extraction."""

    def test_name_beats_open_graph(self):
        metadata = parse_metadata(PAGE, "https://blog.example/post/1")
        assert metadata.title == "Example Post"
        assert metadata.description == "From name"

    def test_twitter_beats_name(self):
        html = '<meta property="twitter:description" content="Tweeted"><meta name="description" content="Plain">'
        assert parse_metadata(html, "https://a.example").description == "Tweeted"

    def test_relative_urls_resolved(self):
        metadata = parse_metadata(PAGE, "https://blog.example/post/1")
        assert metadata.favicon == "https://blog.example/icons/fav.png"
        assert metadata.image == "https://blog.example/static/preview.png"

    def test_default_favicon_and_title(self):
        metadata = parse_metadata("<html></html>", "https://bare.example/x")
        assert metadata.title == "bare.example"
        assert metadata.description == ""
        assert metadata.favicon == "https://bare.example/favicon.ico"
        assert metadata.image is None


class TestFetchLinkMetadata:
    """Every failure resolves to the fallback."""

    def test_success(self):
        def handler(request):
            return httpx.Response(200, text=PAGE)

        metadata = with_client(handler, lambda c: fetch_link_metadata("https://blog.example/post/1", client=c))
        assert metadata.title == "Example Post"

    def test_server_error_falls_back(self):
        metadata = with_client(
            lambda request: httpx.Response(500),
            lambda c: fetch_link_metadata("https://down.example/page", client=c),
        )
        assert metadata == fallback_metadata("https://down.example/page")
        assert metadata.title == "down.example"
        assert metadata.favicon == "https://www.google.com/s2/favicons?domain=down.example&sz=64"

    def test_connection_error_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        metadata = with_client(handler, lambda c: fetch_link_metadata("https://gone.example", client=c))
        assert metadata.title == "gone.example"

    def test_to_dict_keys(self):
        assert set(fallback_metadata("https://a.example").to_dict()) == {"title", "description", "favicon", "image"}


class TestIsImage:
    def test_image_content_type(self):
        handler = lambda request: httpx.Response(200, headers={"Content-Type": "image/png"})
        assert with_client(handler, lambda c: is_image("https://cdn.example/a", client=c)) is True

    def test_html_content_type(self):
        handler = lambda request: httpx.Response(200, headers={"Content-Type": "text/html"})
        assert with_client(handler, lambda c: is_image("https://cdn.example/a", client=c)) is False

    def test_failure_is_false(self):
        handler = lambda request: httpx.Response(403)
        assert with_client(handler, lambda c: is_image("https://cdn.example/a", client=c)) is False
