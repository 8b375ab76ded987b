"""Tests for embed classification."""

import pytest

from notion_rooms.embeds import EMBED_PROVIDERS, classify_url, render_embed, render_video


class TestClassify:
    """Providers are matched in order; first match wins."""

    @pytest.mark.parametrize("url,provider", [
        ("https://youtu.be/abc123", "youtube"),
        ("https://www.loom.com/share/0f1e2d", "loom"),
        ("https://vimeo.com/76979871", "vimeo"),
        ("https://x.com/someone/status/1234567890", "twitter"),
        ("https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC", "spotify"),
        ("https://podcasts.apple.com/us/podcast/show/id123", "apple_podcasts"),
        ("https://www.google.com/maps/place/Eiffel+Tower", "google_maps"),
        ("https://www.figma.com/file/abc/Design", "figma"),
        ("https://soundcloud.com/artist/track", "soundcloud"),
        ("https://docs.google.com/spreadsheets/d/1AbC/edit", "google_docs"),
        ("https://airtable.com/shrXyZ123", "airtable"),
    ])
    def test_provider(self, url, provider):
        matched, _ = classify_url(url)
        assert matched.name == provider

    def test_no_match(self):
        assert classify_url("https://example.com/widget") is None
        assert classify_url(None) is None

    def test_order_is_stable(self):
        assert [p.name for p in EMBED_PROVIDERS][:3] == ["youtube", "loom", "vimeo"]


class TestRender:
    def test_generic_iframe_fallback(self):
        html = render_embed("https://example.com/widget?a=1&b=2")
        assert '<div class="notion-embed notion-embed-generic">' in html
        assert 'src="https://example.com/widget?a=1&amp;b=2"' in html

    def test_tweet_frame_id(self):
        html = render_embed("https://twitter.com/user/status/42")
        assert 'id="if-42"' in html

    def test_spotify_track_height(self):
        assert 'height="152"' in render_embed("https://open.spotify.com/track/abc")
        assert 'height="352"' in render_embed("https://open.spotify.com/playlist/abc")

    def test_caption_after_frame(self):
        html = render_embed("https://vimeo.com/1", caption_html="<b>cap</b>")
        assert html.endswith('<div class="image-caption"><b>cap</b></div>')

    def test_empty_url(self):
        assert render_embed("") == ""

    def test_external_video_provider(self):
        html = render_video("https://www.loom.com/share/abc", is_upload=False)
        assert 'src="https://www.loom.com/embed/abc"' in html

    def test_external_non_video_link_embeds(self):
        html = render_video("https://example.com/player", is_upload=False)
        assert "notion-embed-generic" in html
