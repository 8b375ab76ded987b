"""Embed classification and provider iframe templates.

Providers are tried in order; the first whose pattern matches the URL wins.
URLs matching no provider get a generic iframe.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import quote

from .formatting import escape_html, safe_url

RESPONSIVE_VIDEO_STYLE = "position: relative; padding-bottom: 56.25%; height: 0; overflow: hidden;"
RESPONSIVE_FRAME_STYLE = "position: absolute; top: 0; left: 0; width: 100%; height: 100%;"

VIDEO_FILE_EXTENSIONS = (".mp4", ".webm", ".ogg", ".mov", ".m4v")


def _responsive_video(src: str, allow: str) -> str:
    return (
        f'<div class="video-block" style="{RESPONSIVE_VIDEO_STYLE}">'
        f'<iframe style="{RESPONSIVE_FRAME_STYLE}" src="{escape_html(src)}" '
        f'frameborder="0" {allow} allowfullscreen></iframe>'
        "</div>"
    )


def _youtube(match: re.Match, url: str) -> str:
    return _responsive_video(
        f"https://www.youtube.com/embed/{match.group(1)}",
        'allow="accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture"',
    )


def _loom(match: re.Match, url: str) -> str:
    return _responsive_video(
        f"https://www.loom.com/embed/{match.group(1)}",
        "webkitallowfullscreen mozallowfullscreen",
    )


def _vimeo(match: re.Match, url: str) -> str:
    return _responsive_video(
        f"https://player.vimeo.com/video/{match.group(1)}",
        'allow="autoplay; fullscreen; picture-in-picture"',
    )


def _tweet(match: re.Match, url: str) -> str:
    tweet_id = match.group(1)
    # id="if-<tweet id>" is what the client resize script looks up
    return (
        f'<iframe id="if-{tweet_id}" class="twitter-embed" '
        f'src="https://platform.twitter.com/embed/Tweet.html?id={tweet_id}" '
        'width="550" height="400" frameborder="0" scrolling="no" '
        'allowtransparency="true" allowfullscreen></iframe>'
    )


def _spotify(match: re.Match, url: str) -> str:
    kind, item_id = match.group(1), match.group(2)
    height = 152 if kind in ("track", "episode") else 352
    return (
        f'<iframe class="spotify-embed" src="https://open.spotify.com/embed/{kind}/{item_id}" '
        f'width="100%" height="{height}" frameborder="0" '
        'allow="autoplay; clipboard-write; encrypted-media; fullscreen; picture-in-picture" '
        'loading="lazy"></iframe>'
    )


def _apple_podcasts(match: re.Match, url: str) -> str:
    return (
        f'<iframe class="apple-podcasts-embed" src="https://embed.podcasts.apple.com/{escape_html(match.group(1))}" '
        'width="100%" height="175" frameborder="0" '
        'sandbox="allow-forms allow-popups allow-same-origin allow-scripts allow-top-navigation-by-user-activation" '
        'allow="autoplay *; encrypted-media *; clipboard-write"></iframe>'
    )


def _google_maps(match: re.Match, url: str) -> str:
    if "/maps/embed" in url:
        src = url
    elif match.group(1):
        src = f"https://www.google.com/maps?q={match.group(1)}&output=embed"
    else:
        src = f"https://www.google.com/maps?q={quote(url, safe='')}&output=embed"
    return (
        f'<iframe class="map-embed" src="{escape_html(src)}" width="100%" height="450" '
        'style="border:0;" allowfullscreen loading="lazy" '
        'referrerpolicy="no-referrer-when-downgrade"></iframe>'
    )


def _figma(match: re.Match, url: str) -> str:
    return (
        '<iframe class="figma-embed" '
        f'src="https://www.figma.com/embed?embed_host=notion-rooms&amp;url={quote(url, safe="")}" '
        'width="100%" height="450" style="border: 1px solid rgba(0, 0, 0, 0.1);" '
        "allowfullscreen></iframe>"
    )


def _soundcloud(match: re.Match, url: str) -> str:
    return (
        '<iframe class="soundcloud-embed" width="100%" height="166" scrolling="no" frameborder="no" '
        'allow="autoplay" '
        f'src="https://w.soundcloud.com/player/?url={quote(url, safe="")}&amp;auto_play=false"></iframe>'
    )


def _google_docs(match: re.Match, url: str) -> str:
    kind, doc_id = match.group(1), match.group(2)
    return (
        f'<iframe class="google-{kind}-embed" src="https://docs.google.com/{kind}/d/{doc_id}/preview" '
        'width="100%" height="500" frameborder="0" allowfullscreen></iframe>'
    )


def _airtable(match: re.Match, url: str) -> str:
    return (
        f'<iframe class="airtable-embed" src="https://airtable.com/embed/{match.group(1)}" '
        'frameborder="0" width="100%" height="533" '
        'style="background: transparent; border: 1px solid #ccc;"></iframe>'
    )


@dataclass(frozen=True)
class EmbedProvider:
    name: str
    pattern: re.Pattern
    render: Callable[[re.Match, str], str]


EMBED_PROVIDERS = [
    EmbedProvider(
        "youtube",
        re.compile(
            r"^https?://(?:www\.|m\.)?(?:youtube\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/)|youtu\.be/)([\w-]+)",
            re.IGNORECASE,
        ),
        _youtube,
    ),
    EmbedProvider("loom", re.compile(r"^https?://(?:www\.)?loom\.com/(?:share|embed)/([\w-]+)", re.IGNORECASE), _loom),
    EmbedProvider("vimeo", re.compile(r"^https?://(?:www\.)?vimeo\.com/(\d+)", re.IGNORECASE), _vimeo),
    EmbedProvider(
        "twitter",
        re.compile(r"^https?://(?:www\.|mobile\.)?(?:twitter|x)\.com/\w+/status(?:es)?/(\d+)", re.IGNORECASE),
        _tweet,
    ),
    EmbedProvider(
        "spotify",
        re.compile(r"^https?://open\.spotify\.com/(track|album|playlist|episode|show|artist)/(\w+)", re.IGNORECASE),
        _spotify,
    ),
    EmbedProvider(
        "apple_podcasts",
        re.compile(r"^https?://podcasts\.apple\.com/(.+)$", re.IGNORECASE),
        _apple_podcasts,
    ),
    EmbedProvider(
        "google_maps",
        re.compile(r"^https?://(?:www\.|maps\.)?google\.[a-z.]+/maps(?:/place/([^/@?]+))?", re.IGNORECASE),
        _google_maps,
    ),
    EmbedProvider(
        "figma",
        re.compile(r"^https?://(?:www\.)?figma\.com/(?:file|proto|design|board)/", re.IGNORECASE),
        _figma,
    ),
    EmbedProvider("soundcloud", re.compile(r"^https?://(?:www\.|m\.)?soundcloud\.com/", re.IGNORECASE), _soundcloud),
    EmbedProvider(
        "google_docs",
        re.compile(r"^https?://docs\.google\.com/(spreadsheets|document|presentation)/d/([\w-]+)", re.IGNORECASE),
        _google_docs,
    ),
    EmbedProvider("airtable", re.compile(r"^https?://(?:www\.)?airtable\.com/(?:embed/)?(shr\w+)", re.IGNORECASE), _airtable),
]

VIDEO_PROVIDERS = ("youtube", "loom", "vimeo")


def classify_url(url: Optional[str]) -> Optional[tuple[EmbedProvider, re.Match]]:
    """Return the first provider whose pattern matches ``url``."""
    if not url:
        return None
    for provider in EMBED_PROVIDERS:
        match = provider.pattern.match(url.strip())
        if match:
            return provider, match
    return None


def render_generic_embed(url: str) -> str:
    return (
        f'<iframe class="notion-embed-generic" src="{safe_url(url)}" width="100%" height="500" '
        'frameborder="0" allowfullscreen loading="lazy"></iframe>'
    )


def _caption_html(caption_html: str) -> str:
    return f'<div class="image-caption">{caption_html}</div>' if caption_html else ""


def render_embed(url: Optional[str], caption_html: str = "") -> str:
    """Render an embed block for ``url``."""
    if not url:
        return ""
    classified = classify_url(url)
    if classified is None:
        name, frame = "generic", render_generic_embed(url)
    else:
        provider, match = classified
        name, frame = provider.name, provider.render(match, url.strip())
    return f'<div class="notion-embed notion-embed-{name}">{frame}</div>{_caption_html(caption_html)}'


def render_video(url: Optional[str], is_upload: bool, caption_html: str = "") -> str:
    """Render a ``video`` block: provider players, else a ``<video>`` tag."""
    if not url:
        return ""
    classified = None if is_upload else classify_url(url)
    if classified is not None and classified[0].name in VIDEO_PROVIDERS:
        provider, match = classified
        return f"{provider.render(match, url.strip())}{_caption_html(caption_html)}"
    if not is_upload and not url.lower().split("?")[0].endswith(VIDEO_FILE_EXTENSIONS):
        return render_embed(url, caption_html)
    return (
        '<div class="video-block"><video controls style="width: 100%;">'
        f'<source src="{safe_url(url)}" type="video/mp4">'
        "Your browser does not support the video tag.</video>"
        f"{_caption_html(caption_html)}</div>"
    )
