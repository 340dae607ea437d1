"""
Video URL matching: normalises the many YouTube URL shapes and extracts the
11-character video ID.
Ported from cobalt's url.js and yt-dlp's youtube _VALID_URL patterns.
"""

import logging
import re
from urllib.parse import urlparse, urlunparse

logger = logging.getLogger(__name__)

_VIDEO_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{11}$")

# Alternate hosts that serve the same paths as youtube.com
URL_ALIASES: dict[str, str] = {
    "m.youtube.com": "youtube.com",
    "music.youtube.com": "youtube.com",
    "youtube-nocookie.com": "youtube.com",
}

_PATTERNS: list[re.Pattern] = [
    re.compile(r"^(?:https?://)?youtube\.com/watch\?(?:.*?&)?v=(?P<id>[a-zA-Z0-9_-]{11})", re.IGNORECASE),
    re.compile(r"^(?:https?://)?youtube\.com/(?:embed|v|shorts|live|e)/(?P<id>[a-zA-Z0-9_-]{11})", re.IGNORECASE),
]


def normalize_url(url: str) -> str:
    """
    Normalise scheme, ``www.`` and host aliases; rewrite youtu.be short links.
    Ported from cobalt's normalizeURL() in url.js.
    """
    url = url.strip()

    # Ensure scheme
    if not url.startswith(("http://", "https://")):
        url = "https://" + url

    parsed = urlparse(url)
    hostname = (parsed.hostname or "").removeprefix("www.")
    hostname = URL_ALIASES.get(hostname, hostname)

    # Handle youtu.be short links -> youtube.com/watch?v=ID
    if hostname == "youtu.be":
        video_id = parsed.path.lstrip("/").split("/")[0] if parsed.path else ""
        if video_id:
            return urlunparse(parsed._replace(netloc="youtube.com", path="/watch", query=f"v={video_id}"))

    return urlunparse(parsed._replace(netloc=hostname))


def is_video_id(value: str) -> bool:
    return bool(_VIDEO_ID_RE.match(value))


def parse_video_id(url_or_id: str) -> str:
    """
    Return the video ID of a watch/embed/shorts/live/youtu.be URL or a bare ID.

    Raises:
        ValueError: the input contains no video ID
    """
    candidate = url_or_id.strip()
    if is_video_id(candidate):
        return candidate

    normalized = normalize_url(candidate)
    for pattern in _PATTERNS:
        match = pattern.search(normalized)
        if match:
            return match.group("id")

    raise ValueError(f"No video ID found in {url_or_id!r}")
