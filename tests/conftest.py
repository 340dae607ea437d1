"""Shared fixtures: HTTP clients backed by httpx.MockTransport."""

import re
from pathlib import Path
from urllib.parse import parse_qs, urlencode

import httpx
import pytest

from tubestream.core.http_client import HTTPClient
from tubestream.core.player_cache import PlayerAssetStore
from tubestream.extractors.base import BaseExtractor, PlayerPage
from tubestream.models.request import ResolveOptions
from tubestream.video import Video

DATA_DIR = Path(__file__).parent / "data"

VIDEO_ID = "dQw4w9WgXcQ"
PLAYER_URL = "https://www.youtube.com/s/player/3a9b1c2d/player_ias.vflset/en_US/base.js"
MEDIA_URL = "https://rr1---sn-abc.googlevideo.com/videoplayback"
MEDIA = bytes(range(256)) * 16


@pytest.fixture
def no_backoff(monkeypatch):
    """Make every retry wait zero seconds."""
    monkeypatch.setattr(HTTPClient, "_backoff", staticmethod(lambda attempt, response=None: 0.0))


@pytest.fixture
def mock_http(no_backoff):
    """Factory for an HTTPClient whose requests are answered by ``handler``."""

    def factory(handler, **kwargs) -> HTTPClient:
        return HTTPClient(transport=httpx.MockTransport(handler), **kwargs)

    return factory


@pytest.fixture
def player_script() -> str:
    return (DATA_DIR / "player_base.js").read_text(encoding="utf-8")


class YouTubeServer:
    """
    Answers player script and media requests.

    Media URLs are only served when they carry the deciphered signature and
    n values the fixture player produces, like the real CDN.
    """

    def __init__(self, script: str):
        self.script = script
        self.player_status = 200
        self.requests: list[httpx.Request] = []

    def __call__(self, request):
        self.requests.append(request)
        if request.url.path.endswith("/base.js"):
            if self.player_status != 200:
                return httpx.Response(self.player_status)
            return httpx.Response(200, text=self.script)
        if request.url.path.endswith("/videoplayback"):
            query = {k: v[0] for k, v in parse_qs(request.url.query.decode()).items()}
            if query.get("itag") == "18" and (query.get("sig") != "nmlkjihgfeacbd" or query.get("n") != "edcb"):
                return httpx.Response(403)
            return self._media(request)
        return httpx.Response(404)

    @staticmethod
    def _media(request):
        match = re.match(r"bytes=(\d+)-(\d*)", request.headers.get("Range", "bytes=0-"))
        first = int(match.group(1))
        last = min(int(match.group(2)) if match.group(2) else len(MEDIA) - 1, len(MEDIA) - 1)
        return httpx.Response(
            206,
            headers={"Content-Range": f"bytes {first}-{last}/{len(MEDIA)}"},
            content=MEDIA[first : last + 1],
        )

    def count(self, suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))


class FakeExtractor(BaseExtractor):
    """Returns a prepared page instead of scraping the watch page."""

    def __init__(self, page: PlayerPage):
        super().__init__()
        self.page = page
        self.calls = 0

    async def fetch_page(self, video_id: str) -> PlayerPage:
        self.calls += 1
        return self.page


@pytest.fixture
def youtube_server(player_script) -> YouTubeServer:
    return YouTubeServer(player_script)


@pytest.fixture
def player_response() -> dict:
    cipher = urlencode({"s": "abcdefghijklmnop", "sp": "sig", "url": f"{MEDIA_URL}?itag=18&n=abcd"})
    return {
        "playabilityStatus": {"status": "OK"},
        "videoDetails": {
            "videoId": VIDEO_ID,
            "title": "Never Gonna Give You Up",
            "author": "Rick Astley",
            "channelId": "UCuAXFkgsw1L7xaCfnd5JJOw",
            "lengthSeconds": "212",
            "viewCount": "1500000000",
            "keywords": ["rick astley"],
        },
        "microformat": {"playerMicroformatRenderer": {"uploadDate": "2009-10-24T23:57:33-07:00"}},
        "streamingData": {
            "formats": [
                {
                    "itag": 18,
                    "mimeType": 'video/mp4; codecs="avc1.42001E, mp4a.40.2"',
                    "bitrate": 500_000,
                    "width": 640,
                    "height": 360,
                    "qualityLabel": "360p",
                    "contentLength": str(len(MEDIA)),
                    "signatureCipher": cipher,
                }
            ],
            "adaptiveFormats": [
                {
                    "itag": 140,
                    "mimeType": 'audio/mp4; codecs="mp4a.40.2"',
                    "bitrate": 130_000,
                    "contentLength": str(len(MEDIA)),
                    "url": f"{MEDIA_URL}?itag=140",
                }
            ],
        },
    }


@pytest.fixture
def watch_page(player_response) -> PlayerPage:
    return PlayerPage(video_id=VIDEO_ID, player_response=player_response, player_url=PLAYER_URL)


@pytest.fixture
def make_video(mock_http, youtube_server, watch_page):
    """Factory for a Video wired to the fake page and server, with its own player store."""

    def factory(page: PlayerPage | None = None, **options) -> Video:
        options.setdefault("probe_content_length", False)
        return Video(
            VIDEO_ID,
            ResolveOptions(**options),
            http=mock_http(youtube_server),
            player_store=PlayerAssetStore(),
            extractor=FakeExtractor(page or watch_page),
        )

    return factory
