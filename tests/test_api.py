"""Tests for the HTTP API routes."""

import httpx
import pytest
from fastapi.testclient import TestClient

from tubestream.errors import StreamUnavailable, UnavailableReason
from tubestream.extractors.base import BaseExtractor
from tubestream.main import app
from tubestream.routes.api import get_video

VIDEO_ID = "dQw4w9WgXcQ"
MEDIA = bytes(range(256)) * 16


class UnavailableExtractor(BaseExtractor):
    def __init__(self, reason: UnavailableReason):
        super().__init__()
        self.reason = reason

    async def fetch_page(self, video_id: str):
        raise StreamUnavailable(f"Video {video_id} is {self.reason.value}", self.reason)


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def fake_video(make_video):
    """Route every request to a Video served by the fake page and CDN."""
    videos = []

    def override(video: str):
        videos.append(make_video())
        return videos[-1]

    app.dependency_overrides[get_video] = override
    return videos


class TestMeta:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["endpoints"]["stream"] == "/api/stream/{video}"

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert "max_retries" in body["settings"]


class TestInfo:
    def test_invalid_video(self, client):
        response = client.get("/api/info/bad")
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "url.invalid"

    def test_info(self, client, fake_video):
        response = client.get(f"/api/info/{VIDEO_ID}")
        assert response.status_code == 200
        body = response.json()
        assert body["video_id"] == VIDEO_ID
        assert body["details"]["title"] == "Never Gonna Give You Up"
        assert [f["itag"] for f in body["formats"]] == [18, 140]
        assert "sig=nmlkjihgfeacbd" in body["formats"][0]["url"]

    @pytest.mark.parametrize(
        "reason, status_code",
        [
            (UnavailableReason.PRIVATE, 403),
            (UnavailableReason.AGE_RESTRICTED, 403),
            (UnavailableReason.REGION_LOCKED, 403),
            (UnavailableReason.UNAVAILABLE, 404),
            (UnavailableReason.NOT_YET_LIVE, 404),
        ],
    )
    def test_unavailable(self, client, make_video, reason, status_code):
        def override(video: str):
            v = make_video()
            v.extractor = UnavailableExtractor(reason)
            return v

        app.dependency_overrides[get_video] = override
        response = client.get(f"/api/info/{VIDEO_ID}")
        assert response.status_code == status_code
        detail = response.json()["detail"]
        assert detail["success"] is False
        assert detail["error_code"] == f"video.{reason.value}"


class TestChoose:
    def test_default_policy(self, client, fake_video):
        response = client.get(f"/api/choose/{VIDEO_ID}")
        assert response.status_code == 200
        assert response.json()["itag"] == 18

    def test_audio(self, client, fake_video):
        response = client.get(f"/api/choose/{VIDEO_ID}", params={"quality": "highest_audio", "filter": "audio"})
        assert response.json()["itag"] == 140

    def test_no_match(self, client, fake_video):
        response = client.get(f"/api/choose/{VIDEO_ID}", params={"filter": "video"})
        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "format.not_found"

    def test_target_without_height(self, client, fake_video):
        response = client.get(f"/api/choose/{VIDEO_ID}", params={"quality": "target"})
        assert response.status_code == 422
        assert response.json()["detail"]["error_code"] == "request.invalid"

    def test_unknown_tier(self, client, fake_video):
        assert client.get(f"/api/choose/{VIDEO_ID}", params={"quality": "best"}).status_code == 422


class TestStream:
    def test_stream_audio(self, client, fake_video):
        response = client.get(f"/api/stream/{VIDEO_ID}", params={"quality": "highest_audio", "filter": "audio"})
        assert response.status_code == 200
        assert response.content == MEDIA
        assert response.headers["x-itag"] == "140"
        assert response.headers["content-length"] == str(len(MEDIA))
        assert response.headers["content-type"].startswith("audio/mp4")

    def test_stream_deciphered(self, client, fake_video):
        response = client.get(f"/api/stream/{VIDEO_ID}")
        assert response.status_code == 200
        assert response.content == MEDIA
        assert response.headers["x-itag"] == "18"

    def test_player_failure_leaves_no_combined_format(self, client, fake_video, youtube_server):
        youtube_server.player_status = 404
        response = client.get(f"/api/stream/{VIDEO_ID}")
        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "format.not_found"

    def test_upstream_refusal(self, client, fake_video, youtube_server, monkeypatch):
        monkeypatch.setattr(youtube_server, "_media", lambda request: httpx.Response(403))
        response = client.get(f"/api/stream/{VIDEO_ID}", params={"quality": "highest_audio", "filter": "audio"})
        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "transfer.failed"
