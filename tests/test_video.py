"""End-to-end tests for the Video facade against a fake page and CDN."""

import asyncio

import pytest

from tubestream.core.player_cache import PlayerAssetStore, get_player_store
from tubestream.errors import AssetFetchFailed, SelectionNotFound
from tubestream.extractors.base import PlayerPage
from tubestream.models.enums import ContentFilter, QualityTier, StreamState
from tubestream.models.policy import SelectionPolicy
from tubestream.streams.progressive import ProgressiveStream
from tubestream.video import Video

VIDEO_ID = "dQw4w9WgXcQ"
PLAYER_URL = "https://www.youtube.com/s/player/3a9b1c2d/player_ias.vflset/en_US/base.js"
MEDIA = bytes(range(256)) * 16
AUDIO = SelectionPolicy(quality=QualityTier.HIGHEST_AUDIO, filter=ContentFilter.AUDIO)


async def _read(stream) -> bytes:
    chunks = []
    async for data in stream:
        chunks.append(data)
    return b"".join(chunks)


class TestVideoInfo:
    def test_catalog_is_deciphered(self, make_video, youtube_server):
        video = make_video()
        info = asyncio.run(video.get_info())
        assert info.video_id == VIDEO_ID
        assert info.player_url == PLAYER_URL
        assert [f.itag for f in info.formats] == [18, 140]
        assert all(f.usable for f in info.formats)
        assert "sig=nmlkjihgfeacbd" in info.formats[0].url
        assert youtube_server.count("/base.js") == 1

    def test_player_cached_in_injected_store(self, make_video, youtube_server):
        video = make_video()
        asyncio.run(video.get_info())
        assert video.player_store is not get_player_store()
        assert "3a9b1c2d" in video.player_store
        assert youtube_server.count("/base.js") == 1

    def test_details(self, make_video):
        details = asyncio.run(make_video().get_info()).details
        assert details.title == "Never Gonna Give You Up"
        assert details.author == "Rick Astley"
        assert details.length_seconds == 212
        assert details.upload_date == "2009-10-24"
        assert not details.age_restricted

    def test_info_is_cached(self, make_video):
        video = make_video()

        async def twice():
            return await video.get_info(), await video.get_info()

        first, second = asyncio.run(twice())
        assert first is second
        assert video.extractor.calls == 1

    def test_player_failure_degrades_catalog(self, make_video, youtube_server):
        youtube_server.player_status = 404
        video = make_video()
        info = asyncio.run(video.get_info())
        ciphered, plain = info.formats
        assert not ciphered.usable
        assert ciphered.error_code == "player.fetch_failed"
        assert plain.usable

        with pytest.raises(AssetFetchFailed):
            asyncio.run(video.stream(ciphered))

    def test_missing_player_url(self, make_video, player_response):
        page = PlayerPage(video_id=VIDEO_ID, player_response=player_response, player_url=None)
        info = asyncio.run(make_video(page).get_info())
        assert info.formats[0].error_code == "player.fetch_failed"
        assert info.formats[1].usable

    def test_client_without_player(self, make_video, youtube_server, player_response):
        del player_response["streamingData"]["formats"]
        page = PlayerPage(video_id=VIDEO_ID, player_response=player_response, requires_player=False)
        info = asyncio.run(make_video(page).get_info())
        assert [f.itag for f in info.usable_formats] == [140]
        assert youtube_server.count("/base.js") == 0


class TestVideoStreaming:
    def test_choose(self, make_video):
        video = make_video()
        assert asyncio.run(video.choose()).itag == 18
        assert asyncio.run(video.choose(AUDIO)).itag == 140

    def test_choose_nothing(self, make_video):
        policy = SelectionPolicy(quality=QualityTier.HIGHEST_VIDEO, filter=ContentFilter.VIDEO)
        with pytest.raises(SelectionNotFound):
            asyncio.run(make_video().choose(policy))

    def test_stream_deciphered_format(self, make_video):
        video = make_video()

        async def run():
            stream = await video.stream()
            return stream, await _read(stream)

        stream, data = asyncio.run(run())
        assert isinstance(stream, ProgressiveStream)
        assert data == MEDIA
        assert stream.state == StreamState.COMPLETE

    def test_stream_small_windows(self, make_video, youtube_server):
        video = make_video()

        async def run():
            return await _read(await video.stream(AUDIO, chunk_size=1000))

        assert asyncio.run(run()) == MEDIA
        assert youtube_server.count("/videoplayback") == 5

    def test_download_to_file_like(self, make_video, tmp_path):
        target = tmp_path / "audio.m4a"

        async def run():
            async with make_video() as video:
                with target.open("wb") as sink:
                    return await video.download(sink, AUDIO)

        assert asyncio.run(run()) == len(MEDIA)
        assert target.read_bytes() == MEDIA

    def test_download_to_async_callable(self, make_video):
        received = []

        async def sink(data):
            received.append(data)

        written = asyncio.run(make_video().download(sink))
        assert written == len(MEDIA)
        assert b"".join(received) == MEDIA


class TestVideoInput:
    @pytest.mark.parametrize(
        "value",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "dQw4w9WgXcQ",
        ],
    )
    def test_accepts_urls_and_ids(self, value):
        assert Video(value).video_id == VIDEO_ID

    def test_empty_injected_store_is_kept(self):
        store = PlayerAssetStore()
        assert Video(VIDEO_ID, player_store=store).player_store is store

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            Video("https://example.com/watch?v=nope")
