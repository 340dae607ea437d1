"""Tests for live HLS polling, segment dedup, decryption and init sections."""

import asyncio

import httpx
import pytest
from Crypto.Cipher import AES
from Crypto.Util.Padding import pad

from tubestream.core.m3u8_parser import parse_m3u8
from tubestream.errors import SegmentDecryptFailed, TransferFailed
from tubestream.models.enums import StreamState
from tubestream.models.format import FormatDescriptor, MimeType
from tubestream.streams import download_to_sink, open_stream
from tubestream.streams.live import LiveSession, LiveStream
from tubestream.streams.progressive import ProgressiveStream

BASE = "https://manifest.googlevideo.com/api/manifest/hls_playlist/itag/95/"
MANIFEST = BASE + "index.m3u8"


def _media(first: int, count: int, end: bool = False) -> str:
    lines = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-TARGETDURATION:2", f"#EXT-X-MEDIA-SEQUENCE:{first}"]
    for sequence in range(first, first + count):
        lines += ["#EXTINF:2.0,", f"seg{sequence}.ts"]
    if end:
        lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


def _segments(*numbers: int) -> dict[str, bytes]:
    return {f"seg{n}.ts": f"seg{n}".encode() for n in numbers}


class HLSServer:
    """
    Serves playlists in poll order (the last one repeats) and static files.

    A file given as an int is answered with that status code.
    """

    def __init__(self, playlists: dict[str, list[str]], files: dict[str, bytes]):
        self.playlists = {name: list(texts) for name, texts in playlists.items()}
        self.files = files
        self.requests: list[str] = []

    def __call__(self, request):
        name = request.url.path.rsplit("/", 1)[-1]
        self.requests.append(name)
        if name in self.playlists:
            texts = self.playlists[name]
            text = texts.pop(0) if len(texts) > 1 else texts[0]
            return httpx.Response(200, text=text)
        if name in self.files:
            body = self.files[name]
            if isinstance(body, int):
                return httpx.Response(body)
            return httpx.Response(200, content=body)
        return httpx.Response(404)

    def count(self, name: str) -> int:
        return self.requests.count(name)


def _stream(mock_http, server, url: str = MANIFEST, **kwargs) -> LiveStream:
    kwargs.setdefault("poll_interval", 0.001)
    return LiveStream(url, http=mock_http(server), **kwargs)


async def _collect(stream: LiveStream) -> list[bytes]:
    chunks = []
    async for data in stream:
        chunks.append(data)
    return chunks


class TestLiveSession:
    def test_overlapping_windows(self):
        session = LiveSession(MANIFEST)
        first = session.admit(parse_m3u8(_media(0, 3), MANIFEST))
        second = session.admit(parse_m3u8(_media(1, 3), MANIFEST))
        assert [s.sequence for s in first] == [0, 1, 2]
        assert [s.sequence for s in second] == [3]
        assert [s.sequence for s in session.pending] == [0, 1, 2, 3]

    def test_repoll_is_idempotent(self):
        session = LiveSession(MANIFEST)
        playlist = parse_m3u8(_media(4, 2), MANIFEST)
        session.admit(playlist)
        assert session.admit(playlist) == []
        assert len(session.pending) == 2

    def test_stale_window_is_ignored(self):
        session = LiveSession(MANIFEST)
        session.admit(parse_m3u8(_media(10, 2), MANIFEST))
        assert session.admit(parse_m3u8(_media(8, 3), MANIFEST)) == []

    def test_discontinuity_orders_segments(self):
        text = (
            "#EXTM3U\n#EXT-X-TARGETDURATION:2\n#EXT-X-MEDIA-SEQUENCE:5\n"
            "#EXTINF:2,\na.ts\n#EXTINF:2,\nb.ts\n#EXT-X-DISCONTINUITY\n#EXTINF:2,\nc.ts\n"
        )
        later = (
            "#EXTM3U\n#EXT-X-TARGETDURATION:2\n#EXT-X-MEDIA-SEQUENCE:6\n"
            "#EXTINF:2,\nb.ts\n#EXT-X-DISCONTINUITY\n#EXTINF:2,\nc.ts\n#EXTINF:2,\nd.ts\n"
        )
        session = LiveSession(MANIFEST)
        session.admit(parse_m3u8(text, MANIFEST))
        new = session.admit(parse_m3u8(later, MANIFEST))
        assert [s.ident for s in new] == [(1, 8)]
        assert session.last_ident == (1, 8)

    def test_endlist_marks_ended(self):
        session = LiveSession(MANIFEST)
        session.admit(parse_m3u8(_media(0, 1, end=True), MANIFEST))
        assert session.ended
        assert session.target_duration == 2.0

    def test_memory_is_bounded(self):
        session = LiveSession(MANIFEST, max_remembered=3)
        session.admit(parse_m3u8(_media(0, 5), MANIFEST))
        assert len(session.emitted_ids) == 3


class TestLiveStream:
    def test_sliding_window_emits_each_segment_once(self, mock_http):
        server = HLSServer(
            {"index.m3u8": [_media(0, 2), _media(1, 2), _media(1, 2), _media(2, 2, end=True)]},
            _segments(0, 1, 2, 3),
        )
        stream = _stream(mock_http, server)
        chunks = asyncio.run(_collect(stream))
        assert chunks == [b"seg0", b"seg1", b"seg2", b"seg3"]
        assert all(server.count(f"seg{n}.ts") == 1 for n in range(4))
        assert server.count("index.m3u8") == 4
        assert stream.state == StreamState.ENDED
        assert stream.bytes_delivered == 16

    def test_vod_playlist_polled_once(self, mock_http):
        server = HLSServer({"index.m3u8": [_media(0, 3, end=True)]}, _segments(0, 1, 2))
        chunks = asyncio.run(_collect(_stream(mock_http, server)))
        assert b"".join(chunks) == b"seg0seg1seg2"
        assert server.count("index.m3u8") == 1

    def test_follows_best_master_variant(self, mock_http):
        master = (
            "#EXTM3U\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=500000,RESOLUTION=640x360\nlow.m3u8\n"
            "#EXT-X-STREAM-INF:BANDWIDTH=1500000,RESOLUTION=1280x720\nhigh.m3u8\n"
        )
        server = HLSServer(
            {"master.m3u8": [master], "high.m3u8": [_media(0, 2, end=True)], "low.m3u8": ["#EXTM3U\n"]},
            _segments(0, 1),
        )
        stream = _stream(mock_http, server, url=BASE + "master.m3u8")
        assert b"".join(asyncio.run(_collect(stream))) == b"seg0seg1"
        assert server.count("low.m3u8") == 0
        assert stream.session.manifest_url == BASE + "high.m3u8"

    def test_init_section_emitted_when_it_changes(self, mock_http):
        playlist = (
            "#EXTM3U\n#EXT-X-TARGETDURATION:2\n#EXT-X-MEDIA-SEQUENCE:0\n"
            '#EXT-X-MAP:URI="init0.mp4"\n'
            "#EXTINF:2.0,\nseg0.ts\n#EXTINF:2.0,\nseg1.ts\n"
            '#EXT-X-MAP:URI="init1.mp4"\n'
            "#EXTINF:2.0,\nseg2.ts\n#EXT-X-ENDLIST\n"
        )
        files = {**_segments(0, 1, 2), "init0.mp4": b"init0", "init1.mp4": b"init1"}
        server = HLSServer({"index.m3u8": [playlist]}, files)
        chunks = asyncio.run(_collect(_stream(mock_http, server)))
        assert chunks == [b"init0seg0", b"seg1", b"init1seg2"]
        assert server.count("init0.mp4") == 1

    def test_aes_segments_are_decrypted(self, mock_http):
        key = bytes(range(16))
        explicit_iv = bytes.fromhex("0f0e0d0c0b0a09080706050403020100")
        plain7, plain8 = b"first segment payload", b"second segment"
        playlist = (
            "#EXTM3U\n#EXT-X-TARGETDURATION:2\n#EXT-X-MEDIA-SEQUENCE:7\n"
            '#EXT-X-KEY:METHOD=AES-128,URI="key.bin",IV=0x0f0e0d0c0b0a09080706050403020100\n'
            "#EXTINF:2.0,\nseg7.ts\n"
            '#EXT-X-KEY:METHOD=AES-128,URI="key.bin"\n'
            "#EXTINF:2.0,\nseg8.ts\n#EXT-X-ENDLIST\n"
        )
        files = {
            "key.bin": key,
            "seg7.ts": AES.new(key, AES.MODE_CBC, explicit_iv).encrypt(pad(plain7, 16)),
            # Without an IV attribute the media sequence number is the IV.
            "seg8.ts": AES.new(key, AES.MODE_CBC, (8).to_bytes(16, "big")).encrypt(pad(plain8, 16)),
        }
        server = HLSServer({"index.m3u8": [playlist]}, files)
        stream = _stream(mock_http, server)
        assert asyncio.run(_collect(stream)) == [plain7, plain8]
        assert server.count("key.bin") == 1
        assert stream.session.current_iv == (8).to_bytes(16, "big")

    def test_bad_key_length(self, mock_http):
        playlist = (
            "#EXTM3U\n#EXT-X-TARGETDURATION:2\n"
            '#EXT-X-KEY:METHOD=AES-128,URI="key.bin"\n'
            "#EXTINF:2.0,\nseg0.ts\n#EXT-X-ENDLIST\n"
        )
        server = HLSServer({"index.m3u8": [playlist]}, {"key.bin": b"short", "seg0.ts": b"\x00" * 16})
        stream = _stream(mock_http, server)
        with pytest.raises(SegmentDecryptFailed) as excinfo:
            asyncio.run(stream.chunk())
        assert excinfo.value.recoverable

    def test_unsupported_method(self, mock_http):
        playlist = (
            "#EXTM3U\n#EXT-X-TARGETDURATION:2\n"
            '#EXT-X-KEY:METHOD=SAMPLE-AES,URI="key.bin"\n'
            "#EXTINF:2.0,\nseg0.ts\n#EXT-X-ENDLIST\n"
        )
        server = HLSServer({"index.m3u8": [playlist]}, {"key.bin": bytes(16), "seg0.ts": b"\x00" * 16})
        with pytest.raises(SegmentDecryptFailed, match="SAMPLE-AES"):
            asyncio.run(_stream(mock_http, server).chunk())
        assert server.count("key.bin") == 0

    def test_failed_segment_is_recoverable(self, mock_http):
        server = HLSServer({"index.m3u8": [_media(0, 3, end=True)]}, _segments(0, 2))
        stream = _stream(mock_http, server, segment_retries=1)

        async def pull():
            first = await stream.chunk()
            with pytest.raises(TransferFailed) as excinfo:
                await stream.chunk()
            return first, excinfo.value, await stream.chunk()

        first, error, third = asyncio.run(pull())
        assert (first, third) == (b"seg0", b"seg2")
        assert error.recoverable
        assert server.count("seg1.ts") == 2

    def test_server_error_segment_fetched_once_per_attempt(self, mock_http):
        files = {**_segments(1), "seg0.ts": 503}
        server = HLSServer({"index.m3u8": [_media(0, 2, end=True)]}, files)
        stream = LiveStream(MANIFEST, http=mock_http(server, max_retries=3), poll_interval=0.001, segment_retries=1)
        received = []
        asyncio.run(download_to_sink(stream, received.append))
        assert received == [b"seg1"]
        assert server.count("seg0.ts") == 2

    def test_playlist_attempts_follow_max_retries(self, mock_http):
        server = HLSServer({}, {"index.m3u8": 503})
        stream = LiveStream(MANIFEST, http=mock_http(server, max_retries=2), poll_interval=0.001)
        with pytest.raises(TransferFailed):
            asyncio.run(stream.chunk())
        assert server.count("index.m3u8") == 3

    def test_download_to_sink_skips_failed_segment(self, mock_http):
        server = HLSServer({"index.m3u8": [_media(0, 3, end=True)]}, _segments(0, 2))
        received = []
        written = asyncio.run(download_to_sink(_stream(mock_http, server), received.append))
        assert received == [b"seg0", b"seg2"]
        assert written == 8

    def test_playlist_failure_is_fatal(self, mock_http):
        server = HLSServer({}, {})
        stream = LiveStream(MANIFEST, http=mock_http(server, max_retries=1), poll_interval=0.001)
        with pytest.raises(TransferFailed) as excinfo:
            asyncio.run(download_to_sink(stream, lambda data: None))
        assert not excinfo.value.recoverable
        assert stream.state in (StreamState.FAILED, StreamState.CLOSED)

    def test_close_stops_polling(self, mock_http):
        server = HLSServer({"index.m3u8": [_media(0, 2)]}, _segments(0, 1))
        stream = _stream(mock_http, server)

        async def pull_then_close():
            first = await stream.chunk()
            await stream.aclose()
            return first, await stream.chunk()

        assert asyncio.run(pull_then_close()) == (b"seg0", None)
        assert stream.state == StreamState.CLOSED


def _descriptor(**kwargs) -> FormatDescriptor:
    defaults = {
        "itag": 140,
        "mime_type": MimeType.parse('audio/mp4; codecs="mp4a.40.2"'),
        "has_audio": True,
        "url": "https://rr1.googlevideo.com/videoplayback?itag=140",
    }
    defaults.update(kwargs)
    return FormatDescriptor(**defaults)


class TestOpenStream:
    def test_picks_engine(self, mock_http):
        http = mock_http(HLSServer({}, {}))
        assert isinstance(open_stream(_descriptor(), http=http), ProgressiveStream)
        live = open_stream(_descriptor(itag=95, is_hls=True, is_live=True, url=MANIFEST), http=http)
        assert isinstance(live, LiveStream)

    def test_shared_client_left_open(self, mock_http):
        http = mock_http(HLSServer({}, {}))

        async def run():
            stream = open_stream(_descriptor(), http=http)
            client = await http._get_client()
            await stream.aclose()
            return stream, client

        stream, client = asyncio.run(run())
        assert stream.owned_http is None
        assert not client.is_closed

    def test_own_client_closed_with_stream(self):
        async def run():
            stream = open_stream(_descriptor())
            client = await stream.owned_http._get_client()
            await stream.aclose()
            return stream, client

        stream, client = asyncio.run(run())
        assert client.is_closed
        assert stream.owned_http is None
