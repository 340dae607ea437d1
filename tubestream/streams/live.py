"""
Live HLS streaming driven by playlist polling.

States: IDLE -> MANIFEST_POLL -> SEGMENT_FETCH -> ... -> (ENDED | FAILED)

Every poll is diffed against the LiveSession so a segment is emitted at most
once, in playlist order, however often it reappears in the sliding window.
Encrypted segments are decrypted before they are handed out; a changed
``#EXT-X-MAP`` init section is emitted in front of the first segment using it.
"""

import asyncio
import logging
import time
from collections import OrderedDict, deque

import httpx

from ..config import get_settings
from ..core.http_client import HTTPClient
from ..core.m3u8_parser import HLSInitSection, HLSKey, HLSPlaylist, HLSSegment, parse_m3u8, range_header
from ..errors import ManifestParseFailed, SegmentDecryptFailed, TransferFailed
from ..models.enums import StreamState
from .base import ChunkStream
from .encryption import Encryption

logger = logging.getLogger(__name__)

_DEFAULT_POLL_INTERVAL = 5.0
_KEY_LENGTH = 16


class LiveSession:
    """What has been seen of a live playlist so far."""

    def __init__(self, manifest_url: str, max_remembered: int = 4096):
        self.manifest_url = manifest_url
        self.last_ident: tuple[int, int] | None = None
        # Ids of every segment queued or emitted, oldest first.
        self.emitted_ids: OrderedDict[str, None] = OrderedDict()
        self.pending: deque[HLSSegment] = deque()
        self.keys: dict[str, bytes] = {}
        self.current_key: HLSKey | None = None
        self.current_iv: bytes | None = None
        self.current_init: HLSInitSection | None = None
        self.target_duration: float | None = None
        self.ended = False
        self.last_poll: float | None = None
        self._max_remembered = max_remembered

    def admit(self, playlist: HLSPlaylist) -> list[HLSSegment]:
        """Queue the segments of ``playlist`` that were not seen before."""
        new = []
        for segment in playlist.segments:
            if segment.id in self.emitted_ids:
                continue
            if self.last_ident is not None and segment.ident <= self.last_ident:
                continue
            new.append(segment)
            self.emitted_ids[segment.id] = None
            self.last_ident = segment.ident

        while len(self.emitted_ids) > self._max_remembered:
            self.emitted_ids.popitem(last=False)

        self.pending.extend(new)
        self.target_duration = playlist.target_duration or self.target_duration
        if playlist.is_endlist:
            self.ended = True
        return new


class LiveStream(ChunkStream):
    def __init__(
        self,
        manifest_url: str,
        *,
        http: HTTPClient,
        poll_interval: float | None = None,
        segment_retries: int | None = None,
        max_retries: int | None = None,
    ):
        super().__init__()
        settings = get_settings()
        self.http = http
        self.session = LiveSession(manifest_url)
        self.poll_interval = settings.live_poll_interval if poll_interval is None else poll_interval
        self.segment_retries = settings.segment_retries if segment_retries is None else segment_retries
        self.max_retries = http.max_retries if max_retries is None else max_retries

    async def chunk(self) -> bytes | None:
        while not self.finished:
            if self.session.pending:
                segment = self.session.pending.popleft()
                self._set_state(StreamState.SEGMENT_FETCH)
                return await self._emit(segment)
            if self.session.ended:
                self._set_state(StreamState.ENDED)
                logger.info("Live stream ended after %d bytes", self.bytes_delivered)
                return None
            await self._wait_for_poll()
            await self._poll()
        return None

    # ------------------------------------------------------------------
    # Manifest polling
    # ------------------------------------------------------------------

    def _interval(self) -> float:
        if self.poll_interval:
            return self.poll_interval
        return self.session.target_duration or _DEFAULT_POLL_INTERVAL

    async def _wait_for_poll(self):
        if self.session.last_poll is None:
            return
        remaining = self._interval() - (time.monotonic() - self.session.last_poll)
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def _fetch_playlist(self) -> HLSPlaylist:
        url = self.session.manifest_url
        attempt = 0
        while True:
            try:
                text = await self.http.get_text(url, retries=0)
                return parse_m3u8(text, url)
            except (httpx.HTTPError, ManifestParseFailed) as exc:
                attempt += 1
                if attempt > self.max_retries:
                    self._set_state(StreamState.FAILED)
                    raise TransferFailed(f"Playlist {url} failed after {attempt} attempts: {exc}") from exc
                wait = HTTPClient._backoff(attempt - 1)
                logger.warning(
                    "Playlist poll failed (attempt %d/%d): %s. Retrying in %.1fs...",
                    attempt,
                    self.max_retries + 1,
                    exc,
                    wait,
                )
                await asyncio.sleep(wait)

    async def _poll(self):
        self._set_state(StreamState.MANIFEST_POLL)
        playlist = await self._fetch_playlist()
        self.session.last_poll = time.monotonic()

        if playlist.is_master:
            variant = playlist.best_variant()
            if variant is None or not variant.url:
                self._set_state(StreamState.FAILED)
                raise ManifestParseFailed("Master playlist has no variants")
            logger.info("Following variant %s (%sp)", variant.url, variant.height)
            self.session.manifest_url = variant.url
            self.session.last_poll = None
            return

        new = self.session.admit(playlist)
        logger.debug("Poll found %d new segments (ended=%s)", len(new), self.session.ended)

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------

    async def _emit(self, segment: HLSSegment) -> bytes:
        last_error: Exception | None = None
        for attempt in range(self.segment_retries + 1):
            try:
                return await self._fetch_segment(segment)
            except (httpx.HTTPError, SegmentDecryptFailed) as exc:
                last_error = exc
                if attempt < self.segment_retries:
                    logger.warning("Segment %s failed (%s), retrying", segment.id, exc)

        logger.error("Giving up on segment %s: %s", segment.id, last_error)
        if isinstance(last_error, SegmentDecryptFailed):
            raise SegmentDecryptFailed(
                f"Could not decrypt segment {segment.id}: {last_error}", recoverable=True
            ) from last_error
        raise TransferFailed(f"Could not fetch segment {segment.id}: {last_error}", recoverable=True) from last_error

    async def _get(self, url: str, byte_range: tuple[int, int] | None = None) -> bytes:
        return await self.http.get_bytes(url, headers=range_header(byte_range) or None, retries=0)

    async def _encryption_for(self, segment: HLSSegment) -> Encryption:
        hls_key = segment.key
        Encryption.check(hls_key)
        key_bytes = self.session.keys.get(hls_key.uri)
        if key_bytes is None:
            key_bytes = await self._get(hls_key.uri)
            if len(key_bytes) != _KEY_LENGTH:
                raise SegmentDecryptFailed(f"Key from {hls_key.uri} is {len(key_bytes)} bytes, expected 16")
            self.session.keys[hls_key.uri] = key_bytes
        encryption = Encryption.from_key(hls_key, key_bytes, segment.sequence)
        self.session.current_key = hls_key
        self.session.current_iv = encryption.iv
        return encryption

    async def _fetch_segment(self, segment: HLSSegment) -> bytes:
        prefix = b""
        init = segment.init_section
        if init is not None and init != self.session.current_init:
            prefix = await self._get(init.url, init.byte_range)

        data = await self._get(segment.url, segment.byte_range)
        if segment.key is not None:
            encryption = await self._encryption_for(segment)
            data = encryption.decrypt(data)

        if init is not None:
            self.session.current_init = init
        self.bytes_delivered += len(prefix) + len(data)
        return prefix + data
