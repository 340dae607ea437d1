"""
Ranged, resumable transfer of a single progressive or adaptive stream.

The resource is requested in windows of ``dl_chunk_size`` bytes. Each window
body is read in ``read_size`` pieces and handed to the caller as it arrives.
When a window fails part-way (network error, 429/5xx, truncated body) the
next request resumes at the first byte not yet delivered, so the caller sees
one continuous byte sequence without duplicates or gaps.

States: IDLE -> REQUESTING -> STREAMING -> (COMPLETE | FAILED)
"""

import asyncio
import logging

import httpx

from ..config import get_settings
from ..core.http_client import _NETWORK_ERRORS, HTTPClient, is_retryable_status
from ..errors import TransferFailed
from ..models.enums import StreamState
from ..utils.helpers import int_or_none, parse_content_range
from .base import ChunkStream

logger = logging.getLogger(__name__)


class _Transient(Exception):
    """A failure worth retrying; carries the response for Retry-After."""

    def __init__(self, reason: str, response: httpx.Response | None = None):
        super().__init__(reason)
        self.response = response


class ProgressiveStream(ChunkStream):
    def __init__(
        self,
        url: str,
        *,
        http: HTTPClient,
        content_length: int | None = None,
        chunk_size: int | None = None,
        read_size: int | None = None,
        max_retries: int | None = None,
        headers: dict[str, str] | None = None,
        start: int = 0,
        end: int | None = None,
    ):
        super().__init__()
        settings = get_settings()
        self.url = url
        self.http = http
        self.total = content_length
        self.chunk_size = chunk_size or settings.dl_chunk_size
        self.read_size = read_size or settings.read_size
        self.max_retries = http.max_retries if max_retries is None else max_retries
        self.headers = headers or {}
        # Next byte to deliver, and the last byte wanted (inclusive).
        self.offset = start
        self.end = end

        self._response: httpx.Response | None = None
        self._body = None
        self._window_last: int | None = None
        self._requested_last: int | None = None
        self._ranged = False
        self._skip = 0
        self._eof = False
        self._attempt = 0

    # ------------------------------------------------------------------
    # Pull interface
    # ------------------------------------------------------------------

    async def chunk(self) -> bytes | None:
        while not self.finished:
            if self._done():
                await self._finish(StreamState.COMPLETE)
                return None
            try:
                if self._body is None and not await self._open_window():
                    await self._finish(StreamState.COMPLETE)
                    return None
                data = await self._read()
            except _Transient as exc:
                await self._close_response()
                await self._retry(exc)
                continue
            except TransferFailed:
                await self._finish(StreamState.FAILED)
                raise
            if data:
                return data
        return None

    async def aclose(self):
        await self._close_response()
        await super().aclose()

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def _done(self) -> bool:
        if self._eof:
            return True
        if self.end is not None and self.offset > self.end:
            return True
        return self.total is not None and self.offset >= self.total

    def _next_last(self) -> int:
        last = self.offset + self.chunk_size - 1
        if self.end is not None:
            last = min(last, self.end)
        if self.total is not None:
            last = min(last, self.total - 1)
        return last

    async def _open_window(self) -> bool:
        """Request the next window. False means there is nothing left to fetch."""
        self._set_state(StreamState.REQUESTING)
        last = self._next_last()
        headers = {**self.headers, "Range": f"bytes={self.offset}-{last}"}
        try:
            response = await self.http.send_stream("GET", self.url, headers=headers)
        except _NETWORK_ERRORS as exc:
            raise _Transient(f"{type(exc).__name__}: {exc}") from exc

        status = response.status_code
        if status == 416:
            await response.aclose()
            if self.offset > 0 and (self.total is None or self.offset >= self.total):
                return False
            raise TransferFailed(f"Range {self.offset}-{last} not satisfiable")
        if is_retryable_status(status):
            await response.aclose()
            raise _Transient(f"HTTP {status}", response)
        if status not in (200, 206):
            await response.aclose()
            raise TransferFailed(f"HTTP {status} from {self.url}")

        if status == 206:
            parsed = parse_content_range(response.headers.get("Content-Range"))
            if parsed is None or parsed[0] != self.offset:
                await response.aclose()
                raise TransferFailed(
                    f"Malformed Content-Range {response.headers.get('Content-Range')!r} "
                    f"for offset {self.offset}"
                )
            first, window_last, total = parsed
            if self.total is None and total is not None:
                self.total = total
            self._ranged = True
            self._skip = 0
            self._window_last = window_last
        else:
            # Range was ignored: the body starts at byte 0.
            if self.total is None:
                self.total = int_or_none(response.headers.get("Content-Length"))
            self._ranged = False
            self._skip = self.offset
            self._window_last = None

        self._requested_last = last
        self._response = response
        self._body = response.aiter_bytes(self.read_size)
        return True

    async def _read(self) -> bytes:
        try:
            data = await self._body.__anext__()
        except StopAsyncIteration:
            await self._close_response()
            self._end_of_window()
            return b""
        except _NETWORK_ERRORS as exc:
            raise _Transient(f"{type(exc).__name__} mid-body at offset {self.offset}") from exc

        if self._skip:
            dropped = min(self._skip, len(data))
            data = data[dropped:]
            self._skip -= dropped
        if self._window_last is not None:
            data = data[: max(self._window_last - self.offset + 1, 0)]
        if self.end is not None:
            data = data[: max(self.end - self.offset + 1, 0)]
        if not data:
            return b""

        self._set_state(StreamState.STREAMING)
        self.offset += len(data)
        self.bytes_delivered += len(data)
        # Progress was made, so the retry budget starts over.
        self._attempt = 0
        return data

    def _end_of_window(self):
        if self._ranged:
            if self.offset <= self._window_last:
                raise _Transient(f"Window ended at {self.offset}, expected up to {self._window_last}")
            if self.total is None and self._window_last < self._requested_last:
                self._eof = True
            return
        if self.total is not None and self.offset < self.total and self._skip == 0:
            raise _Transient(f"Body ended at {self.offset} of {self.total}")
        if self._skip:
            raise _Transient(f"Body ended before reaching offset {self.offset}")
        self._eof = True

    async def _retry(self, exc: _Transient):
        self._attempt += 1
        if self._attempt > self.max_retries:
            await self._finish(StreamState.FAILED)
            raise TransferFailed(
                f"Transfer of {self.url} failed at offset {self.offset} after "
                f"{self.max_retries + 1} attempts: {exc}"
            ) from exc
        wait = HTTPClient._backoff(self._attempt - 1, exc.response)
        logger.warning(
            "%s at offset %d (attempt %d/%d). Retrying in %.1fs...",
            exc,
            self.offset,
            self._attempt,
            self.max_retries + 1,
            wait,
        )
        await asyncio.sleep(wait)

    async def _close_response(self):
        self._body = None
        if self._response is not None:
            response, self._response = self._response, None
            await response.aclose()

    async def _finish(self, state: StreamState):
        await self._close_response()
        self._set_state(state)
        if state == StreamState.COMPLETE:
            logger.debug("Transfer of %d bytes complete", self.bytes_delivered)
