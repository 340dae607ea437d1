import inspect
import logging
from typing import Any

from ..core.http_client import HTTPClient
from ..errors import TubeStreamError, error_for_code
from ..models.format import FormatDescriptor
from .base import ChunkStream
from .live import LiveSession, LiveStream
from .progressive import ProgressiveStream

logger = logging.getLogger(__name__)


def open_stream(descriptor: FormatDescriptor, http: HTTPClient | None = None, **kwargs) -> ChunkStream:
    """
    Open the stream engine matching ``descriptor``.

    Raises the error recorded on an unusable descriptor. Without ``http`` the
    stream gets a client of its own, which ``aclose()`` closes.
    """
    if not descriptor.usable:
        raise error_for_code(
            descriptor.error_code,
            descriptor.unusable_reason or f"itag {descriptor.itag} has no playable URL",
        )
    owned = None
    if http is None:
        http = owned = HTTPClient()
    if descriptor.is_hls:
        stream = LiveStream(descriptor.url, http=http, **kwargs)
    else:
        stream = ProgressiveStream(descriptor.url, http=http, content_length=descriptor.content_length, **kwargs)
    stream.owned_http = owned
    return stream


async def download_to_sink(stream: ChunkStream, sink: Any) -> int:
    """
    Pull ``stream`` to the end, passing every chunk to ``sink``.

    ``sink`` is a callable or an object with ``write()``; either may be a
    coroutine function. Recoverable segment errors are logged and skipped.
    Returns the number of bytes written.
    """
    write = sink.write if hasattr(sink, "write") else sink
    written = 0
    async with stream:
        while True:
            try:
                data = await stream.chunk()
            except TubeStreamError as exc:
                if not exc.recoverable:
                    raise
                logger.warning("Skipping failed segment: %s", exc)
                continue
            if data is None:
                break
            result = write(data)
            if inspect.isawaitable(result):
                await result
            written += len(data)
    return written


__all__ = [
    "ChunkStream",
    "LiveSession",
    "LiveStream",
    "ProgressiveStream",
    "download_to_sink",
    "open_stream",
]
