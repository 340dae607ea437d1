"""
Pull interface shared by the progressive and live stream engines.
"""

import logging
from abc import ABC, abstractmethod

from ..core.http_client import HTTPClient
from ..models.enums import StreamState

logger = logging.getLogger(__name__)


class ChunkStream(ABC):
    """
    A stream of byte chunks pulled by the caller.

    ``chunk()`` returns the next chunk, or None at the end of the stream.
    The caller may stop pulling at any time; ``aclose()`` then releases the
    open connection without raising.
    """

    def __init__(self):
        self.state = StreamState.IDLE
        self.bytes_delivered = 0
        # A client the stream created for itself; closed with the stream.
        self.owned_http: HTTPClient | None = None

    @abstractmethod
    async def chunk(self) -> bytes | None:
        """Next chunk of the stream, or None when it is finished."""

    async def aclose(self):
        self.state = StreamState.CLOSED
        if self.owned_http is not None:
            http, self.owned_http = self.owned_http, None
            await http.close()

    @property
    def finished(self) -> bool:
        return self.state in (StreamState.COMPLETE, StreamState.ENDED, StreamState.FAILED, StreamState.CLOSED)

    def _set_state(self, state: StreamState):
        if state != self.state:
            logger.debug("%s: %s -> %s", type(self).__name__, self.state.value, state.value)
            self.state = state

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        data = await self.chunk()
        if data is None:
            raise StopAsyncIteration
        return data

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()
