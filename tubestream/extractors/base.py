"""
Base class for page extractors: the collaborator that turns a video ID into
raw bootstrap data (player response, player script URL, playability).
Ported from yt-dlp's InfoExtractor base class patterns.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from ..core.http_client import HTTPClient
from ..errors import TubeStreamError

logger = logging.getLogger(__name__)


class ExtractionError(TubeStreamError):
    """Raised when the page cannot be read or parsed."""

    error_code = "page.extraction_failed"


class PlayerPage(BaseModel):
    """Raw bootstrap data for one video."""

    video_id: str
    player_response: dict[str, Any] = Field(..., repr=False)
    player_url: str | None = Field(None, description="Player script the formats must be deciphered with")
    requires_player: bool = Field(True, description="Formats came from a client that needs deciphering")
    age_restricted: bool = False
    is_live: bool = False


class BaseExtractor(ABC):
    """
    Abstract base class for page extractors.

    Subclasses implement fetch_page(). Provides common utilities for HTTP
    requests and JSON extraction from HTML.
    """

    def __init__(self, http: HTTPClient | None = None):
        self._http = http
        self._owns_http = http is None

    @property
    def http(self) -> HTTPClient:
        """Lazy-initialized HTTP client."""
        if self._http is None:
            self._http = HTTPClient()
        return self._http

    async def close(self):
        """Clean up the HTTP client if this extractor created it."""
        if self._http and self._owns_http:
            await self._http.close()
            self._http = None

    @abstractmethod
    async def fetch_page(self, video_id: str) -> PlayerPage:
        """
        Fetch the bootstrap data for ``video_id``.

        Raises:
            StreamUnavailable: the video cannot be played
            ExtractionError: the page could not be read
        """
        ...

    # === Common utility methods ===

    async def _download_webpage(self, url: str, **kwargs) -> str:
        """Download a webpage and return the HTML text."""
        return await self.http.get_text(url, **kwargs)

    def _search_json(
        self,
        start_pattern: str,
        text: str,
        name: str = "JSON",
        default: Any = None,
    ) -> Any:
        """Search for JSON data following a pattern (``=``, ``:`` or a call) in text."""
        match = re.search(rf"{start_pattern}\s*[=:(]\s*", text)
        if not match:
            if default is not None:
                return default
            raise ExtractionError(f"Unable to find {name}")

        # Try to find the JSON object/array
        start = match.end()
        if start >= len(text):
            return default

        bracket = text[start]
        if bracket not in ("{", "["):
            return default

        end_bracket = "}" if bracket == "{" else "]"
        depth = 0
        in_string = False
        escape = False

        for i in range(start, len(text)):
            c = text[i]
            if escape:
                escape = False
                continue
            if c == "\\":
                escape = True
                continue
            if c == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if c == bracket:
                depth += 1
            elif c == end_bracket:
                depth -= 1
                if depth == 0:
                    try:
                        return json.loads(text[start : i + 1])
                    except json.JSONDecodeError:
                        return default

        return default
