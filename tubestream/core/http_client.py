"""
The one HTTP client every page, player, probe and media request goes through.

request() and the get/post helpers retry transient trouble: dropped or
timed-out connections and the statuses 429, 500, 502, 503 and 504. Waits grow
as 2^attempt plus up to a second of jitter, never more than 30 s, and a 429
Retry-After header sets the minimum wait. Other 4xx responses come back to the
caller untouched.

send_stream() makes a single attempt and hands back an open streaming
response. Callers that resume transfers (the stream engines) run their own
retry loop on top of it using the same classification and back-off.
"""

import asyncio
import logging
import random
from typing import Any

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)

# Upper bound for a single back-off wait, in seconds.
_MAX_BACKOFF = 30.0

# Worth another attempt: rate limiting and the usual gateway/server failures.
_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# Connection-level failures; the request may succeed on a fresh attempt.
_NETWORK_ERRORS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.PoolTimeout,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.CloseError,
    httpx.RemoteProtocolError,
)


def is_retryable_status(status_code: int) -> bool:
    return status_code in _RETRYABLE_STATUS_CODES


class HTTPClient:
    """
    Lazily creates one httpx.AsyncClient (HTTP/2, pooled) carrying the
    browser-like default headers, cookies and proxy, and layers retries on top.
    A ``transport`` may be injected, which is how tests fake the network.
    """

    def __init__(
        self,
        timeout: int | None = None,
        max_retries: int | None = None,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None,
        proxy: str | None = None,
        follow_redirects: bool = True,
        impersonate_browser: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self._timeout = timeout or settings.request_timeout
        self._max_retries = settings.max_retries if max_retries is None else max_retries
        self._follow_redirects = follow_redirects
        self._proxy = proxy
        self._transport = transport

        default_headers: dict[str, str] = {}
        if impersonate_browser:
            default_headers = {
                "User-Agent": settings.user_agent,
                "Accept": "*/*",
                "Accept-Language": "en-US,en;q=0.5",
                "Accept-Encoding": "gzip, deflate",
                "Origin": "https://www.youtube.com",
                "Referer": "https://www.youtube.com/",
            }

        if headers:
            default_headers.update(headers)

        self._default_headers = default_headers
        self._cookies: dict[str, str] = dict(cookies) if cookies else {}
        self._client: httpx.AsyncClient | None = None

    @property
    def max_retries(self) -> int:
        return self._max_retries

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self._timeout,
                    connect=10.0,
                    read=self._timeout,
                    write=10.0,
                    pool=10.0,
                ),
                follow_redirects=self._follow_redirects,
                headers=self._default_headers,
                cookies=self._cookies,
                proxy=self._proxy,
                transport=self._transport,
                http2=True,
                limits=httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=10,
                    keepalive_expiry=30.0,
                ),
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        follow_redirects: bool | None = None,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> httpx.Response:
        """
        Send a request, retrying transient failures with back-off.

        The last response is returned even when its status is retryable;
        network errors are raised once attempts run out. ``retries``
        overrides the client's retry count for this call; callers with a
        retry loop of their own pass 0.
        """
        client = await self._get_client()
        last_error: Exception | None = None
        max_retries = self._max_retries if retries is None else retries

        for attempt in range(max_retries + 1):
            try:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    json=json,
                    follow_redirects=(
                        follow_redirects if follow_redirects is not None else self._follow_redirects
                    ),
                    timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
                )

                if is_retryable_status(response.status_code):
                    if attempt < max_retries:
                        wait = self._backoff(attempt, response)
                        logger.warning(
                            "%s %s answered %d, attempt %d of %d; next try in %.1fs",
                            method,
                            url,
                            response.status_code,
                            attempt + 1,
                            max_retries + 1,
                            wait,
                        )
                        await asyncio.sleep(wait)
                        continue
                    logger.error(
                        "%s %s still answered %d after %d attempts",
                        method,
                        url,
                        response.status_code,
                        max_retries + 1,
                    )

                return response

            except _NETWORK_ERRORS as exc:
                last_error = exc
                if attempt < max_retries:
                    wait = self._backoff(attempt)
                    logger.warning(
                        "%s %s raised %s, attempt %d of %d; next try in %.1fs",
                        method,
                        url,
                        type(exc).__name__,
                        attempt + 1,
                        max_retries + 1,
                        wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error(
                        "%s %s raised %s on all %d attempts: %s",
                        method,
                        url,
                        type(exc).__name__,
                        max_retries + 1,
                        exc,
                    )

        if last_error is not None:
            raise last_error
        raise httpx.ReadError("All retries exhausted with no response")

    async def send_stream(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Single attempt returning a response whose body has not been read.

        The caller owns the response and must ``await response.aclose()``.
        """
        client = await self._get_client()
        request = client.build_request(
            method,
            url,
            headers=headers,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        return await client.send(request, stream=True)

    # ------------------------------------------------------------------
    # Back-off
    # ------------------------------------------------------------------

    @staticmethod
    def _backoff(
        attempt: int,
        response: httpx.Response | None = None,
    ) -> float:
        """
        Seconds to wait before retry number ``attempt + 1``.

        A 429 ``response`` with a numeric Retry-After raises the wait to that
        value, still bounded by the cap.
        """
        base = min((2**attempt) + random.uniform(0, 1), _MAX_BACKOFF)

        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    ra = float(retry_after)
                    base = max(base, min(ra, _MAX_BACKOFF))
                except ValueError:
                    pass

        return base

    # ------------------------------------------------------------------
    # Shortcuts
    # ------------------------------------------------------------------

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def get_text(self, url: str, **kwargs) -> str:
        """Body of a successful GET as text; raises on an error status."""
        response = await self.get(url, **kwargs)
        response.raise_for_status()
        return response.text

    async def get_bytes(self, url: str, **kwargs) -> bytes:
        """Body of a successful GET as bytes; raises on an error status."""
        response = await self.get(url, **kwargs)
        response.raise_for_status()
        return response.content

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
