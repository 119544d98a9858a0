"""
Opens upstream media URLs as forward-only byte streams, with a bounded
linear-backoff retry policy for timeouts.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

import aiohttp
from multidict import CIMultiDict

from songbridge.exceptions import TransportError, UpstreamError
from songbridge.utils.scraping import CHROME_UA
from songbridge.utils.session import get_connection_pool

log = logging.getLogger(__name__)

# Upstream headers worth passing on to a client.
FORWARDED_HEADERS = (
    "Content-Type",
    "Content-Length",
    "Content-Range",
    "Accept-Ranges",
    "Last-Modified",
    "ETag",
)

_TIMEOUT_CODES = {"ETIMEDOUT", "ECONNABORTED", "UND_ERR_CONNECT_TIMEOUT"}


@dataclass(frozen=True)
class RelayOptions:
    timeout: float = 30.0
    max_redirects: int = 5
    retry_limit: int = 2
    retry_delay_base_ms: int = 600
    user_agent: str = CHROME_UA


def is_retryable_error(error: BaseException) -> bool:
    """Only timeouts are worth another attempt."""
    if isinstance(error, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return True
    if getattr(error, "code", None) in _TIMEOUT_CODES:
        return True
    return "timeout" in str(error).lower()


class RelayStream:
    """
    A live upstream response. The body is read chunk by chunk and never held
    in memory as a whole. Always close it, or use it as an async context
    manager.
    """

    def __init__(self, response: aiohttp.ClientResponse, url: str):
        self._response = response
        self.url = url
        self.status: int = response.status
        self.headers: CIMultiDict[str] = CIMultiDict(
            (name, response.headers[name])
            for name in FORWARDED_HEADERS
            if name in response.headers
        )
        self._closed = False

    @property
    def content_type(self) -> str | None:
        return self.headers.get("Content-Type")

    @property
    def content_length(self) -> int | None:
        value = self.headers.get("Content-Length")
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None

    @property
    def closed(self) -> bool:
        return self._closed

    async def iter_chunks(self, chunk_size: int = 65536) -> AsyncIterator[bytes]:
        async for chunk in self._response.content.iter_chunked(chunk_size):
            yield chunk

    def close(self) -> None:
        """Returns the connection to the pool (or drops it mid-body)."""
        if not self._closed:
            self._closed = True
            self._response.release()

    async def __aenter__(self) -> "RelayStream":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class StreamRelay:
    """Fetches a media URL and hands back its body as a stream."""

    def __init__(
        self,
        options: RelayOptions | None = None,
        session: aiohttp.ClientSession | None = None,
        max_workers: int = 8,
    ):
        self.options = options or RelayOptions()
        self._session = session
        self.max_workers = max_workers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_connection_pool(self.max_workers)

    async def _request(self, url: str, options: RelayOptions) -> RelayStream:
        session = await self._get_session()
        response = await session.get(
            url,
            headers={"User-Agent": options.user_agent},
            allow_redirects=True,
            max_redirects=options.max_redirects,
            timeout=aiohttp.ClientTimeout(
                total=None, sock_connect=options.timeout, sock_read=options.timeout
            ),
        )
        if response.status < 200 or response.status >= 300:
            response.release()
            raise UpstreamError(response.status, url)
        return RelayStream(response, url)

    async def open(self, url: str, options: RelayOptions | None = None) -> RelayStream:
        """
        Opens ``url`` with at most ``retry_limit + 1`` attempts.

        Raises:
            UpstreamError: The host answered with a non-2xx status (not retried).
            TransportError: The host could not be reached, after retries for
                timeouts or immediately for anything else.
        """
        opts = options or self.options
        for attempt in range(opts.retry_limit + 1):
            try:
                stream = await self._request(url, opts)
                if attempt:
                    log.debug(f"Upstream {url} opened on attempt {attempt + 1}")
                return stream
            except UpstreamError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                if attempt < opts.retry_limit and is_retryable_error(e):
                    delay = opts.retry_delay_base_ms * (attempt + 1) / 1000
                    log.debug(
                        f"Upstream attempt {attempt + 1}/{opts.retry_limit + 1} for "
                        f"{url} timed out: {e!r}. Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                    continue
                raise TransportError(
                    f"Could not open {url} after {attempt + 1} attempt(s): {e!r}"
                ) from e
        # unreachable: every iteration returns or raises
        raise TransportError(f"Could not open {url}")

