"""
The provider contract and the small HTTP helpers every adapter shares.
"""

import json
import logging
from typing import Any, Protocol, runtime_checkable

import aiohttp

from songbridge.exceptions import ScrapeError
from songbridge.models.music import MusicItem, PlayInfo
from songbridge.utils.session import get_connection_pool

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15.0


@runtime_checkable
class MusicProvider(Protocol):
    """
    One upstream music source.

    ``search`` never raises: failures are logged and yield an empty list.
    ``get_play_info`` either returns a PlayInfo with an absolute http URL or
    raises ResolutionError.
    """

    name: str

    async def search(self, query: str) -> list[MusicItem]: ...

    async def get_play_info(
        self, id: str, extra: dict[str, Any] | None = None
    ) -> PlayInfo: ...


async def _session_for(session: aiohttp.ClientSession | None) -> aiohttp.ClientSession:
    return session if session is not None else await get_connection_pool()


async def fetch_text(
    url: str,
    *,
    headers: dict[str, str],
    timeout: float = REQUEST_TIMEOUT,
    session: aiohttp.ClientSession | None = None,
    method: str = "GET",
    data: dict[str, str] | None = None,
) -> str:
    """Fetches a page and returns its decoded body. Non-2xx statuses raise."""
    client = await _session_for(session)
    async with client.request(
        method,
        url,
        headers=headers,
        data=data,
        timeout=aiohttp.ClientTimeout(total=timeout),
    ) as response:
        response.raise_for_status()
        text = await response.text()
    log.debug(f"{method} {url} -> {len(text)} chars")
    return text


async def fetch_json(url: str, **kwargs: Any) -> Any:
    """
    Fetches a JSON document. Some upstreams answer with a text/html content
    type, so the body is decoded here rather than by aiohttp.
    """
    body = await fetch_text(url, **kwargs)
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise ScrapeError(f"Expected JSON from {url}: {e}") from e


async def resolve_final_url(
    url: str,
    *,
    headers: dict[str, str],
    timeout: float = REQUEST_TIMEOUT,
    max_redirects: int = 5,
    session: aiohttp.ClientSession | None = None,
) -> str:
    """
    Follows redirects with a HEAD probe and returns the final URL.
    Falls back to the original URL if the probe fails for any reason.
    """
    try:
        client = await _session_for(session)
        async with client.request(
            "HEAD",
            url,
            headers=headers,
            allow_redirects=True,
            max_redirects=max_redirects,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            response.raise_for_status()
            resolved = str(response.url)
    except Exception as e:
        log.debug(f"Redirect probe for {url} failed: {e}")
        return url
    return resolved if resolved.startswith("http") else url
