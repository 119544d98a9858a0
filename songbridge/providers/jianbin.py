"""
Adapter for the www.jbsou.cn aggregator, which fronts several upstream
platforms selected by a ``type`` form field.

Search results already carry a media URL, so the item id *is* that URL,
percent-encoded. Resolving decodes it (the value may arrive double-encoded
after a trip through a query string) and probes it for redirects.
"""

import json
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from songbridge.exceptions import ResolutionError, ScrapeError
from songbridge.models.music import UNKNOWN_ARTIST, UNKNOWN_TITLE, MusicItem, PlayInfo
from songbridge.utils.scraping import CHROME_UA, safe_unquote, to_absolute_url
from songbridge.utils.text import extract_ext

from .base import fetch_text, resolve_final_url

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


def normalize_search_response(payload: Any) -> list[dict[str, Any]]:
    """Accepts the search answer as a dict or as a JSON string."""
    if not payload:
        return []
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            return []
    if not isinstance(payload, dict):
        return []
    items = payload.get("data")
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _scalar_text(value: Any) -> str:
    """Upstream fields are usually strings but sometimes bare numbers."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


class JianbinProvider:
    """One jbsou.cn upstream platform (netease, qq, kugou or kuwo)."""

    BASE_URL = "https://www.jbsou.cn/"

    def __init__(
        self,
        name: str,
        source: str,
        base_url: str = BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ):
        self.name = name
        self.source = source
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self._session = session
        origin = self.base_url.rstrip("/")
        self._headers = {
            "user-agent": CHROME_UA,
            "accept": "application/json, text/javascript, */*; q=0.01",
            "accept-language": "zh-CN,zh;q=0.9,en-US;q=0.8,en;q=0.7",
            "origin": origin,
            "x-requested-with": "XMLHttpRequest",
            "referer": self.base_url,
        }

    async def search(self, query: str) -> list[MusicItem]:
        if not query or not query.strip():
            return []
        try:
            body = await fetch_text(
                self.base_url,
                headers=self._headers,
                timeout=self.timeout,
                session=self._session,
                method="POST",
                data={
                    "input": query.strip(),
                    "filter": "name",
                    "type": self.source,
                    "page": "1",
                },
            )
        except Exception as e:
            log.warning(f"Jianbin ({self.source}) search for '{query}' failed: {e}")
            return []

        items = []
        for entry in normalize_search_response(body):
            raw_url = entry.get("url")
            download_url = (
                to_absolute_url(raw_url, self.base_url) if isinstance(raw_url, str) else ""
            )
            if not download_url:
                log.debug(f"Jianbin ({self.source}): skipping entry without url: {entry}")
                continue
            raw_cover = entry.get("cover")
            cover_url = (
                to_absolute_url(raw_cover, self.base_url) if isinstance(raw_cover, str) else ""
            )
            items.append(
                MusicItem(
                    id=quote(download_url, safe=""),
                    title=_scalar_text(entry.get("name")) or UNKNOWN_TITLE,
                    artist=_scalar_text(entry.get("artist")) or UNKNOWN_ARTIST,
                    album=_scalar_text(entry.get("album")) or None,
                    cover=cover_url or None,
                    provider=self.name,
                )
            )
        return items

    def normalize_id_to_url(self, id: str) -> str:
        """Decodes an opaque id (at most twice) into an absolute URL."""
        value = (id or "").strip()
        if not value:
            return ""
        for _ in range(2):
            if "%" not in value:
                break
            value = safe_unquote(value)
        if value.startswith("http"):
            return value
        return to_absolute_url(value, self.base_url)

    async def get_play_info(
        self, id: str, extra: dict[str, Any] | None = None
    ) -> PlayInfo:
        try:
            url = self.normalize_id_to_url(id)
            if not url:
                raise ScrapeError("Invalid id")
            final_url = await resolve_final_url(
                url,
                headers={"user-agent": CHROME_UA},
                timeout=self.timeout,
                session=self._session,
            )
            if not final_url.startswith("http"):
                raise ScrapeError("Invalid play url")
            return PlayInfo(url=final_url, type=extract_ext(final_url))
        except Exception as e:
            log.error(f"Jianbin ({self.source}) get_play_info for '{id}' failed: {e}")
            raise ResolutionError(f"{self.name}: no playable URL for '{id}'") from e
