"""
Adapter for www.gequbao.com, the default provider.

The detail page carries a ``window.appData`` object whose ``play_id`` is
exchanged for the media URL through the site's play-url API.
"""

import asyncio
import logging
import re
from typing import Any
from urllib.parse import quote

import aiohttp
from bs4 import BeautifulSoup

from songbridge.exceptions import ResolutionError, ScrapeError
from songbridge.models.music import UNKNOWN_ARTIST, UNKNOWN_TITLE, MusicItem, PlayInfo
from songbridge.utils.scraping import (
    DOCUMENT_HEADERS,
    XHR_HEADERS,
    decode_quark_url,
    dig,
    extract_window_vars,
    is_http_url,
    to_absolute_url,
)
from songbridge.utils.text import collapse_whitespace, extract_ext, parse_title

from .base import REQUEST_TIMEOUT, fetch_json, fetch_text

log = logging.getLogger(__name__)

_MUSIC_ID_REGEX = re.compile(r"/music/(\d+)")


def parse_search_html(html: str, base_url: str) -> list[dict[str, str]]:
    """Reads result rows; each row links to ``/music/<id>``."""
    soup = BeautifulSoup(html, "html.parser")
    rows = []
    for link in soup.select("a.music-link[href]"):
        href = link.get("href", "")
        match = _MUSIC_ID_REGEX.search(href)
        if not match:
            continue

        title_el = link.select_one(".music-title")
        artist_el = link.select_one("small")
        title = collapse_whitespace(title_el.get_text()) if title_el else ""
        artist = collapse_whitespace(artist_el.get_text()) if artist_el else ""
        if not title:
            parsed = parse_title(link.get_text())
            title, artist = parsed["title"], artist or parsed["artist"]

        rows.append(
            {
                "id": match.group(1),
                "title": title,
                "artist": artist,
                "detail_url": to_absolute_url(href, base_url),
            }
        )
    return rows


class GequbaoProvider:
    """Scraper for gequbao.com."""

    BASE_URL = "https://www.gequbao.com"

    def __init__(
        self,
        name: str = "gequbao",
        base_url: str = BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._api_headers = {
            **XHR_HEADERS,
            "content-type": "application/x-www-form-urlencoded; charset=UTF-8",
            "origin": self.base_url,
        }

    async def search(self, query: str) -> list[MusicItem]:
        if not query or not query.strip():
            return []
        try:
            html = await fetch_text(
                f"{self.base_url}/s/{quote(query.strip(), safe='')}",
                headers=DOCUMENT_HEADERS,
                timeout=self.timeout,
                session=self._session,
            )
            rows = parse_search_html(html, self.base_url)
        except Exception as e:
            log.warning(f"Gequbao search for '{query}' failed: {e}")
            return []

        return [
            MusicItem(
                id=row["id"],
                title=row["title"] or UNKNOWN_TITLE,
                artist=row["artist"] or UNKNOWN_ARTIST,
                provider=self.name,
                extra={"detailUrl": row["detail_url"]},
            )
            for row in rows
        ]

    def detail_url(self, id: str, extra: dict[str, Any] | None = None) -> str:
        candidate = extra.get("detailUrl") if isinstance(extra, dict) else None
        if is_http_url(candidate):
            return candidate
        return f"{self.base_url}/music/{quote(id, safe='')}"

    async def get_play_info(
        self, id: str, extra: dict[str, Any] | None = None
    ) -> PlayInfo:
        try:
            if not id or not id.strip():
                raise ScrapeError("Empty id")
            html = await fetch_text(
                self.detail_url(id.strip(), extra),
                headers=DOCUMENT_HEADERS,
                timeout=self.timeout,
                session=self._session,
            )
            app_data = extract_window_vars(html)

            play_id = str(app_data.get("play_id") or "")
            download_url = await self._fetch_play_url(play_id) if play_id else ""

            if not download_url and isinstance(app_data.get("mp3_extra_url"), str):
                decoded = decode_quark_url(app_data["mp3_extra_url"])
                if is_http_url(decoded):
                    log.debug(f"Gequbao {id}: using embedded extra URL")
                    download_url = decoded

            if not download_url:
                raise ScrapeError("No play_id or usable fallback on the detail page")

            cover = app_data.get("mp3_cover")
            return PlayInfo(
                url=download_url,
                type=extract_ext(download_url),
                cover=cover if is_http_url(cover) else None,
            )
        except Exception as e:
            log.error(f"Gequbao get_play_info for '{id}' failed: {e}")
            raise ResolutionError(f"gequbao: no playable URL for '{id}'") from e

    async def _fetch_play_url(self, play_id: str) -> str:
        try:
            payload = await fetch_json(
                f"{self.base_url}/api/play-url",
                headers=self._api_headers,
                timeout=self.timeout,
                session=self._session,
                method="POST",
                data={"id": play_id},
            )
        except (ScrapeError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.debug(f"Gequbao play-url API failed for {play_id}: {e}")
            return ""
        url = dig(payload, "data", "url")
        return url if is_http_url(url) else ""
