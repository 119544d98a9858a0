"""
Adapter for www.gequhai.com.

Search results are an HTML table; the play page exposes the track through
inline ``window.*`` assignments, and the media URL comes from a same-origin
JSON API with a base64-encoded fallback embedded in the page.
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
from songbridge.utils.text import collapse_whitespace, extract_ext

from .base import REQUEST_TIMEOUT, fetch_json, fetch_text

log = logging.getLogger(__name__)

_PLAY_ID_REGEX = re.compile(r"/play/(\d+)")


def parse_search_html(html: str, base_url: str) -> list[dict[str, str]]:
    """Reads (id, title, artist, play_url) rows from the results table."""
    soup = BeautifulSoup(html, "html.parser")
    table = soup.select_one("table#myTables")
    if table is None:
        return []

    rows = []
    for tr in table.select("tbody tr"):
        cells = tr.find_all("td")
        if len(cells) < 3:
            continue
        title_cell, singer_cell = cells[1], cells[2]
        link = title_cell.find("a")
        title = collapse_whitespace(link.get_text() if link else title_cell.get_text())
        href = (link.get("href") or "") if link else ""
        match = _PLAY_ID_REGEX.search(href)
        if not match:
            continue
        rows.append(
            {
                "id": match.group(1),
                "title": title,
                "artist": collapse_whitespace(singer_cell.get_text()),
                "play_url": to_absolute_url(href, base_url),
            }
        )
    return rows


def extract_app_data(html: str) -> dict[str, Any]:
    """Inline page variables plus the derived ``mp3_name`` and decoded extra URL."""
    data = extract_window_vars(html)
    title, author = data.get("mp3_title"), data.get("mp3_author")
    if title and author and not data.get("mp3_name"):
        data["mp3_name"] = f"{title}-{author}"
    if isinstance(extra_url := data.get("mp3_extra_url"), str):
        data["mp3_extra_url_decoded"] = decode_quark_url(extra_url)
    return data


class GequhaiProvider:
    """Scraper for gequhai.com."""

    BASE_URL = "https://www.gequhai.com"

    def __init__(
        self,
        name: str = "gequhai",
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
            "x-custom-header": "SecretKey",
        }

    async def search(self, query: str) -> list[MusicItem]:
        if not query or not query.strip():
            return []
        try:
            url = f"{self.base_url}/s/{quote(query.strip(), safe='')}"
            html = await fetch_text(
                url, headers=DOCUMENT_HEADERS, timeout=self.timeout, session=self._session
            )
            rows = parse_search_html(html, self.base_url)
        except Exception as e:
            log.warning(f"Gequhai search for '{query}' failed: {e}")
            return []

        return [
            MusicItem(
                id=row["id"],
                title=row["title"] or UNKNOWN_TITLE,
                artist=row["artist"] or UNKNOWN_ARTIST,
                provider=self.name,
                extra={"playUrl": row["play_url"]},
            )
            for row in rows
        ]

    def _play_page_url(self, id: str, extra: dict[str, Any] | None) -> str:
        candidate = extra.get("playUrl") if isinstance(extra, dict) else None
        if is_http_url(candidate):
            return candidate.strip()
        return f"{self.base_url}/play/{quote(id, safe='')}"

    async def get_play_info(
        self, id: str, extra: dict[str, Any] | None = None
    ) -> PlayInfo:
        try:
            html = await fetch_text(
                self._play_page_url(id, extra),
                headers=DOCUMENT_HEADERS,
                timeout=self.timeout,
                session=self._session,
            )
            app_data = extract_app_data(html)

            download_url = ""
            play_id = str(app_data.get("play_id") or app_data.get("mp3_id") or id or "")
            if play_id:
                download_url = await self._fetch_api_url(play_id)

            if not download_url:
                fallback = app_data.get("mp3_extra_url_decoded")
                if is_http_url(fallback):
                    log.debug(f"Gequhai {id}: using embedded extra URL")
                    download_url = fallback

            if not download_url:
                raise ScrapeError("Failed to resolve download url")

            cover = app_data.get("mp3_cover")
            return PlayInfo(
                url=download_url,
                type=extract_ext(download_url),
                cover=cover if isinstance(cover, str) and cover else None,
            )
        except Exception as e:
            log.error(f"Gequhai get_play_info for '{id}' failed: {e}")
            raise ResolutionError(f"gequhai: no playable URL for '{id}'") from e

    async def _fetch_api_url(self, play_id: str) -> str:
        """Asks the music API for a URL. Returns '' when the answer is unusable."""
        try:
            payload = await fetch_json(
                f"{self.base_url}/api/music",
                headers=self._api_headers,
                timeout=self.timeout,
                session=self._session,
                method="POST",
                data={"id": play_id, "type": "0"},
            )
        except (ScrapeError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.debug(f"Gequhai API answer for {play_id} unusable: {e}")
            return ""
        api_url = dig(payload, "data", "url")
        return api_url if is_http_url(api_url) else ""
