"""
Adapter for www.livepoo.cn.
"""

import asyncio
import json
import logging
import re
from typing import Any
from urllib.parse import parse_qs, quote, urljoin, urlsplit

import aiohttp
from bs4 import BeautifulSoup

from songbridge.exceptions import ResolutionError, ScrapeError
from songbridge.models.music import UNKNOWN_ARTIST, UNKNOWN_TITLE, MusicItem, PlayInfo
from songbridge.utils.scraping import DOCUMENT_HEADERS, is_http_url
from songbridge.utils.text import collapse_whitespace, extract_ext, normalize_text, parse_title

from .base import REQUEST_TIMEOUT, fetch_text

log = logging.getLogger(__name__)

_COVER_REGEX = re.compile(r'"music_cover"\s*:\s*"(.*?)"')


def extract_cover(html: str) -> str:
    """Pulls the cover URL out of the detail page's inline JSON."""
    match = _COVER_REGEX.search(html)
    if not match:
        return ""
    raw = match.group(1)
    try:
        value = json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        value = raw
    return value.replace("\\/", "/")


def parse_search_html(html: str, base_url: str) -> list[dict[str, str]]:
    soup = BeautifulSoup(html, "html.parser")
    rows = []
    for link in soup.select("ul.tuij_song li.song_item2 a[href]"):
        li = link.find_parent("li", class_="song_item2")
        if li is None:
            continue

        candidates = (
            li.select_one(".song_info2 > div"),
            li.select_one(".song_info2 .song_name"),
            li.select_one(".song_info2"),
            link,
        )
        raw_title = next(
            (el.get_text() for el in candidates if el is not None and el.get_text()), ""
        )
        title_text = normalize_text(raw_title)

        detail_url = urljoin(base_url, link.get("href", ""))
        id_param = parse_qs(urlsplit(detail_url).query).get("id", [""])[0]
        song_id = id_param.removeprefix("MUSIC_")
        if not song_id or not title_text:
            continue

        singer_link = li.select_one('a[href*="singer"], a[href*="artist"]')
        artist_from_link = collapse_whitespace(singer_link.get_text()) if singer_link else ""
        parsed = parse_title(title_text)
        rows.append(
            {
                "id": song_id,
                "title": parsed["title"] or title_text,
                "artist": parsed["artist"] or artist_from_link,
                "detail_url": detail_url,
            }
        )
    return rows


class LivepooProvider:
    """Scraper for livepoo.cn. The play endpoint answers with the media URL as plain text."""

    BASE_URL = "https://www.livepoo.cn"

    def __init__(
        self,
        name: str = "livepoo",
        base_url: str = BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session

    async def search(self, query: str) -> list[MusicItem]:
        if not query or not query.strip():
            return []
        try:
            url = f"{self.base_url}/search?keyword={quote(query.strip(), safe='')}&page=0"
            html = await fetch_text(
                url, headers=DOCUMENT_HEADERS, timeout=self.timeout, session=self._session
            )
            rows = parse_search_html(html, self.base_url + "/")
        except Exception as e:
            log.warning(f"Livepoo search for '{query}' failed: {e}")
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

    def detail_url(self, id: str, extra: dict[str, Any] | None = None) -> str | None:
        """The detail page from ``extra``, or rebuilt from the id alone."""
        candidate = extra.get("detailUrl") if isinstance(extra, dict) else None
        if is_http_url(candidate):
            return candidate
        if id:
            return f"{self.base_url}/music/info.html?id=MUSIC_{quote(id, safe='')}"
        return None

    async def _fetch_cover(self, detail_url: str) -> str:
        """Best-effort: any fetch or decode failure just means no cover."""
        try:
            html = await fetch_text(
                detail_url, headers=DOCUMENT_HEADERS, timeout=self.timeout, session=self._session
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            log.debug(f"Livepoo detail page {detail_url} unavailable: {e}")
            return ""
        return extract_cover(html)

    async def get_play_info(
        self, id: str, extra: dict[str, Any] | None = None
    ) -> PlayInfo:
        try:
            if not id or not id.strip():
                raise ScrapeError("Empty id")
            id = id.strip()

            cover = ""
            if detail_url := self.detail_url(id, extra):
                cover = await self._fetch_cover(detail_url)

            play_text = await fetch_text(
                f"{self.base_url}/audio/play?id={quote(id, safe='')}",
                headers=DOCUMENT_HEADERS,
                timeout=self.timeout,
                session=self._session,
            )
            url = play_text.strip()
            if not url.startswith("http"):
                raise ScrapeError("Invalid play url")

            return PlayInfo(url=url, type=extract_ext(url), cover=cover or None)
        except Exception as e:
            log.error(f"Livepoo get_play_info for '{id}' failed: {e}")
            raise ResolutionError(f"livepoo: no playable URL for '{id}'") from e
