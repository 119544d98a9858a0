import json
from urllib.parse import quote

import pytest

from songbridge.exceptions import ResolutionError
from songbridge.providers.gequbao import GequbaoProvider, parse_search_html

from .support.fakes import FakeResponse, FakeSession

BASE = "https://www.gequbao.com"

SEARCH_HTML = """
<div class="card-body">
  <a class="music-link" href="/music/456">
    <span class="music-title">晴天</span>
    <small>周杰伦</small>
  </a>
  <a class="music-link" href="/music/789"><span>七里香 - 周杰伦</span></a>
  <a class="music-link" href="/about">About</a>
</div>
"""

DETAIL_HTML = """
<script>
window.appData = {"play_id": "p-456", "mp3_cover": "https://img.example/c.jpg", "mp3_extra_url": ""};
</script>
"""


def test_parse_search_html():
    rows = parse_search_html(SEARCH_HTML, BASE)
    assert rows == [
        {"id": "456", "title": "晴天", "artist": "周杰伦", "detail_url": f"{BASE}/music/456"},
        {"id": "789", "title": "七里香", "artist": "周杰伦", "detail_url": f"{BASE}/music/789"},
    ]


@pytest.mark.asyncio
async def test_search_returns_items_with_detail_url():
    session = FakeSession({("GET", f"{BASE}/s/{quote('晴天')}"): FakeResponse(body=SEARCH_HTML)})
    provider = GequbaoProvider(session=session)

    items = await provider.search(" 晴天 ")

    assert [i.id for i in items] == ["456", "789"]
    assert items[0].provider == "gequbao"
    assert items[0].extra == {"detailUrl": f"{BASE}/music/456"}


@pytest.mark.asyncio
async def test_search_blank_query_makes_no_request():
    session = FakeSession()
    assert await GequbaoProvider(session=session).search("   ") == []
    assert session.calls == []


@pytest.mark.asyncio
async def test_search_failure_degrades_to_empty_list():
    session = FakeSession({("GET", f"{BASE}/s/x"): FakeResponse(status=503)})
    assert await GequbaoProvider(session=session).search("x") == []


@pytest.mark.asyncio
async def test_get_play_info_from_id_alone():
    session = FakeSession(
        {
            ("GET", f"{BASE}/music/456"): FakeResponse(body=DETAIL_HTML),
            ("POST", f"{BASE}/api/play-url"): FakeResponse(
                body=json.dumps({"code": 1, "data": {"url": "https://cdn.example/x.flac?k=1"}})
            ),
        }
    )

    info = await GequbaoProvider(session=session).get_play_info("456")

    assert info.url == "https://cdn.example/x.flac?k=1"
    assert info.type == "flac"
    assert info.cover == "https://img.example/c.jpg"
    post = [c for c in session.calls if c[0] == "POST"][0]
    assert post[2]["data"] == {"id": "p-456"}


@pytest.mark.asyncio
async def test_get_play_info_without_play_id_raises():
    session = FakeSession({("GET", f"{BASE}/music/1"): FakeResponse(body="<html></html>")})
    with pytest.raises(ResolutionError):
        await GequbaoProvider(session=session).get_play_info("1")


@pytest.mark.asyncio
async def test_get_play_info_empty_id_raises():
    session = FakeSession()
    with pytest.raises(ResolutionError):
        await GequbaoProvider(session=session).get_play_info("  ")
    assert session.calls == []
