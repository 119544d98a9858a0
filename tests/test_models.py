import pytest
from pydantic import ValidationError

from songbridge.models import MusicItem, PlayInfo


def test_play_info_requires_http_url():
    with pytest.raises(ValidationError):
        PlayInfo(url="ftp://example.com/a.mp3")


def test_play_info_normalizes_type():
    info = PlayInfo(url="  https://cdn.example/a.FLAC ", type="FLAC")
    assert info.url == "https://cdn.example/a.FLAC"
    assert info.type == "flac"
    assert PlayInfo(url="https://cdn.example/a", type="").type == "mp3"


def test_music_item_is_frozen():
    item = MusicItem(id="1", title="晴天", artist="周杰伦", provider="gequbao")
    with pytest.raises(ValidationError):
        item.title = "七里香"
    assert item.model_dump(exclude_none=True) == {
        "id": "1",
        "title": "晴天",
        "artist": "周杰伦",
        "provider": "gequbao",
    }
