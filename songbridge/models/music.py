"""
Pydantic models shared by every provider adapter.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

UNKNOWN_TITLE = "未知歌曲"
UNKNOWN_ARTIST = "未知歌手"


class MusicItem(BaseModel):
    """A single search hit, scoped to the provider that produced it."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    artist: str
    provider: str
    album: str | None = None
    cover: str | None = None
    # Provider-specific context carried from search to resolve.
    extra: dict[str, Any] | None = None


class PlayInfo(BaseModel):
    """A direct, fetchable media URL for one download attempt."""

    model_config = ConfigDict(frozen=True)

    url: str
    type: str = "mp3"
    cover: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Rejects anything that is not an absolute http(s) URL."""
        v = v.strip()
        if not v.startswith("http"):
            raise ValueError(f"Play URL must be an absolute http URL, got: {v!r}")
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        return v.lower() or "mp3"
