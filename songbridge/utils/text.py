"""
Helper functions for normalizing scraped titles and inferring file types.
"""

import re
from urllib.parse import urlsplit

# Action-button captions that leak into scraped title text.
NOISE_TOKENS = ("播放", "试听", "下载", "分享")

_WHITESPACE_RE = re.compile(r"\s+")
_BOOK_TITLE_RE = re.compile(r"^(.*?)《(.*?)》$")


def collapse_whitespace(text: str) -> str:
    """Collapses runs of whitespace to single spaces and trims the result."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def normalize_text(text: str) -> str:
    """Collapses whitespace and strips known noise tokens."""
    value = collapse_whitespace(text)
    for token in NOISE_TOKENS:
        value = value.replace(token, "")
    return collapse_whitespace(value)


def parse_title(text: str) -> dict[str, str]:
    """
    Splits a combined song label into artist and title.

    Recognized forms, tried in order:
      - ``artist《title》``
      - ``title - artist``
      - ``title-artist``

    Without a delimiter the whole normalized string is the title and the
    artist is empty, so callers can substitute their own label.
    """
    normalized = normalize_text(text)

    if match := _BOOK_TITLE_RE.match(normalized):
        return {
            "artist": match.group(1).strip(),
            "title": match.group(2).strip() or normalized,
        }

    for delimiter in (" - ", "-"):
        if delimiter in normalized:
            parts = [p.strip() for p in normalized.split(delimiter) if p.strip()]
            if len(parts) >= 2:
                return {"artist": parts[1], "title": parts[0]}

    return {"artist": "", "title": normalized}


def extract_ext(url: str) -> str:
    """
    Infers a lowercase file extension from a URL path, ignoring the query
    string. Defaults to 'mp3'.
    """
    try:
        path = urlsplit(url).path
    except ValueError:
        path = url.split("?", 1)[0]
    last_segment = path.rsplit("/", 1)[-1]
    parts = last_segment.split(".")
    if len(parts) > 1 and parts[-1]:
        return parts[-1].lower()
    return "mp3"
