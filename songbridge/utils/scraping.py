"""
Shared building blocks for the scraping adapters: browser-like header
profiles, inline-script variable extraction and URL decoding helpers.
"""

import base64
import binascii
import json
import logging
import re
from typing import Any
from urllib.parse import unquote, urljoin

log = logging.getLogger(__name__)

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36"
)

_SEC_CH_UA = '"Google Chrome";v="143", "Chromium";v="143", "Not A(Brand";v="24"'

# Top-level page navigation, as sent by a desktop browser.
DOCUMENT_HEADERS = {
    "accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "accept-language": "zh-CN,zh;q=0.9,en;q=0.8",
    "cache-control": "max-age=0",
    "priority": "u=0, i",
    "sec-ch-ua": _SEC_CH_UA,
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
    "sec-fetch-dest": "document",
    "sec-fetch-mode": "navigate",
    "sec-fetch-site": "same-origin",
    "sec-fetch-user": "?1",
    "upgrade-insecure-requests": "1",
    "user-agent": CHROME_UA,
}

# Same-origin XHR calls made by the page's own scripts.
XHR_HEADERS = {
    "accept": "application/json, text/javascript, */*; q=0.01",
    "accept-language": "zh-CN,zh;q=0.9,en-US;q=0.8,en;q=0.7",
    "priority": "u=1, i",
    "sec-ch-ua": _SEC_CH_UA,
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "same-origin",
    "x-requested-with": "XMLHttpRequest",
    "user-agent": CHROME_UA,
}

_APP_DATA_REGEX = re.compile(r"window\.appData\s*=\s*(\{.*?\})\s*;")
_SINGLE_QUOTED_REGEX = re.compile(r"window\.(\w+)\s*=\s*'([^']*)'\s*;")
_DOUBLE_QUOTED_REGEX = re.compile(r'window\.(\w+)\s*=\s*"([^"]*)"\s*;')
_NUMBER_REGEX = re.compile(r"window\.(\w+)\s*=\s*(-?\d+(?:\.\d+)?)\s*;")
_LITERAL_REGEX = re.compile(r"window\.(\w+)\s*=\s*(true|false|null)\s*;", re.IGNORECASE)


def extract_window_vars(html: str) -> dict[str, Any]:
    """
    Collects ``window.X = ...;`` assignments from inline scripts.

    ``window.appData`` is parsed as JSON and merged first. Quoted strings then
    override, while numbers and true/false/null literals only fill keys that
    are still missing. All scalar values are returned as strings.
    """
    out: dict[str, Any] = {}

    if match := _APP_DATA_REGEX.search(html):
        try:
            app_data = json.loads(match.group(1))
            if isinstance(app_data, dict):
                out.update(app_data)
        except json.JSONDecodeError as e:
            log.debug(f"window.appData is not valid JSON: {e}")

    for regex in (_SINGLE_QUOTED_REGEX, _DOUBLE_QUOTED_REGEX):
        for match in regex.finditer(html):
            out[match.group(1)] = match.group(2)

    for match in _NUMBER_REGEX.finditer(html):
        out.setdefault(match.group(1), match.group(2))

    for match in _LITERAL_REGEX.finditer(html):
        out.setdefault(match.group(1), match.group(2).lower())

    return out


def decode_quark_url(encoded: str) -> str:
    """
    Decodes a base64 URL in which the page script replaced every 'H' with '#'.
    Returns an empty string when the value cannot be decoded.
    """
    b64 = encoded.strip().replace("#", "H")
    b64 += "=" * (-len(b64) % 4)
    try:
        return base64.b64decode(b64).decode("utf-8")
    except (binascii.Error, ValueError):
        return ""


def safe_unquote(value: str) -> str:
    """Percent-decodes a value, returning it unchanged if decoding fails."""
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def to_absolute_url(value: str | None, base_url: str) -> str:
    """Resolves a possibly relative URL against a base. Empty input gives ''."""
    if not value:
        return ""
    try:
        return urljoin(base_url, value)
    except ValueError:
        return value


def is_http_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("http")


def dig(payload: Any, *path: str) -> Any:
    """Walks a nested dict path, returning None as soon as a step is missing."""
    current = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
