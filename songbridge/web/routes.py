"""
HTTP handlers: search, resolve and the streaming download relay.
"""

import asyncio
import json
import logging
from functools import partial
from typing import Any
from urllib.parse import quote

from aiohttp import web

from songbridge.exceptions import ValidationError
from songbridge.media.relay import RelayStream, StreamRelay
from songbridge.models.config import RelayConfig
from songbridge.providers.registry import ProviderRegistry

log = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", RelayConfig)
REGISTRY_KEY = web.AppKey("registry", ProviderRegistry)
RELAY_KEY = web.AppKey("relay", StreamRelay)

DEFAULT_CONTENT_TYPE = "audio/mpeg"

# Cache validators passed through to the client when the upstream sends them.
PASSTHROUGH_HEADERS = ("Last-Modified", "ETag")

routes = web.RouteTableDef()

_dumps = partial(json.dumps, ensure_ascii=False)


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def error_response(status: int, message: str) -> web.Response:
    """Client-facing errors carry a generic message only."""
    return json_response({"error": message}, status=status)


def _required(request: web.Request, key: str, message: str) -> str:
    value = (request.query.get(key) or "").strip()
    if not value:
        raise ValidationError(message)
    return value


def _parse_extra(raw: str | None) -> dict[str, Any] | None:
    """The optional ``extra`` parameter is a JSON object; anything else is ignored."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        log.debug(f"Ignoring malformed extra parameter: {raw[:100]!r}")
        return None
    return value if isinstance(value, dict) else None


def content_disposition(filename: str | None, song_id: str) -> str:
    """
    Builds an attachment header. Spaces are sent as '+' rather than '%20',
    which older user agents handle better.
    """
    if filename:
        safe_name = quote(filename, safe="!~*'()").replace("%20", "+")
    else:
        safe_name = f"music-{song_id}.mp3"
    return f"attachment; filename=\"{safe_name}\"; filename*=UTF-8''{safe_name}"


def build_download_headers(
    upstream: RelayStream, filename: str | None, song_id: str
) -> dict[str, str]:
    headers = {
        "Content-Type": upstream.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE,
        "Content-Disposition": content_disposition(filename, song_id),
    }
    if content_length := upstream.headers.get("Content-Length"):
        headers["Content-Length"] = content_length
    for name in PASSTHROUGH_HEADERS:
        if value := upstream.headers.get(name):
            headers[name] = value
    return headers


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except ValidationError as e:
        log.debug(f"Rejected {request.path}: {e}")
        return error_response(400, str(e))


@routes.get("/healthz")
async def healthz(request: web.Request) -> web.Response:
    return json_response({"status": "ok"})


@routes.get("/api/providers")
async def list_providers(request: web.Request) -> web.Response:
    registry = request.app[REGISTRY_KEY]
    return json_response({"default": registry.default_name, "providers": registry.names()})


@routes.get("/api/search")
async def search(request: web.Request) -> web.Response:
    query = _required(request, "q", "Missing query")
    provider = request.app[REGISTRY_KEY].get(request.query.get("provider"))
    items = await provider.search(query)
    return json_response(
        {
            "provider": provider.name,
            "items": [item.model_dump(exclude_none=True) for item in items],
        }
    )


@routes.get("/api/search/all")
async def search_all(request: web.Request) -> web.Response:
    """Fans a query out to every provider; results keep registration order."""
    query = _required(request, "q", "Missing query")
    providers = request.app[REGISTRY_KEY].list_all()
    results = await asyncio.gather(
        *(p.search(query) for p in providers), return_exceptions=True
    )

    items = []
    for provider, result in zip(providers, results):
        if isinstance(result, BaseException):
            log.warning(f"Search on {provider.name} raised: {result}")
            continue
        items.extend(item.model_dump(exclude_none=True) for item in result)
    return json_response({"items": items})


@routes.get("/api/play")
async def play_info(request: web.Request) -> web.Response:
    song_id = _required(request, "id", "Missing id")
    provider = request.app[REGISTRY_KEY].get(request.query.get("provider"))
    try:
        info = await provider.get_play_info(song_id, _parse_extra(request.query.get("extra")))
    except Exception as e:
        log.error(f"Resolve failed for {provider.name}/{song_id}: {e}")
        return error_response(404, "Failed to get url")
    return json_response(info.model_dump(exclude_none=True))


@routes.get("/api/download")
async def download(request: web.Request) -> web.StreamResponse:
    """
    Resolves a track and relays its audio bytes to the client.

    Missing id gives 400 without touching any upstream. A failed resolve
    gives 404 and a failed upstream open gives 500. Once headers are sent,
    upstream errors abort the connection instead.
    """
    song_id = _required(request, "id", "Missing id")
    filename = request.query.get("filename")

    provider = request.app[REGISTRY_KEY].get(request.query.get("provider"))

    try:
        info = await provider.get_play_info(song_id, _parse_extra(request.query.get("extra")))
    except Exception as e:
        log.error(f"Resolve failed for {provider.name}/{song_id}: {e}")
        log.debug("Full traceback:", exc_info=True)
        return error_response(404, "Failed to get url")
    if info is None or not info.url:
        return error_response(404, "Failed to get url")

    try:
        upstream = await request.app[RELAY_KEY].open(info.url)
    except Exception as e:
        log.error(f"Download error for {provider.name}/{song_id}: {e}")
        log.debug("Full traceback:", exc_info=True)
        return error_response(500, "Download failed")

    chunk_size = request.app[CONFIG_KEY].chunk_size
    async with upstream:
        response = web.StreamResponse(
            status=200, headers=build_download_headers(upstream, filename, song_id)
        )
        await response.prepare(request)
        try:
            async for chunk in upstream.iter_chunks(chunk_size):
                await response.write(chunk)
        except ConnectionResetError:
            log.debug(f"Client went away during {provider.name}/{song_id}")
            raise
        except Exception as e:
            log.error(
                f"Upstream {upstream.url} for {provider.name}/{song_id} broke: {e}"
            )
            raise
        await response.write_eof()
    return response
