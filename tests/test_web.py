import asyncio
import json
from urllib.parse import quote

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import test_utils

from songbridge.exceptions import TransportError, UpstreamError
from songbridge.models import PlayInfo, RelayConfig
from songbridge.providers import ProviderRegistry
from songbridge.web import create_app
from songbridge.web.routes import content_disposition

from .support.providers import FakeProvider, FakeRelay, make_item

MEDIA_URL = "https://cdn.example/a.mp3"


@pytest_asyncio.fixture
async def serve():
    clients: list[test_utils.TestClient] = []

    async def _serve(providers, relay=None):
        registry = ProviderRegistry(providers, default=providers[0].name)
        app = create_app(RelayConfig(chunk_size=1024), registry, relay or FakeRelay())
        client = test_utils.TestClient(test_utils.TestServer(app))
        await client.start_server()
        clients.append(client)
        return client

    yield _serve
    for client in clients:
        await client.close()


async def wait_closed(stream) -> None:
    for _ in range(50):
        if stream.closed:
            return
        await asyncio.sleep(0.01)


def test_content_disposition():
    expected = quote("晴天 周杰伦.mp3", safe="!~*'()").replace("%20", "+")
    assert "+" in expected
    assert content_disposition("晴天 周杰伦.mp3", "42") == (
        f"attachment; filename=\"{expected}\"; filename*=UTF-8''{expected}"
    )
    assert content_disposition(None, "42") == (
        "attachment; filename=\"music-42.mp3\"; filename*=UTF-8''music-42.mp3"
    )


@pytest.mark.asyncio
async def test_download_without_id_touches_nothing(serve):
    provider = FakeProvider("alpha", play_info=PlayInfo(url=MEDIA_URL))
    relay = FakeRelay()
    client = await serve([provider], relay)

    for path in ("/api/download", "/api/download?id=%20%20"):
        resp = await client.get(path)
        assert resp.status == 400
        assert await resp.json() == {"error": "Missing id"}

    assert provider.resolve_calls == []
    assert relay.opened_urls == []


@pytest.mark.asyncio
async def test_download_streams_upstream_body(serve):
    body = b"x" * 1000 + b"y" * 234
    provider = FakeProvider("alpha", play_info=PlayInfo(url=MEDIA_URL))
    relay = FakeRelay(
        chunks=[body[:1000], body[1000:]],
        headers={
            "Content-Type": "audio/mpeg",
            "Content-Length": "1234",
            "ETag": "\"v1\"",
            "Content-Range": "bytes 0-1233/1234",
        },
    )
    client = await serve([provider], relay)

    resp = await client.get("/api/download", params={"id": "42", "filename": "晴天.mp3"})

    assert resp.status == 200
    assert resp.headers["Content-Length"] == "1234"
    assert resp.headers["Content-Type"] == "audio/mpeg"
    assert resp.headers["Content-Disposition"].startswith("attachment; filename=")
    assert resp.headers["ETag"] == "\"v1\""
    assert "Content-Range" not in resp.headers
    assert await resp.read() == body
    assert relay.opened_urls == [MEDIA_URL]
    await wait_closed(relay.streams[0])
    assert relay.streams[0].closed


@pytest.mark.asyncio
async def test_download_without_upstream_length_or_type(serve):
    provider = FakeProvider("alpha", play_info=PlayInfo(url=MEDIA_URL))
    client = await serve([provider], FakeRelay(chunks=[b"abc"]))

    resp = await client.get("/api/download?id=42")

    assert resp.status == 200
    assert resp.headers["Content-Type"] == "audio/mpeg"
    assert "Content-Length" not in resp.headers
    assert "music-42.mp3" in resp.headers["Content-Disposition"]
    assert await resp.read() == b"abc"


@pytest.mark.asyncio
async def test_download_resolution_failure_is_404(serve):
    relay = FakeRelay()
    client = await serve([FakeProvider("alpha")], relay)

    resp = await client.get("/api/download?id=42")

    assert resp.status == 404
    assert await resp.json() == {"error": "Failed to get url"}
    assert relay.opened_urls == []


@pytest.mark.parametrize("error", [TransportError("timed out"), UpstreamError(403, MEDIA_URL)])
@pytest.mark.asyncio
async def test_download_upstream_failure_is_500(serve, error):
    provider = FakeProvider("alpha", play_info=PlayInfo(url=MEDIA_URL))
    client = await serve([provider], FakeRelay(error=error))

    resp = await client.get("/api/download?id=42")

    assert resp.status == 500
    assert await resp.json() == {"error": "Download failed"}


@pytest.mark.asyncio
async def test_download_routes_by_provider_and_passes_extra(serve):
    alpha = FakeProvider("alpha", play_info=PlayInfo(url=MEDIA_URL))
    beta = FakeProvider("beta", play_info=PlayInfo(url=MEDIA_URL))
    client = await serve([alpha, beta], FakeRelay(chunks=[b"a"]))

    extra = json.dumps({"detailUrl": "https://site.example/music/1"})
    resp = await client.get(
        "/api/download", params={"id": "1", "provider": "BETA", "extra": extra}
    )
    await resp.read()
    resp = await client.get(
        "/api/download", params={"id": "2", "provider": "missing", "extra": "{broken"}
    )
    await resp.read()

    assert beta.resolve_calls == [("1", {"detailUrl": "https://site.example/music/1"})]
    assert alpha.resolve_calls == [("2", None)]


@pytest.mark.asyncio
async def test_search_endpoints(serve):
    alpha = FakeProvider("alpha", items=[make_item("alpha", id="a1")])
    beta = FakeProvider("beta", items=[make_item("beta", id="b1")])
    broken = FakeProvider("broken", search_error=RuntimeError("boom"))
    client = await serve([alpha, beta, broken])

    resp = await client.get("/api/search", params={"q": "晴天", "provider": "beta"})
    assert resp.status == 200
    assert await resp.json() == {
        "provider": "beta",
        "items": [{"id": "b1", "title": "晴天", "artist": "周杰伦", "provider": "beta"}],
    }

    resp = await client.get("/api/search/all", params={"q": "晴天"})
    assert [item["id"] for item in (await resp.json())["items"]] == ["a1", "b1"]

    resp = await client.get("/api/search?q=")
    assert resp.status == 400
    assert await resp.json() == {"error": "Missing query"}


@pytest.mark.asyncio
async def test_play_endpoint(serve):
    alpha = FakeProvider("alpha", play_info=PlayInfo(url=MEDIA_URL, cover="https://img.example/c.jpg"))
    client = await serve([alpha, FakeProvider("beta")])

    resp = await client.get("/api/play?id=1")
    assert await resp.json() == {
        "url": MEDIA_URL,
        "type": "mp3",
        "cover": "https://img.example/c.jpg",
    }

    resp = await client.get("/api/play?id=1&provider=beta")
    assert resp.status == 404
    assert await resp.json() == {"error": "Failed to get url"}


@pytest.mark.asyncio
async def test_providers_and_health(serve):
    client = await serve([FakeProvider("alpha"), FakeProvider("beta")])

    resp = await client.get("/api/providers")
    assert await resp.json() == {"default": "alpha", "providers": ["alpha", "beta"]}

    resp = await client.get("/healthz")
    assert await resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_upstream_failure_mid_body_aborts_and_closes_stream(serve):
    provider = FakeProvider("alpha", play_info=PlayInfo(url=MEDIA_URL))
    relay = FakeRelay(
        chunks=[b"a" * 1024],
        headers={"Content-Length": "2048"},
        fail_after=aiohttp.ClientPayloadError("connection cut"),
    )
    client = await serve([provider], relay)

    resp = await client.get("/api/download?id=42")
    assert resp.status == 200
    with pytest.raises(aiohttp.ClientError):
        await asyncio.wait_for(resp.read(), timeout=5)

    await wait_closed(relay.streams[0])
    assert relay.streams[0].closed


@pytest.mark.asyncio
async def test_client_disconnect_mid_body_closes_stream(serve):
    gate = asyncio.Event()
    first = b"a" * 1024
    provider = FakeProvider("alpha", play_info=PlayInfo(url=MEDIA_URL))
    relay = FakeRelay(
        chunks=[first, b"b" * 1024], headers={"Content-Length": "2048"}, gate=gate
    )
    client = await serve([provider], relay)

    resp = await client.get("/api/download?id=42")
    assert await resp.content.readexactly(len(first)) == first
    resp.close()
    await asyncio.sleep(0.05)
    gate.set()

    await wait_closed(relay.streams[0])
    assert relay.streams[0].closed
