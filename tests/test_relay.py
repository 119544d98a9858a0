import asyncio

import aiohttp
import pytest

from songbridge.exceptions import TransportError, UpstreamError
from songbridge.media import relay as relay_module
from songbridge.media.relay import RelayOptions, RelayStream, StreamRelay, is_retryable_error

from .support.fakes import FakeResponse, SequenceSession

URL = "https://cdn.example/a.mp3"


@pytest.fixture
def sleeps(monkeypatch):
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(relay_module.asyncio, "sleep", fake_sleep)
    return recorded


def test_is_retryable_error():
    assert is_retryable_error(asyncio.TimeoutError())
    assert is_retryable_error(aiohttp.ServerTimeoutError("read"))
    assert is_retryable_error(aiohttp.ClientConnectionError("Connect timeout on host"))
    assert not is_retryable_error(aiohttp.ClientConnectionError("Name or service not known"))

    coded = OSError("connect failed")
    coded.code = "ETIMEDOUT"
    assert is_retryable_error(coded)


@pytest.mark.asyncio
async def test_timeouts_exhaust_retry_budget(sleeps):
    session = SequenceSession([asyncio.TimeoutError()] * 3)
    relay = StreamRelay(RelayOptions(retry_limit=2), session=session)

    with pytest.raises(TransportError):
        await relay.open(URL)

    assert len(session.calls) == 3
    assert sleeps == [0.6, 1.2]


@pytest.mark.asyncio
async def test_timeout_then_success(sleeps):
    response = FakeResponse(url=URL, headers={"Content-Length": "4"}, chunks=[b"data"])
    session = SequenceSession([asyncio.TimeoutError(), response])
    relay = StreamRelay(RelayOptions(retry_limit=2), session=session)

    stream = await relay.open(URL)

    assert len(session.calls) == 2
    assert sleeps == [0.6]
    assert stream.status == 200
    assert stream.content_length == 4


@pytest.mark.asyncio
async def test_non_timeout_failure_is_not_retried(sleeps):
    session = SequenceSession([aiohttp.ClientConnectionError("Name or service not known")])
    relay = StreamRelay(RelayOptions(retry_limit=2), session=session)

    with pytest.raises(TransportError) as exc_info:
        await relay.open(URL)

    assert isinstance(exc_info.value.__cause__, aiohttp.ClientConnectionError)
    assert len(session.calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_non_2xx_status_fails_without_retry(sleeps):
    response = FakeResponse(status=404, url=URL)
    session = SequenceSession([response])
    relay = StreamRelay(RelayOptions(retry_limit=2), session=session)

    with pytest.raises(UpstreamError) as exc_info:
        await relay.open(URL)

    assert exc_info.value.status == 404
    assert str(exc_info.value) == "Upstream error: 404"
    assert response.released
    assert len(session.calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_zero_retry_limit_means_single_attempt(sleeps):
    session = SequenceSession([asyncio.TimeoutError(), FakeResponse()])
    relay = StreamRelay(RelayOptions(retry_limit=0), session=session)

    with pytest.raises(TransportError):
        await relay.open(URL)

    assert len(session.calls) == 1


@pytest.mark.asyncio
async def test_request_carries_user_agent_and_redirect_limit():
    session = SequenceSession([FakeResponse()])
    relay = StreamRelay(RelayOptions(max_redirects=3, user_agent="test-agent"), session=session)

    await relay.open(URL)

    url, kwargs = session.calls[0]
    assert url == URL
    assert kwargs["headers"] == {"User-Agent": "test-agent"}
    assert kwargs["max_redirects"] == 3
    assert kwargs["allow_redirects"] is True


@pytest.mark.asyncio
async def test_stream_forwards_selected_headers_and_closes_once():
    response = FakeResponse(
        headers={
            "Content-Type": "audio/flac",
            "Content-Length": "nope",
            "Set-Cookie": "a=b",
        },
        chunks=[b"ab", b"cd"],
    )

    async with RelayStream(response, URL) as stream:
        assert stream.content_type == "audio/flac"
        assert stream.content_length is None
        assert "Set-Cookie" not in stream.headers
        assert [c async for c in stream.iter_chunks(2)] == [b"ab", b"cd"]

    assert stream.closed
    assert response.released
    stream.close()
