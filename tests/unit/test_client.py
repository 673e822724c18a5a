from __future__ import annotations

import httpx
import pytest

from indexer.core.client import BlockFeedClient, CircuitBreaker, ClientConfig
from indexer.core.config import ClientSettings
from indexer.core.exceptions import StreamError

FEED = "http://feed.local"


def _client(handler, **overrides) -> BlockFeedClient:
    params = {"rate_limit_rps": 1000.0, "max_retries": 0, "backoff_base_s": 0.0, **overrides}
    return BlockFeedClient(FEED, ClientConfig(**params), transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_fetch_blocks_sends_from_and_limit():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"height": 7, "shards": []}])

    client = _client(handler)
    assert await client.fetch_blocks(7, 10) == [{"height": 7, "shards": []}]
    await client.aclose()

    assert seen[0].url.path == "/blocks"
    assert seen[0].url.params["from"] == "7"
    assert seen[0].url.params["limit"] == "10"


@pytest.mark.anyio
@pytest.mark.parametrize("status", [204, 404])
async def test_fetch_blocks_tip_statuses_mean_no_blocks_yet(status: int):
    client = _client(lambda req: httpx.Response(status))
    assert await client.fetch_blocks(1, 5) == []
    await client.aclose()


@pytest.mark.anyio
async def test_fetch_blocks_retries_transient_then_succeeds():
    statuses = [503, 429]

    def handler(request: httpx.Request) -> httpx.Response:
        if statuses:
            return httpx.Response(statuses.pop(0))
        return httpx.Response(200, json=[])

    client = _client(handler, max_retries=2)
    assert await client.fetch_blocks(1, 5) == []
    assert statuses == []
    await client.aclose()


@pytest.mark.anyio
async def test_fetch_blocks_retries_dropped_connection():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=[])

    client = _client(handler, max_retries=1)
    assert await client.fetch_blocks(1, 5) == []
    assert len(calls) == 2
    await client.aclose()


@pytest.mark.anyio
async def test_fetch_blocks_does_not_retry_refusals():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": "bad from"})

    client = _client(handler, max_retries=3)
    with pytest.raises(StreamError, match="HTTP 400"):
        await client.fetch_blocks(1, 5)
    assert len(calls) == 1
    await client.aclose()


@pytest.mark.anyio
async def test_fetch_blocks_gives_up_after_retries():
    client = _client(lambda req: httpx.Response(502), max_retries=2)
    with pytest.raises(StreamError, match="after 3 attempt"):
        await client.fetch_blocks(1, 5)
    await client.aclose()


@pytest.mark.anyio
async def test_fetch_blocks_blocks_too_large():
    client = _client(lambda req: httpx.Response(200, content=b"[" + b" " * 2048 + b"]"), max_response_bytes=1024)
    with pytest.raises(StreamError, match="too large"):
        await client.fetch_blocks(1, 5)
    await client.aclose()


@pytest.mark.anyio
async def test_fetch_blocks_schema_mismatch():
    client = _client(lambda req: httpx.Response(200, json={"ok": True}))
    with pytest.raises(StreamError, match="not a list"):
        await client.fetch_blocks(1, 5)
    await client.aclose()


@pytest.mark.anyio
async def test_fetch_blocks_more_than_limit():
    client = _client(lambda req: httpx.Response(200, json=[{"height": i} for i in range(10)]))
    with pytest.raises(StreamError):
        await client.fetch_blocks(0, 5)
    await client.aclose()


@pytest.mark.anyio
async def test_breaker_opens_after_repeated_failures():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    client = _client(handler, circuit_breaker_threshold=2, circuit_breaker_cooldown_s=60.0)
    for _ in range(2):
        with pytest.raises(StreamError, match="unavailable"):
            await client.fetch_blocks(1, 5)

    with pytest.raises(StreamError, match="circuit open"):
        await client.fetch_blocks(1, 5)
    assert len(calls) == 2
    await client.aclose()


def test_breaker_half_opens_after_cooldown():
    br = CircuitBreaker(threshold=1, cooldown_s=0.0)
    br.on_failure()
    assert br.opened_at is not None
    assert br.allow() is True
    assert br.failures == 0


def test_client_config_from_settings():
    cfg = ClientConfig.from_settings(ClientSettings(max_retries=7, timeout_s=3.0, backoff_max_s=2.0))
    assert cfg.max_retries == 7
    assert cfg.timeout_s == 3.0
    assert cfg.backoff_max_s == 2.0
