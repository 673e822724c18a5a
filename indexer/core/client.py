"""indexer.core.client

HTTP client for the block feed.

The feed answers ``GET /blocks?from=H&limit=N`` with a JSON list of blocks in
ascending height order. How the client reads the answer:

- 200: the list; empty when nothing at or above ``H`` exists yet
- 204, 404: the feed has not reached ``H``; same as an empty list
- 408, 425, 429, 5xx, timeouts, dropped connections: transient, retried
- anything else: the feed refused the request; raised at once

A feed that stays down raises ``StreamError``. The consumer turns that into a
stopped process, never into a skipped block.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import httpx

from indexer.core.config import ClientSettings
from indexer.core.exceptions import StreamError

TIP_STATUS = frozenset({204, 404})
TRANSIENT_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class ClientConfig:
    rate_limit_rps: float = 5.0
    max_retries: int = 3
    timeout_s: float = 20.0
    backoff_base_s: float = 1.0
    backoff_max_s: float = 8.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_cooldown_s: float = 30.0
    max_response_bytes: int = 32 * 1024 * 1024

    @classmethod
    def from_settings(cls, s: ClientSettings) -> ClientConfig:
        return cls(
            rate_limit_rps=s.rate_limit_rps,
            max_retries=s.max_retries,
            timeout_s=s.timeout_s,
            backoff_base_s=s.backoff_base_s,
            backoff_max_s=s.backoff_max_s,
            circuit_breaker_threshold=s.circuit_breaker_threshold,
            circuit_breaker_cooldown_s=s.circuit_breaker_cooldown_s,
            max_response_bytes=s.max_response_bytes,
        )


class _TokenBucket:
    """One request per token; refills at ``rate_per_sec``, holds at most one."""

    def __init__(self, rate_per_sec: float) -> None:
        self.rate = max(rate_per_sec, 0.001)
        self.tokens = 1.0
        self.updated_at = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                now = time.monotonic()
                self.tokens = min(1.0, self.tokens + (now - self.updated_at) * self.rate)
                self.updated_at = now
                if self.tokens >= 1.0:
                    self.tokens -= 1.0
                    return
                wait_s = (1.0 - self.tokens) / self.rate
            await asyncio.sleep(wait_s)


class CircuitBreaker:
    """Opens after ``threshold`` transient failures in a row; half-opens after the cooldown."""

    def __init__(self, threshold: int, cooldown_s: float) -> None:
        self.threshold = threshold
        self.cooldown_s = cooldown_s
        self.failures = 0
        self.opened_at: float | None = None

    def allow(self) -> bool:
        if self.opened_at is None:
            return True
        if (time.monotonic() - self.opened_at) >= self.cooldown_s:
            self.failures = 0
            self.opened_at = None
            return True
        return False

    def on_success(self) -> None:
        self.failures = 0
        self.opened_at = None

    def on_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.threshold:
            self.opened_at = time.monotonic()


class BlockFeedClient:
    def __init__(
        self,
        base_url: str,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.config = config or ClientConfig()
        self._bucket = _TokenBucket(self.config.rate_limit_rps)
        self._breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            cooldown_s=self.config.circuit_breaker_cooldown_s,
        )
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=self.config.timeout_s, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    def _backoff_s(self, attempt: int) -> float:
        return min(self.config.backoff_base_s * 2**attempt, self.config.backoff_max_s)

    async def _get(self, path: str, *, params: dict[str, Any]) -> httpx.Response:
        attempts = self.config.max_retries + 1
        failure = "no attempt made"
        for attempt in range(attempts):
            if not self._breaker.allow():
                raise StreamError(f"block feed circuit open: {self.base_url} ({failure})")

            await self._bucket.acquire()
            try:
                resp = await self._http.get(path, params=params)
            except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
                failure = f"{type(e).__name__}: {e}"
            else:
                if resp.status_code not in TRANSIENT_STATUS:
                    self._breaker.on_success()
                    return resp
                failure = f"HTTP {resp.status_code}"

            self._breaker.on_failure()
            if attempt + 1 < attempts:
                await asyncio.sleep(self._backoff_s(attempt))

        raise StreamError(f"block feed unavailable after {attempts} attempt(s): {failure}")

    async def fetch_blocks(self, from_height: int, limit: int) -> list[Any]:
        """Raw block objects at or above ``from_height``; ``[]`` at the tip."""

        resp = await self._get("/blocks", params={"from": from_height, "limit": limit})
        if resp.status_code in TIP_STATUS:
            return []
        if resp.status_code != 200:
            raise StreamError(f"block feed refused from={from_height}: HTTP {resp.status_code}")

        size = len(resp.content)
        if size > self.config.max_response_bytes:
            raise StreamError(f"block feed response too large: {size} bytes")

        data = resp.json()
        if not isinstance(data, list):
            raise StreamError(f"block feed response is not a list: {type(data).__name__}")
        if len(data) > limit:
            raise StreamError(f"block feed returned {len(data)} blocks for limit {limit}")
        return data
