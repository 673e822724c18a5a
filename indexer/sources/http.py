"""indexer.sources.http

HTTP block feed.

Polls ``GET {url}/blocks?from=H&limit=N`` for a JSON list of blocks in ascending
height order. Heights may skip (empty slots on chain). An empty list means the
feed has no block at or above ``H`` yet: wait and ask again.

One batch is always in flight ahead of the consumer, so fetching the next
batch overlaps with processing the current one.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

from pydantic import TypeAdapter

from indexer.core.exceptions import ConfigError
from indexer.core.types import Block
from indexer.sources.base import BaseBlockSource, SourceContext
from indexer.sources.registry import register_source

_blocks_adapter = TypeAdapter(list[Block])


@register_source("http")
class HttpBlockSource(BaseBlockSource):
    def __init__(self, ctx: SourceContext) -> None:
        super().__init__(ctx)
        if ctx.client is None:
            raise ConfigError("http source requires a BlockFeedClient")
        self.client = ctx.client

    async def fetch_batch(self, from_height: int) -> list[Block]:
        data = await self.client.fetch_blocks(from_height, self.ctx.config.batch_size)
        return _blocks_adapter.validate_python(data)

    async def _iter_blocks(self, start_height: int) -> AsyncIterator[Block]:
        poll_s = self.ctx.config.poll_interval_seconds
        next_height = start_height
        pending = asyncio.create_task(self.fetch_batch(next_height))
        try:
            while True:
                batch = await pending
                if not batch:
                    self.ctx.logger.debug("source_at_tip", extra={"source": self.name, "next_height": next_height})
                    await asyncio.sleep(poll_s)
                    pending = asyncio.create_task(self.fetch_batch(next_height))
                    continue

                next_height = batch[-1].height + 1
                pending = asyncio.create_task(self.fetch_batch(next_height))
                for block in batch:
                    yield block
        finally:
            if not pending.done():
                pending.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await pending

    async def aclose(self) -> None:
        await self.client.aclose()
