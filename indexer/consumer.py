"""indexer.consumer

Stream consumer: source -> bounded concurrent handlers -> ordered sink.

Up to ``concurrency`` block handlers run at once. They may finish in any order;
results wait in a reorder buffer and reach the sink strictly in the order the
source produced the blocks (ascending height). With ``concurrency=1`` this is
a plain serial loop.

Any error, from the source, a handler, or the sink, cancels everything still
in flight and propagates. There is no skip path: a missing block would be a
silently wrong ledger.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Generic, TypeVar

from indexer.core.types import Block
from indexer.sources.base import BlockSource

T = TypeVar("T")

BlockHandler = Callable[[Block], Awaitable[T]]
ResultSink = Callable[[T], Awaitable[object]]


class StreamConsumer(Generic[T]):
    def __init__(
        self,
        source: BlockSource,
        handler: BlockHandler[T],
        sink: ResultSink[T],
        *,
        concurrency: int = 1,
        logger: logging.Logger | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.source = source
        self.handler = handler
        self.sink = sink
        self.concurrency = concurrency
        self.logger = logger or logging.getLogger("indexer.consumer")
        self.released = 0
        self.last_height: int | None = None

    async def run(self, start_height: int) -> int:
        """Consume from ``start_height`` until the source ends. Returns blocks released."""

        inflight: deque[tuple[int, asyncio.Task[T]]] = deque()
        pulling: asyncio.Task[Block | None] | None = None
        exhausted = False

        async with aclosing(self.source.blocks(start_height)) as blocks:
            try:
                while not exhausted or inflight:
                    if pulling is None and not exhausted and len(inflight) < self.concurrency:
                        pulling = asyncio.create_task(_next_block(blocks), name="next-block")

                    # the next block and every running handler race; a finished
                    # head is released even while the source is idle at the tip
                    waiting: list[asyncio.Future[object]] = [t for _, t in inflight if not t.done()]
                    if pulling is not None:
                        waiting.append(pulling)
                    if waiting and not (inflight and inflight[0][1].done()):
                        done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
                        for t in done:
                            # fail fast, even when the failed handler is not at the head
                            if t is not pulling and not t.cancelled() and t.exception() is not None:
                                t.result()

                    if pulling is not None and pulling.done():
                        block = pulling.result()
                        pulling = None
                        if block is None:
                            exhausted = True
                        else:
                            task = asyncio.create_task(self.handler(block), name=f"block-{block.height}")
                            inflight.append((block.height, task))

                    await self._release(inflight)
            except BaseException:
                pending = [t for _, t in inflight]
                if pulling is not None:
                    pending.append(pulling)
                for t in pending:
                    t.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                raise

        return self.released

    async def _release(self, inflight: deque[tuple[int, asyncio.Task[T]]]) -> None:
        if inflight and not inflight[0][1].done() and any(t.done() for _, t in inflight):
            self.logger.debug(
                "reorder_buffered",
                extra={"waiting_on": inflight[0][0], "buffered": sum(1 for _, t in inflight if t.done())},
            )

        while inflight and inflight[0][1].done():
            height, task = inflight.popleft()
            result = task.result()
            await self.sink(result)
            self.released += 1
            self.last_height = height


async def _next_block(blocks: AsyncIterator[Block]) -> Block | None:
    try:
        return await anext(blocks)
    except StopAsyncIteration:
        return None
