"""indexer.pipeline

Wiring: restore -> source -> extract -> project -> persist.

The order of operations at startup matters:
1) restore the ledger and its height from disk
2) start the stream right after that height
3) let the consumer hand blocks to the projector in order
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from indexer.consumer import StreamConsumer
from indexer.core.client import BlockFeedClient, ClientConfig
from indexer.core.config import Config
from indexer.core.metrics import MetricsRegistry
from indexer.core.types import Block, BlockEvents
from indexer.extractor import EventExtractor, WatchSet
from indexer.ledger.projector import LedgerProjector
from indexer.ledger.store import CheckpointStore
from indexer.sources.base import BlockSource
from indexer.sources.registry import build_source


@dataclass(frozen=True, slots=True)
class RunResult:
    start_height: int
    last_height: int | None
    blocks: int
    events: int


class Indexer:
    """One indexer process: owns the ledger, the store and the source."""

    def __init__(
        self,
        config: Config,
        *,
        source: BlockSource | None = None,
        metrics: MetricsRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.metrics = metrics or MetricsRegistry()
        self.logger = logger or logging.getLogger("indexer")
        self.store = CheckpointStore.from_config(
            config.storage, config.indexer, logger=self.logger.getChild("store")
        )
        self.extractor = EventExtractor(
            WatchSet.from_config(config.indexer),
            metrics=self.metrics,
            logger=self.logger.getChild("extractor"),
        )
        self._source = source

    def _build_source(self) -> BlockSource:
        if self._source is not None:
            return self._source
        client = None
        if self.config.source.kind == "http":
            client = BlockFeedClient(self.config.source.url, ClientConfig.from_settings(self.config.client))
        return build_source(self.config.source, client=client, logger=self.logger.getChild("source"))

    async def _handle(self, block: Block) -> BlockEvents:
        if self.config.indexer.concurrency > 1:
            return await asyncio.to_thread(self.extractor.extract_block, block)
        return self.extractor.extract_block(block)

    async def run(self, *, from_height: int | None = None) -> RunResult:
        restored = self.store.restore()
        start = restored.resume_height
        if from_height is not None:
            if from_height > start:
                self.logger.warning(
                    "start_height_gap",
                    extra={"from_height": from_height, "resume_height": start, "skipped": from_height - start},
                )
            start = from_height

        projector = LedgerProjector(
            restored.ledger,
            self.store,
            metrics=self.metrics,
            logger=self.logger.getChild("projector"),
        )
        source = self._build_source()
        consumer: StreamConsumer[BlockEvents] = StreamConsumer(
            source,
            self._handle,
            projector.project,
            concurrency=self.config.indexer.concurrency,
            logger=self.logger.getChild("consumer"),
        )

        events_before = self.metrics.counter("events.applied").value
        self.logger.info(
            "indexer_starting",
            extra={
                "start_height": start,
                "contracts": ",".join(self.config.indexer.contracts),
                "concurrency": self.config.indexer.concurrency,
                "source": self.config.source.kind,
            },
        )
        try:
            blocks = await consumer.run(start)
        finally:
            await source.aclose()

        result = RunResult(
            start_height=start,
            last_height=consumer.last_height,
            blocks=blocks,
            events=self.metrics.counter("events.applied").value - events_before,
        )
        self.logger.info(
            "stream_ended",
            extra={
                "blocks": result.blocks,
                "events": result.events,
                "last_height": result.last_height,
                "metrics": self.metrics.snapshot(),
            },
        )
        return result
