"""indexer.ledger.projector

Applies extracted block events to the ledger, then persists.

The projector is the ledger's only writer. Blocks reach it one at a time, in
ascending height order; a block at or below the ledger height has already been
applied and is skipped. Whatever goes wrong inside ``project`` is fatal.
"""

from __future__ import annotations

import asyncio
import logging

from indexer.core.metrics import MetricsRegistry
from indexer.core.types import BlockEvents
from indexer.ledger.ledger import Ledger
from indexer.ledger.store import CheckpointStore


class LedgerProjector:
    def __init__(
        self,
        ledger: Ledger,
        store: CheckpointStore,
        *,
        metrics: MetricsRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.ledger = ledger
        self.store = store
        self.metrics = metrics or MetricsRegistry()
        self.logger = logger or logging.getLogger("indexer.projector")
        self._lock = asyncio.Lock()

    async def project(self, block: BlockEvents) -> int:
        """Apply and persist one block. Returns the number of events applied."""

        async with self._lock:
            with self.ledger.exclusive():
                current = self.ledger.height
                if current is not None and block.height <= current:
                    self.logger.warning(
                        "block_already_applied",
                        extra={"height": block.height, "ledger_height": current},
                    )
                    return 0

                applied = self.ledger.apply_block(block.height, block.events)
                entries = self.ledger.snapshot() if applied else None
                accounts = len(self.ledger)

            # snapshot is a copy; file IO runs off the event loop and outlives a cancel
            await asyncio.shield(asyncio.to_thread(self.store.save, block.height, entries))

        self.metrics.counter("blocks.processed").inc()
        self.metrics.counter("events.applied").inc(applied)
        self.metrics.gauge("ledger.height").set(block.height)
        self.metrics.gauge("ledger.accounts").set(accounts)

        self.logger.info(
            "block_processed",
            extra={"height": block.height, "shards": block.shard_count, "events": applied},
        )
        if applied:
            self.logger.debug("block_events", extra={"height": block.height, "events": [repr(e) for e in block.events]})
        return applied
