"""indexer.extractor

Turns receipt outcomes into ledger events.

Only outcomes addressed to a watched contract are read. Inside those, only log
lines carrying the ``EVENT_JSON:`` tag matter; everything else a contract
prints is noise.

A tagged line that does not decode is dropped, counted and logged. It never
stops the pipeline: the contract, not the indexer, owns its log format.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from indexer import EVENT_LOG_PREFIX
from indexer.core.config import IndexerConfig
from indexer.core.events import LedgerEvent, parse_event_log
from indexer.core.exceptions import ExtractionError
from indexer.core.metrics import MetricsRegistry
from indexer.core.types import Block, BlockEvents, ReceiptOutcome

_LOG_EXCERPT = 200


@runtime_checkable
class ContractFilter(Protocol):
    def watches(self, account_id: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class WatchSet:
    """The contracts whose events feed the ledger."""

    contracts: frozenset[str]

    def watches(self, account_id: str) -> bool:
        return account_id in self.contracts

    @classmethod
    def of(cls, contracts: Iterable[str]) -> WatchSet:
        return cls(contracts=frozenset(contracts))

    @classmethod
    def from_config(cls, cfg: IndexerConfig) -> WatchSet:
        return cls.of(cfg.contracts)


class EventExtractor:
    def __init__(
        self,
        watch: ContractFilter,
        *,
        metrics: MetricsRegistry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.watch = watch
        self.metrics = metrics or MetricsRegistry()
        self.logger = logger or logging.getLogger("indexer.extractor")

    def extract_outcome(self, outcome: ReceiptOutcome, *, height: int | None = None) -> list[LedgerEvent]:
        if not self.watch.watches(outcome.receiver):
            self.metrics.counter("extractor.filtered_outcomes").inc()
            return []

        out: list[LedgerEvent] = []
        for raw_line in outcome.logs:
            line = raw_line.strip()
            if not line.startswith(EVENT_LOG_PREFIX):
                continue

            body = line[len(EVENT_LOG_PREFIX) :].strip()
            try:
                events = parse_event_log(body)
            except ExtractionError as e:
                self.metrics.counter("extractor.malformed_logs").inc()
                self.logger.warning(
                    "malformed_event_log",
                    extra={
                        "height": height,
                        "receiver": outcome.receiver,
                        "error": str(e),
                        "log_excerpt": line[:_LOG_EXCERPT],
                    },
                )
                continue

            if events is None:
                self.logger.debug("foreign_standard_log", extra={"height": height, "receiver": outcome.receiver})
                continue
            out.extend(events)

        return out

    def extract_block(self, block: Block) -> BlockEvents:
        events: list[LedgerEvent] = []
        for outcome in block.outcomes():
            events.extend(self.extract_outcome(outcome, height=block.height))
        return BlockEvents(height=block.height, shard_count=len(block.shards), events=events)
