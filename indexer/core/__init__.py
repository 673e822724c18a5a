"""indexer.core

Core primitives.

If a module needs to exist, it should probably depend only on this package.
"""

from .config import Config
from .events import Burn, EventKind, LedgerEvent, Mint, Transfer, parse_event_log
from .exceptions import IndexerError
from .metrics import MetricsRegistry
from .types import Block, BlockEvents, ReceiptOutcome, Shard

__all__ = [
    "Block",
    "BlockEvents",
    "Burn",
    "Config",
    "EventKind",
    "IndexerError",
    "LedgerEvent",
    "MetricsRegistry",
    "Mint",
    "ReceiptOutcome",
    "Shard",
    "Transfer",
    "parse_event_log",
]
