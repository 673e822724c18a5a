"""indexer.core.exceptions

Errors are part of the interface.

Every fatal condition in the indexer is an ``IndexerError``. The process stops;
the checkpoint on disk says where to start again.
"""

from __future__ import annotations


class IndexerError(Exception):
    """Base exception for the ledger indexer."""


class ConfigError(IndexerError):
    """Configuration is missing, invalid, or inconsistent."""


class StreamError(IndexerError):
    """The block stream failed or violated its ordering contract."""


class ExtractionError(IndexerError):
    """A tagged log line could not be decoded into events."""


class LedgerError(IndexerError):
    """Ledger invariant violated. The ledger no longer matches the chain."""


class BalanceOverflowError(LedgerError):
    """Credit would push a balance past 2**128 - 1."""


class BalanceUnderflowError(LedgerError):
    """Debit larger than the balance it is drawn from."""


class UnknownAccountError(LedgerError):
    """Debit against an account the ledger has never seen."""


class OutOfOrderBlockError(LedgerError):
    """Block released to the projector out of height order."""


class PersistenceError(IndexerError):
    """Snapshot or checkpoint could not be read or written."""


class CorruptStateError(PersistenceError):
    """Persisted snapshot or checkpoint exists but cannot be parsed."""
