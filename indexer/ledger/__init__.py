"""indexer.ledger

Balances, the single writer that moves them, and the files that remember them.
"""

from .ledger import BalanceEntry, Ledger
from .projector import LedgerProjector
from .store import CheckpointStore, RestoredState

__all__ = ["BalanceEntry", "CheckpointStore", "Ledger", "LedgerProjector", "RestoredState"]
