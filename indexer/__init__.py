"""indexer: a token ledger projected from chain logs.

Blocks go in, balances come out. Nothing is applied twice and nothing is skipped.
"""

from __future__ import annotations

__all__ = [
    "__version__",
    "EVENT_LOG_PREFIX",
    "MAX_U128",
    "DEFAULT_GENESIS_HEIGHT",
]

__version__ = "0.3.0"

# NEP-297 tagged event convention.
EVENT_LOG_PREFIX = "EVENT_JSON:"

MAX_U128 = 2**128 - 1

# Height right before the token contract was deployed on testnet.
DEFAULT_GENESIS_HEIGHT = 97362869
