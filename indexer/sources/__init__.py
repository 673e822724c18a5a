"""indexer.sources

Where blocks come from: an HTTP block feed in production, a JSON-lines file for
replay and tests.
"""

from .base import BaseBlockSource, BlockSource, SourceContext
from .registry import build_source, get_source, list_sources, register_source

__all__ = [
    "BaseBlockSource",
    "BlockSource",
    "SourceContext",
    "build_source",
    "get_source",
    "list_sources",
    "register_source",
]
