"""indexer.sources.base

Block sources are the indexer's only view of the chain.

Contract:
- ``blocks(start_height)`` yields blocks with height >= start, strictly ascending
- the sequence is lazy and can be consumed once
- any failure raises ``StreamError``; nothing is skipped silently

Subclasses implement ``_iter_blocks``; the base enforces the contract.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from indexer.core.client import BlockFeedClient
from indexer.core.config import SourceConfig
from indexer.core.exceptions import IndexerError, StreamError
from indexer.core.types import Block


@dataclass(frozen=True, slots=True)
class SourceContext:
    """Shared context injected into every source."""

    config: SourceConfig
    client: BlockFeedClient | None
    logger: logging.Logger


@runtime_checkable
class BlockSource(Protocol):
    name: str

    def blocks(self, start_height: int) -> AsyncIterator[Block]: ...

    async def aclose(self) -> None: ...


class BaseBlockSource(ABC):
    name: str

    def __init__(self, ctx: SourceContext) -> None:
        self.ctx = ctx
        self._consumed = False

    @abstractmethod
    def _iter_blocks(self, start_height: int) -> AsyncIterator[Block]:
        raise NotImplementedError

    async def blocks(self, start_height: int) -> AsyncIterator[Block]:
        if self._consumed:
            raise StreamError(f"{self.name} source cannot be restarted")
        self._consumed = True

        last: int | None = None
        try:
            async with aclosing(self._iter_blocks(start_height)) as it:
                async for block in it:
                    if block.height < start_height:
                        raise StreamError(f"{self.name} returned block {block.height} below start {start_height}")
                    if last is not None and block.height <= last:
                        raise StreamError(f"{self.name} returned block {block.height} after {last}")
                    last = block.height
                    yield block
        except IndexerError:
            raise
        except (httpx.HTTPError, OSError, ValueError) as e:
            raise StreamError(f"{self.name} source failed after block {last}: {type(e).__name__}: {e}") from e

    async def aclose(self) -> None:
        return None
