"""indexer.sources.file

JSON-lines block file: one block object per line, ascending heights.

Used for replays and tests. With ``follow`` the source keeps reading as lines
are appended, like ``tail -f``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from indexer.core.exceptions import StreamError
from indexer.core.types import Block
from indexer.sources.base import BaseBlockSource
from indexer.sources.registry import register_source


@register_source("file")
class FileBlockSource(BaseBlockSource):
    async def _iter_blocks(self, start_height: int) -> AsyncIterator[Block]:
        cfg = self.ctx.config
        path = cfg.path
        if not path.exists():
            raise StreamError(f"block file not found: {path}")

        with path.open("r", encoding="utf-8") as f:
            buf = ""
            lineno = 0
            while True:
                chunk = f.readline()
                if not chunk:
                    if not cfg.follow:
                        return
                    await asyncio.sleep(cfg.poll_interval_seconds)
                    continue

                buf += chunk
                if not buf.endswith("\n") and cfg.follow:
                    # writer is mid-line; wait for the rest
                    continue

                line, buf = buf.strip(), ""
                lineno += 1
                if not line:
                    continue

                try:
                    block = Block.model_validate_json(line)
                except ValueError as e:
                    raise StreamError(f"{path}:{lineno}: invalid block: {e}") from e

                if block.height < start_height:
                    continue
                yield block
                await asyncio.sleep(0)
