from __future__ import annotations

import pytest

from indexer.core.events import Burn, Mint, Transfer
from indexer.core.exceptions import UnknownAccountError
from indexer.core.metrics import MetricsRegistry
from indexer.core.types import BlockEvents
from indexer.ledger.projector import LedgerProjector
from indexer.ledger.store import CheckpointStore


def _projector(store: CheckpointStore) -> LedgerProjector:
    restored = store.restore()
    return LedgerProjector(restored.ledger, store, metrics=MetricsRegistry())


@pytest.mark.anyio
async def test_block_with_events_is_applied_and_persisted(store: CheckpointStore) -> None:
    p = _projector(store)
    applied = await p.project(
        BlockEvents(
            height=101,
            shard_count=4,
            events=[Mint(account="alice", amount=100), Transfer(from_account="alice", to_account="bob", amount=40)],
        )
    )

    assert applied == 2
    assert p.ledger.balances() == {"alice": 60, "bob": 40}
    assert store.read_checkpoint() == 101
    height, entries = store.read_state()
    assert height == 101
    assert {e.account_id: e.balance for e in entries} == {"alice": 60, "bob": 40}
    assert p.metrics.counter("events.applied").value == 2
    assert p.metrics.gauge("ledger.height").value == 101


@pytest.mark.anyio
async def test_empty_block_moves_only_the_checkpoint(store: CheckpointStore) -> None:
    p = _projector(store)
    await p.project(BlockEvents(height=101, shard_count=1, events=[Mint(account="a", amount=1)]))
    await p.project(BlockEvents(height=102, shard_count=1))

    assert store.read_checkpoint() == 102
    assert store.read_state()[0] == 101
    assert p.metrics.counter("blocks.processed").value == 2


@pytest.mark.anyio
async def test_already_applied_block_is_skipped(store: CheckpointStore) -> None:
    p = _projector(store)
    await p.project(BlockEvents(height=101, shard_count=1, events=[Mint(account="a", amount=1)]))
    again = await p.project(BlockEvents(height=101, shard_count=1, events=[Mint(account="a", amount=1)]))
    older = await p.project(BlockEvents(height=100, shard_count=1, events=[Mint(account="a", amount=1)]))

    assert again == older == 0
    assert p.ledger.balance_of("a") == 1


@pytest.mark.anyio
async def test_fatal_event_persists_nothing(store: CheckpointStore) -> None:
    p = _projector(store)
    await p.project(BlockEvents(height=101, shard_count=1, events=[Mint(account="a", amount=5)]))

    with pytest.raises(UnknownAccountError):
        await p.project(
            BlockEvents(height=102, shard_count=1, events=[Burn(account="a", amount=1), Burn(account="ghost", amount=1)])
        )

    assert store.read_checkpoint() == 101
    restored = store.restore()
    assert restored.resume_height == 102
    assert restored.ledger.balance_of("a") == 5
