"""indexer.ledger.store

Checkpoint and snapshot persistence.

Three files live in the data directory:

- ``state.json``: ledger snapshot *and* the height it reflects, one record.
  Written atomically (temp file + rename). This is what restarts trust.
- ``data.json``: the same accounts as a bare JSON array, for anything that
  reads balances without caring about heights.
- ``last_block.txt``: last processed height, plain integer, every block.

Write order is state, export, checkpoint. A crash between any two of them is
resolved at startup by resuming after the higher of the two heights, so a block
is never applied twice.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_serializer

from indexer.core.config import IndexerConfig, StorageConfig
from indexer.core.events import U128
from indexer.core.exceptions import CorruptStateError, LedgerError, PersistenceError
from indexer.ledger.ledger import BalanceEntry, Ledger


class BalanceRecord(BaseModel):
    """One snapshot row. Unknown keys are metadata and survive a round trip."""

    account_id: str = Field(alias="accountId", min_length=1)
    balance: U128

    model_config = {"extra": "allow", "populate_by_name": True}

    @field_serializer("balance")
    def serialize_balance(self, v: int) -> str:
        return str(v)

    def to_entry(self) -> BalanceEntry:
        return BalanceEntry(account_id=self.account_id, balance=self.balance, metadata=dict(self.model_extra or {}))

    @classmethod
    def from_entry(cls, e: BalanceEntry) -> BalanceRecord:
        return cls.model_validate({**e.metadata, "accountId": e.account_id, "balance": str(e.balance)})


class StateRecord(BaseModel):
    height: int = Field(ge=0)
    accounts: list[BalanceRecord]


_records_adapter = TypeAdapter(list[BalanceRecord])


def _dump_records(entries: list[BalanceEntry]) -> list[dict[str, Any]]:
    return [BalanceRecord.from_entry(e).model_dump(mode="json", by_alias=True) for e in entries]


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers see the old file or the new one."""

    tmp = path.with_name(f".{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp.open("w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise PersistenceError(f"failed to write {path}: {e}") from e

    # directory entry durability; not every platform allows opening a directory
    with contextlib.suppress(OSError):
        fd = os.open(path.parent, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise PersistenceError(f"failed to read {path}: {e}") from e


@dataclass(frozen=True, slots=True)
class RestoredState:
    ledger: Ledger
    checkpoint: int | None
    state_height: int | None
    resume_height: int


class CheckpointStore:
    def __init__(
        self,
        data_dir: Path,
        *,
        genesis_height: int,
        snapshot_file: str = "data.json",
        checkpoint_file: str = "last_block.txt",
        state_file: str = "state.json",
        logger: logging.Logger | None = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.genesis_height = genesis_height
        self.snapshot_path = self.data_dir / snapshot_file
        self.checkpoint_path = self.data_dir / checkpoint_file
        self.state_path = self.data_dir / state_file
        self.logger = logger or logging.getLogger("indexer.store")

    @classmethod
    def from_config(cls, storage: StorageConfig, indexer: IndexerConfig, *, logger: logging.Logger | None = None) -> CheckpointStore:
        return cls(
            storage.data_dir,
            genesis_height=indexer.genesis_height,
            snapshot_file=storage.snapshot_file,
            checkpoint_file=storage.checkpoint_file,
            state_file=storage.state_file,
            logger=logger,
        )

    # -----------------
    # Checkpoint
    # -----------------

    def read_checkpoint(self) -> int | None:
        raw = _read_text(self.checkpoint_path)
        if raw is None or not raw.strip():
            return None
        try:
            height = int(raw.strip())
        except ValueError as e:
            raise CorruptStateError(f"checkpoint is not an integer: {self.checkpoint_path}") from e
        if height < 0:
            raise CorruptStateError(f"checkpoint is negative: {height}")
        return height

    def write_checkpoint(self, height: int) -> None:
        atomic_write_text(self.checkpoint_path, str(height))

    # -----------------
    # Snapshot
    # -----------------

    def read_snapshot(self) -> list[BalanceEntry] | None:
        """Read the bare ``data.json`` array, if any."""

        raw = _read_text(self.snapshot_path)
        if raw is None:
            return None
        try:
            records = _records_adapter.validate_json(raw)
        except ValidationError as e:
            raise CorruptStateError(f"snapshot does not match schema: {self.snapshot_path}: {e}") from e
        return [r.to_entry() for r in records]

    def write_snapshot(self, entries: list[BalanceEntry]) -> None:
        atomic_write_text(self.snapshot_path, json.dumps(_dump_records(entries), indent=2, ensure_ascii=False))

    def read_state(self) -> tuple[int, list[BalanceEntry]] | None:
        raw = _read_text(self.state_path)
        if raw is None:
            return None
        try:
            state = StateRecord.model_validate_json(raw)
        except ValidationError as e:
            raise CorruptStateError(f"state record does not match schema: {self.state_path}: {e}") from e
        return state.height, [r.to_entry() for r in state.accounts]

    def write_state(self, height: int, entries: list[BalanceEntry]) -> None:
        payload = {"height": height, "accounts": _dump_records(entries)}
        atomic_write_text(self.state_path, json.dumps(payload, ensure_ascii=False))

    # -----------------
    # Lifecycle
    # -----------------

    def save(self, height: int, entries: list[BalanceEntry] | None) -> None:
        """Persist one processed block.

        ``entries`` is the full ledger snapshot when the block changed it, else
        ``None`` and only the checkpoint moves.
        """

        if entries is not None:
            self.write_state(height, entries)
            self.write_snapshot(entries)
        self.write_checkpoint(height)

    def restore(self) -> RestoredState:
        checkpoint = self.read_checkpoint()
        state = self.read_state()

        state_height: int | None = None
        if state is not None:
            state_height, entries = state
            source = "state"
        else:
            snapshot = self.read_snapshot()
            entries = snapshot or []
            source = "snapshot" if snapshot is not None else "empty"

        base = checkpoint if checkpoint is not None else self.genesis_height
        if state_height is not None and state_height > base:
            self.logger.warning(
                "checkpoint_behind_state",
                extra={"checkpoint": checkpoint, "state_height": state_height},
            )
            base = state_height

        try:
            ledger = Ledger(entries, height=base)
        except LedgerError as e:
            raise CorruptStateError(str(e)) from e

        self.logger.info(
            "ledger_restored",
            extra={
                "source": source,
                "accounts": len(ledger),
                "checkpoint": checkpoint,
                "state_height": state_height,
                "resume_height": base + 1,
            },
        )
        return RestoredState(ledger=ledger, checkpoint=checkpoint, state_height=state_height, resume_height=base + 1)
