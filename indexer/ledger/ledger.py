"""indexer.ledger.ledger

The balance ledger.

One store object, one lock, one writer. Balances are u128: they never go below
zero and never wrap. Every debit is validated before anything is written, so a
failing event leaves the ledger exactly as it was.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any

from indexer import MAX_U128
from indexer.core.events import Burn, LedgerEvent, Mint, Transfer
from indexer.core.exceptions import (
    BalanceOverflowError,
    BalanceUnderflowError,
    LedgerError,
    OutOfOrderBlockError,
    UnknownAccountError,
)


@dataclass(slots=True)
class BalanceEntry:
    account_id: str
    balance: int = 0
    # Descriptive only (fullName, schoolGrade, ...). Never read by the ledger.
    metadata: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> BalanceEntry:
        return replace(self, metadata=dict(self.metadata))


def placeholder_metadata(account_id: str) -> dict[str, Any]:
    """Metadata for accounts first seen on-chain rather than imported."""

    return {"fullName": account_id, "schoolGrade": ""}


def _check_amount(amount: int) -> None:
    if not 0 <= amount <= MAX_U128:
        raise LedgerError(f"amount out of u128 range: {amount}")


def _checked_add(balance: int, amount: int, *, account_id: str) -> int:
    _check_amount(amount)
    new = balance + amount
    if new > MAX_U128:
        raise BalanceOverflowError(f"credit of {amount} to {account_id} overflows u128 (balance {balance})")
    return new


def _checked_sub(balance: int, amount: int, *, account_id: str) -> int:
    _check_amount(amount)
    if amount > balance:
        raise BalanceUnderflowError(f"debit of {amount} from {account_id} exceeds balance {balance}")
    return balance - amount


class Ledger:
    """Account id -> balance entry, guarded by a single lock."""

    def __init__(self, entries: Iterable[BalanceEntry] = (), *, height: int | None = None) -> None:
        self._lock = threading.RLock()
        self._accounts: dict[str, BalanceEntry] = {}
        self._height = height
        for e in entries:
            if e.account_id in self._accounts:
                raise LedgerError(f"duplicate account in snapshot: {e.account_id}")
            if not 0 <= e.balance <= MAX_U128:
                raise LedgerError(f"balance out of u128 range for {e.account_id}: {e.balance}")
            self._accounts[e.account_id] = e.copy()

    # -----------------
    # Reads
    # -----------------

    @property
    def height(self) -> int | None:
        """Last block height fully reflected in the balances."""

        with self._lock:
            return self._height

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        with self._lock:
            return account_id in self._accounts

    def get(self, account_id: str) -> BalanceEntry | None:
        with self._lock:
            e = self._accounts.get(account_id)
            return e.copy() if e is not None else None

    def balance_of(self, account_id: str) -> int:
        """Balance of ``account_id``; unknown accounts hold nothing."""

        with self._lock:
            e = self._accounts.get(account_id)
            return e.balance if e is not None else 0

    def total_supply(self) -> int:
        with self._lock:
            return sum(e.balance for e in self._accounts.values())

    def snapshot(self) -> list[BalanceEntry]:
        """Consistent copy of every entry, in first-seen order."""

        with self._lock:
            return [e.copy() for e in self._accounts.values()]

    def balances(self) -> dict[str, int]:
        with self._lock:
            return {k: e.balance for k, e in self._accounts.items()}

    # -----------------
    # Writes
    # -----------------

    @contextmanager
    def exclusive(self) -> Iterator[Ledger]:
        """Hold the writer lock across several operations."""

        with self._lock:
            yield self

    def mint(self, account_id: str, amount: int) -> int:
        with self._lock:
            entry = self._accounts.get(account_id)
            current = entry.balance if entry is not None else 0
            new = _checked_add(current, amount, account_id=account_id)
            self._credit(account_id, entry, new)
            return new

    def burn(self, account_id: str, amount: int) -> int:
        with self._lock:
            entry = self._require(account_id)
            entry.balance = _checked_sub(entry.balance, amount, account_id=account_id)
            return entry.balance

    def transfer(self, from_account: str, to_account: str, amount: int) -> None:
        """Debit then credit, validated as one unit.

        Both resulting balances are computed before either is written.
        """

        with self._lock:
            src = self._require(from_account)
            new_src = _checked_sub(src.balance, amount, account_id=from_account)
            if from_account == to_account:
                return

            dst = self._accounts.get(to_account)
            new_dst = _checked_add(dst.balance if dst is not None else 0, amount, account_id=to_account)

            src.balance = new_src
            self._credit(to_account, dst, new_dst)

    def apply(self, event: LedgerEvent) -> None:
        with self._lock:
            if isinstance(event, Mint):
                self.mint(event.account, event.amount)
            elif isinstance(event, Burn):
                self.burn(event.account, event.amount)
            elif isinstance(event, Transfer):
                self.transfer(event.from_account, event.to_account, event.amount)
            else:
                raise LedgerError(f"unsupported event: {event!r}")

    def apply_block(self, height: int, events: Iterable[LedgerEvent]) -> int:
        """Apply one block's events in order and advance the height.

        Raises:
            OutOfOrderBlockError: ``height`` is not above the current height.
            LedgerError: any event violates a balance invariant.
        """

        with self._lock:
            if self._height is not None and height <= self._height:
                raise OutOfOrderBlockError(f"block {height} is not above ledger height {self._height}")
            applied = 0
            for ev in events:
                self.apply(ev)
                applied += 1
            self._height = height
            return applied

    def _require(self, account_id: str) -> BalanceEntry:
        entry = self._accounts.get(account_id)
        if entry is None:
            raise UnknownAccountError(f"debit against unknown account: {account_id}")
        return entry

    def _credit(self, account_id: str, entry: BalanceEntry | None, new_balance: int) -> None:
        if entry is None:
            self._accounts[account_id] = BalanceEntry(
                account_id=account_id,
                balance=new_balance,
                metadata=placeholder_metadata(account_id),
            )
        else:
            entry.balance = new_balance
