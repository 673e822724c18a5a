"""indexer.core.events

The event contract is the primitive.

Token contracts announce balance changes with NEP-297 tagged log lines:

    EVENT_JSON:{"standard":"nep141","version":"1.0.0","event":"ft_mint","data":[...]}

Only the log convention is a dependency here, never contract internals.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, BeforeValidator, Field, TypeAdapter, ValidationError

from indexer import MAX_U128
from indexer.core.exceptions import ExtractionError

NEP141_STANDARD = "nep141"


class EventKind(StrEnum):
    MINT = "ft_mint"
    TRANSFER = "ft_transfer"
    BURN = "ft_burn"


# -----------------
# Ledger events
# -----------------


@dataclass(frozen=True, slots=True)
class Mint:
    kind: ClassVar[EventKind] = EventKind.MINT

    account: str
    amount: int
    memo: str | None = None


@dataclass(frozen=True, slots=True)
class Burn:
    kind: ClassVar[EventKind] = EventKind.BURN

    account: str
    amount: int
    memo: str | None = None


@dataclass(frozen=True, slots=True)
class Transfer:
    kind: ClassVar[EventKind] = EventKind.TRANSFER

    from_account: str
    to_account: str
    amount: int
    memo: str | None = None


LedgerEvent = Mint | Burn | Transfer


# -----------------
# Wire payloads
# -----------------


def _parse_u128(value: Any) -> int:
    """u128 travels as a decimal string (JSON numbers lose precision past 2**53)."""

    if not isinstance(value, str):
        raise ValueError("u128 amount must be a decimal string")
    if not value or not value.isascii() or not value.isdigit():
        raise ValueError(f"u128 amount is not a decimal string: {value!r}")
    n = int(value)
    if n > MAX_U128:
        raise ValueError(f"u128 amount out of range: {value}")
    return n


U128 = Annotated[int, BeforeValidator(_parse_u128)]
AccountId = Annotated[str, Field(min_length=1)]


class FtMintData(BaseModel):
    owner_id: AccountId
    amount: U128
    memo: str | None = None


class FtBurnData(BaseModel):
    owner_id: AccountId
    amount: U128
    memo: str | None = None


class FtTransferData(BaseModel):
    old_owner_id: AccountId
    new_owner_id: AccountId
    amount: U128
    memo: str | None = None


class _Nep141Base(BaseModel):
    standard: Literal["nep141"]
    version: str


class FtMintLog(_Nep141Base):
    event: Literal["ft_mint"]
    data: list[FtMintData]

    def to_events(self) -> list[LedgerEvent]:
        return [Mint(account=d.owner_id, amount=d.amount, memo=d.memo) for d in self.data]


class FtBurnLog(_Nep141Base):
    event: Literal["ft_burn"]
    data: list[FtBurnData]

    def to_events(self) -> list[LedgerEvent]:
        return [Burn(account=d.owner_id, amount=d.amount, memo=d.memo) for d in self.data]


class FtTransferLog(_Nep141Base):
    event: Literal["ft_transfer"]
    data: list[FtTransferData]

    def to_events(self) -> list[LedgerEvent]:
        return [
            Transfer(
                from_account=d.old_owner_id,
                to_account=d.new_owner_id,
                amount=d.amount,
                memo=d.memo,
            )
            for d in self.data
        ]


Nep141Log = Annotated[FtMintLog | FtBurnLog | FtTransferLog, Field(discriminator="event")]

_nep141_adapter = TypeAdapter(Nep141Log)


def parse_event_log(body: str) -> list[LedgerEvent] | None:
    """Decode the JSON body of a tagged log line (prefix already removed).

    Returns:
        The events in ``data`` order, or ``None`` when the log belongs to some
        other NEP standard (e.g. an NFT contract sharing the receiver).

    Raises:
        ExtractionError: the body is not JSON or does not match the NEP-141 schema.
    """

    try:
        raw = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ExtractionError(f"invalid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ExtractionError("event log is not a JSON object")
    if raw.get("standard") != NEP141_STANDARD:
        return None

    try:
        parsed = _nep141_adapter.validate_python(raw)
    except ValidationError as e:
        raise ExtractionError(f"nep141 schema mismatch: {e.error_count()} error(s)") from e
    return parsed.to_events()
