"""indexer.core.types

Chain-side shapes.

Pydantic models own IO boundaries (blocks arrive as JSON); dataclasses keep the
per-block hot path lean.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import AliasChoices, BaseModel, Field

from indexer.core.events import LedgerEvent


class ReceiptOutcome(BaseModel):
    """Result of one executed receipt: who received it and what it logged."""

    receiver: str = Field(validation_alias=AliasChoices("receiver", "receiver_id"))
    logs: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class Shard(BaseModel):
    outcomes: list[ReceiptOutcome] = Field(
        default_factory=list,
        validation_alias=AliasChoices("outcomes", "receipt_execution_outcomes"),
    )

    model_config = {"frozen": True}


class Block(BaseModel):
    height: int = Field(ge=0)
    shards: list[Shard] = Field(default_factory=list)

    model_config = {"frozen": True}

    def outcomes(self) -> list[ReceiptOutcome]:
        """All receipt outcomes, shard order then outcome order."""

        return [o for shard in self.shards for o in shard.outcomes]


@dataclass(frozen=True, slots=True)
class BlockEvents:
    """What one block contributed: its height and its events, in log order."""

    height: int
    shard_count: int
    events: list[LedgerEvent] = field(default_factory=list)
