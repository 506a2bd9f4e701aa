"""Pydantic data models for the shielded pool."""

from datetime import datetime
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer

from zkpool.utils.encoding import digest_to_hex, hex_to_digest
from zkpool.utils.field import validate_digest


def _parse_digest(value: Any) -> int:
    """Accept either an int or a hex string."""
    if isinstance(value, str):
        return hex_to_digest(value)
    return validate_digest(value)


# Field element, held as int and rendered as 0x-hex in JSON
Digest = Annotated[
    int,
    BeforeValidator(_parse_digest),
    PlainSerializer(digest_to_hex, return_type=str, when_used="json"),
]


class AccumulatorState(BaseModel):
    """Everything needed to resume an incremental Merkle tree."""
    depth: int = Field(..., ge=1, lt=32, description="Tree depth")
    root_history_size: int = Field(..., ge=1, description="Ring buffer capacity")
    next_leaf_index: int = Field(..., ge=0, description="Index of the next leaf")
    current_root_index: int = Field(..., ge=0, description="Ring slot of the latest root")
    cached_subtrees: List[Digest] = Field(..., description="Pending left hash per level")
    root_history: List[Digest] = Field(..., description="Ring of recent roots")


class DepositEvent(BaseModel):
    """Emitted for every accepted deposit."""
    commitment: Digest
    leaf_index: int = Field(..., ge=0)
    timestamp: datetime


class WithdrawalEvent(BaseModel):
    """Emitted for every completed withdrawal."""
    recipient: str = Field(..., description="Recipient address")
    nullifier_hash: Digest
    amount: int = Field(..., gt=0)
    timestamp: Optional[datetime] = None


class PoolState(BaseModel):
    """Full persisted surface of a pool."""
    denomination: int = Field(..., gt=0)
    accumulator: AccumulatorState
    commitments: List[Digest] = Field(default_factory=list)
    nullifier_hashes: List[Digest] = Field(default_factory=list)


class PoolStatistics(BaseModel):
    """Statistics about the pool."""
    denomination: int
    tree_depth: int
    num_deposits: int = 0
    num_withdrawals: int = 0
    capacity: int = 0
    current_root: Digest
    last_update: datetime = Field(default_factory=datetime.utcnow)
