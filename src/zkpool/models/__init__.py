"""Serializable data models."""

from zkpool.models.schemas import (
    Digest,
    AccumulatorState,
    DepositEvent,
    WithdrawalEvent,
    PoolState,
    PoolStatistics,
)

__all__ = [
    "Digest",
    "AccumulatorState",
    "DepositEvent",
    "WithdrawalEvent",
    "PoolState",
    "PoolStatistics",
]
