"""Storage layer for persistent data."""

from zkpool.storage.database import (
    DatabaseManager,
    PoolStateRecord,
    RootHistorySlot,
    CachedSubtree,
    Commitment,
    Nullifier,
    Withdrawal,
    Base,
    get_db_manager,
    reset_db_manager,
)

__all__ = [
    "DatabaseManager",
    "PoolStateRecord",
    "RootHistorySlot",
    "CachedSubtree",
    "Commitment",
    "Nullifier",
    "Withdrawal",
    "Base",
    "get_db_manager",
    "reset_db_manager",
]
