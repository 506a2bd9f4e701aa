"""Value ledger used by the pool to take in deposits and pay out withdrawals."""

import logging
from typing import Dict, Protocol, runtime_checkable

from zkpool.utils.field import normalize_address

logger = logging.getLogger(__name__)


@runtime_checkable
class Ledger(Protocol):
    """Where the pool's funds live."""

    def collect(self, amount: int) -> None:
        """Credit the pool with value received alongside a deposit."""
        ...

    def refund(self, amount: int) -> None:
        """Reverse a ``collect`` for a deposit that was not committed."""
        ...

    def transfer(self, recipient: str, amount: int) -> bool:
        """Move ``amount`` from the pool to ``recipient``; False on failure."""
        ...


class InMemoryLedger:
    """
    Balance sheet kept in process memory.

    ``transfer`` is the point where control leaves the pool; subclasses
    override ``on_transfer`` to run recipient code (e.g. in tests that
    simulate a hostile recipient).
    """

    def __init__(self, pool_balance: int = 0):
        if pool_balance < 0:
            raise ValueError("Pool balance cannot be negative")
        self.pool_balance = pool_balance
        self.balances: Dict[str, int] = {}

    def collect(self, amount: int) -> None:
        self.pool_balance += amount

    def refund(self, amount: int) -> None:
        self.pool_balance -= amount

    def balance_of(self, address: str) -> int:
        return self.balances.get(normalize_address(address), 0)

    def on_transfer(self, recipient: str, amount: int) -> bool:
        """Hook executed after funds reach the recipient; False rejects them."""
        return True

    def transfer(self, recipient: str, amount: int) -> bool:
        if amount > self.pool_balance:
            logger.warning(f"Insufficient pool balance for transfer of {amount}")
            return False

        address = normalize_address(recipient)
        self.pool_balance -= amount
        self.balances[address] = self.balances.get(address, 0) + amount

        try:
            accepted = self.on_transfer(address, amount)
        except Exception:
            self._revert(address, amount)
            raise
        if not accepted:
            self._revert(address, amount)
            return False
        return True

    def _revert(self, address: str, amount: int) -> None:
        self.balances[address] -= amount
        self.pool_balance += amount

    def __repr__(self) -> str:
        return f"InMemoryLedger(pool_balance={self.pool_balance}, accounts={len(self.balances)})"
