"""Shielded pool: fixed-denomination deposits and zero-knowledge withdrawals.

Transaction Flow:

    DEPOSIT:
        1. Depositor computes commitment = hash_2(nullifier, secret) off-pool
        2. Pool rejects known commitments and any value other than the denomination
        3. Commitment is appended to the incremental Merkle tree
        4. Deposit event (commitment, leaf index, timestamp) is recorded

    WITHDRAWAL:
        1. Root must be one of the recent tree roots
        2. Nullifier hash must not have been spent
        3. Proof must verify against [root, nullifier_hash, recipient]
        4. Nullifier hash is marked spent, denomination is paid to recipient
        5. A failed payout unmarks the nullifier hash

Key Invariants:
    - Each commitment is inserted at most once, at a fixed leaf index
    - Each nullifier hash is spent at most once
    - A failed operation leaves tree, sets and storage unchanged
    - No operation can be entered while another is in flight
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Set

from zkpool.config import PoolSettings, get_settings
from zkpool.core.ledger import InMemoryLedger, Ledger
from zkpool.core.merkle_proof import MerkleProof, compute_full_root, generate_proof
from zkpool.core.merkle_tree import IncrementalMerkleTree
from zkpool.crypto.hasher import HashOracle
from zkpool.crypto.verifier import Verifier
from zkpool.exceptions import (
    DuplicateCommitmentError,
    InvalidProofError,
    NullifierAlreadyUsedError,
    ReentrancyError,
    StateCorruptionError,
    StorageError,
    TransferFailedError,
    UnknownCommitmentError,
    UnknownRootError,
    WrongDenominationError,
)
from zkpool.models.schemas import (
    DepositEvent,
    PoolState,
    PoolStatistics,
    WithdrawalEvent,
)
from zkpool.storage.database import DatabaseManager
from zkpool.utils.encoding import digest_to_hex
from zkpool.utils.field import bytes_to_digest, encode_address, normalize_address, validate_digest

logger = logging.getLogger(__name__)


class ShieldedPool:
    """
    Deposit/withdraw state machine over one accumulator.

    Owns the Merkle tree, the commitment set and the nullifier set; they are
    only mutated through ``deposit`` and ``withdraw``. When a
    ``DatabaseManager`` is attached every accepted operation is written
    through before it is reported as successful.
    """

    def __init__(
        self,
        verifier: Verifier,
        denomination: int,
        tree_depth: int = IncrementalMerkleTree.DEFAULT_DEPTH,
        hasher: Optional[HashOracle] = None,
        ledger: Optional[Ledger] = None,
        root_history_size: int = IncrementalMerkleTree.ROOT_HISTORY_SIZE,
        db: Optional[DatabaseManager] = None,
    ):
        """
        Initialize an empty pool.

        Args:
            verifier: Proof verifier for withdrawals
            denomination: Exact value accepted per deposit and paid per withdrawal
            tree_depth: Depth of the commitment tree
            hasher: Compression function shared with the circuit
            ledger: Holder of pool funds (default: in-memory ledger)
            root_history_size: Number of recent roots accepted for withdrawal
            db: Optional database the pool writes through to

        Raises:
            ValueError: If denomination or tree parameters are invalid
            StorageError: If the database already holds a pool or cannot be read
        """
        if not isinstance(denomination, int) or denomination <= 0:
            raise ValueError("Denomination must be a positive integer")

        self.verifier = verifier
        self.denomination = denomination
        self.ledger = ledger if ledger is not None else InMemoryLedger()
        self.tree = IncrementalMerkleTree(
            depth=tree_depth, hasher=hasher, root_history_size=root_history_size
        )
        self.db = db

        self._leaves: List[int] = []
        self._commitments: Dict[int, int] = {}  # commitment -> leaf index
        self._nullifier_hashes: Set[int] = set()
        self.deposits: List[DepositEvent] = []
        self.withdrawals: List[WithdrawalEvent] = []

        self._lock = threading.Lock()
        self._entered_by: Optional[int] = None

        if db is not None:
            with db.get_session() as session:
                if db.load_pool_state(session) is not None:
                    raise StorageError("Database already holds a pool; use ShieldedPool.load()")
                db.save_pool_state(session, self.state())

    @classmethod
    def from_settings(
        cls,
        verifier: Verifier,
        settings: Optional[PoolSettings] = None,
        hasher: Optional[HashOracle] = None,
        ledger: Optional[Ledger] = None,
        db: Optional[DatabaseManager] = None,
    ) -> "ShieldedPool":
        """Open the pool stored in ``db`` or create one from settings."""
        settings = settings if settings is not None else get_settings()
        if db is not None:
            with db.get_session() as session:
                exists = db.load_pool_state(session) is not None
            if exists:
                return cls.load(db, verifier, hasher=hasher, ledger=ledger)
        return cls(
            verifier=verifier,
            denomination=settings.denomination,
            tree_depth=settings.tree_depth,
            hasher=hasher,
            ledger=ledger,
            root_history_size=settings.root_history_size,
            db=db,
        )

    @classmethod
    def load(
        cls,
        db: DatabaseManager,
        verifier: Verifier,
        hasher: Optional[HashOracle] = None,
        ledger: Optional[Ledger] = None,
        check_integrity: bool = False,
    ) -> "ShieldedPool":
        """
        Restore a pool persisted in ``db``.

        Args:
            check_integrity: Recompute the root from every stored leaf and
                compare it with the stored root (O(n) hashing)

        Raises:
            StorageError: If the database holds no pool
            StateCorruptionError: If the stored state is inconsistent
        """
        with db.get_session() as session:
            state = db.load_pool_state(session)
            if state is None:
                raise StorageError("No pool stored in database")
            commitment_rows = db.get_commitments(session)
            withdrawal_rows = db.get_withdrawals(session)

        pool = cls.__new__(cls)
        pool.verifier = verifier
        pool.denomination = state.denomination
        pool.ledger = ledger if ledger is not None else InMemoryLedger()
        pool.tree = IncrementalMerkleTree.from_state(state.accumulator, hasher=hasher)
        pool.db = db
        pool._leaves = list(state.commitments)
        pool._commitments = {commitment: index for index, commitment in enumerate(state.commitments)}
        pool._nullifier_hashes = set(state.nullifier_hashes)
        pool.deposits = [
            DepositEvent(
                commitment=bytes_to_digest(row.commitment_hash),
                leaf_index=row.leaf_index,
                timestamp=row.timestamp,
            )
            for row in commitment_rows
        ]
        pool.withdrawals = [
            WithdrawalEvent(
                recipient=row.recipient,
                nullifier_hash=bytes_to_digest(row.nullifier_hash),
                amount=row.amount,
                timestamp=row.timestamp,
            )
            for row in withdrawal_rows
        ]
        pool._lock = threading.Lock()
        pool._entered_by = None

        if len(pool._commitments) != len(pool._leaves):
            raise StateCorruptionError("Stored commitments contain duplicates")
        if check_integrity and pool.compute_full_root() != pool.tree.root:
            raise StateCorruptionError("Stored leaves do not hash to the stored root")

        logger.info(
            f"Loaded pool: {len(pool._leaves)} deposits, "
            f"{len(pool._nullifier_hashes)} withdrawals, root {digest_to_hex(pool.root)}"
        )
        return pool

    @contextmanager
    def _non_reentrant(self, operation: str) -> Iterator[None]:
        """Serialize operations and reject calls made from inside one."""
        if self._entered_by == threading.get_ident():
            logger.warning(f"Re-entrant {operation} rejected")
            raise ReentrancyError(f"{operation} called while another operation is in progress")
        with self._lock:
            self._entered_by = threading.get_ident()
            try:
                yield
            finally:
                self._entered_by = None

    def deposit(self, commitment: int, value_sent: int) -> int:
        """
        Insert a commitment into the pool.

        Args:
            commitment: hash_2(nullifier, secret) of a fresh note
            value_sent: Value attached to the deposit

        Returns:
            int: Leaf index of the commitment

        Raises:
            DuplicateCommitmentError: If the commitment was already deposited
            WrongDenominationError: If value_sent differs from the denomination
            MerkleTreeFullError: If the tree is at capacity
            StorageError: If the write-through fails (nothing is kept)
        """
        with self._non_reentrant("deposit"):
            validate_digest(commitment, "commitment")
            if commitment in self._commitments:
                logger.warning(f"Duplicate commitment {digest_to_hex(commitment)}")
                raise DuplicateCommitmentError(f"Commitment {digest_to_hex(commitment)} already deposited")
            if value_sent != self.denomination:
                logger.warning(f"Deposit of {value_sent} rejected, denomination is {self.denomination}")
                raise WrongDenominationError(
                    f"Deposit value must be exactly {self.denomination}, got {value_sent}"
                )

            snapshot = self.tree.to_state()
            leaf_index = self.tree.insert(commitment)
            event = DepositEvent(commitment=commitment, leaf_index=leaf_index, timestamp=datetime.utcnow())

            try:
                self.ledger.collect(value_sent)
                try:
                    if self.db is not None:
                        with self.db.get_session() as session:
                            self.db.record_deposit(session, self.tree.to_state(), self.denomination, event)
                except StorageError:
                    self.ledger.refund(value_sent)
                    raise
            except Exception:
                logger.error(f"Rolling back deposit at leaf {leaf_index}")
                self.tree.restore(snapshot)
                raise

            self._leaves.append(commitment)
            self._commitments[commitment] = leaf_index
            self.deposits.append(event)

            logger.info(f"Deposit accepted at leaf {leaf_index}, root {digest_to_hex(self.tree.root)}")
            return leaf_index

    def withdraw(self, proof: bytes, root: int, nullifier_hash: int, recipient: str) -> WithdrawalEvent:
        """
        Spend a note to ``recipient``.

        Args:
            proof: Proof bytes for the withdrawal circuit
            root: Tree root the proof was made against
            nullifier_hash: hash_1(nullifier) of the note being spent
            recipient: Address receiving the denomination

        Returns:
            WithdrawalEvent: The recorded withdrawal

        Raises:
            InvalidAddressError: If recipient is not an address
            UnknownRootError: If root is not among the recent roots
            NullifierAlreadyUsedError: If the note was already spent
            InvalidProofError: If the proof does not verify
            TransferFailedError: If the payout failed (nothing is kept)
            StorageError: If the rows cannot be staged (nothing is kept), or
                cannot be committed after the payout (the note stays spent)
        """
        with self._non_reentrant("withdraw"):
            recipient_digest = encode_address(recipient)
            recipient = normalize_address(recipient)
            validate_digest(nullifier_hash, "nullifier hash")

            if not self.tree.is_known_root(root):
                logger.warning(f"Withdrawal against unknown root {root!r}")
                raise UnknownRootError("Cannot find your merkle root")
            if nullifier_hash in self._nullifier_hashes:
                logger.warning(f"Double-spend attempt with nullifier hash {digest_to_hex(nullifier_hash)}")
                raise NullifierAlreadyUsedError(
                    f"Nullifier hash {digest_to_hex(nullifier_hash)} has already been spent"
                )

            public_inputs = [root, nullifier_hash, recipient_digest]
            if not self.verifier.verify(proof, public_inputs):
                logger.warning(f"Invalid withdrawal proof for nullifier hash {digest_to_hex(nullifier_hash)}")
                raise InvalidProofError("Invalid withdraw proof")

            event = WithdrawalEvent(
                recipient=recipient,
                nullifier_hash=nullifier_hash,
                amount=self.denomination,
                timestamp=datetime.utcnow(),
            )

            # Storage rows are flushed but stay uncommitted until the payout succeeds.
            self._nullifier_hashes.add(nullifier_hash)
            session = self.db.get_session() if self.db is not None else None
            try:
                if session is not None:
                    self.db.stage_withdrawal(session, event)
                self._pay_out(recipient)
            except Exception:
                logger.error(f"Withdrawal failed, releasing nullifier hash {digest_to_hex(nullifier_hash)}")
                self._nullifier_hashes.discard(nullifier_hash)
                if session is not None:
                    session.rollback()
                    session.close()
                raise

            if session is not None:
                try:
                    self.db.commit_withdrawal(session)
                except StorageError:
                    # Funds already left the pool; the note must stay spent.
                    logger.error(
                        f"Payout to {recipient} completed but was not persisted; "
                        f"nullifier hash {digest_to_hex(nullifier_hash)} stays spent"
                    )
                    raise
                finally:
                    session.close()

            self.withdrawals.append(event)
            logger.info(f"Withdrawal of {self.denomination} to {recipient} completed")
            return event

    def _pay_out(self, recipient: str) -> None:
        try:
            paid = self.ledger.transfer(recipient, self.denomination)
        except Exception as e:
            raise TransferFailedError(f"Transfer to {recipient} failed: {e}") from e
        if not paid:
            raise TransferFailedError(f"Transfer to {recipient} failed")

    @property
    def root(self) -> int:
        """Latest tree root."""
        return self.tree.root

    def is_known_root(self, root: int) -> bool:
        return self.tree.is_known_root(root)

    def is_spent(self, nullifier_hash: int) -> bool:
        return nullifier_hash in self._nullifier_hashes

    def has_commitment(self, commitment: int) -> bool:
        return commitment in self._commitments

    @property
    def leaves(self) -> List[int]:
        """Commitments in leaf order."""
        return list(self._leaves)

    def get_merkle_proof(self, leaf_index: int) -> MerkleProof:
        """Authentication path for a deposited leaf against the current root."""
        return generate_proof(self._leaves, leaf_index, self.tree.depth, self.tree.hasher)

    def leaf_index_of(self, commitment: int) -> int:
        """
        Leaf index a commitment was inserted at.

        Raises:
            UnknownCommitmentError: If the commitment was never deposited
        """
        try:
            return self._commitments[commitment]
        except KeyError:
            raise UnknownCommitmentError(f"Commitment {commitment!r} has not been deposited") from None

    def get_commitment_proof(self, commitment: int) -> MerkleProof:
        """Authentication path for a deposited commitment, looked up by value."""
        return self.get_merkle_proof(self.leaf_index_of(commitment))

    def compute_full_root(self) -> int:
        """Root recomputed from every leaf."""
        return compute_full_root(self._leaves, self.tree.depth, self.tree.hasher)

    def state(self) -> PoolState:
        """Serializable snapshot of the pool."""
        return PoolState(
            denomination=self.denomination,
            accumulator=self.tree.to_state(),
            commitments=list(self._leaves),
            nullifier_hashes=sorted(self._nullifier_hashes),
        )

    def statistics(self) -> PoolStatistics:
        """Get pool statistics."""
        return PoolStatistics(
            denomination=self.denomination,
            tree_depth=self.tree.depth,
            num_deposits=len(self._leaves),
            num_withdrawals=len(self._nullifier_hashes),
            capacity=self.tree.capacity,
            current_root=self.tree.root,
        )

    def __repr__(self) -> str:
        return (
            f"ShieldedPool(denomination={self.denomination}, "
            f"deposits={len(self._leaves)}, withdrawals={len(self._nullifier_hashes)})"
        )
