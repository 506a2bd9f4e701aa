"""Incremental Merkle tree with a bounded history of roots.

Only the rightmost frontier of the tree is kept: for every level the most
recent left-hand node still waiting for a right sibling. Inserting a leaf
walks that frontier once, so both time and storage are O(depth). The last
``ROOT_HISTORY_SIZE`` roots are kept in a ring buffer; withdrawals may target
any of them, older roots age out.

Tree Structure:
    - Depth: 1..31 levels (capacity 2**depth leaves)
    - Hashing: HashOracle.hash_2(left, right)
    - Empty leaves: ZERO_VALUE, empty subtrees: the zero-hash table
    - Root: digest at level ``depth``
"""

import hashlib
import logging
from typing import List, Optional

from zkpool.crypto.hasher import HashOracle, get_default_hasher
from zkpool.exceptions import (
    LevelOutOfRangeError,
    MerkleTreeFullError,
    StateCorruptionError,
)
from zkpool.models.schemas import AccumulatorState
from zkpool.utils.field import ZERO_DIGEST, is_digest, reduce_to_field, validate_digest

logger = logging.getLogger(__name__)

# Digest of an empty leaf
ZERO_VALUE = reduce_to_field(hashlib.sha256(b"zkpool").digest())

ZERO_HASH_LEVELS = 32


def compute_zero_hashes(hasher: HashOracle, levels: int = ZERO_HASH_LEVELS) -> List[int]:
    """
    Build the zero-hash table.

    zeros[0] is the empty leaf, zeros[i] = hash_2(zeros[i-1], zeros[i-1]),
    i.e. the root of an empty subtree of height i.
    """
    zeros = [ZERO_VALUE]
    for _ in range(1, levels):
        zeros.append(hasher.hash_2(zeros[-1], zeros[-1]))
    return zeros


class IncrementalMerkleTree:
    """
    Append-only Merkle accumulator over commitments.

    Attributes:
        depth: Number of levels above the leaves
        capacity: Maximum number of leaves (2**depth)
        next_leaf_index: Index the next inserted leaf will get
        current_root_index: Ring slot holding the latest root
    """

    DEFAULT_DEPTH = 20
    MAX_DEPTH = 31
    ROOT_HISTORY_SIZE = 30

    def __init__(
        self,
        depth: int = DEFAULT_DEPTH,
        hasher: Optional[HashOracle] = None,
        root_history_size: int = ROOT_HISTORY_SIZE,
    ):
        """
        Initialize an empty tree.

        Args:
            depth: Tree depth, 1 <= depth <= 31
            hasher: Compression function (default: SHA-256 field hasher)
            root_history_size: Number of recent roots accepted by is_known_root

        Raises:
            ValueError: If depth or history size is invalid
        """
        if not isinstance(depth, int) or depth < 1 or depth > self.MAX_DEPTH:
            raise ValueError(f"Tree depth must be between 1 and {self.MAX_DEPTH}")
        if not isinstance(root_history_size, int) or root_history_size < 1:
            raise ValueError("Root history size must be a positive integer")

        self.depth = depth
        self.capacity = 2**depth
        self.root_history_size = root_history_size
        self.hasher = hasher if hasher is not None else get_default_hasher()

        self._zeros = compute_zero_hashes(self.hasher)

        # One pending left node per level
        self._cached_subtrees: List[int] = [self._zeros[level] for level in range(depth)]

        # Seed the ring with the empty-tree root so it is never all zero
        self._root_history: List[int] = [ZERO_DIGEST] * root_history_size
        self._root_history[0] = self._zeros[depth]
        self.current_root_index = 0
        self.next_leaf_index = 0

    def insert(self, leaf: int) -> int:
        """
        Append a leaf and record the new root.

        Args:
            leaf: Commitment digest

        Returns:
            int: Index of the inserted leaf

        Raises:
            MerkleTreeFullError: If the tree already holds 2**depth leaves
            InvalidDigestError: If leaf is not a field element
        """
        validate_digest(leaf, "leaf")
        if self.next_leaf_index >= self.capacity:
            raise MerkleTreeFullError(f"Merkle tree is full (max {self.capacity} leaves)")

        leaf_index = self.next_leaf_index
        cached = list(self._cached_subtrees)
        current_hash = leaf
        current_index = leaf_index

        for level in range(self.depth):
            if current_index % 2 == 0:
                cached[level] = current_hash
                current_hash = self.hasher.hash_2(current_hash, self._zeros[level])
            else:
                current_hash = self.hasher.hash_2(cached[level], current_hash)
            current_index //= 2

        new_root_index = (self.current_root_index + 1) % self.root_history_size
        self._cached_subtrees = cached
        self._root_history[new_root_index] = current_hash
        self.current_root_index = new_root_index
        self.next_leaf_index = leaf_index + 1

        logger.debug(f"Inserted leaf {leaf_index}, root slot {new_root_index}")
        return leaf_index

    def is_known_root(self, root: int) -> bool:
        """
        Check whether root is one of the last ``root_history_size`` roots.

        The zero digest is never known, so unwritten ring slots cannot match.
        """
        if not is_digest(root) or root == ZERO_DIGEST:
            return False

        i = self.current_root_index
        while True:
            if self._root_history[i] == root:
                return True
            if i == 0:
                i = self.root_history_size
            i -= 1
            if i == self.current_root_index:
                return False

    def zero_hash(self, level: int) -> int:
        """
        Root of an empty subtree of the given height.

        Raises:
            LevelOutOfRangeError: If level is outside [0, 31]
        """
        if not isinstance(level, int) or level < 0 or level >= ZERO_HASH_LEVELS:
            raise LevelOutOfRangeError(f"Zero-hash level must be in [0, {ZERO_HASH_LEVELS - 1}]")
        return self._zeros[level]

    @property
    def root(self) -> int:
        """Latest root."""
        return self._root_history[self.current_root_index]

    @property
    def is_full(self) -> bool:
        return self.next_leaf_index >= self.capacity

    def recent_roots(self) -> List[int]:
        """Known roots, newest first."""
        roots = []
        for offset in range(self.root_history_size):
            slot = (self.current_root_index - offset) % self.root_history_size
            if self._root_history[slot] != ZERO_DIGEST:
                roots.append(self._root_history[slot])
        return roots

    def to_state(self) -> AccumulatorState:
        """Snapshot of the persisted surface of the tree."""
        return AccumulatorState(
            depth=self.depth,
            root_history_size=self.root_history_size,
            next_leaf_index=self.next_leaf_index,
            current_root_index=self.current_root_index,
            cached_subtrees=list(self._cached_subtrees),
            root_history=list(self._root_history),
        )

    def restore(self, state: AccumulatorState) -> None:
        """
        Replace the tree contents with a snapshot.

        Raises:
            StateCorruptionError: If the snapshot does not fit this tree
        """
        if state.depth != self.depth or state.root_history_size != self.root_history_size:
            raise StateCorruptionError(
                f"Snapshot shape (depth={state.depth}, history={state.root_history_size}) "
                f"does not match tree (depth={self.depth}, history={self.root_history_size})"
            )
        if len(state.cached_subtrees) != self.depth:
            raise StateCorruptionError("Cached subtree table must have one entry per level")
        if len(state.root_history) != self.root_history_size:
            raise StateCorruptionError("Root history length does not match its capacity")
        if state.current_root_index >= self.root_history_size:
            raise StateCorruptionError("Current root index outside the root history")
        if state.next_leaf_index > self.capacity:
            raise StateCorruptionError("Leaf counter exceeds tree capacity")
        if state.root_history[state.current_root_index] == ZERO_DIGEST:
            raise StateCorruptionError("Current root slot is empty")

        self._cached_subtrees = list(state.cached_subtrees)
        self._root_history = list(state.root_history)
        self.current_root_index = state.current_root_index
        self.next_leaf_index = state.next_leaf_index

    @classmethod
    def from_state(
        cls, state: AccumulatorState, hasher: Optional[HashOracle] = None
    ) -> "IncrementalMerkleTree":
        """Rebuild a tree from a snapshot."""
        tree = cls(depth=state.depth, hasher=hasher, root_history_size=state.root_history_size)
        tree.restore(state)
        return tree

    def __len__(self) -> int:
        """Return the number of leaves in the tree."""
        return self.next_leaf_index

    def __repr__(self) -> str:
        return (
            f"IncrementalMerkleTree(depth={self.depth}, "
            f"leaves={self.next_leaf_index}/{self.capacity}, "
            f"root={self.root:#066x})"
        )
