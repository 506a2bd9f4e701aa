"""Full-tree Merkle witnesses built from the ordered list of deposits.

A withdrawer reconstructs the tree off-pool from every deposited commitment
(in leaf order), then takes the authentication path of their own leaf as part
of the proof witness. Missing right-hand nodes are filled with the same zero
hashes the incremental tree uses, so both produce identical roots.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from zkpool.core.merkle_tree import compute_zero_hashes
from zkpool.crypto.hasher import HashOracle, get_default_hasher
from zkpool.exceptions import InvalidLeafIndexError, MerkleTreeFullError
from zkpool.utils.field import validate_digest


@dataclass
class MerkleProof:
    """Merkle inclusion proof."""

    leaf: int
    leaf_index: int
    path_elements: List[int] = field(default_factory=list)  # sibling per level
    path_indices: List[int] = field(default_factory=list)  # 0 = node is left child, 1 = right
    root: Optional[int] = None

    def verify(self, root: Optional[int] = None, hasher: Optional[HashOracle] = None) -> bool:
        """Check that the path leads from the leaf to root (or the stored root)."""
        expected = root if root is not None else self.root
        if expected is None:
            return False
        try:
            computed = compute_root(self.leaf, self.path_elements, self.path_indices, hasher)
        except ValueError:
            return False
        return computed == expected


def build_levels(
    leaves: Sequence[int], depth: int, hasher: Optional[HashOracle] = None
) -> List[List[int]]:
    """
    Hash every level of the tree.

    Returns:
        List of ``depth + 1`` levels; level 0 is the leaves, the last level
        holds the single root.

    Raises:
        MerkleTreeFullError: If there are more than 2**depth leaves
    """
    hasher = hasher if hasher is not None else get_default_hasher()
    if len(leaves) > 2**depth:
        raise MerkleTreeFullError(f"{len(leaves)} leaves do not fit a tree of depth {depth}")

    zeros = compute_zero_hashes(hasher)
    current = [validate_digest(leaf, "leaf") for leaf in leaves]
    levels = [current]

    for level in range(depth):
        if len(current) % 2 == 1:
            current = current + [zeros[level]]
        parents = [
            hasher.hash_2(current[i], current[i + 1]) for i in range(0, len(current), 2)
        ]
        levels.append(parents)
        current = parents

    if not levels[-1]:
        levels[-1] = [zeros[depth]]
    return levels


def compute_full_root(
    leaves: Sequence[int], depth: int, hasher: Optional[HashOracle] = None
) -> int:
    """Root of a tree holding ``leaves`` padded with zero hashes."""
    return build_levels(leaves, depth, hasher)[-1][0]


def generate_proof(
    leaves: Sequence[int],
    leaf_index: int,
    depth: int,
    hasher: Optional[HashOracle] = None,
) -> MerkleProof:
    """
    Authentication path for the leaf at ``leaf_index``.

    Raises:
        InvalidLeafIndexError: If the index is not a populated leaf
    """
    if leaf_index < 0 or leaf_index >= len(leaves):
        raise InvalidLeafIndexError(f"Invalid leaf index: {leaf_index}")

    hasher = hasher if hasher is not None else get_default_hasher()
    zeros = compute_zero_hashes(hasher)
    levels = build_levels(leaves, depth, hasher)

    path_elements = []
    path_indices = []
    position = leaf_index

    for level in range(depth):
        nodes = levels[level]
        sibling_position = position ^ 1
        sibling = nodes[sibling_position] if sibling_position < len(nodes) else zeros[level]
        path_elements.append(sibling)
        path_indices.append(position & 1)
        position >>= 1

    return MerkleProof(
        leaf=leaves[leaf_index],
        leaf_index=leaf_index,
        path_elements=path_elements,
        path_indices=path_indices,
        root=levels[-1][0],
    )


def compute_root(
    leaf: int,
    path_elements: Sequence[int],
    path_indices: Sequence[int],
    hasher: Optional[HashOracle] = None,
) -> int:
    """
    Fold a leaf up its authentication path.

    Raises:
        ValueError: If the path is malformed
    """
    hasher = hasher if hasher is not None else get_default_hasher()
    if len(path_elements) != len(path_indices):
        raise ValueError("Path elements and indices must have the same length")

    current = validate_digest(leaf, "leaf")
    for sibling, side in zip(path_elements, path_indices):
        validate_digest(sibling, "path element")
        if side == 0:
            current = hasher.hash_2(current, sibling)
        elif side == 1:
            current = hasher.hash_2(sibling, current)
        else:
            raise ValueError(f"Path index must be 0 or 1, got {side!r}")
    return current
