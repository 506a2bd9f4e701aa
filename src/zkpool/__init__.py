"""Main package initialization."""

__version__ = "0.1.0"
__author__ = "ZK-Pool Team"
__description__ = "Fixed-denomination shielded pool with an incremental Merkle accumulator"

from .core.merkle_tree import IncrementalMerkleTree
from .core.merkle_proof import MerkleProof
from .core.note import Note
from .core.ledger import Ledger, InMemoryLedger
from .core.pool import ShieldedPool
from .crypto.hasher import HashOracle, Sha256FieldHasher
from .crypto.verifier import Verifier, WitnessVerifier, WitnessProof, AttestationVerifier

__all__ = [
    "IncrementalMerkleTree",
    "MerkleProof",
    "Note",
    "Ledger",
    "InMemoryLedger",
    "ShieldedPool",
    "HashOracle",
    "Sha256FieldHasher",
    "Verifier",
    "WitnessVerifier",
    "WitnessProof",
    "AttestationVerifier",
]
