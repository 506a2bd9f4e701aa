"""Cryptographic collaborators: hashing and proof verification."""

from zkpool.crypto.hasher import HashOracle, Sha256FieldHasher, get_default_hasher

__all__ = [
    "HashOracle",
    "Sha256FieldHasher",
    "get_default_hasher",
]
