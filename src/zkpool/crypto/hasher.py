"""Two-to-one compression over the scalar field.

The pool treats the hash as an external collaborator: anything exposing
``hash_2`` (and ``hash_1`` for nullifier hashes) over the same field can be
plugged in, e.g. a Poseidon2 binding. ``Sha256FieldHasher`` is the default
stand-in: SHA-256 with per-arity domain tags, reduced modulo p.
"""

import hashlib
from typing import Protocol, runtime_checkable

from zkpool.utils.field import digest_to_bytes, reduce_to_field, validate_digest


@runtime_checkable
class HashOracle(Protocol):
    """Pure, deterministic compression function over the field."""

    def hash_2(self, left: int, right: int) -> int:
        ...

    def hash_1(self, value: int) -> int:
        ...


class Sha256FieldHasher:
    """
    SHA-256 based field hasher.

    hash_2(a, b) = SHA-256(tag2 || a || b) mod p
    hash_1(a)    = SHA-256(tag1 || a) mod p

    Inputs are encoded as 32-byte big-endian field elements.
    """

    TAG_1 = b"zkpool.hash_1"
    TAG_2 = b"zkpool.hash_2"

    def hash_2(self, left: int, right: int) -> int:
        validate_digest(left, "left")
        validate_digest(right, "right")
        digest = hashlib.sha256(
            self.TAG_2 + digest_to_bytes(left) + digest_to_bytes(right)
        ).digest()
        return reduce_to_field(digest)

    def hash_1(self, value: int) -> int:
        validate_digest(value, "value")
        digest = hashlib.sha256(self.TAG_1 + digest_to_bytes(value)).digest()
        return reduce_to_field(digest)

    def __repr__(self) -> str:
        return "Sha256FieldHasher()"


_default_hasher: Sha256FieldHasher = Sha256FieldHasher()


def get_default_hasher() -> HashOracle:
    """Return the process-wide default hasher."""
    return _default_hasher
