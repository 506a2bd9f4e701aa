"""Deposit notes: the secret material behind a commitment."""

from dataclasses import dataclass, field
from typing import Optional

from zkpool.crypto.hasher import HashOracle, get_default_hasher
from zkpool.exceptions import DeserializationError, InvalidDigestError
from zkpool.utils.encoding import bytes_to_hex, hex_to_bytes
from zkpool.utils.field import (
    DIGEST_SIZE,
    bytes_to_digest,
    digest_to_bytes,
    random_field_element,
    validate_digest,
)


@dataclass(frozen=True)
class Note:
    """
    A spendable note.

    commitment     = hash_2(nullifier, secret)   (published at deposit)
    nullifier_hash = hash_1(nullifier)           (published at withdrawal)

    Both secrets must stay with the depositor; anyone holding them can
    withdraw the note to any address.
    """

    nullifier: int
    secret: int
    hasher: HashOracle = field(default_factory=get_default_hasher, repr=False, compare=False)

    def __post_init__(self):
        validate_digest(self.nullifier, "nullifier")
        validate_digest(self.secret, "secret")

    @classmethod
    def generate(cls, hasher: Optional[HashOracle] = None) -> "Note":
        """Create a note from fresh random field elements."""
        return cls(
            nullifier=random_field_element(),
            secret=random_field_element(),
            hasher=hasher if hasher is not None else get_default_hasher(),
        )

    @property
    def commitment(self) -> int:
        return self.hasher.hash_2(self.nullifier, self.secret)

    @property
    def nullifier_hash(self) -> int:
        return self.hasher.hash_1(self.nullifier)

    def encode(self) -> bytes:
        """96 bytes: commitment || nullifier || secret."""
        return (
            digest_to_bytes(self.commitment)
            + digest_to_bytes(self.nullifier)
            + digest_to_bytes(self.secret)
        )

    def to_hex(self) -> str:
        return bytes_to_hex(self.encode())

    @classmethod
    def decode(cls, data: bytes, hasher: Optional[HashOracle] = None) -> "Note":
        """
        Parse an encoded note and check its commitment.

        Raises:
            DeserializationError: If the encoding is malformed or inconsistent
        """
        if not isinstance(data, (bytes, bytearray)) or len(data) != 3 * DIGEST_SIZE:
            raise DeserializationError(f"Encoded note must be {3 * DIGEST_SIZE} bytes")
        try:
            commitment = bytes_to_digest(data[:DIGEST_SIZE])
            note = cls(
                nullifier=bytes_to_digest(data[DIGEST_SIZE:2 * DIGEST_SIZE]),
                secret=bytes_to_digest(data[2 * DIGEST_SIZE:]),
                hasher=hasher if hasher is not None else get_default_hasher(),
            )
        except InvalidDigestError as e:
            raise DeserializationError(f"Invalid note encoding: {e}")

        if note.commitment != commitment:
            raise DeserializationError("Note commitment does not match its secrets")
        return note

    @classmethod
    def from_hex(cls, hex_str: str, hasher: Optional[HashOracle] = None) -> "Note":
        try:
            raw = hex_to_bytes(hex_str)
        except ValueError as e:
            raise DeserializationError(f"Invalid note hex: {e}")
        return cls.decode(raw, hasher)
