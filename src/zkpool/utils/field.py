"""Field element helpers shared by the accumulator and the pool."""

import re
import secrets
from typing import Union

from zkpool.exceptions import InvalidAddressError, InvalidDigestError

# BN254 scalar field
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

DIGEST_SIZE = 32  # bytes
ZERO_DIGEST = 0

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_digest(value: object) -> bool:
    """Return True if value is an integer in [0, p)."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < FIELD_MODULUS
    )


def validate_digest(value: object, name: str = "digest") -> int:
    """
    Ensure value is a field element.

    Args:
        value: Candidate digest
        name: Name used in the error message

    Returns:
        int: The validated digest

    Raises:
        InvalidDigestError: If value is not an integer in [0, p)
    """
    if not is_digest(value):
        raise InvalidDigestError(f"{name} must be an integer in [0, p), got {value!r}")
    return value


def digest_to_bytes(value: int) -> bytes:
    """Big-endian 32-byte encoding of a digest."""
    return validate_digest(value).to_bytes(DIGEST_SIZE, "big")


def bytes_to_digest(data: bytes) -> int:
    """
    Decode a 32-byte big-endian digest.

    Raises:
        InvalidDigestError: If data has the wrong size or is not below p
    """
    if not isinstance(data, (bytes, bytearray)) or len(data) != DIGEST_SIZE:
        raise InvalidDigestError("Digest encoding must be exactly 32 bytes")
    return validate_digest(int.from_bytes(data, "big"))


def reduce_to_field(data: Union[bytes, int]) -> int:
    """Map arbitrary bytes or a non-negative integer into the field."""
    if isinstance(data, (bytes, bytearray)):
        data = int.from_bytes(data, "big")
    return data % FIELD_MODULUS


def random_field_element() -> int:
    """Uniformly random non-zero field element."""
    return secrets.randbelow(FIELD_MODULUS - 1) + 1


def encode_address(address: str) -> int:
    """
    Encode a 20-byte hex address as a field element.

    The address is read as a big-endian integer, which always fits the field.

    Raises:
        InvalidAddressError: If the address is not 0x followed by 40 hex digits
    """
    if not isinstance(address, str) or not _ADDRESS_PATTERN.match(address):
        raise InvalidAddressError(f"Invalid recipient address: {address!r}")
    return int(address, 16)


def normalize_address(address: str) -> str:
    """Lower-case canonical form of a validated address."""
    encode_address(address)
    return address.lower()
