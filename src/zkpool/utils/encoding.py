"""Encoding and decoding utilities."""

from zkpool.utils.field import DIGEST_SIZE, bytes_to_digest, digest_to_bytes


def bytes_to_hex(data: bytes) -> str:
    """
    Convert bytes to hexadecimal string.

    Args:
        data: Bytes to convert

    Returns:
        str: Hexadecimal string with '0x' prefix
    """
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """
    Convert hexadecimal string to bytes.

    Args:
        hex_str: Hexadecimal string (with or without '0x' prefix)

    Returns:
        bytes: Decoded bytes

    Raises:
        ValueError: If hex string is invalid
    """
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]

    if len(hex_str) % 2 != 0:
        raise ValueError("Hex string must have even number of characters")

    return bytes.fromhex(hex_str)


def digest_to_hex(value: int) -> str:
    """Render a digest as 0x-prefixed, zero-padded 32-byte hex."""
    return bytes_to_hex(digest_to_bytes(value))


def hex_to_digest(hex_str: str) -> int:
    """
    Parse a hex digest, left-padding short encodings to 32 bytes.

    Raises:
        ValueError: If the string is not valid hex
        InvalidDigestError: If the value does not fit the field
    """
    raw = hex_to_bytes(hex_str)
    if len(raw) > DIGEST_SIZE:
        raise ValueError(f"Digest hex is longer than {DIGEST_SIZE} bytes")
    return bytes_to_digest(raw.rjust(DIGEST_SIZE, b"\x00"))
