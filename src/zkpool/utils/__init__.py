"""Field and encoding helpers."""

from zkpool.utils.field import (
    FIELD_MODULUS,
    DIGEST_SIZE,
    ZERO_DIGEST,
    is_digest,
    validate_digest,
    digest_to_bytes,
    bytes_to_digest,
    reduce_to_field,
    random_field_element,
    encode_address,
    normalize_address,
)
from zkpool.utils.encoding import bytes_to_hex, hex_to_bytes, digest_to_hex, hex_to_digest

__all__ = [
    "FIELD_MODULUS",
    "DIGEST_SIZE",
    "ZERO_DIGEST",
    "is_digest",
    "validate_digest",
    "digest_to_bytes",
    "bytes_to_digest",
    "reduce_to_field",
    "random_field_element",
    "encode_address",
    "normalize_address",
    "bytes_to_hex",
    "hex_to_bytes",
    "digest_to_hex",
    "hex_to_digest",
]
