"""Withdrawal proof verifiers.

The pool only sees the ``Verifier`` contract: ``verify(proof, public_inputs)``
with public inputs ``[root, nullifier_hash, recipient]`` in that order. A
production deployment wires in the verifier for its circuit. Two
deterministic verifiers ship with the package:

* ``WitnessVerifier`` reads the proof as the plain witness and re-executes
  the withdrawal relation. It is sound but reveals the note, so it is only
  useful for local networks and tests.
* ``AttestationVerifier`` accepts an Ed25519 signature over the public inputs
  made by a trusted proving service.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from zkpool.core.merkle_proof import MerkleProof, compute_root
from zkpool.crypto.hasher import HashOracle, get_default_hasher
from zkpool.exceptions import DeserializationError, InvalidDigestError
from zkpool.utils.field import (
    DIGEST_SIZE,
    bytes_to_digest,
    digest_to_bytes,
    encode_address,
    is_digest,
)

logger = logging.getLogger(__name__)

NUM_PUBLIC_INPUTS = 3
PUBLIC_INPUTS_TAG = b"zkpool.withdraw.v1"


@runtime_checkable
class Verifier(Protocol):
    """Decision oracle for withdrawal proofs."""

    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool:
        ...


def encode_public_inputs(public_inputs: Sequence[int]) -> bytes:
    """
    Canonical byte encoding of the public inputs.

    Raises:
        InvalidDigestError: If there are not exactly three field elements
    """
    if len(public_inputs) != NUM_PUBLIC_INPUTS:
        raise InvalidDigestError(f"Expected {NUM_PUBLIC_INPUTS} public inputs")
    return PUBLIC_INPUTS_TAG + b"".join(digest_to_bytes(value) for value in public_inputs)


@dataclass
class WitnessProof:
    """Plain withdrawal witness, serialized as the proof bytes."""

    nullifier: int
    secret: int
    recipient: int
    path_elements: List[int] = field(default_factory=list)
    path_indices: List[int] = field(default_factory=list)

    @classmethod
    def from_note(cls, note, merkle_proof: MerkleProof, recipient: str) -> "WitnessProof":
        """Assemble the witness for spending ``note`` to ``recipient``."""
        return cls(
            nullifier=note.nullifier,
            secret=note.secret,
            recipient=encode_address(recipient),
            path_elements=list(merkle_proof.path_elements),
            path_indices=list(merkle_proof.path_indices),
        )

    def encode(self) -> bytes:
        """nullifier || secret || recipient || depth(1) || elements || index bits."""
        depth = len(self.path_elements)
        return (
            digest_to_bytes(self.nullifier)
            + digest_to_bytes(self.secret)
            + digest_to_bytes(self.recipient)
            + bytes([depth])
            + b"".join(digest_to_bytes(element) for element in self.path_elements)
            + bytes(self.path_indices)
        )

    @classmethod
    def decode(cls, data: bytes) -> "WitnessProof":
        """
        Parse proof bytes.

        Raises:
            DeserializationError: If the bytes are not a well-formed witness
        """
        header = 3 * DIGEST_SIZE + 1
        if not isinstance(data, (bytes, bytearray)) or len(data) < header:
            raise DeserializationError("Witness proof is too short")

        depth = data[3 * DIGEST_SIZE]
        if len(data) != header + depth * DIGEST_SIZE + depth:
            raise DeserializationError("Witness proof length does not match its depth")

        try:
            nullifier = bytes_to_digest(data[0:DIGEST_SIZE])
            secret = bytes_to_digest(data[DIGEST_SIZE:2 * DIGEST_SIZE])
            recipient = bytes_to_digest(data[2 * DIGEST_SIZE:3 * DIGEST_SIZE])
            offset = header
            elements = []
            for _ in range(depth):
                elements.append(bytes_to_digest(data[offset:offset + DIGEST_SIZE]))
                offset += DIGEST_SIZE
        except InvalidDigestError as e:
            raise DeserializationError(f"Invalid witness element: {e}")

        indices = list(data[offset:])
        if any(bit not in (0, 1) for bit in indices):
            raise DeserializationError("Path indices must be 0 or 1")

        return cls(
            nullifier=nullifier,
            secret=secret,
            recipient=recipient,
            path_elements=elements,
            path_indices=indices,
        )


class WitnessVerifier:
    """
    Checks the withdrawal relation directly on a plain witness.

    Accepts when:
        - hash_1(nullifier) == nullifier_hash
        - recipient in the witness == recipient public input
        - hash_2(nullifier, secret) folds up the path to root
    """

    def __init__(self, depth: int, hasher: Optional[HashOracle] = None):
        self.depth = depth
        self.hasher = hasher if hasher is not None else get_default_hasher()

    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool:
        if len(public_inputs) != NUM_PUBLIC_INPUTS or not all(is_digest(v) for v in public_inputs):
            return False
        root, nullifier_hash, recipient = public_inputs

        try:
            witness = WitnessProof.decode(proof)
        except DeserializationError as e:
            logger.debug(f"Rejecting malformed witness proof: {e}")
            return False

        if len(witness.path_elements) != self.depth:
            return False
        if self.hasher.hash_1(witness.nullifier) != nullifier_hash:
            return False
        if witness.recipient != recipient:
            return False

        commitment = self.hasher.hash_2(witness.nullifier, witness.secret)
        computed = compute_root(commitment, witness.path_elements, witness.path_indices, self.hasher)
        return computed == root


class AttestationVerifier:
    """Accepts Ed25519 signatures over the encoded public inputs."""

    def __init__(self, public_key: Ed25519PublicKey):
        if not isinstance(public_key, Ed25519PublicKey):
            raise TypeError("AttestationVerifier requires an Ed25519 public key")
        self._public_key = public_key

    @classmethod
    def from_public_bytes(cls, data: bytes) -> "AttestationVerifier":
        """
        Load the prover key from raw 32 bytes or PEM.

        Raises:
            ValueError: If the key cannot be loaded
        """
        if data.startswith(b"-----BEGIN"):
            key = serialization.load_pem_public_key(data)
            if not isinstance(key, Ed25519PublicKey):
                raise ValueError("PEM key is not an Ed25519 public key")
            return cls(key)
        return cls(Ed25519PublicKey.from_public_bytes(data))

    @property
    def public_key(self) -> bytes:
        """Raw 32-byte public key."""
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def verify(self, proof: bytes, public_inputs: Sequence[int]) -> bool:
        if len(public_inputs) != NUM_PUBLIC_INPUTS or not all(is_digest(v) for v in public_inputs):
            return False
        try:
            self._public_key.verify(proof, encode_public_inputs(public_inputs))
        except (InvalidSignature, TypeError, ValueError):
            return False
        return True
