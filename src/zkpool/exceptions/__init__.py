"""Custom exceptions for the shielded pool."""


class ZKPoolException(Exception):
    """Base exception for all shielded pool errors."""
    pass


# Validation Errors
class ValidationError(ZKPoolException, ValueError):
    """Base exception for malformed inputs."""
    pass


class InvalidDigestError(ValidationError):
    """Raised when a value is not a field element."""
    pass


class InvalidAddressError(ValidationError):
    """Raised when a recipient address cannot be encoded."""
    pass


# Merkle Tree Errors
class MerkleTreeError(ZKPoolException):
    """Base exception for accumulator errors."""
    pass


class MerkleTreeFullError(MerkleTreeError):
    """Raised when the tree already holds 2**depth leaves."""
    pass


class LevelOutOfRangeError(MerkleTreeError):
    """Raised when a zero-hash level outside the table is requested."""
    pass


class InvalidLeafIndexError(MerkleTreeError):
    """Raised when a leaf index does not exist in the tree."""
    pass


class UnknownCommitmentError(MerkleTreeError):
    """Raised when a commitment was never inserted."""
    pass


# Pool Errors
class PoolError(ZKPoolException):
    """Base exception for pool operation errors."""
    pass


class ReentrancyError(PoolError):
    """Raised when deposit or withdraw is entered while another is in flight."""
    pass


class DepositError(PoolError):
    """Base exception for rejected deposits."""
    pass


class DuplicateCommitmentError(DepositError):
    """Raised when a commitment has already been deposited."""
    pass


class WrongDenominationError(DepositError):
    """Raised when the deposited value is not the pool denomination."""
    pass


class WithdrawalError(PoolError):
    """Base exception for rejected withdrawals."""
    pass


class UnknownRootError(WithdrawalError):
    """Raised when the root is absent from the recent root history."""
    pass


class NullifierAlreadyUsedError(WithdrawalError):
    """Raised when attempting to spend the same note twice."""
    pass


class InvalidProofError(WithdrawalError):
    """Raised when proof verification fails."""
    pass


class TransferFailedError(WithdrawalError):
    """Raised when the payout to the recipient could not be completed."""
    pass


# Storage Errors
class StorageError(ZKPoolException):
    """Base exception for persistence errors."""
    pass


class StateCorruptionError(StorageError):
    """Raised when persisted state is inconsistent."""
    pass


class DeserializationError(StorageError):
    """Raised when decoding a value fails."""
    pass
