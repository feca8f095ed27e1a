"""Error taxonomy for verification and proving."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from quorumbridge.core.types import VerifiedHead


class ErrorCategory(str, Enum):
    PROTOCOL = "protocol"
    STALENESS = "staleness"
    RESOURCE = "resource"
    LIFECYCLE = "lifecycle"


class ErrorKind(str, Enum):
    INSUFFICIENT_QUORUM = "insufficient_quorum"
    SIGNATURE_INVALID = "signature_invalid"
    UNKNOWN_VALIDATOR_IN_MASK = "unknown_validator_in_mask"
    STALE_OR_NON_CONTIGUOUS = "stale_or_non_contiguous"
    STALE_PROOF = "stale_proof"
    PROOF_INVALID = "proof_invalid"
    NON_CONTIGUOUS_BATCH = "non_contiguous_batch"
    MIXED_PROOF_KIND = "mixed_proof_kind"
    CHAIN_GAP = "chain_gap"
    SETUP_MISSING = "setup_missing"
    PROVING_TIMEOUT = "proving_timeout"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    VALIDATOR_SET_UNAVAILABLE = "validator_set_unavailable"
    STORE_WRITE_FAILED = "store_write_failed"
    NOT_INITIALIZED = "not_initialized"
    ALREADY_INITIALIZED = "already_initialized"


class QuorumBridgeError(Exception):
    """Base error. Carries a stable kind and the head the caller should re-query."""

    kind: ClassVar[ErrorKind]
    category: ClassVar[ErrorCategory]

    def __init__(self, message: str = "", *, head: VerifiedHead | None = None) -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value
        self.head = head

    @property
    def retryable(self) -> bool:
        return self.category is not ErrorCategory.PROTOCOL

    def with_head(self, head: VerifiedHead | None) -> QuorumBridgeError:
        self.head = head
        return self


class VerifyError(QuorumBridgeError):
    """Rejection raised while verifying a certificate or proof."""


class ProveError(QuorumBridgeError):
    """Failure raised while producing or aggregating a proof."""


class InsufficientQuorum(VerifyError):
    kind = ErrorKind.INSUFFICIENT_QUORUM
    category = ErrorCategory.PROTOCOL


class SignatureInvalid(VerifyError):
    kind = ErrorKind.SIGNATURE_INVALID
    category = ErrorCategory.PROTOCOL


class UnknownValidatorInMask(VerifyError):
    kind = ErrorKind.UNKNOWN_VALIDATOR_IN_MASK
    category = ErrorCategory.PROTOCOL


class StaleOrNonContiguous(VerifyError):
    kind = ErrorKind.STALE_OR_NON_CONTIGUOUS
    category = ErrorCategory.STALENESS


class StaleProof(VerifyError):
    kind = ErrorKind.STALE_PROOF
    category = ErrorCategory.STALENESS


class ProofInvalid(VerifyError):
    kind = ErrorKind.PROOF_INVALID
    category = ErrorCategory.PROTOCOL


class NonContiguousBatch(VerifyError, ProveError):
    kind = ErrorKind.NON_CONTIGUOUS_BATCH
    category = ErrorCategory.PROTOCOL


class MixedProofKind(ProveError):
    kind = ErrorKind.MIXED_PROOF_KIND
    category = ErrorCategory.PROTOCOL


class ChainGap(ProveError):
    kind = ErrorKind.CHAIN_GAP
    category = ErrorCategory.PROTOCOL


class SetupMissing(VerifyError, ProveError):
    kind = ErrorKind.SETUP_MISSING
    category = ErrorCategory.RESOURCE


class ProvingTimeout(ProveError):
    kind = ErrorKind.PROVING_TIMEOUT
    category = ErrorCategory.RESOURCE


class ResourceExhausted(ProveError):
    kind = ErrorKind.RESOURCE_EXHAUSTED
    category = ErrorCategory.RESOURCE


class ValidatorSetUnavailable(VerifyError):
    kind = ErrorKind.VALIDATOR_SET_UNAVAILABLE
    category = ErrorCategory.RESOURCE


class StoreWriteFailed(QuorumBridgeError):
    """Persisting the head or a validator set failed; in-memory state is unchanged."""

    kind = ErrorKind.STORE_WRITE_FAILED
    category = ErrorCategory.RESOURCE


class NotInitialized(QuorumBridgeError):
    kind = ErrorKind.NOT_INITIALIZED
    category = ErrorCategory.LIFECYCLE


class AlreadyInitialized(QuorumBridgeError):
    kind = ErrorKind.ALREADY_INITIALIZED
    category = ErrorCategory.LIFECYCLE


class SoundnessError(AssertionError):
    """Internal fault that would break soundness if ignored. Never caught."""
