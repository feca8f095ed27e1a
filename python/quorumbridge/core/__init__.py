"""Core types, configuration and errors for quorumbridge."""

from quorumbridge.core.types import (
    ValidatorInfo,
    ValidatorSet,
    LedgerInfo,
    SignerMask,
    QuorumCertificate,
    PublicInputs,
    Statement,
    BatchProof,
    ProofKind,
    VerifiedHead,
    VerificationReport,
    VerificationStatus,
)
from quorumbridge.core.config import BridgeConfig
from quorumbridge.core.errors import QuorumBridgeError, VerifyError, ProveError

__all__ = [
    "ValidatorInfo",
    "ValidatorSet",
    "LedgerInfo",
    "SignerMask",
    "QuorumCertificate",
    "PublicInputs",
    "Statement",
    "BatchProof",
    "ProofKind",
    "VerifiedHead",
    "VerificationReport",
    "VerificationStatus",
    "BridgeConfig",
    "QuorumBridgeError",
    "VerifyError",
    "ProveError",
]
