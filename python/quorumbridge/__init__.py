"""
QUORUMBRIDGE: Quorum-Certificate Light Client With Dual Proof Paths

Tracks a BFT chain's verified head from BLS-signed quorum certificates, either
checked directly or compressed into transparent STARK batch proofs, optionally
wrapped into constant-size Groth16 proofs for cheap on-chain verification.
"""

from quorumbridge.core.types import (
    BatchProof,
    LedgerInfo,
    ProofKind,
    QuorumCertificate,
    ValidatorSet,
    VerifiedHead,
)

__version__ = "0.1.0"
__all__ = [
    "BatchProof",
    "LedgerInfo",
    "ProofKind",
    "QuorumCertificate",
    "ValidatorSet",
    "VerifiedHead",
]
