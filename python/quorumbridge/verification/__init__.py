"""Native certificate checks and batch-proof verification."""

from quorumbridge.verification.native import NativeVerifier
from quorumbridge.verification.dual import DualProofVerifier

__all__ = ["NativeVerifier", "DualProofVerifier"]
