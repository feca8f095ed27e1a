"""Arithmetization, STARK and Groth16 provers for certificate batches."""

from quorumbridge.proving.air import Air, QuorumAir
from quorumbridge.proving.stark import StarkProver, StarkVerifier
from quorumbridge.proving.setup import SetupParameters
from quorumbridge.proving.pipeline import ProofPipeline

__all__ = ["Air", "QuorumAir", "StarkProver", "StarkVerifier", "SetupParameters", "ProofPipeline"]
