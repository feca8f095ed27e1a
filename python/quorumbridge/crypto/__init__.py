"""Field arithmetic, hashing and signature primitives."""

from quorumbridge.crypto.merkle import MerklePath, MerkleTree
from quorumbridge.crypto.transcript import Transcript

__all__ = ["MerklePath", "MerkleTree", "Transcript"]
