"""FRI low-degree test over a multiplicative coset."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from quorumbridge.core.errors import SoundnessError
from quorumbridge.core.types import Bytes32
from quorumbridge.crypto.field import INV2, P, FieldArray, inv, powers, root_of_unity
from quorumbridge.crypto.merkle import MerklePath, MerkleTree
from quorumbridge.crypto.transcript import Transcript
from quorumbridge.proving.deadline import NO_DEADLINE, Deadline


@dataclass(frozen=True, slots=True)
class FriLayerOpening:
    lo: int
    hi: int
    path: MerklePath


@dataclass(slots=True)
class FriCommitment:
    layers: list[FieldArray] = field(default_factory=list)
    trees: list[MerkleTree] = field(default_factory=list)
    final: int = 0

    @property
    def roots(self) -> list[Bytes32]:
        return [t.root for t in self.trees]


def pair_leaf(lo: int, hi: int) -> bytes:
    return struct.pack("<II", lo, hi)


def fold(values: FieldArray, beta: int, shift: int) -> FieldArray:
    """f'(x^2) = (f(x) + f(-x))/2 + beta * (f(x) - f(-x))/(2x) over shift * <w_n>."""
    n = len(values)
    half = n // 2
    lo, hi = values[:half], values[half:]
    x_inv = powers(inv(root_of_unity(n)), half) * np.uint64(inv(shift)) % P
    even = (lo + hi) % P
    odd = (lo + P - hi) % P * x_inv % P
    return (even + odd * np.uint64(beta) % P) % P * np.uint64(INV2) % P


def commit(values: FieldArray, shift: int, num_folds: int, transcript: Transcript,
           deadline: Deadline = NO_DEADLINE) -> FriCommitment:
    """Commit to every folding layer, drawing each fold challenge after its root."""
    out = FriCommitment()
    current = values % P
    for k in range(num_folds):
        deadline.check(f"fri layer {k}")
        half = len(current) // 2
        tree = MerkleTree()
        pairs = np.stack((current[:half], current[half:]), axis=1).astype("<u4")
        tree.build([row.tobytes() for row in pairs])
        transcript.absorb(b"fri-root", tree.root)
        beta = transcript.field_element(b"fri-beta")
        out.layers.append(current)
        out.trees.append(tree)
        current = fold(current, beta, shift)
        shift = shift * shift % P

    if np.any(current != current[0]):
        raise SoundnessError("folded codeword is not constant")
    out.final = int(current[0])
    transcript.absorb_ints(b"fri-final", [out.final])
    return out


def open_query(commitment: FriCommitment, index: int) -> list[FriLayerOpening]:
    openings: list[FriLayerOpening] = []
    for layer, tree in zip(commitment.layers, commitment.trees):
        half = len(layer) // 2
        j = index % half
        openings.append(FriLayerOpening(lo=int(layer[j]), hi=int(layer[j + half]), path=tree.open(j)))
        index = j
    return openings


def replay_challenges(roots: Sequence[Bytes32], final: int, transcript: Transcript) -> list[int]:
    betas: list[int] = []
    for root in roots:
        transcript.absorb(b"fri-root", root)
        betas.append(transcript.field_element(b"fri-beta"))
    transcript.absorb_ints(b"fri-final", [final])
    return betas


def verify_query(
    index: int,
    value: int,
    openings: Sequence[FriLayerOpening],
    roots: Sequence[Bytes32],
    betas: Sequence[int],
    final: int,
    domain_size: int,
    shift: int,
) -> bool:
    """Check one query's folding path from the first layer down to the constant."""
    if len(openings) != len(roots):
        return False
    verifier = MerkleTree()
    n = domain_size
    for opening, root, beta in zip(openings, roots, betas):
        half = n // 2
        j = index % half
        if opening.path.index != j or len(opening.path.siblings) != half.bit_length() - 1:
            return False
        if not (0 <= opening.lo < P and 0 <= opening.hi < P):
            return False
        if not verifier.verify(pair_leaf(opening.lo, opening.hi), opening.path, root):
            return False
        if value != (opening.lo if index < half else opening.hi):
            return False
        x = shift * pow(root_of_unity(n), j, P) % P
        even = (opening.lo + opening.hi) % P
        odd = (opening.lo - opening.hi) * inv(x) % P
        value = (even + beta * odd) * INV2 % P
        index = j
        n = half
        shift = shift * shift % P
    return value == final
