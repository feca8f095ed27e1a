"""Constraint system chaining consecutive batch statements into one."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from quorumbridge.core.types import Statement
from quorumbridge.crypto.field import P, FieldArray
from quorumbridge.proving.air import DIGEST_LIMBS, Air, Boundary, Value, digest_limbs, fmul, fsub, next_pow2

MIN_ROWS = 8

OLD_ROOT = 0
OLD_SET = OLD_ROOT + DIGEST_LIMBS
NEW_ROOT = OLD_SET + DIGEST_LIMBS
NEW_SET = NEW_ROOT + DIGEST_LIMBS
START_EPOCH = NEW_SET + DIGEST_LIMBS
START_HEIGHT = START_EPOCH + 1
START_FLAG = START_EPOCH + 2
END_EPOCH = START_EPOCH + 3
END_HEIGHT = START_EPOCH + 4
END_FLAG = START_EPOCH + 5
CHAIN_WIDTH = END_FLAG + 1

# Public columns: the accepted inner statements, then a real-row flag
PINNED = CHAIN_WIDTH
REAL = 2 * CHAIN_WIDTH

# (start column, end column) pairs that must link row to row
_LINKS = (
    [(OLD_ROOT + i, NEW_ROOT + i) for i in range(DIGEST_LIMBS)]
    + [(OLD_SET + i, NEW_SET + i) for i in range(DIGEST_LIMBS)]
    + [(START_EPOCH, END_EPOCH), (START_HEIGHT, END_HEIGHT), (START_FLAG, END_FLAG)]
)


class ChainAir(Air):
    """One row per inner statement; each row's end is the next row's start.

    Real rows are pinned to the statements of inner proofs the verifier has
    already accepted, so the chain cannot route through invented heads.
    """

    air_id = "chain-v2"
    constraint_degree = 2
    num_transitions = len(_LINKS) + CHAIN_WIDTH

    def __init__(self, outer: Statement, inner: Sequence[Statement]) -> None:
        if len(inner) < 2:
            raise ValueError("chaining needs at least two statements")
        self.outer = outer
        self.inner = tuple(inner)
        self.num_inner = len(inner)
        self.width = CHAIN_WIDTH
        # Keep one padding row so the transition domain covers every real row.
        self.trace_length = next_pow2(max(self.num_inner + 1, MIN_ROWS))
        public = np.zeros((CHAIN_WIDTH + 1, self.trace_length), dtype=np.uint64)
        public[:CHAIN_WIDTH, :self.num_inner] = np.asarray([_row(outer, s) for s in inner], dtype=np.uint64).T
        public[CHAIN_WIDTH, :self.num_inner] = 1
        self._public = public

    @property
    def params(self) -> tuple[int, ...]:
        return (self.num_inner,)

    def public_trace(self) -> FieldArray:
        return self._public

    def transitions(self, cur: Sequence[Value], nxt: Sequence[Value], periodic: Sequence[Value]) -> list[Value]:
        out = [fsub(nxt[start], cur[end]) for start, end in _LINKS]
        out += [fmul(cur[REAL], fsub(cur[c], cur[PINNED + c])) for c in range(CHAIN_WIDTH)]
        return out

    def boundaries(self) -> list[Boundary]:
        o = self.outer
        pi = o.public_inputs
        last = self.num_inner - 1
        out: list[Boundary] = []
        for i, limb in enumerate(digest_limbs(pi.old_state_root)):
            out.append(Boundary(0, OLD_ROOT + i, limb))
        for i, limb in enumerate(digest_limbs(pi.old_validator_set_commitment)):
            out.append(Boundary(0, OLD_SET + i, limb))
        out += [
            Boundary(0, START_EPOCH, 0),
            Boundary(0, START_HEIGHT, 0),
            Boundary(0, START_FLAG, int(o.start_epoch_complete)),
        ]
        for i, limb in enumerate(digest_limbs(pi.new_state_root)):
            out.append(Boundary(last, NEW_ROOT + i, limb))
        for i, limb in enumerate(digest_limbs(pi.new_validator_set_commitment)):
            out.append(Boundary(last, NEW_SET + i, limb))
        out += [
            Boundary(last, END_EPOCH, (o.end_epoch - o.start_epoch) % P),
            Boundary(last, END_HEIGHT, (o.end_height - o.start_height) % P),
            Boundary(last, END_FLAG, int(o.end_epoch_complete)),
        ]
        return out


def _row(outer: Statement, s: Statement) -> list[int]:
    pi = s.public_inputs
    return (
        digest_limbs(pi.old_state_root)
        + digest_limbs(pi.old_validator_set_commitment)
        + digest_limbs(pi.new_state_root)
        + digest_limbs(pi.new_validator_set_commitment)
        + [
            (s.start_epoch - outer.start_epoch) % P,
            (s.start_height - outer.start_height) % P,
            int(s.start_epoch_complete),
            (s.end_epoch - outer.start_epoch) % P,
            (s.end_height - outer.start_height) % P,
            int(s.end_epoch_complete),
        ]
    )


def build_chain_trace(outer: Statement, inner: Sequence[Statement]) -> tuple[ChainAir, FieldArray]:
    air = ChainAir(outer, inner)
    rows = [_row(outer, s) for s in inner]
    last = rows[-1]
    # Padding rows repeat the final end state as a no-op step.
    pad = (
        last[NEW_ROOT:NEW_SET + DIGEST_LIMBS] * 2
        + [last[END_EPOCH], last[END_HEIGHT], last[END_FLAG]] * 2
    )
    while len(rows) < air.trace_length:
        rows.append(pad)
    return air, np.asarray(rows, dtype=np.uint64).T.copy()
