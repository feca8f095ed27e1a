"""Algebraic constraint systems proved by the transparent backend."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Sequence

import numpy as np

from quorumbridge.core.errors import ResourceExhausted, SoundnessError
from quorumbridge.core.types import Bytes32, Statement
from quorumbridge.crypto.field import P, FieldArray, decompose

# Column values are either numpy vectors (prover, LDE domain) or ints (verifier).
Value = Any

DIGEST_LIMBS = 16
DIGEST_LIMB_BITS = 16


def fadd(a: Value, b: Value) -> Value:
    return (a + b) % P


def fsub(a: Value, b: Value) -> Value:
    return (a + P - b) % P


def fmul(a: Value, b: Value) -> Value:
    return a * b % P


def next_pow2(n: int) -> int:
    size = 1
    while size < n:
        size *= 2
    return size


def digest_limbs(digest: Bytes32) -> list[int]:
    return decompose(int.from_bytes(digest, "little"), DIGEST_LIMB_BITS, DIGEST_LIMBS)


@dataclass(frozen=True, slots=True)
class Boundary:
    row: int
    column: int
    value: int


class Air(ABC):
    """Trace width, transition constraints, boundary constraints and periodic selectors.

    Constraints see the committed columns first and the public columns after
    them: column ``width + k`` is row ``k`` of ``public_trace()``. Public
    columns are rebuilt by the verifier, never taken from the prover.
    """

    air_id: ClassVar[str]
    constraint_degree: ClassVar[int]
    num_transitions: ClassVar[int]

    width: int
    trace_length: int

    @property
    @abstractmethod
    def params(self) -> tuple[int, ...]:
        """Shape parameters bound into the proof transcript."""

    def periodic_columns(self) -> list[list[int]]:
        return []

    def public_trace(self) -> FieldArray:
        """Full-length columns derived from the statement and the carried evidence."""
        return np.zeros((0, self.trace_length), dtype=np.uint64)

    def public_digest(self) -> Bytes32:
        return hashlib.sha256(np.ascontiguousarray(self.public_trace()).astype("<u4").tobytes()).digest()

    @abstractmethod
    def transitions(self, cur: Sequence[Value], nxt: Sequence[Value], periodic: Sequence[Value]) -> list[Value]:
        """Constraint values that vanish on every row but the last."""

    @abstractmethod
    def boundaries(self) -> list[Boundary]:
        ...

    @property
    def degree_bound(self) -> int:
        return self.trace_length * max(1, self.constraint_degree - 1)

    def periodic_trace(self) -> list[FieldArray]:
        """Periodic columns repeated to the full trace length."""
        out: list[FieldArray] = []
        for col in self.periodic_columns():
            reps = self.trace_length // len(col)
            out.append(np.tile(np.asarray(col, dtype=np.uint64), reps))
        return out

    def check_trace(self, trace: FieldArray) -> None:
        """Assert the trace satisfies every constraint."""
        if trace.shape != (self.width, self.trace_length):
            raise SoundnessError(f"trace shape {trace.shape} != {(self.width, self.trace_length)}")
        columns = np.vstack((trace, self.public_trace()))
        cur = [columns[c, :-1] for c in range(len(columns))]
        nxt = [columns[c, 1:] for c in range(len(columns))]
        periodic = [col[:-1] for col in self.periodic_trace()]
        for k, values in enumerate(self.transitions(cur, nxt, periodic)):
            bad = np.nonzero(np.asarray(values) % P)[0]
            if len(bad):
                raise SoundnessError(f"{self.air_id}: transition {k} violated at row {int(bad[0])}")
        for b in self.boundaries():
            if int(columns[b.column, b.row]) != b.value % P:
                raise SoundnessError(f"{self.air_id}: boundary at row {b.row} column {b.column} violated")


# Quorum AIR layout

COORDINATES = 6  # aggregate key (x, y) and signature (x0, x1, y0, y1)
LIMB_BITS = 16
LIMBS_PER_COORDINATE = 24
RANGE_BITS = 30
COORDINATE_ROWS = COORDINATES * LIMBS_PER_COORDINATE
RANGE_ROWS = COORDINATE_ROWS + 3  # coordinate limbs, slack, gap, positivity
DIGEST_ROWS = 2 * DIGEST_LIMBS
POWER_LIMIT = 1 << 28
GAP_LIMIT = 1 << RANGE_BITS

# Committed by the prover
SIGNED, TOTAL, LIMB = range(3)
BITS = 3
GAP = BITS + RANGE_BITS
QUORUM_WIDTH = GAP + 1

# Rebuilt by the verifier from the certificates and the statement
MASK = QUORUM_WIDTH
POWER = MASK + 1
EPOCH = MASK + 2
HEIGHT = MASK + 3
CLOSE = MASK + 4
REAL = MASK + 5
COORD = MASK + 6
DIGEST = MASK + 7
QUORUM_PUBLIC = DIGEST + 1 - QUORUM_WIDTH

SEL_FIRST, SEL_ACC, SEL_CARRY, SEL_LIMB, SEL_COORD, SEL_SLACK, SEL_GAP, SEL_POSITIVE, SEL_INNER, SEL_LINK = range(10)


@dataclass(frozen=True, slots=True)
class CertificateWitness:
    """What one certificate contributes to the quorum trace.

    ``validator_set_commitment`` is the commitment in force after the
    certificate, so it changes only on the block that closes an epoch.
    """

    epoch: int
    height: int
    closes_epoch: bool
    mask: tuple[int, ...]
    powers: tuple[int, ...]
    coordinates: tuple[int, ...]
    state_root: Bytes32
    validator_set_commitment: Bytes32


def block_rows(slots: int) -> int:
    # The positivity row must stay clear of the block's last row.
    return next_pow2(slots + RANGE_ROWS + 1)


class QuorumAir(Air):
    """One block per certificate: quorum sums, coordinate limbs, slack, gap and positivity range checks.

    Block 0 is the start head; trailing blocks pad the count to a power of two.
    EPOCH and HEIGHT hold offsets from the start head. Masks, powers,
    coordinates and digests are public: the verifier lays them out from the
    certificates it was handed, so the prover only supplies the sums and the
    range decompositions.
    """

    air_id = "quorum-v2"
    constraint_degree = 3
    num_transitions = 45

    def __init__(self, statement: Statement, blocks: Sequence[CertificateWitness]) -> None:
        if not blocks:
            raise ValueError("quorum AIR needs at least one certificate")
        for w in blocks:
            if len(w.mask) != len(w.powers) or not w.mask:
                raise ValueError("mask and powers must cover the same non-empty validator set")
            if len(w.coordinates) != COORDINATES:
                raise ValueError(f"expected {COORDINATES} coordinates, got {len(w.coordinates)}")
        self.statement = statement
        self.blocks = tuple(blocks)
        self.slots = max(len(w.mask) for w in blocks)
        self.num_certificates = len(blocks)
        self.rows = block_rows(self.slots)
        self.num_blocks = next_pow2(self.num_certificates + 1)
        self.width = QUORUM_WIDTH
        self.trace_length = self.rows * self.num_blocks
        self._public = self._lay_out_public()

    @property
    def params(self) -> tuple[int, ...]:
        return (self.slots, self.num_certificates)

    def block_constants(self) -> list[tuple[int, int, int]]:
        """(epoch offset, height offset, close flag) for every block, padding included."""
        st = self.statement
        out = [(0, 0, int(st.start_epoch_complete))]
        for w in self.blocks:
            out.append((
                (w.epoch - st.start_epoch) % P,
                (w.height - st.start_height) % P,
                int(w.closes_epoch),
            ))
        while len(out) < self.num_blocks:
            epoch, height, close = out[-1]
            out.append(((epoch + close) % P, height if close else (height + 1) % P, 0))
        return out

    def _lay_out_public(self) -> FieldArray:
        V, R = self.slots, self.rows
        public = np.zeros((QUORUM_PUBLIC, self.trace_length), dtype=np.uint64)

        def put(column: int, start: int, values: Sequence[int] | int) -> None:
            row = public[column - QUORUM_WIDTH]
            if isinstance(values, int):
                row[start:start + R] = values
            else:
                row[start:start + len(values)] = values

        for b, (epoch, height, close) in enumerate(self.block_constants()):
            base = b * R
            put(EPOCH, base, epoch)
            put(HEIGHT, base, height)
            put(CLOSE, base, close)

        pi = self.statement.public_inputs
        put(DIGEST, 0, digest_limbs(pi.old_state_root) + digest_limbs(pi.old_validator_set_commitment))

        for b, w in enumerate(self.blocks, start=1):
            base = b * R
            if any(p < 0 for p in w.powers):
                raise ValueError("negative voting power")
            total = sum(w.powers)
            if total >= POWER_LIMIT:
                raise ResourceExhausted(f"total power {total} exceeds circuit bound")
            limbs: list[int] = []
            for coord in w.coordinates:
                limbs.extend(decompose(coord, LIMB_BITS, LIMBS_PER_COORDINATE))
            put(MASK, base, list(w.mask))
            put(POWER, base, list(w.powers))
            put(REAL, base, 1)
            put(COORD, base + V, limbs)
            put(DIGEST, base, digest_limbs(w.state_root) + digest_limbs(w.validator_set_commitment))
        return public

    def public_trace(self) -> FieldArray:
        return self._public

    def periodic_columns(self) -> list[list[int]]:
        V, R = self.slots, self.rows
        limb_start = V
        slack_row = V + COORDINATE_ROWS
        gap_row = slack_row + 1
        positive_row = slack_row + 2
        rows = range(R)
        return [
            [int(r == 0) for r in rows],
            [int(r <= V - 2) for r in rows],
            [int(V - 1 <= r <= R - 2) for r in rows],
            [int(limb_start <= r <= positive_row) for r in rows],
            [int(limb_start <= r < slack_row) for r in rows],
            [int(r == slack_row) for r in rows],
            [int(r == gap_row) for r in rows],
            [int(r == positive_row) for r in rows],
            [int(r <= R - 2) for r in rows],
            [int(r == R - 1) for r in rows],
        ]

    def transitions(self, cur: Sequence[Value], nxt: Sequence[Value], periodic: Sequence[Value]) -> list[Value]:
        s = periodic
        out: list[Value] = []

        # Running sums
        out.append(fmul(s[SEL_FIRST], fsub(cur[SIGNED], fmul(cur[MASK], cur[POWER]))))
        out.append(fmul(s[SEL_FIRST], fsub(cur[TOTAL], cur[POWER])))
        out.append(fmul(s[SEL_ACC], fsub(fsub(nxt[SIGNED], cur[SIGNED]), fmul(nxt[MASK], nxt[POWER]))))
        out.append(fmul(s[SEL_ACC], fsub(fsub(nxt[TOTAL], cur[TOTAL]), nxt[POWER])))
        out.append(fmul(s[SEL_CARRY], fsub(nxt[SIGNED], cur[SIGNED])))
        out.append(fmul(s[SEL_CARRY], fsub(nxt[TOTAL], cur[TOTAL])))

        # Limb decomposition
        recomposed: Value = 0
        for i in range(RANGE_BITS):
            recomposed = fadd(recomposed, fmul(cur[BITS + i], 1 << i))
        out.append(fmul(s[SEL_LIMB], fsub(cur[LIMB], recomposed)))
        for i in range(RANGE_BITS):
            bit = cur[BITS + i]
            out.append(fmul(s[SEL_LIMB], fmul(bit, fsub(bit, 1))))
        high: Value = 0
        for i in range(LIMB_BITS, RANGE_BITS):
            high = fadd(high, cur[BITS + i])
        out.append(fmul(s[SEL_COORD], high))

        # What each range row holds
        out.append(fmul(s[SEL_COORD], fsub(cur[LIMB], cur[COORD])))
        slack = fsub(fmul(cur[SIGNED], 3), fmul(cur[TOTAL], 2))
        out.append(fmul(s[SEL_SLACK], fsub(cur[LIMB], slack)))
        out.append(fmul(s[SEL_GAP], fsub(cur[LIMB], cur[GAP])))
        out.append(fmul(s[SEL_POSITIVE], fsub(cur[LIMB], fsub(cur[SIGNED], cur[REAL]))))

        # Block links
        out.append(fmul(s[SEL_INNER], fsub(nxt[GAP], cur[GAP])))
        out.append(fmul(s[SEL_LINK], fsub(fsub(nxt[EPOCH], cur[EPOCH]), cur[CLOSE])))
        step = fsub(fsub(fsub(nxt[HEIGHT], cur[HEIGHT]), 1), nxt[GAP])
        out.append(fmul(s[SEL_LINK], fmul(fsub(1, cur[CLOSE]), step)))
        return out

    def boundaries(self) -> list[Boundary]:
        st = self.statement
        pi = st.public_inputs
        end_base = self.num_certificates * self.rows
        last = end_base + self.rows - 1
        out = [
            Boundary(0, EPOCH, 0),
            Boundary(0, HEIGHT, 0),
            Boundary(0, CLOSE, int(st.start_epoch_complete)),
            Boundary(last, EPOCH, (st.end_epoch - st.start_epoch) % P),
            Boundary(last, HEIGHT, (st.end_height - st.start_height) % P),
            Boundary(last, CLOSE, int(st.end_epoch_complete)),
        ]
        start = digest_limbs(pi.old_state_root) + digest_limbs(pi.old_validator_set_commitment)
        end = digest_limbs(pi.new_state_root) + digest_limbs(pi.new_validator_set_commitment)
        out += [Boundary(row, DIGEST, limb) for row, limb in enumerate(start)]
        out += [Boundary(end_base + row, DIGEST, limb) for row, limb in enumerate(end)]
        return out


def build_quorum_trace(statement: Statement, witnesses: Sequence[CertificateWitness]) -> tuple[QuorumAir, FieldArray]:
    """Lay out the committed quorum columns for consecutive certificates extending the statement's start."""
    air = QuorumAir(statement, witnesses)
    V, R = air.slots, air.rows
    public = air.public_trace()
    trace = np.zeros((air.width, air.trace_length), dtype=np.uint64)

    gaps = [0] * air.num_blocks
    prev_height, prev_close = statement.start_height, statement.start_epoch_complete
    for b, w in enumerate(witnesses, start=1):
        gap = 0 if prev_close else w.height - prev_height - 1
        if not 0 <= gap < GAP_LIMIT:
            raise ResourceExhausted(f"height gap {gap} outside circuit range")
        gaps[b] = gap
        prev_height, prev_close = w.height, w.closes_epoch

    for b in range(air.num_blocks):
        base = b * R
        real = int(1 <= b <= len(witnesses))
        mask = public[MASK - QUORUM_WIDTH, base:base + V]
        powers = public[POWER - QUORUM_WIDTH, base:base + V]
        signed_run = np.cumsum(mask * powers)
        total_run = np.cumsum(powers)
        signed, total = int(signed_run[-1]), int(total_run[-1])

        trace[SIGNED, base:base + V] = signed_run
        trace[TOTAL, base:base + V] = total_run
        trace[SIGNED, base + V:base + R] = signed
        trace[TOTAL, base + V:base + R] = total
        trace[GAP, base:base + R] = gaps[b]

        limbs = [int(v) for v in public[COORD - QUORUM_WIDTH, base + V:base + V + COORDINATE_ROWS]]
        range_values = (
            limbs
            + decompose(3 * signed - 2 * total, RANGE_BITS, 1)
            + [gaps[b]]
            + decompose(signed - real, RANGE_BITS, 1)
        )
        start_row = base + V
        values = np.asarray(range_values, dtype=np.uint64)
        trace[LIMB, start_row:start_row + len(values)] = values
        bits = (values[:, None] >> np.arange(RANGE_BITS, dtype=np.uint64)) & np.uint64(1)
        trace[BITS:BITS + RANGE_BITS, start_row:start_row + len(values)] = bits.T

    return air, trace
