"""Pairing-friendly quorum circuit behind the wrapped proof kind.

The circuit re-checks the quorum arithmetic of a certificate run over the
BN254 scalar field: signer bits against the packed mask, signed power at or
above two thirds of the total, at least one signer, contiguous epochs and
heights, and the run's last certificate landing on the statement's end.
Masks, powers, positions and digests are public inputs the verifier derives
from the certificates it was handed.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

from quorumbridge.core.errors import ResourceExhausted
from quorumbridge.core.types import Bytes32, ProofKind, Statement
from quorumbridge.crypto.field import decompose
from quorumbridge.proving.air import GAP_LIMIT, POWER_LIMIT, RANGE_BITS, CertificateWitness
from quorumbridge.proving.r1cs import ONE, R, ConstraintSystem, LinearCombination

WRAPPED_TAG = int(ProofKind.WRAPPED_SUCCINCT)

HALF_BITS = 128


def to_scalar(data: Bytes32) -> int:
    return int.from_bytes(data, "big") % R


def halves(data: Bytes32) -> tuple[int, int]:
    """A 32-byte digest as (high, low) 128-bit scalars."""
    value = int.from_bytes(data, "big")
    return value >> HALF_BITS, value & ((1 << HALF_BITS) - 1)


def _bits_lc(bits: Sequence[int]) -> LinearCombination:
    return {var: 1 << k for k, var in enumerate(bits)}


@dataclass(frozen=True, slots=True)
class _Slot:
    """Variable indices for one certificate position."""

    real: int
    epoch: int
    height: int
    close: int
    packed_mask: int
    powers: tuple[int, ...]
    root: tuple[int, int]
    commitment: tuple[int, int]


@dataclass(frozen=True, slots=True)
class _Private:
    mask_bits: tuple[int, ...]
    products: tuple[int, ...]
    slack_bits: tuple[int, ...]
    positive_bits: tuple[int, ...]
    gap_bits: tuple[int, ...]
    step: int
    keep: int


class QuorumCircuit:
    """Up to ``certificates`` certificates over validator sets of up to ``slots`` members."""

    def __init__(self, certificates: int, slots: int) -> None:
        if certificates < 1 or slots < 1:
            raise ValueError("circuit capacity must be positive")
        self.certificates = certificates
        self.slots = slots
        cs = ConstraintSystem()

        self.digest = cs.public_input()
        self.tag = cs.public_input()
        self.start_complete = cs.public_input()
        self.old_commitment = (cs.public_input(), cs.public_input())
        self.end_epoch = cs.public_input()
        self.end_height = cs.public_input()
        self.end_close = cs.public_input()
        self.new_root = (cs.public_input(), cs.public_input())
        self.new_commitment = (cs.public_input(), cs.public_input())
        self.positions = tuple(
            _Slot(
                real=cs.public_input(),
                epoch=cs.public_input(),
                height=cs.public_input(),
                close=cs.public_input(),
                packed_mask=cs.public_input(),
                powers=tuple(cs.public_input() for _ in range(slots)),
                root=(cs.public_input(), cs.public_input()),
                commitment=(cs.public_input(), cs.public_input()),
            )
            for _ in range(certificates)
        )

        self.digest_copy = cs.private()
        self.private = tuple(
            _Private(
                mask_bits=tuple(cs.private() for _ in range(slots)),
                products=tuple(cs.private() for _ in range(slots)),
                slack_bits=tuple(cs.private() for _ in range(RANGE_BITS)),
                positive_bits=tuple(cs.private() for _ in range(RANGE_BITS)),
                gap_bits=tuple(cs.private() for _ in range(RANGE_BITS)),
                step=cs.private(),
                keep=cs.private(),
            )
            for _ in range(certificates)
        )

        cs.enforce({self.digest: 1}, {ONE: 1}, {self.digest_copy: 1})
        cs.enforce({self.tag: 1}, {ONE: 1}, {ONE: WRAPPED_TAG})
        self._boolean(cs, self.start_complete)

        for i, (pos, priv) in enumerate(zip(self.positions, self.private)):
            self._constrain_position(cs, i, pos, priv)
        self.cs = cs

    @staticmethod
    def _boolean(cs: ConstraintSystem, var: int) -> None:
        cs.enforce({var: 1}, {var: 1}, {var: 1})

    def _constrain_position(self, cs: ConstraintSystem, i: int, pos: _Slot, priv: _Private) -> None:
        if i == 0:
            cs.enforce({pos.real: 1}, {ONE: 1}, {ONE: 1})
            prev_epoch: LinearCombination = {}
            prev_height: LinearCombination = {}
            prev_close = self.start_complete
            prev_commitment = self.old_commitment
        else:
            prev = self.positions[i - 1]
            self._boolean(cs, pos.real)
            cs.enforce({pos.real: 1}, {prev.real: 1}, {pos.real: 1})
            prev_epoch = {prev.epoch: 1}
            prev_height = {prev.height: 1}
            prev_close = prev.close
            prev_commitment = prev.commitment
        self._boolean(cs, pos.close)

        # Signers
        for bit in priv.mask_bits:
            self._boolean(cs, bit)
        cs.enforce(_bits_lc(priv.mask_bits), {ONE: 1}, {pos.packed_mask: 1})
        for bit, power, product in zip(priv.mask_bits, pos.powers, priv.products):
            cs.enforce({bit: 1}, {power: 1}, {product: 1})

        # 3 * signed - 2 * total and signed - real are both non-negative
        for bit in priv.slack_bits + priv.positive_bits + priv.gap_bits:
            self._boolean(cs, bit)
        slack: LinearCombination = {p: 3 for p in priv.products}
        slack.update({w: -2 for w in pos.powers})
        cs.enforce(_bits_lc(priv.slack_bits), {ONE: 1}, slack)
        positive: LinearCombination = {p: 1 for p in priv.products}
        positive[pos.real] = -1
        cs.enforce(_bits_lc(priv.positive_bits), {ONE: 1}, positive)

        # Position links
        cs.enforce({pos.real: 1}, {ONE: 1, prev_close: -1}, {priv.step: 1})
        epoch_step: LinearCombination = {pos.epoch: 1, prev_close: -1}
        for var, coeff in prev_epoch.items():
            epoch_step[var] = epoch_step.get(var, 0) - coeff
        cs.enforce({pos.real: 1}, epoch_step, {})
        height_step: LinearCombination = {pos.height: 1, ONE: -1}
        for var, coeff in prev_height.items():
            height_step[var] = height_step.get(var, 0) - coeff
        for k, bit in enumerate(priv.gap_bits):
            height_step[bit] = -(1 << k)
        cs.enforce({priv.step: 1}, height_step, {})

        # The set commitment changes only where an epoch closes
        cs.enforce({pos.real: 1}, {ONE: 1, pos.close: -1}, {priv.keep: 1})
        for now, before in zip(pos.commitment, prev_commitment):
            cs.enforce({priv.keep: 1}, {now: 1, before: -1}, {})

        # The last real position is the statement's end
        last: LinearCombination = {pos.real: 1}
        if i + 1 < self.certificates:
            last[self.positions[i + 1].real] = -1
        for mine, end in (
            (pos.epoch, self.end_epoch),
            (pos.height, self.end_height),
            (pos.close, self.end_close),
            *zip(pos.root, self.new_root),
            *zip(pos.commitment, self.new_commitment),
        ):
            cs.enforce(last, {mine: 1, end: -1}, {})

    def _check_capacity(self, witnesses: Sequence[CertificateWitness]) -> None:
        if not witnesses:
            raise ValueError("quorum circuit needs at least one certificate")
        if len(witnesses) > self.certificates:
            raise ResourceExhausted(
                f"{len(witnesses)} certificates exceed circuit capacity {self.certificates}"
            )
        for w in witnesses:
            if len(w.mask) != len(w.powers) or len(w.mask) > self.slots:
                raise ResourceExhausted(
                    f"validator set of {len(w.powers)} exceeds circuit capacity {self.slots}"
                )
            if any(p < 0 for p in w.powers):
                raise ValueError("negative voting power")
            if sum(w.powers) >= POWER_LIMIT:
                raise ResourceExhausted(f"total power {sum(w.powers)} exceeds circuit bound")

    def public_inputs(self, statement: Statement, witnesses: Sequence[CertificateWitness]) -> list[int]:
        """Public inputs in allocation order, derived from the statement and certificates."""
        self._check_capacity(witnesses)
        pi = statement.public_inputs
        out = [
            to_scalar(statement.digest),
            WRAPPED_TAG,
            int(statement.start_epoch_complete),
            *halves(pi.old_validator_set_commitment),
            (statement.end_epoch - statement.start_epoch) % R,
            (statement.end_height - statement.start_height) % R,
            int(statement.end_epoch_complete),
            *halves(pi.new_state_root),
            *halves(pi.new_validator_set_commitment),
        ]
        for i in range(self.certificates):
            if i >= len(witnesses):
                out += [0] * (9 + self.slots)
                continue
            w = witnesses[i]
            powers = list(w.powers) + [0] * (self.slots - len(w.powers))
            out += [
                1,
                (w.epoch - statement.start_epoch) % R,
                (w.height - statement.start_height) % R,
                int(w.closes_epoch),
                sum(bit << j for j, bit in enumerate(w.mask)),
                *powers,
                *halves(w.state_root),
                *halves(w.validator_set_commitment),
            ]
        return out

    def assign(self, statement: Statement, witnesses: Sequence[CertificateWitness]) -> list[int]:
        """Full witness vector. Raises SoundnessError when a quorum bound fails."""
        publics = self.public_inputs(statement, witnesses)
        values = [0] * self.cs.num_variables
        values[ONE] = 1
        values[1:1 + len(publics)] = publics
        values[self.digest_copy] = publics[0]

        prev_height, prev_close = statement.start_height, statement.start_epoch_complete
        for i, priv in enumerate(self.private):
            if i >= len(witnesses):
                continue
            w = witnesses[i]
            mask = list(w.mask) + [0] * (self.slots - len(w.mask))
            powers = list(w.powers) + [0] * (self.slots - len(w.powers))
            signed = sum(m * p for m, p in zip(mask, powers))
            total = sum(powers)
            gap = 0 if prev_close else w.height - prev_height - 1
            if not 0 <= gap < GAP_LIMIT:
                raise ResourceExhausted(f"height gap {gap} outside circuit range")

            for var, bit in zip(priv.mask_bits, mask):
                values[var] = bit
            for var, m, p in zip(priv.products, mask, powers):
                values[var] = m * p
            for bits, value in (
                (priv.slack_bits, 3 * signed - 2 * total),
                (priv.positive_bits, signed - 1),
                (priv.gap_bits, gap),
            ):
                for var, bit in zip(bits, decompose(value, 1, RANGE_BITS)):
                    values[var] = bit
            values[priv.step] = int(not prev_close)
            values[priv.keep] = int(not w.closes_epoch)
            prev_height, prev_close = w.height, w.closes_epoch
        return values


@lru_cache(maxsize=4)
def quorum_circuit(certificates: int, slots: int) -> QuorumCircuit:
    return QuorumCircuit(certificates, slots)
