"""Groth16 over BN254: setup, prove and the four-pairing verification."""

from __future__ import annotations

import random
import secrets
from dataclasses import dataclass
from typing import Any, Sequence

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    G1,
    G2,
    Z1,
    Z2,
    add,
    b,
    b2,
    curve_order,
    field_modulus,
    final_exponentiate,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    normalize,
    pairing,
)

from quorumbridge.proving.r1cs import (
    ConstraintSystem,
    evaluate_lc,
    interpolate,
    lagrange_at,
    poly_divmod,
    poly_mul,
    poly_sub,
    vanishing,
)

Point = Any

G1_BYTES = 64
G2_BYTES = 128
PROOF_BYTES = 2 * G1_BYTES + G2_BYTES


@dataclass(frozen=True, slots=True)
class ProvingKey:
    alpha_g1: Point
    beta_g1: Point
    beta_g2: Point
    delta_g1: Point
    delta_g2: Point
    a_g1: tuple[Point, ...]
    b_g1: tuple[Point, ...]
    b_g2: tuple[Point, ...]
    l_g1: tuple[Point, ...]
    h_g1: tuple[Point, ...]


@dataclass(frozen=True, slots=True)
class VerifyingKey:
    alpha_g1: Point
    beta_g2: Point
    gamma_g2: Point
    delta_g2: Point
    ic: tuple[Point, ...]


@dataclass(frozen=True, slots=True)
class Proof:
    a: Point
    b: Point
    c: Point

    def to_bytes(self) -> bytes:
        return g1_to_bytes(self.a) + g2_to_bytes(self.b) + g1_to_bytes(self.c)

    @classmethod
    def from_bytes(cls, data: bytes) -> Proof:
        if len(data) != PROOF_BYTES:
            raise ValueError(f"Groth16 proof must be {PROOF_BYTES} bytes, got {len(data)}")
        return cls(
            a=g1_from_bytes(data[:G1_BYTES]),
            b=g2_from_bytes(data[G1_BYTES:G1_BYTES + G2_BYTES]),
            c=g1_from_bytes(data[G1_BYTES + G2_BYTES:]),
        )


def _points(m: int) -> list[int]:
    return list(range(1, m + 1))


def _scalar(rng: random.Random) -> int:
    return rng.randrange(1, curve_order)


def _msm(points: Sequence[Point], scalars: Sequence[int], zero: Point) -> Point:
    acc = zero
    for p, s in zip(points, scalars):
        s %= curve_order
        if s:
            acc = add(acc, multiply(p, s))
    return acc


def setup(cs: ConstraintSystem, rng: random.Random | None = None) -> tuple[ProvingKey, VerifyingKey]:
    """Circuit-specific setup. The toxic scalars never leave this function."""
    rng = rng or secrets.SystemRandom()
    tau, alpha, beta, gamma, delta = (_scalar(rng) for _ in range(5))
    m = len(cs.constraints)
    points = _points(m)
    basis = lagrange_at(points, tau)
    z_tau = 1
    for x in points:
        z_tau = z_tau * (tau - x) % curve_order

    u = [0] * cs.num_variables
    v = [0] * cs.num_variables
    w = [0] * cs.num_variables
    for i, k in enumerate(cs.constraints):
        for var, coeff in k.a.items():
            u[var] = (u[var] + coeff * basis[i]) % curve_order
        for var, coeff in k.b.items():
            v[var] = (v[var] + coeff * basis[i]) % curve_order
        for var, coeff in k.c.items():
            w[var] = (w[var] + coeff * basis[i]) % curve_order

    gamma_inv = pow(gamma, -1, curve_order)
    delta_inv = pow(delta, -1, curve_order)

    def combined(j: int, inv_factor: int) -> int:
        return (beta * u[j] + alpha * v[j] + w[j]) * inv_factor % curve_order

    pk = ProvingKey(
        alpha_g1=multiply(G1, alpha),
        beta_g1=multiply(G1, beta),
        beta_g2=multiply(G2, beta),
        delta_g1=multiply(G1, delta),
        delta_g2=multiply(G2, delta),
        a_g1=tuple(multiply(G1, x) for x in u),
        b_g1=tuple(multiply(G1, x) for x in v),
        b_g2=tuple(multiply(G2, x) for x in v),
        l_g1=tuple(multiply(G1, combined(j, delta_inv)) for j in cs.private_range),
        h_g1=tuple(
            multiply(G1, pow(tau, k, curve_order) * z_tau * delta_inv % curve_order)
            for k in range(max(1, m - 1))
        ),
    )
    vk = VerifyingKey(
        alpha_g1=pk.alpha_g1,
        beta_g2=pk.beta_g2,
        gamma_g2=multiply(G2, gamma),
        delta_g2=pk.delta_g2,
        ic=tuple(multiply(G1, combined(j, gamma_inv)) for j in range(cs.num_public + 1)),
    )
    return pk, vk


def prove(pk: ProvingKey, cs: ConstraintSystem, witness: Sequence[int],
          rng: random.Random | None = None) -> Proof:
    if not cs.is_satisfied(witness):
        raise ValueError("witness does not satisfy the constraint system")
    rng = rng or secrets.SystemRandom()
    points = _points(len(cs.constraints))

    a_poly = interpolate(points, [evaluate_lc(k.a, witness) for k in cs.constraints])
    b_poly = interpolate(points, [evaluate_lc(k.b, witness) for k in cs.constraints])
    c_poly = interpolate(points, [evaluate_lc(k.c, witness) for k in cs.constraints])
    h_poly, remainder = poly_divmod(poly_sub(poly_mul(a_poly, b_poly), c_poly), vanishing(points))
    if any(remainder):
        raise ValueError("quotient polynomial has a remainder")

    r, s = _scalar(rng), _scalar(rng)
    proof_a = add(add(pk.alpha_g1, _msm(pk.a_g1, witness, Z1)), multiply(pk.delta_g1, r))
    proof_b = add(add(pk.beta_g2, _msm(pk.b_g2, witness, Z2)), multiply(pk.delta_g2, s))
    b_g1 = add(add(pk.beta_g1, _msm(pk.b_g1, witness, Z1)), multiply(pk.delta_g1, s))

    private = [witness[j] for j in cs.private_range]
    proof_c = _msm(pk.l_g1, private, Z1)
    proof_c = add(proof_c, _msm(pk.h_g1, h_poly, Z1))
    proof_c = add(proof_c, multiply(proof_a, s))
    proof_c = add(proof_c, multiply(b_g1, r))
    proof_c = add(proof_c, neg(multiply(pk.delta_g1, r * s % curve_order)))
    return Proof(a=proof_a, b=proof_b, c=proof_c)


def verify(vk: VerifyingKey, public_inputs: Sequence[int], proof: Proof) -> bool:
    """e(A, B) == e(alpha, beta) * e(IC(x), gamma) * e(C, delta)."""
    if len(public_inputs) + 1 != len(vk.ic):
        return False
    if any(not 0 <= x < curve_order for x in public_inputs):
        return False
    ic = _msm(vk.ic, [1, *public_inputs], Z1)
    product = (
        pairing(proof.b, neg(proof.a), final_exponentiate=False)
        * pairing(vk.beta_g2, vk.alpha_g1, final_exponentiate=False)
        * pairing(vk.gamma_g2, ic, final_exponentiate=False)
        * pairing(vk.delta_g2, proof.c, final_exponentiate=False)
    )
    return final_exponentiate(product) == FQ12.one()


# Point encoding: big-endian affine coordinates, all-zero for infinity.

def _int(c: Any) -> int:
    return c if isinstance(c, int) else c.n


def g1_coords(p: Point) -> tuple[int, int] | None:
    if is_inf(p):
        return None
    x, y = normalize(p)
    return _int(x), _int(y)


def g2_coords(p: Point) -> tuple[int, int, int, int] | None:
    if is_inf(p):
        return None
    x, y = normalize(p)
    x0, x1 = (_int(c) for c in x.coeffs)
    y0, y1 = (_int(c) for c in y.coeffs)
    return x0, x1, y0, y1


def g1_from_coords(coords: Sequence[int] | None) -> Point:
    if coords is None:
        return Z1
    x, y = coords
    if not (0 <= x < field_modulus and 0 <= y < field_modulus):
        raise ValueError("G1 coordinate out of range")
    p = (FQ(x), FQ(y), FQ.one())
    if not is_on_curve(p, b):
        raise ValueError("point not on G1")
    return p


def g2_from_coords(coords: Sequence[int] | None) -> Point:
    if coords is None:
        return Z2
    x0, x1, y0, y1 = coords
    if any(not 0 <= c < field_modulus for c in coords):
        raise ValueError("G2 coordinate out of range")
    p = (FQ2([x0, x1]), FQ2([y0, y1]), FQ2.one())
    if not is_on_curve(p, b2):
        raise ValueError("point not on G2 twist")
    if not is_inf(multiply(p, curve_order)):
        raise ValueError("point not in G2 subgroup")
    return p


def g1_to_bytes(p: Point) -> bytes:
    coords = g1_coords(p)
    if coords is None:
        return bytes(G1_BYTES)
    return b"".join(c.to_bytes(32, "big") for c in coords)


def g1_from_bytes(data: bytes) -> Point:
    if data == bytes(G1_BYTES):
        return Z1
    return g1_from_coords([int.from_bytes(data[i:i + 32], "big") for i in (0, 32)])


def g2_to_bytes(p: Point) -> bytes:
    coords = g2_coords(p)
    if coords is None:
        return bytes(G2_BYTES)
    return b"".join(c.to_bytes(32, "big") for c in coords)


def g2_from_bytes(data: bytes) -> Point:
    if data == bytes(G2_BYTES):
        return Z2
    return g2_from_coords([int.from_bytes(data[i:i + 32], "big") for i in (0, 32, 64, 96)])
