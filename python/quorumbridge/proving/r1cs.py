"""Rank-1 constraint systems over the BN254 scalar field."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from py_ecc.optimized_bn128 import curve_order

R = curve_order

LinearCombination = dict[int, int]

ONE = 0


@dataclass(frozen=True, slots=True)
class Constraint:
    """a(w) * b(w) = c(w)."""

    a: LinearCombination
    b: LinearCombination
    c: LinearCombination


def evaluate_lc(lc: LinearCombination, witness: Sequence[int]) -> int:
    return sum(coeff * witness[var] for var, coeff in lc.items()) % R


@dataclass(slots=True)
class ConstraintSystem:
    """Variables are laid out as [one, public inputs..., private witness...]."""

    num_public: int = 0
    num_variables: int = 1
    constraints: list[Constraint] = field(default_factory=list)

    def public_input(self) -> int:
        if self.num_variables != self.num_public + 1:
            raise ValueError("public inputs must be allocated before private variables")
        self.num_public += 1
        self.num_variables += 1
        return self.num_variables - 1

    def private(self) -> int:
        self.num_variables += 1
        return self.num_variables - 1

    def enforce(self, a: LinearCombination, b: LinearCombination, c: LinearCombination) -> None:
        self.constraints.append(Constraint(dict(a), dict(b), dict(c)))

    @property
    def private_range(self) -> range:
        return range(self.num_public + 1, self.num_variables)

    def is_satisfied(self, witness: Sequence[int]) -> bool:
        if len(witness) != self.num_variables or witness[ONE] != 1:
            return False
        return all(
            evaluate_lc(k.a, witness) * evaluate_lc(k.b, witness) % R == evaluate_lc(k.c, witness)
            for k in self.constraints
        )


# Dense polynomial helpers, coefficients low to high.

def poly_mul(p: Sequence[int], q: Sequence[int]) -> list[int]:
    out = [0] * (len(p) + len(q) - 1)
    for i, a in enumerate(p):
        if a:
            for j, b in enumerate(q):
                out[i + j] = (out[i + j] + a * b) % R
    return out


def poly_sub(p: Sequence[int], q: Sequence[int]) -> list[int]:
    n = max(len(p), len(q))
    return [((p[i] if i < len(p) else 0) - (q[i] if i < len(q) else 0)) % R for i in range(n)]


def poly_divmod(p: Sequence[int], divisor: Sequence[int]) -> tuple[list[int], list[int]]:
    rem = list(p)
    lead_inv = pow(divisor[-1], -1, R)
    quotient = [0] * max(1, len(rem) - len(divisor) + 1)
    for shift in range(len(rem) - len(divisor), -1, -1):
        coeff = rem[shift + len(divisor) - 1] * lead_inv % R
        quotient[shift] = coeff
        for i, d in enumerate(divisor):
            rem[shift + i] = (rem[shift + i] - coeff * d) % R
    return quotient, rem[:len(divisor) - 1]


def vanishing(points: Sequence[int]) -> list[int]:
    poly = [1]
    for x in points:
        poly = poly_mul(poly, [-x % R, 1])
    return poly


def lagrange_at(points: Sequence[int], tau: int) -> list[int]:
    """Every Lagrange basis polynomial over points, evaluated at tau."""
    out = []
    for i, xi in enumerate(points):
        num, den = 1, 1
        for k, xk in enumerate(points):
            if k != i:
                num = num * (tau - xk) % R
                den = den * (xi - xk) % R
        out.append(num * pow(den, -1, R) % R)
    return out


def interpolate(points: Sequence[int], values: Sequence[int]) -> list[int]:
    """Coefficients of the lowest-degree polynomial through (points[i], values[i])."""
    n = len(points)
    full = vanishing(points)
    coeffs = [0] * n
    for xi, yi in zip(points, values):
        if yi % R == 0:
            continue
        # full / (x - xi) by synthetic division
        basis = [0] * n
        carry = 0
        for j in range(n, 0, -1):
            carry = (full[j] + carry * xi) % R
            basis[j - 1] = carry
        den = 0
        for c in reversed(basis):
            den = (den * xi + c) % R
        scale = yi * pow(den, -1, R) % R
        for j, c in enumerate(basis):
            coeffs[j] = (coeffs[j] + c * scale) % R
    return coeffs
