"""BabyBear prime field arithmetic over numpy uint64 vectors."""

from __future__ import annotations

from functools import lru_cache
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from quorumbridge.core.errors import SoundnessError

P = 15 * (1 << 27) + 1
GENERATOR = 31
TWO_ADICITY = 27
FIELD_BITS = 31
INV2 = (P + 1) // 2

FieldArray = NDArray[np.uint64]


def inv(a: int) -> int:
    a %= P
    if a == 0:
        raise ZeroDivisionError("inverse of zero in field")
    return pow(a, P - 2, P)


def root_of_unity(n: int) -> int:
    """Primitive n-th root of unity for a power-of-two n."""
    if n <= 0 or n & (n - 1) or n > (1 << TWO_ADICITY):
        raise ValueError(f"No subgroup of order {n}")
    return pow(GENERATOR, (P - 1) // n, P)


def as_field(values: Sequence[int] | FieldArray) -> FieldArray:
    return np.asarray(values, dtype=np.uint64) % P


def powers(base: int, n: int) -> FieldArray:
    """[1, base, base^2, ..., base^(n-1)]."""
    out = np.ones(1, dtype=np.uint64)
    base %= P
    while len(out) < n:
        step = pow(base, len(out), P)
        out = np.concatenate((out, out * np.uint64(step) % P))
    return out[:n]


def pow_array(x: FieldArray, exponent: int) -> FieldArray:
    result = np.ones_like(x)
    acc = x % P
    while exponent:
        if exponent & 1:
            result = result * acc % P
        acc = acc * acc % P
        exponent >>= 1
    return result


def inv_array(x: FieldArray) -> FieldArray:
    if np.any(x % P == 0):
        raise ZeroDivisionError("inverse of zero in field vector")
    return pow_array(x, P - 2)


@lru_cache(maxsize=32)
def _bit_reverse(n: int) -> NDArray[np.int64]:
    bits = n.bit_length() - 1
    idx = np.arange(n, dtype=np.int64)
    rev = np.zeros(n, dtype=np.int64)
    for b in range(bits):
        rev |= ((idx >> b) & 1) << (bits - 1 - b)
    return rev


def ntt(values: FieldArray, root: int) -> FieldArray:
    """Radix-2 number-theoretic transform over the last axis."""
    a = np.asarray(values, dtype=np.uint64)
    n = a.shape[-1]
    if n & (n - 1):
        raise ValueError("NTT length must be a power of two")
    a = a[..., _bit_reverse(n)] % P
    size = 2
    while size <= n:
        half = size // 2
        tw = powers(pow(root, n // size, P), half)
        blocks = a.reshape(a.shape[:-1] + (n // size, size))
        u = blocks[..., :half]
        v = blocks[..., half:] * tw % P
        a = np.concatenate(((u + v) % P, (u + P - v) % P), axis=-1).reshape(a.shape)
        size *= 2
    return a


def intt(values: FieldArray, root: int) -> FieldArray:
    n = np.asarray(values).shape[-1]
    return ntt(values, inv(root)) * np.uint64(inv(n)) % P


def low_degree_extend(columns: FieldArray, blowup: int, shift: int = GENERATOR) -> FieldArray:
    """Evaluate each column's interpolant on the coset shift * <w_{n*blowup}>."""
    cols = np.atleast_2d(np.asarray(columns, dtype=np.uint64))
    n = cols.shape[-1]
    coeffs = intt(cols, root_of_unity(n))
    coeffs = coeffs * powers(shift, n) % P
    padded = np.zeros(cols.shape[:-1] + (n * blowup,), dtype=np.uint64)
    padded[..., :n] = coeffs
    return ntt(padded, root_of_unity(n * blowup))


def coset_domain(size: int, shift: int = GENERATOR) -> FieldArray:
    return powers(root_of_unity(size), size) * np.uint64(shift % P) % P


def interpolate(values: Sequence[int]) -> list[int]:
    """Coefficients of the polynomial taking values[i] at w_n^i."""
    arr = as_field(values)
    return [int(c) for c in intt(arr, root_of_unity(len(arr)))]


def evaluate(coeffs: Sequence[int], x: int) -> int:
    acc = 0
    for c in reversed(coeffs):
        acc = (acc * x + c) % P
    return acc


def decompose(value: int, limb_bits: int, count: int) -> list[int]:
    """Split value into count little-endian limbs of limb_bits each.

    Limbs must stay strictly below the field size so that a limb and its
    wrapped negation can never be confused.
    """
    if limb_bits >= FIELD_BITS or limb_bits <= 0:
        raise SoundnessError(f"limb width {limb_bits} not below field width {FIELD_BITS}")
    if value < 0 or value >> (limb_bits * count):
        raise SoundnessError(f"value does not fit in {count} limbs of {limb_bits} bits")
    mask = (1 << limb_bits) - 1
    return [(value >> (limb_bits * i)) & mask for i in range(count)]


def recompose(limbs: Sequence[int], limb_bits: int) -> int:
    return sum(int(limb) << (limb_bits * i) for i, limb in enumerate(limbs))
