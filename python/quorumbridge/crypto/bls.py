"""BLS12-381 aggregate signatures (proof-of-possession ciphersuite)."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Sequence

from py_ecc.bls import G2ProofOfPossession as bls_pop
from py_ecc.bls.g2_primitives import G1_to_pubkey, G2_to_signature, pubkey_to_G1, signature_to_G2
from py_ecc.optimized_bls12_381 import Z1, Z2, add, is_inf, normalize

from quorumbridge.core.types import PublicKey, Signature

# BLS12-381 base field elements are 381 bits.
COORDINATE_BITS = 381


def derive_secret_key(seed: bytes) -> int:
    return bls_pop.KeyGen(seed)


def public_key(secret_key: int) -> PublicKey:
    return bls_pop.SkToPk(secret_key)


def sign(secret_key: int, message: bytes) -> Signature:
    return bls_pop.Sign(secret_key, message)


def aggregate_signatures(signatures: Sequence[Signature]) -> Signature:
    return bls_pop.Aggregate(list(signatures))


@lru_cache(maxsize=4096)
def public_key_point(pk: PublicKey) -> Any:
    """Decompress and subgroup-check a public key. Raises ValueError."""
    if not bls_pop.KeyValidate(pk):
        raise ValueError("invalid BLS public key")
    return pubkey_to_G1(pk)


def aggregate_public_key(public_keys: Sequence[PublicKey]) -> tuple[PublicKey, Any]:
    """Sum signer keys in G1; returns the compressed key and the point."""
    acc = Z1
    for pk in public_keys:
        acc = add(acc, public_key_point(pk))
    if is_inf(acc):
        raise ValueError("aggregate public key is the identity")
    return G1_to_pubkey(acc), acc


def verify(aggregate_pk: PublicKey, message: bytes, signature: Signature) -> bool:
    """Single pairing check of an aggregate signature over one message."""
    return bool(bls_pop.Verify(aggregate_pk, message, signature))


def signature_point(signature: Signature) -> Any:
    return signature_to_G2(signature)


def verify_many(public_keys: Sequence[PublicKey], messages: Sequence[bytes], signature_points: Sequence[Any]) -> bool:
    """One multi-pairing over distinct (key, message) pairs against the summed signatures."""
    if not public_keys or len(public_keys) != len(messages) or len(messages) != len(signature_points):
        return False
    acc = Z2
    for point in signature_points:
        acc = add(acc, point)
    return bool(bls_pop.AggregateVerify(list(public_keys), list(messages), G2_to_signature(acc)))


def _as_int(c: Any) -> int:
    return c if isinstance(c, int) else c.n


def g1_affine(point: Any) -> tuple[int, int]:
    x, y = normalize(point)
    return _as_int(x), _as_int(y)


def g2_affine(point: Any) -> tuple[int, int, int, int]:
    x, y = normalize(point)
    x0, x1 = (_as_int(c) for c in x.coeffs)
    y0, y1 = (_as_int(c) for c in y.coeffs)
    return x0, x1, y0, y1
