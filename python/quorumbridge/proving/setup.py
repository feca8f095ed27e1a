"""Versioned structured-setup parameters for the wrapped proof."""

from __future__ import annotations

import hashlib
import json
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from quorumbridge.core.errors import SetupMissing
from quorumbridge.proving import groth16
from quorumbridge.proving.wrap import QuorumCircuit, quorum_circuit

logger = structlog.get_logger()


def _g1_json(p: Any) -> list[str] | None:
    coords = groth16.g1_coords(p)
    return [hex(c) for c in coords] if coords is not None else None


def _g2_json(p: Any) -> list[str] | None:
    coords = groth16.g2_coords(p)
    return [hex(c) for c in coords] if coords is not None else None


def _g1_load(v: list[str] | None) -> Any:
    return groth16.g1_from_coords([int(c, 16) for c in v] if v is not None else None)


def _g2_load(v: list[str] | None) -> Any:
    return groth16.g2_from_coords([int(c, 16) for c in v] if v is not None else None)


@dataclass(frozen=True, slots=True)
class SetupParameters:
    """Proving and verifying keys for the quorum circuit, tagged with a version.

    ``certificates`` and ``slots`` fix the circuit capacity the keys were made for.
    """

    version: str
    proving_key: groth16.ProvingKey
    verifying_key: groth16.VerifyingKey
    certificates: int
    slots: int

    @property
    def circuit(self) -> QuorumCircuit:
        return quorum_circuit(self.certificates, self.slots)

    def to_json(self) -> dict[str, Any]:
        pk, vk = self.proving_key, self.verifying_key
        return {
            "version": self.version,
            "certificates": self.certificates,
            "slots": self.slots,
            "proving_key": {
                "alpha_g1": _g1_json(pk.alpha_g1),
                "beta_g1": _g1_json(pk.beta_g1),
                "beta_g2": _g2_json(pk.beta_g2),
                "delta_g1": _g1_json(pk.delta_g1),
                "delta_g2": _g2_json(pk.delta_g2),
                "a_g1": [_g1_json(p) for p in pk.a_g1],
                "b_g1": [_g1_json(p) for p in pk.b_g1],
                "b_g2": [_g2_json(p) for p in pk.b_g2],
                "l_g1": [_g1_json(p) for p in pk.l_g1],
                "h_g1": [_g1_json(p) for p in pk.h_g1],
            },
            "verifying_key": {
                "alpha_g1": _g1_json(vk.alpha_g1),
                "beta_g2": _g2_json(vk.beta_g2),
                "gamma_g2": _g2_json(vk.gamma_g2),
                "delta_g2": _g2_json(vk.delta_g2),
                "ic": [_g1_json(p) for p in vk.ic],
            },
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> SetupParameters:
        pk, vk = data["proving_key"], data["verifying_key"]
        return cls(
            version=str(data["version"]),
            proving_key=groth16.ProvingKey(
                alpha_g1=_g1_load(pk["alpha_g1"]),
                beta_g1=_g1_load(pk["beta_g1"]),
                beta_g2=_g2_load(pk["beta_g2"]),
                delta_g1=_g1_load(pk["delta_g1"]),
                delta_g2=_g2_load(pk["delta_g2"]),
                a_g1=tuple(_g1_load(p) for p in pk["a_g1"]),
                b_g1=tuple(_g1_load(p) for p in pk["b_g1"]),
                b_g2=tuple(_g2_load(p) for p in pk["b_g2"]),
                l_g1=tuple(_g1_load(p) for p in pk["l_g1"]),
                h_g1=tuple(_g1_load(p) for p in pk["h_g1"]),
            ),
            verifying_key=groth16.VerifyingKey(
                alpha_g1=_g1_load(vk["alpha_g1"]),
                beta_g2=_g2_load(vk["beta_g2"]),
                gamma_g2=_g2_load(vk["gamma_g2"]),
                delta_g2=_g2_load(vk["delta_g2"]),
                ic=tuple(_g1_load(p) for p in vk["ic"]),
            ),
            certificates=int(data["certificates"]),
            slots=int(data["slots"]),
        )

    @property
    def digest(self) -> str:
        canonical = json.dumps(self.to_json(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_json(), f, indent=2)
        logger.info("setup_saved", path=str(path), version=self.version, digest=self.digest[:16])

    @classmethod
    def load(
        cls,
        path: Path | None,
        expected_version: str | None = None,
        expected_digest: str | None = None,
    ) -> SetupParameters:
        """Load and validate parameters; any absence or mismatch is SetupMissing."""
        if path is None or not path.exists():
            raise SetupMissing(f"setup parameters not found at {path}")
        try:
            with open(path) as f:
                params = cls.from_json(json.load(f))
        except (ValueError, KeyError, TypeError) as exc:
            raise SetupMissing(f"setup parameters at {path} unreadable: {exc}") from exc
        if expected_version is not None and params.version != expected_version:
            raise SetupMissing(f"setup version {params.version} != expected {expected_version}")
        if expected_digest is not None and params.digest != expected_digest.lower():
            raise SetupMissing("setup digest does not match the pinned value")
        if (
            params.certificates < 1
            or params.slots < 1
            or len(params.verifying_key.ic) != params.circuit.cs.num_public + 1
        ):
            raise SetupMissing(
                f"setup keys do not fit a circuit of {params.certificates} certificates and {params.slots} slots"
            )
        logger.info("setup_loaded", path=str(path), version=params.version)
        return params


def run_ceremony(
    version: str,
    seed: int | None = None,
    *,
    certificates: int = 2,
    slots: int = 4,
) -> SetupParameters:
    """Single-party ceremony for development and tests. Seeded runs are not secret."""
    rng = random.Random(seed) if seed is not None else None
    pk, vk = groth16.setup(quorum_circuit(certificates, slots).cs, rng)
    logger.info("setup_generated", version=version, seeded=seed is not None, certificates=certificates, slots=slots)
    return SetupParameters(
        version=version, proving_key=pk, verifying_key=vk, certificates=certificates, slots=slots,
    )
