"""Proof bytes together with the evidence a verifier rebuilds public columns from."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace

import lz4.frame

from quorumbridge.core import encoding
from quorumbridge.core.types import BatchProof, QuorumCertificate, ValidatorSet

ENVELOPE_MAGIC = b"QBE1"


@dataclass(frozen=True, slots=True)
class Envelope:
    """A leaf carries the start validator set and its certificates; an
    aggregate carries the inner batch proofs it chains."""

    proof: bytes
    validator_set: ValidatorSet | None = None
    certificates: tuple[QuorumCertificate, ...] = ()
    inner: tuple[BatchProof, ...] = ()

    @property
    def is_aggregate(self) -> bool:
        return bool(self.inner)

    def sealed(self, core: bytes) -> Envelope:
        return replace(self, proof=core)

    def installed_sets(self) -> list[ValidatorSet]:
        """Validator sets the certificates hand over to, in chain order."""
        if self.is_aggregate:
            out: list[ValidatorSet] = []
            for bp in self.inner:
                out.extend(Envelope.from_bytes(bp.proof_bytes).installed_sets())
            return out
        return [
            qc.ledger_info.next_validator_set
            for qc in self.certificates
            if qc.ledger_info.next_validator_set is not None
        ]

    def to_bytes(self) -> bytes:
        body = {
            "proof": self.proof.hex(),
            "validator_set": (
                encoding.validator_set_to_json(self.validator_set)
                if self.validator_set is not None else None
            ),
            "certificates": [encoding.certificate_to_json(qc) for qc in self.certificates],
            "inner": [encoding.batch_proof_to_json(bp) for bp in self.inner],
        }
        return ENVELOPE_MAGIC + lz4.frame.compress(json.dumps(body, separators=(",", ":")).encode())

    @classmethod
    def from_bytes(cls, data: bytes) -> Envelope:
        """Decode an envelope. Raises ValueError on any malformed input."""
        if not data.startswith(ENVELOPE_MAGIC):
            raise ValueError("not a proof envelope")
        try:
            body = json.loads(lz4.frame.decompress(data[len(ENVELOPE_MAGIC):]))
            vs = body["validator_set"]
            envelope = cls(
                proof=bytes.fromhex(body["proof"]),
                validator_set=encoding.validator_set_from_json(vs) if vs is not None else None,
                certificates=tuple(encoding.certificate_from_json(qc) for qc in body["certificates"]),
                inner=tuple(encoding.batch_proof_from_json(bp) for bp in body["inner"]),
            )
        except (RuntimeError, KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ValueError(f"malformed proof envelope: {exc}") from exc
        leaf = envelope.validator_set is not None and envelope.certificates and not envelope.inner
        aggregate = envelope.validator_set is None and not envelope.certificates and len(envelope.inner) >= 2
        if not (leaf or aggregate):
            raise ValueError("envelope must carry either certificates or at least two inner proofs")
        return envelope
