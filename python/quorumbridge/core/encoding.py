"""Canonical encodings, commitments and JSON interchange for model types."""

from __future__ import annotations

import hashlib
import struct
from typing import Any

from quorumbridge.core.types import (
    BatchProof,
    Bytes32,
    LedgerInfo,
    ProofKind,
    PublicInputs,
    QuorumCertificate,
    SignerMask,
    Statement,
    ValidatorInfo,
    ValidatorSet,
    VerifiedHead,
)

VALIDATOR_SET_TAG = b"QUORUMBRIDGE::ValidatorSet"
LEDGER_INFO_TAG = b"QUORUMBRIDGE::LedgerInfo"
STATEMENT_TAG = b"QUORUMBRIDGE::Statement"


def encode_validator_set(validator_set: ValidatorSet) -> bytes:
    parts = [struct.pack(">I", len(validator_set))]
    for v in validator_set:
        parts.append(struct.pack(">H", len(v.identity)))
        parts.append(v.identity)
        parts.append(struct.pack(">H", len(v.public_key)))
        parts.append(v.public_key)
        parts.append(struct.pack(">Q", v.voting_power))
    return b"".join(parts)


def encode_ledger_info(ledger_info: LedgerInfo) -> bytes:
    parts = [
        struct.pack(">QQ", ledger_info.epoch, ledger_info.height),
        _check32(ledger_info.state_root, "state_root"),
        _check32(ledger_info.consensus_digest, "consensus_digest"),
    ]
    if ledger_info.next_validator_set is None:
        parts.append(b"\x00")
    else:
        parts.append(b"\x01")
        parts.append(encode_validator_set(ledger_info.next_validator_set))
    return b"".join(parts)


def encode_statement(statement: Statement) -> bytes:
    pi = statement.public_inputs
    return b"".join([
        struct.pack(
            ">Q Q ? Q Q ? B",
            statement.start_epoch,
            statement.start_height,
            statement.start_epoch_complete,
            statement.end_epoch,
            statement.end_height,
            statement.end_epoch_complete,
            int(pi.proof_kind),
        ),
        _check32(pi.old_state_root, "old_state_root"),
        _check32(pi.old_validator_set_commitment, "old_validator_set_commitment"),
        _check32(pi.new_state_root, "new_state_root"),
        _check32(pi.new_validator_set_commitment, "new_validator_set_commitment"),
    ])


def validator_set_commitment(validator_set: ValidatorSet) -> Bytes32:
    return hashlib.sha256(VALIDATOR_SET_TAG + encode_validator_set(validator_set)).digest()


def signing_message(ledger_info: LedgerInfo) -> bytes:
    """Bytes the validators sign for a ledger info."""
    return LEDGER_INFO_TAG + encode_ledger_info(ledger_info)


def statement_digest(statement: Statement) -> Bytes32:
    return hashlib.sha256(STATEMENT_TAG + encode_statement(statement)).digest()


def _check32(value: bytes, name: str) -> bytes:
    if len(value) != 32:
        raise ValueError(f"{name} must be 32 bytes, got {len(value)}")
    return value


# JSON interchange (hex-encoded bytes)

def validator_set_to_json(validator_set: ValidatorSet) -> list[dict[str, Any]]:
    return [
        {
            "identity": v.identity.hex(),
            "public_key": v.public_key.hex(),
            "voting_power": v.voting_power,
        }
        for v in validator_set
    ]


def validator_set_from_json(data: list[dict[str, Any]]) -> ValidatorSet:
    return ValidatorSet(tuple(
        ValidatorInfo(
            identity=bytes.fromhex(v["identity"]),
            public_key=bytes.fromhex(v["public_key"]),
            voting_power=int(v["voting_power"]),
        )
        for v in data
    ))


def ledger_info_to_json(ledger_info: LedgerInfo) -> dict[str, Any]:
    nxt = ledger_info.next_validator_set
    return {
        "epoch": ledger_info.epoch,
        "height": ledger_info.height,
        "state_root": ledger_info.state_root.hex(),
        "consensus_digest": ledger_info.consensus_digest.hex(),
        "next_validator_set": validator_set_to_json(nxt) if nxt is not None else None,
    }


def ledger_info_from_json(data: dict[str, Any]) -> LedgerInfo:
    nxt = data.get("next_validator_set")
    return LedgerInfo(
        epoch=int(data["epoch"]),
        height=int(data["height"]),
        state_root=bytes.fromhex(data["state_root"]),
        consensus_digest=bytes.fromhex(data["consensus_digest"]),
        next_validator_set=validator_set_from_json(nxt) if nxt is not None else None,
    )


def certificate_to_json(qc: QuorumCertificate) -> dict[str, Any]:
    return {
        "ledger_info": ledger_info_to_json(qc.ledger_info),
        "signers": qc.signer_mask.indices(),
        "aggregate_signature": qc.aggregate_signature.hex(),
    }


def certificate_from_json(data: dict[str, Any]) -> QuorumCertificate:
    return QuorumCertificate(
        ledger_info=ledger_info_from_json(data["ledger_info"]),
        signer_mask=SignerMask.from_indices(data["signers"]),
        aggregate_signature=bytes.fromhex(data["aggregate_signature"]),
    )


def public_inputs_to_json(pi: PublicInputs) -> dict[str, Any]:
    return {
        "old_state_root": pi.old_state_root.hex(),
        "old_validator_set_commitment": pi.old_validator_set_commitment.hex(),
        "new_state_root": pi.new_state_root.hex(),
        "new_validator_set_commitment": pi.new_validator_set_commitment.hex(),
        "proof_kind": pi.proof_kind.name.lower(),
    }


def public_inputs_from_json(data: dict[str, Any]) -> PublicInputs:
    return PublicInputs(
        old_state_root=bytes.fromhex(data["old_state_root"]),
        old_validator_set_commitment=bytes.fromhex(data["old_validator_set_commitment"]),
        new_state_root=bytes.fromhex(data["new_state_root"]),
        new_validator_set_commitment=bytes.fromhex(data["new_validator_set_commitment"]),
        proof_kind=ProofKind[data["proof_kind"].upper()],
    )


def batch_proof_to_json(bp: BatchProof) -> dict[str, Any]:
    return {
        "start_epoch": bp.start_epoch,
        "start_height": bp.start_height,
        "start_epoch_complete": bp.start_epoch_complete,
        "end_epoch": bp.end_epoch,
        "end_height": bp.end_height,
        "end_epoch_complete": bp.end_epoch_complete,
        "public_inputs": public_inputs_to_json(bp.public_inputs),
        "proof_kind": bp.proof_kind.name.lower(),
        "proof_bytes": bp.proof_bytes.hex(),
    }


def batch_proof_from_json(data: dict[str, Any]) -> BatchProof:
    return BatchProof(
        start_epoch=int(data["start_epoch"]),
        start_height=int(data["start_height"]),
        end_epoch=int(data["end_epoch"]),
        end_height=int(data["end_height"]),
        public_inputs=public_inputs_from_json(data["public_inputs"]),
        proof_bytes=bytes.fromhex(data["proof_bytes"]),
        proof_kind=ProofKind[data["proof_kind"].upper()],
        start_epoch_complete=bool(data.get("start_epoch_complete", False)),
        end_epoch_complete=bool(data.get("end_epoch_complete", False)),
    )


def head_to_json(head: VerifiedHead) -> dict[str, Any]:
    return {
        "epoch": head.epoch,
        "height": head.height,
        "state_root": head.state_root.hex(),
        "validator_set_commitment": head.validator_set_commitment.hex(),
        "epoch_complete": head.epoch_complete,
    }


def head_from_json(data: dict[str, Any]) -> VerifiedHead:
    return VerifiedHead(
        epoch=int(data["epoch"]),
        height=int(data["height"]),
        state_root=bytes.fromhex(data["state_root"]),
        validator_set_commitment=bytes.fromhex(data["validator_set_commitment"]),
        epoch_complete=bool(data.get("epoch_complete", False)),
    )
