"""The two proof systems behind one prove/verify interface.

Every proof travels in an Envelope with the evidence its public values are
rebuilt from: a leaf proof carries its certificates and the start validator
set, an aggregate carries the inner batch proofs it chains. Verification
re-derives everything from that evidence and never trusts prover-supplied
public values.
"""

from __future__ import annotations

import struct
from typing import Protocol, Sequence

import structlog

from quorumbridge.core.config import StarkConfig
from quorumbridge.core.errors import ResourceExhausted, SetupMissing, SoundnessError, VerifyError
from quorumbridge.core.types import ProofKind, Statement
from quorumbridge.crypto.field import FieldArray
from quorumbridge.proving import groth16
from quorumbridge.proving.air import Air, CertificateWitness, QuorumAir
from quorumbridge.proving.deadline import NO_DEADLINE, Deadline
from quorumbridge.proving.envelope import Envelope
from quorumbridge.proving.setup import SetupParameters
from quorumbridge.proving.stark import StarkProof, StarkProver, StarkVerifier

logger = structlog.get_logger()


class ProofSystem(Protocol):
    kind: ProofKind

    def prove(self, air: Air, trace: FieldArray, statement: Statement, evidence: Envelope,
              deadline: Deadline = NO_DEADLINE) -> bytes:
        ...

    def verify(self, proof_bytes: bytes, statement: Statement) -> bool:
        ...


def encode_wrapped(version: str, proof: groth16.Proof) -> bytes:
    tag = version.encode()
    return struct.pack(">H", len(tag)) + tag + proof.to_bytes()


def decode_wrapped(data: bytes) -> tuple[str, groth16.Proof]:
    if len(data) < 2:
        raise ValueError("wrapped proof truncated")
    (n,) = struct.unpack_from(">H", data, 0)
    try:
        version = data[2:2 + n].decode()
    except UnicodeDecodeError as exc:
        raise ValueError("wrapped proof version is not text") from exc
    return version, groth16.Proof.from_bytes(data[2 + n:])


class _EnvelopeSystem:
    """Shared envelope handling; subclasses prove and check quorum runs."""

    kind: ProofKind

    def __init__(self, config: StarkConfig | None = None) -> None:
        self.config = config or StarkConfig()
        self.prover = StarkProver(self.config)
        self.verifier = StarkVerifier(self.config)

    def prove(self, air: Air, trace: FieldArray, statement: Statement, evidence: Envelope,
              deadline: Deadline = NO_DEADLINE) -> bytes:
        if evidence.is_aggregate:
            core = self.prover.prove(air, trace, statement.digest, deadline).to_bytes()
        else:
            core = self._prove_quorum(air, trace, statement, deadline)
        return evidence.sealed(core).to_bytes()

    def verify(self, proof_bytes: bytes, statement: Statement) -> bool:
        try:
            envelope = Envelope.from_bytes(proof_bytes)
            if envelope.is_aggregate:
                return self._verify_chain(envelope, statement)
            return self._verify_leaf(envelope, statement)
        except SetupMissing:
            raise
        except (VerifyError, ResourceExhausted, ValueError) as exc:
            logger.debug("proof_evidence_rejected", kind=self.kind.name.lower(), error=str(exc))
            return False

    def _verify_leaf(self, envelope: Envelope, statement: Statement) -> bool:
        # verification imports proving
        from quorumbridge.verification.native import check_range

        if envelope.validator_set is None:
            return False
        walked = check_range(statement.start_head, envelope.validator_set, envelope.certificates)
        if walked.end.position != statement.end:
            logger.debug("proof_end_mismatch", walked=walked.end.position, claimed=statement.end)
            return False
        return self._verify_quorum(envelope.proof, statement, walked.witnesses)

    def _verify_chain(self, envelope: Envelope, statement: Statement) -> bool:
        from quorumbridge.aggregation.chain import ChainAir
        from quorumbridge.verification.rules import statements_link

        inner = [bp.statement for bp in envelope.inner]
        for bp in envelope.inner:
            if bp.proof_kind is not self.kind or bp.public_inputs.proof_kind is not self.kind:
                return False
        for left, right in zip(inner, inner[1:]):
            if not statements_link(left, right):
                return False
        for i, bp in enumerate(envelope.inner):
            if not self.verify(bp.proof_bytes, bp.statement):
                logger.debug("inner_proof_rejected", index=i)
                return False
        proof = StarkProof.from_bytes(envelope.proof)
        return self.verifier.verify(ChainAir(statement, inner), proof, statement.digest)

    def _prove_quorum(self, air: Air, trace: FieldArray, statement: Statement, deadline: Deadline) -> bytes:
        raise NotImplementedError

    def _verify_quorum(self, core: bytes, statement: Statement, witnesses: Sequence[CertificateWitness]) -> bool:
        raise NotImplementedError


class NativeStarkSystem(_EnvelopeSystem):
    """Transparent proofs; no setup."""

    kind = ProofKind.NATIVE

    def _prove_quorum(self, air: Air, trace: FieldArray, statement: Statement, deadline: Deadline) -> bytes:
        return self.prover.prove(air, trace, statement.digest, deadline).to_bytes()

    def _verify_quorum(self, core: bytes, statement: Statement, witnesses: Sequence[CertificateWitness]) -> bool:
        proof = StarkProof.from_bytes(core)
        return self.verifier.verify(QuorumAir(statement, witnesses), proof, statement.digest)


class WrappedSnarkSystem(_EnvelopeSystem):
    """Quorum runs proved in a fixed-capacity Groth16 circuit; chains stay transparent."""

    kind = ProofKind.WRAPPED_SUCCINCT

    def __init__(self, config: StarkConfig | None = None, setup: SetupParameters | None = None) -> None:
        super().__init__(config)
        self.setup = setup

    def _require_setup(self) -> SetupParameters:
        if self.setup is None:
            raise SetupMissing("no structured-setup parameters loaded")
        return self.setup

    def prove(self, air: Air, trace: FieldArray, statement: Statement, evidence: Envelope,
              deadline: Deadline = NO_DEADLINE) -> bytes:
        self._require_setup()
        return super().prove(air, trace, statement, evidence, deadline)

    def verify(self, proof_bytes: bytes, statement: Statement) -> bool:
        self._require_setup()
        return super().verify(proof_bytes, statement)

    def _prove_quorum(self, air: Air, trace: FieldArray, statement: Statement, deadline: Deadline) -> bytes:
        setup = self._require_setup()
        if not isinstance(air, QuorumAir):
            raise SoundnessError(f"cannot wrap constraint system {air.air_id}")
        circuit = setup.circuit
        deadline.check("wrapping")
        values = circuit.assign(statement, air.blocks)
        try:
            proof = groth16.prove(setup.proving_key, circuit.cs, values)
        except ValueError as exc:
            raise SoundnessError(f"quorum circuit rejected its own witness: {exc}") from exc
        logger.debug("proof_wrapped", certificates=len(air.blocks), constraints=len(circuit.cs.constraints))
        return encode_wrapped(setup.version, proof)

    def _verify_quorum(self, core: bytes, statement: Statement, witnesses: Sequence[CertificateWitness]) -> bool:
        setup = self._require_setup()
        version, proof = decode_wrapped(core)
        if version != setup.version:
            raise SetupMissing(f"proof built for setup {version}, loaded {setup.version}")
        publics = setup.circuit.public_inputs(statement, witnesses)
        return groth16.verify(setup.verifying_key, publics, proof)


def proof_system(kind: ProofKind, config: StarkConfig | None = None,
                 setup: SetupParameters | None = None) -> ProofSystem:
    if kind is ProofKind.NATIVE:
        return NativeStarkSystem(config)
    return WrappedSnarkSystem(config, setup)
