"""Proof-generation pipeline: certificates in, batch proof out."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Mapping, Sequence

import structlog

from quorumbridge.core.config import BridgeConfig
from quorumbridge.core.errors import (
    ChainGap,
    ResourceExhausted,
    SetupMissing,
    StaleOrNonContiguous,
    ValidatorSetUnavailable,
)
from quorumbridge.core.types import (
    BatchProof,
    ProofKind,
    PublicInputs,
    QuorumCertificate,
    Statement,
    ValidatorSet,
    VerifiedHead,
)
from quorumbridge.proving.air import CertificateWitness, build_quorum_trace
from quorumbridge.proving.backends import ProofSystem, proof_system
from quorumbridge.proving.deadline import Deadline
from quorumbridge.proving.envelope import Envelope
from quorumbridge.proving.setup import SetupParameters
from quorumbridge.verification import rules
from quorumbridge.verification.native import certificate_witness, check_certificate

if TYPE_CHECKING:
    from quorumbridge.client.store import ValidatorSetRegistry

logger = structlog.get_logger()


def make_statement(start: VerifiedHead, end: VerifiedHead, kind: ProofKind) -> Statement:
    return Statement(
        start_epoch=start.epoch,
        start_height=start.height,
        start_epoch_complete=start.epoch_complete,
        end_epoch=end.epoch,
        end_height=end.height,
        end_epoch_complete=end.epoch_complete,
        public_inputs=PublicInputs(
            old_state_root=start.state_root,
            old_validator_set_commitment=start.validator_set_commitment,
            new_state_root=end.state_root,
            new_validator_set_commitment=end.validator_set_commitment,
            proof_kind=kind,
        ),
    )


class ProofPipeline:
    """Checks certificates natively, lays out the quorum trace and proves it."""

    def __init__(
        self,
        registry: ValidatorSetRegistry,
        config: BridgeConfig | None = None,
        setup: SetupParameters | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or BridgeConfig()
        self.setup = setup

    def _system(self, kind: ProofKind) -> ProofSystem:
        if kind is ProofKind.WRAPPED_SUCCINCT and self.setup is None:
            raise SetupMissing("wrapped proof requested without setup parameters")
        return proof_system(kind, self.config.stark, self.setup)

    def _start_set(self, start: VerifiedHead, known: Mapping[bytes, ValidatorSet] | None) -> ValidatorSet:
        commitment = start.validator_set_commitment
        validator_set = known.get(commitment) if known else None
        if validator_set is None:
            validator_set = self.registry.get(commitment)
        if validator_set is None:
            raise ValidatorSetUnavailable(f"no validator set for commitment {commitment.hex()}")
        return validator_set

    def prove(
        self,
        qcs: Sequence[QuorumCertificate],
        kind: ProofKind,
        *,
        start: VerifiedHead,
        deadline: Deadline | None = None,
        known: Mapping[bytes, ValidatorSet] | None = None,
    ) -> BatchProof:
        """Prove qcs extending start.

        ``known`` supplies validator sets learned from earlier certificates
        that are not registered yet. Sets installed by qcs are registered only
        once the proof exists.
        """
        if not qcs:
            raise ValueError("no certificates to prove")
        if len(qcs) > self.config.prover.max_batch_size:
            raise ResourceExhausted(
                f"batch of {len(qcs)} exceeds max_batch_size {self.config.prover.max_batch_size}"
            )
        system = self._system(kind)
        deadline = deadline or Deadline(self.config.prover.timeout_seconds)
        start_set = self._start_set(start, known)

        # Step 1: native checks along the chain
        head, current = start, start_set
        witnesses: list[CertificateWitness] = []
        learned: list[ValidatorSet] = []
        for qc in qcs:
            deadline.check("certificate checks")
            li = qc.ledger_info
            try:
                rules.check_advance(head, li)
            except StaleOrNonContiguous as exc:
                raise ChainGap(f"certificate ({li.epoch}, {li.height}) does not extend "
                               f"({head.epoch}, {head.height}): {exc.message}") from exc
            checked = check_certificate(qc, current)
            head = rules.advance(head, li)
            witnesses.append(certificate_witness(qc, current, checked.aggregate_point, checked.signature_point, head))
            if li.next_validator_set is not None:
                current = li.next_validator_set
                learned.append(current)

        statement = make_statement(start, head, kind)
        evidence = Envelope(proof=b"", validator_set=start_set, certificates=tuple(qcs))

        # Step 2: trace and proof
        try:
            air, trace = build_quorum_trace(statement, witnesses)
            air.check_trace(trace)
            proof_bytes = system.prove(air, trace, statement, evidence, deadline)
        except MemoryError as exc:
            raise ResourceExhausted("out of memory while proving") from exc

        for validator_set in learned:
            self.registry.register(validator_set)

        logger.info(
            "batch_proved",
            kind=kind.name.lower(),
            certificates=len(qcs),
            start=(start.epoch, start.height),
            end=(head.epoch, head.height),
            trace_length=air.trace_length,
            size=len(proof_bytes),
        )
        return BatchProof.from_statement(statement, proof_bytes)

    def prove_ranges(
        self,
        groups: Sequence[Sequence[QuorumCertificate]],
        kind: ProofKind,
        *,
        start: VerifiedHead,
        max_workers: int | None = None,
        deadline: Deadline | None = None,
    ) -> list[BatchProof]:
        """Prove consecutive disjoint groups in parallel, each from its projected start."""
        starts: list[VerifiedHead] = []
        known: dict[bytes, ValidatorSet] = {}
        head = start
        for group in groups:
            starts.append(head)
            for qc in group:
                nxt = qc.ledger_info.next_validator_set
                if nxt is not None:
                    known[nxt.commitment] = nxt
            try:
                head = rules.project_head(head, group)
            except StaleOrNonContiguous as exc:
                raise ChainGap(exc.message) from exc

        workers = max_workers or self.config.prover.workers
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self.prove, group, kind, start=s, deadline=deadline, known=known)
                for group, s in zip(groups, starts)
            ]
            return [f.result() for f in futures]
