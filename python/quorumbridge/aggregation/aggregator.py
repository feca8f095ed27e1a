"""Folds consecutive batch proofs into one proof over the union range."""

from __future__ import annotations

from typing import Sequence

import structlog

from quorumbridge.aggregation.chain import build_chain_trace
from quorumbridge.core.config import StarkConfig
from quorumbridge.core.errors import MixedProofKind, NonContiguousBatch, ProofInvalid
from quorumbridge.core.types import BatchProof, ProofKind, PublicInputs, Statement
from quorumbridge.proving.backends import ProofSystem, proof_system
from quorumbridge.proving.deadline import NO_DEADLINE, Deadline
from quorumbridge.proving.envelope import Envelope
from quorumbridge.proving.setup import SetupParameters
from quorumbridge.verification import rules

logger = structlog.get_logger()


def links(left: BatchProof, right: BatchProof) -> bool:
    """True when right starts exactly where left ends."""
    return rules.statements_link(left.statement, right.statement)


def advances(bp: BatchProof) -> bool:
    return (bp.end_epoch, bp.end_height) > (bp.start_epoch, bp.start_height)


def union_statement(proofs: Sequence[BatchProof]) -> Statement:
    first, last = proofs[0], proofs[-1]
    return Statement(
        start_epoch=first.start_epoch,
        start_height=first.start_height,
        start_epoch_complete=first.start_epoch_complete,
        end_epoch=last.end_epoch,
        end_height=last.end_height,
        end_epoch_complete=last.end_epoch_complete,
        public_inputs=PublicInputs(
            old_state_root=first.public_inputs.old_state_root,
            old_validator_set_commitment=first.public_inputs.old_validator_set_commitment,
            new_state_root=last.public_inputs.new_state_root,
            new_validator_set_commitment=last.public_inputs.new_validator_set_commitment,
            proof_kind=first.proof_kind,
        ),
    )


class BatchAggregator:
    """Checks kind and contiguity, verifies each inner proof, then proves the chain."""

    def __init__(self, config: StarkConfig | None = None, setup: SetupParameters | None = None) -> None:
        self.config = config or StarkConfig()
        self.setup = setup

    def _system(self, kind: ProofKind) -> ProofSystem:
        return proof_system(kind, self.config, self.setup)

    def aggregate(self, proofs: Sequence[BatchProof], deadline: Deadline = NO_DEADLINE) -> BatchProof:
        if not proofs:
            raise ValueError("nothing to aggregate")

        kinds = {p.proof_kind for p in proofs} | {p.public_inputs.proof_kind for p in proofs}
        if len(kinds) > 1:
            raise MixedProofKind(f"cannot aggregate kinds {sorted(k.name for k in kinds)}")
        kind = proofs[0].proof_kind

        for i, p in enumerate(proofs):
            if not advances(p):
                raise NonContiguousBatch(f"proof {i} does not advance the head")
            if i and not links(proofs[i - 1], p):
                prev = proofs[i - 1]
                raise NonContiguousBatch(
                    f"proof {i - 1} ends at ({prev.end_epoch}, {prev.end_height}) "
                    f"but proof {i} starts at ({p.start_epoch}, {p.start_height})"
                )

        if len(proofs) == 1:
            return proofs[0]

        system = self._system(kind)
        for i, p in enumerate(proofs):
            deadline.check(f"inner proof {i}")
            if not system.verify(p.proof_bytes, p.statement):
                raise ProofInvalid(f"inner proof {i} rejected")

        outer = union_statement(proofs)
        air, trace = build_chain_trace(outer, [p.statement for p in proofs])
        air.check_trace(trace)
        proof_bytes = system.prove(air, trace, outer, Envelope(proof=b"", inner=tuple(proofs)), deadline)

        logger.info(
            "proofs_aggregated",
            kind=kind.name.lower(),
            count=len(proofs),
            start=(outer.start_epoch, outer.start_height),
            end=(outer.end_epoch, outer.end_height),
            size=len(proof_bytes),
        )
        return BatchProof.from_statement(outer, proof_bytes)
