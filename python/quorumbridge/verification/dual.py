"""Dual proof verifier: accepts either proof kind and advances the head."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from quorumbridge.core.config import StarkConfig
from quorumbridge.core.errors import (
    NonContiguousBatch,
    ProofInvalid,
    QuorumBridgeError,
    SetupMissing,
    StaleProof,
    VerifyError,
)
from quorumbridge.core.types import (
    BatchProof,
    ProofKind,
    VerificationReport,
    VerificationStatus,
    VerifiedHead,
)
from quorumbridge.proving.backends import NativeStarkSystem, ProofSystem, WrappedSnarkSystem
from quorumbridge.proving.envelope import Envelope
from quorumbridge.proving.setup import SetupParameters

if TYPE_CHECKING:
    from quorumbridge.client.store import HeadStore, ValidatorSetRegistry

logger = structlog.get_logger()


def matches_head(bp: BatchProof, head: VerifiedHead) -> bool:
    return (
        bp.public_inputs.old_state_root == head.state_root
        and bp.public_inputs.old_validator_set_commitment == head.validator_set_commitment
        and (bp.start_epoch, bp.start_height, bp.start_epoch_complete)
        == (head.epoch, head.height, head.epoch_complete)
    )


def resulting_head(bp: BatchProof) -> VerifiedHead:
    return VerifiedHead(
        epoch=bp.end_epoch,
        height=bp.end_height,
        state_root=bp.public_inputs.new_state_root,
        validator_set_commitment=bp.public_inputs.new_validator_set_commitment,
        epoch_complete=bp.end_epoch_complete,
    )


class DualProofVerifier:
    """Dispatches on the proof kind carried in the public inputs."""

    def __init__(
        self,
        store: HeadStore,
        registry: ValidatorSetRegistry,
        config: StarkConfig | None = None,
        setup: SetupParameters | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.systems: dict[ProofKind, ProofSystem] = {
            ProofKind.NATIVE: NativeStarkSystem(config),
            ProofKind.WRAPPED_SUCCINCT: WrappedSnarkSystem(config, setup),
        }

    def _check_statement(self, bp: BatchProof, head: VerifiedHead) -> None:
        if bp.proof_kind != bp.public_inputs.proof_kind:
            raise ProofInvalid(
                f"proof kind {bp.proof_kind.name} differs from bound kind {bp.public_inputs.proof_kind.name}",
                head=head,
            )
        if not matches_head(bp, head):
            raise StaleProof(
                f"proof starts at ({bp.start_epoch}, {bp.start_height}), head is ({head.epoch}, {head.height})",
                head=head,
            )
        if (bp.end_epoch, bp.end_height) <= (bp.start_epoch, bp.start_height):
            raise NonContiguousBatch("proof does not advance the head", head=head)

    def _check_proof(self, bp: BatchProof, head: VerifiedHead) -> None:
        try:
            accepted = self.systems[bp.proof_kind].verify(bp.proof_bytes, bp.statement)
        except SetupMissing as exc:
            exc.head = head
            raise
        if not accepted:
            raise ProofInvalid(f"{bp.proof_kind.name.lower()} proof rejected", head=head)

    def check(self, bp: BatchProof) -> VerificationReport:
        """Verify against the current head without advancing it."""
        started = time.perf_counter_ns()
        status, message = VerificationStatus.VALID, "proof verified"
        try:
            head = self.store.head
            self._check_statement(bp, head)
            self._check_proof(bp, head)
        except StaleProof as exc:
            status, message = VerificationStatus.STALE, exc.message
        except SetupMissing as exc:
            status, message = VerificationStatus.SETUP_MISSING, exc.message
        except ProofInvalid as exc:
            status, message = VerificationStatus.INVALID_PROOF, exc.message
        except QuorumBridgeError as exc:
            status, message = VerificationStatus.INVALID_STATEMENT, exc.message
        return VerificationReport(
            status=status,
            method=bp.proof_kind,
            message=message,
            elapsed_us=(time.perf_counter_ns() - started) // 1000,
            proof_size=bp.size,
        )

    def verify_and_advance(self, bp: BatchProof) -> VerifiedHead:
        head = self.store.head
        try:
            self._check_statement(bp, head)
            self._check_proof(bp, head)
        except StaleProof:
            logger.info("proof_stale", start=(bp.start_epoch, bp.start_height), head=(head.epoch, head.height))
            raise
        except VerifyError as exc:
            logger.warning("proof_rejected", kind=exc.kind.value, method=bp.proof_kind.name.lower(), reason=exc.message)
            raise

        new_head = resulting_head(bp)
        if not self.store.compare_and_swap(head, new_head, bp.public_inputs):
            current = self.store.head
            logger.info("proof_stale", start=(bp.start_epoch, bp.start_height), head=(current.epoch, current.height))
            raise StaleProof("head advanced concurrently", head=current)

        # Sets handed over inside the proven range become usable for the next proof
        for validator_set in Envelope.from_bytes(bp.proof_bytes).installed_sets():
            self.registry.register(validator_set)

        logger.info(
            "head_advanced",
            method=bp.proof_kind.name.lower(),
            epoch=new_head.epoch,
            height=new_head.height,
            epoch_complete=new_head.epoch_complete,
            proof_size=bp.size,
        )
        return new_head
