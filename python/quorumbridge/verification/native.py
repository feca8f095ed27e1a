"""Direct BLS aggregate-signature verification of quorum certificates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

import structlog

from quorumbridge.core.encoding import signing_message
from quorumbridge.core.errors import (
    ErrorCategory,
    SignatureInvalid,
    StaleOrNonContiguous,
    ValidatorSetUnavailable,
    VerifyError,
)
from quorumbridge.core.types import (
    PublicKey,
    QuorumCertificate,
    ValidatorSet,
    VerifiedHead,
)
from quorumbridge.crypto import bls
from quorumbridge.verification import rules

if TYPE_CHECKING:
    from quorumbridge.client.store import HeadStore, ValidatorSetRegistry
    from quorumbridge.proving.air import CertificateWitness

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class CheckedCertificate:
    """A certificate whose quorum and signature have been verified."""

    certificate: QuorumCertificate
    validator_set: ValidatorSet
    signed_power: int
    aggregate_key: PublicKey
    aggregate_point: Any
    signature_point: Any


def check_certificate(qc: QuorumCertificate, validator_set: ValidatorSet) -> CheckedCertificate:
    """Mask, quorum and pairing checks against one validator set."""
    signed = rules.check_quorum(validator_set, qc.signer_mask)
    signer_keys = [v.public_key for v in rules.signers(validator_set, qc.signer_mask)]

    try:
        aggregate_key, aggregate_point = bls.aggregate_public_key(signer_keys)
        sig_point = bls.signature_point(qc.aggregate_signature)
    except ValueError as exc:
        raise SignatureInvalid(f"malformed key or signature: {exc}") from exc

    if not bls.verify(aggregate_key, signing_message(qc.ledger_info), qc.aggregate_signature):
        raise SignatureInvalid(
            f"aggregate signature rejected at ({qc.ledger_info.epoch}, {qc.ledger_info.height})"
        )

    return CheckedCertificate(
        certificate=qc,
        validator_set=validator_set,
        signed_power=signed,
        aggregate_key=aggregate_key,
        aggregate_point=aggregate_point,
        signature_point=sig_point,
    )


def certificate_witness(
    qc: QuorumCertificate,
    validator_set: ValidatorSet,
    aggregate_point: Any,
    signature_point: Any,
    after: VerifiedHead,
) -> CertificateWitness:
    """Quorum-trace inputs for one certificate; ``after`` is the head it produces."""
    # proving imports this module
    from quorumbridge.proving.air import CertificateWitness

    li = qc.ledger_info
    return CertificateWitness(
        epoch=li.epoch,
        height=li.height,
        closes_epoch=li.ends_epoch,
        mask=tuple(int(qc.signer_mask.contains(i)) for i in range(len(validator_set))),
        powers=tuple(v.voting_power for v in validator_set),
        coordinates=bls.g1_affine(aggregate_point) + bls.g2_affine(signature_point),
        state_root=li.state_root,
        validator_set_commitment=after.validator_set_commitment,
    )


@dataclass(frozen=True, slots=True)
class CertifiedRange:
    end: VerifiedHead
    witnesses: tuple[CertificateWitness, ...]
    learned: tuple[ValidatorSet, ...]


def check_range(
    start: VerifiedHead,
    validator_set: ValidatorSet,
    certificates: Sequence[QuorumCertificate],
) -> CertifiedRange:
    """Walk a certificate run from start, checking contiguity, mask bounds and
    every signature in one batched pairing.

    Signed power is not compared against the threshold here; the proof over
    the returned witnesses enforces it.
    """
    if validator_set.commitment != start.validator_set_commitment:
        raise ValidatorSetUnavailable("carried validator set does not match the start commitment", head=start)
    if not certificates:
        raise ValueError("no certificates in range")

    head, current = start, validator_set
    witnesses: list[CertificateWitness] = []
    learned: list[ValidatorSet] = []
    keys: list[PublicKey] = []
    messages: list[bytes] = []
    points: list[Any] = []
    for qc in certificates:
        li = qc.ledger_info
        rules.check_advance(head, li)
        signer_keys = [v.public_key for v in rules.signers(current, qc.signer_mask)]
        try:
            aggregate_key, aggregate_point = bls.aggregate_public_key(signer_keys)
            sig_point = bls.signature_point(qc.aggregate_signature)
        except ValueError as exc:
            raise SignatureInvalid(f"malformed key or signature at ({li.epoch}, {li.height}): {exc}") from exc
        head = rules.advance(head, li)
        witnesses.append(certificate_witness(qc, current, aggregate_point, sig_point, head))
        keys.append(aggregate_key)
        messages.append(signing_message(li))
        points.append(sig_point)
        if li.next_validator_set is not None:
            current = li.next_validator_set
            learned.append(current)

    if not bls.verify_many(keys, messages, points):
        raise SignatureInvalid(f"batched signature check failed over {len(certificates)} certificates")
    return CertifiedRange(end=head, witnesses=tuple(witnesses), learned=tuple(learned))


class NativeVerifier:
    """Verifies certificates directly and advances the head."""

    def __init__(self, store: HeadStore, registry: ValidatorSetRegistry) -> None:
        self.store = store
        self.registry = registry

    def active_validator_set(self, head: VerifiedHead) -> ValidatorSet:
        vs = self.registry.get(head.validator_set_commitment)
        if vs is None:
            raise ValidatorSetUnavailable(
                f"no validator set for commitment {head.validator_set_commitment.hex()}",
                head=head,
            )
        return vs

    def check(self, qc: QuorumCertificate, head: VerifiedHead) -> VerifiedHead:
        """Head that would result from qc, without committing it."""
        try:
            rules.check_advance(head, qc.ledger_info)
            check_certificate(qc, self.active_validator_set(head))
        except VerifyError as exc:
            exc.head = head
            raise
        return rules.advance(head, qc.ledger_info)

    def verify_and_advance(self, qc: QuorumCertificate) -> VerifiedHead:
        head = self.store.head
        li = qc.ledger_info
        try:
            new_head = self.check(qc, head)
        except VerifyError as exc:
            self._log_rejection(exc, li.epoch, li.height)
            raise

        if not self.store.compare_and_swap(head, new_head):
            current = self.store.head
            logger.info("certificate_stale", epoch=li.epoch, height=li.height, head_height=current.height)
            raise StaleOrNonContiguous("head advanced concurrently", head=current)

        if li.next_validator_set is not None:
            self.registry.register(li.next_validator_set)

        logger.info(
            "head_advanced",
            method="certificate",
            epoch=new_head.epoch,
            height=new_head.height,
            epoch_complete=new_head.epoch_complete,
        )
        return new_head

    @staticmethod
    def _log_rejection(exc: VerifyError, epoch: int, height: int) -> None:
        if exc.category is ErrorCategory.STALENESS:
            logger.info("certificate_stale", kind=exc.kind.value, epoch=epoch, height=height)
        else:
            logger.warning("certificate_rejected", kind=exc.kind.value, epoch=epoch, height=height, reason=exc.message)
