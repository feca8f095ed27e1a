"""Quorum and head-transition rules shared by verifiers and provers."""

from __future__ import annotations

from typing import Iterable

from quorumbridge.core.errors import (
    InsufficientQuorum,
    StaleOrNonContiguous,
    UnknownValidatorInMask,
)
from quorumbridge.core.types import (
    LedgerInfo,
    QuorumCertificate,
    SignerMask,
    Statement,
    ValidatorInfo,
    ValidatorSet,
    VerifiedHead,
)


def quorum_threshold(total_power: int) -> int:
    """Smallest signed power that is at least two thirds of total_power."""
    return (2 * total_power + 2) // 3


def has_quorum(signed_power: int, total_power: int) -> bool:
    return signed_power > 0 and signed_power >= quorum_threshold(total_power)


def signers(validator_set: ValidatorSet, mask: SignerMask) -> list[ValidatorInfo]:
    if mask.highest_index >= len(validator_set):
        raise UnknownValidatorInMask(
            f"signer index {mask.highest_index} outside set of {len(validator_set)}"
        )
    return [validator_set[i] for i in mask.indices()]


def check_quorum(validator_set: ValidatorSet, mask: SignerMask) -> int:
    """Return signed power, raising if it falls below the supermajority."""
    signed = sum(v.voting_power for v in signers(validator_set, mask))
    total = validator_set.total_power
    if not has_quorum(signed, total):
        raise InsufficientQuorum(
            f"signed power {signed} below threshold {quorum_threshold(total)} of {total}"
        )
    return signed


def check_advance(head: VerifiedHead, ledger_info: LedgerInfo) -> None:
    """Heights strictly increase within an epoch; an epoch opens only after its set is committed."""
    if head.epoch_complete:
        if ledger_info.epoch != head.epoch + 1:
            raise StaleOrNonContiguous(
                f"expected epoch {head.epoch + 1}, got {ledger_info.epoch}", head=head
            )
        return
    if ledger_info.epoch != head.epoch:
        raise StaleOrNonContiguous(
            f"expected epoch {head.epoch}, got {ledger_info.epoch}", head=head
        )
    if ledger_info.height <= head.height:
        raise StaleOrNonContiguous(
            f"height {ledger_info.height} not above head height {head.height}", head=head
        )


def advance(head: VerifiedHead, ledger_info: LedgerInfo) -> VerifiedHead:
    """Head after accepting ledger_info. Assumes check_advance passed."""
    nxt = ledger_info.next_validator_set
    return VerifiedHead(
        epoch=ledger_info.epoch,
        height=ledger_info.height,
        state_root=ledger_info.state_root,
        validator_set_commitment=nxt.commitment if nxt is not None else head.validator_set_commitment,
        epoch_complete=nxt is not None,
    )


def project_head(head: VerifiedHead, qcs: Iterable[QuorumCertificate]) -> VerifiedHead:
    """Walk certificates through the transition rules without checking signatures."""
    for qc in qcs:
        check_advance(head, qc.ledger_info)
        head = advance(head, qc.ledger_info)
    return head


def statements_link(left: Statement, right: Statement) -> bool:
    """Whether right starts exactly where left ends."""
    return (
        (left.end_epoch, left.end_height, left.end_epoch_complete)
        == (right.start_epoch, right.start_height, right.start_epoch_complete)
        and left.public_inputs.new_state_root == right.public_inputs.old_state_root
        and left.public_inputs.new_validator_set_commitment == right.public_inputs.old_validator_set_commitment
    )
