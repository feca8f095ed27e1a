"""Direct certificate verification against the light client head."""

from __future__ import annotations

import pytest

from quorumbridge.core.errors import (
    InsufficientQuorum,
    SignatureInvalid,
    StaleOrNonContiguous,
    UnknownValidatorInMask,
    ValidatorSetUnavailable,
)
from quorumbridge.core.types import QuorumCertificate, SignerMask
from quorumbridge.verification.native import check_certificate

from conftest import NEXT_SEEDS


class TestCertificateFlow:
    def test_sequence_from_genesis(self, client, factory):
        assert client.head.position == (0, 0)

        qc = factory.qc(0, 1, signers=(0, 1, 2))
        head = client.submit_certificate(qc)
        assert head.position == (0, 1)
        assert head.state_root == qc.ledger_info.state_root
        assert client.head == head

        with pytest.raises(StaleOrNonContiguous) as exc:
            client.submit_certificate(qc)
        assert exc.value.head == head
        assert client.head == head

        head = client.submit_certificate(factory.qc(0, 5))
        assert head.position == (0, 5)

    def test_epoch_change_switches_validator_set(self, client, factory, next_validator_set):
        closing = factory.qc(0, 2, next_validator_set=next_validator_set)
        head = client.submit_certificate(closing)
        assert head.epoch_complete
        assert head.validator_set_commitment == next_validator_set.commitment
        assert client.active_validator_set == next_validator_set

        with pytest.raises(StaleOrNonContiguous):
            client.submit_certificate(factory.qc(0, 3))
        # Old epoch's signers cannot certify the new epoch.
        with pytest.raises(SignatureInvalid):
            client.submit_certificate(factory.qc(1, 0))

        head = client.submit_certificate(factory.qc(1, 0, seeds=NEXT_SEEDS))
        assert head.position == (1, 0)
        assert not head.epoch_complete


class TestCertificateRejection:
    def test_flipped_signer_bit_rejected_with_quorum_met(self, client, factory):
        qc = factory.qc(0, 1, signers=(0, 1, 2))
        forged = QuorumCertificate(qc.ledger_info, qc.signer_mask.flipped(3), qc.aggregate_signature)
        genesis_head = client.head

        with pytest.raises(SignatureInvalid):
            client.submit_certificate(forged)
        assert client.head == genesis_head

    def test_signature_over_other_ledger_info_rejected(self, client, factory):
        qc = factory.qc(0, 1)
        other = factory.ledger_info(0, 2)
        with pytest.raises(SignatureInvalid):
            client.submit_certificate(QuorumCertificate(other, qc.signer_mask, qc.aggregate_signature))

    def test_insufficient_quorum(self, client, factory):
        qc = factory.qc(0, 1, signers=(0, 1))
        with pytest.raises(InsufficientQuorum) as exc:
            client.submit_certificate(qc)
        assert not exc.value.retryable
        assert client.head.position == (0, 0)

    def test_unknown_validator_in_mask(self, client, factory):
        qc = factory.qc(0, 1)
        widened = QuorumCertificate(qc.ledger_info, SignerMask.from_indices([0, 1, 2, 9]), qc.aggregate_signature)
        with pytest.raises(UnknownValidatorInMask):
            client.submit_certificate(widened)

    def test_malformed_signature_bytes(self, validator_set, factory):
        qc = factory.qc(0, 1)
        broken = QuorumCertificate(qc.ledger_info, qc.signer_mask, b"\x01" * 96)
        with pytest.raises(SignatureInvalid):
            check_certificate(broken, validator_set)

    def test_missing_validator_set(self, client, factory):
        client.registry._sets.clear()
        with pytest.raises(ValidatorSetUnavailable) as exc:
            client.submit_certificate(factory.qc(0, 1))
        assert exc.value.retryable


class TestConcurrentAdvance:
    def test_lost_swap_registers_nothing(self, client, factory, next_validator_set, monkeypatch):
        monkeypatch.setattr(client.store, "compare_and_swap", lambda expected, new, public_inputs=None: False)
        closing = factory.qc(0, 2, next_validator_set=next_validator_set)
        with pytest.raises(StaleOrNonContiguous):
            client.submit_certificate(closing)
        assert client.registry.get(next_validator_set.commitment) is None
        assert client.head.position == (0, 0)
