"""Batch-proof verification for both proof kinds."""

from __future__ import annotations

import dataclasses

import pytest

from quorumbridge.client.store import ValidatorSetRegistry
from quorumbridge.core.config import BridgeConfig, StoreConfig
from quorumbridge.core.errors import NonContiguousBatch, ProofInvalid, SetupMissing, StaleProof
from quorumbridge.core.types import ProofKind, VerificationStatus, VerifiedHead
from quorumbridge.proving.envelope import Envelope
from quorumbridge.proving.pipeline import ProofPipeline

from conftest import NEXT_SEEDS, SMALL_STARK, make_client


def with_old_root(bp, old_root: bytes):
    return dataclasses.replace(bp, public_inputs=dataclasses.replace(bp.public_inputs, old_state_root=old_root))


class TestNativeProofs:
    def test_matches_sequential_certificates(self, client, config, genesis, validator_set, proved_chain):
        head = client.submit(proved_chain.first)

        reference = make_client(config, genesis, validator_set)
        assert head == reference.submit_certificate(proved_chain.certificates[0])
        assert client.last_public_inputs == proved_chain.first.public_inputs

    def test_resubmission_is_stale(self, client, proved_chain):
        head = client.submit(proved_chain.first)
        with pytest.raises(StaleProof) as exc:
            client.submit(proved_chain.first)
        assert exc.value.head == head
        assert client.head == head
        assert len(client.recent_public_inputs) == 1

    def test_old_root_off_by_one_byte(self, client, proved_chain):
        genesis_head = client.head
        root = bytearray(proved_chain.first.public_inputs.old_state_root)
        root[0] ^= 0xFF
        with pytest.raises(StaleProof):
            client.submit(with_old_root(proved_chain.first, bytes(root)))
        assert client.head == genesis_head

    def test_proof_from_later_head_is_stale(self, client, proved_chain):
        with pytest.raises(StaleProof):
            client.submit(proved_chain.second)
        assert client.head.position == (0, 0)

    def test_kind_tag_swapped(self, client, proved_chain):
        swapped = dataclasses.replace(proved_chain.first, proof_kind=ProofKind.WRAPPED_SUCCINCT)
        with pytest.raises(ProofInvalid):
            client.submit(swapped)

    def test_tampered_proof_bytes(self, client, proved_chain):
        data = bytearray(proved_chain.first.proof_bytes)
        data[len(data) // 2] ^= 0x01
        with pytest.raises(ProofInvalid):
            client.submit(dataclasses.replace(proved_chain.first, proof_bytes=bytes(data)))
        assert client.head.position == (0, 0)

    def test_claimed_end_must_match_proof(self, client, proved_chain):
        moved = dataclasses.replace(proved_chain.first, end_height=2)
        with pytest.raises(ProofInvalid):
            client.submit(moved)

    def test_no_op_statement(self, client, proved_chain):
        noop = dataclasses.replace(proved_chain.first, end_height=0)
        with pytest.raises(NonContiguousBatch):
            client.submit(noop)

    def test_epoch_crossing_batch_installs_next_set(self, client, config, validator_set, factory,
                                                    next_validator_set):
        registry = ValidatorSetRegistry()
        registry.register(validator_set)
        pipeline = ProofPipeline(registry, config)
        bp = pipeline.prove([factory.qc(0, 2, next_validator_set=next_validator_set)],
                            ProofKind.NATIVE, start=client.head)
        assert client.registry.get(next_validator_set.commitment) is None

        head = client.submit(bp)
        assert head.epoch_complete
        assert client.active_validator_set == next_validator_set
        assert client.submit_certificate(factory.qc(1, 0, seeds=NEXT_SEEDS)).position == (1, 0)


class TestReports:
    def test_report_does_not_advance(self, client, proved_chain):
        report = client.check(proved_chain.first)
        assert report.valid
        assert report.method is ProofKind.NATIVE
        assert report.proof_size == proved_chain.first.size
        assert client.head.position == (0, 0)

    def test_report_statuses(self, client, proved_chain):
        assert client.check(proved_chain.second).status is VerificationStatus.STALE
        swapped = dataclasses.replace(proved_chain.first, proof_kind=ProofKind.WRAPPED_SUCCINCT)
        assert client.check(swapped).status is VerificationStatus.INVALID_PROOF
        noop = dataclasses.replace(proved_chain.first, end_height=0)
        assert client.check(noop).status is VerificationStatus.INVALID_STATEMENT


@pytest.mark.slow
class TestWrappedProofs:
    @pytest.fixture(scope="class")
    def wrapped(self, proved_chain, genesis, validator_set, setup_params):
        registry = ValidatorSetRegistry()
        registry.register(validator_set)
        pipeline = ProofPipeline(registry, BridgeConfig(stark=SMALL_STARK, store=StoreConfig(path=None)), setup_params)
        start = VerifiedHead.from_genesis(genesis, validator_set)
        return pipeline.prove(proved_chain.certificates[:1], ProofKind.WRAPPED_SUCCINCT, start=start)

    def test_accepted_with_setup(self, config, genesis, validator_set, setup_params, wrapped, proved_chain):
        client = make_client(config, genesis, validator_set, setup_params)
        head = client.submit(wrapped)
        assert head.position == (0, 1)
        assert len(Envelope.from_bytes(wrapped.proof_bytes).proof) == 2 + len(b"wrap-v1") + 256

        native = make_client(config, genesis, validator_set)
        assert head == native.submit(proved_chain.first)

    def test_setup_missing(self, client, wrapped):
        with pytest.raises(SetupMissing):
            client.submit(wrapped)
        assert client.check(wrapped).status is VerificationStatus.SETUP_MISSING
        assert client.head.position == (0, 0)

    def test_bound_to_statement(self, config, genesis, validator_set, setup_params, wrapped):
        client = make_client(config, genesis, validator_set, setup_params)
        with pytest.raises(ProofInvalid):
            client.submit(dataclasses.replace(wrapped, end_height=2))

    def test_native_bytes_under_wrapped_kind(self, config, genesis, validator_set, setup_params, proved_chain):
        client = make_client(config, genesis, validator_set, setup_params)
        first = proved_chain.first
        relabelled = dataclasses.replace(
            first,
            proof_kind=ProofKind.WRAPPED_SUCCINCT,
            public_inputs=dataclasses.replace(first.public_inputs, proof_kind=ProofKind.WRAPPED_SUCCINCT),
        )
        with pytest.raises(ProofInvalid):
            client.submit(relabelled)
