"""Proof-generation pipeline: native checks, trace layout and backend dispatch."""

from __future__ import annotations

import threading

import pytest

from quorumbridge.client.store import ValidatorSetRegistry
from quorumbridge.core.config import BridgeConfig, ProverConfig, StoreConfig
from quorumbridge.core.errors import (
    ChainGap,
    InsufficientQuorum,
    ProvingTimeout,
    ResourceExhausted,
    SetupMissing,
    ValidatorSetUnavailable,
)
from quorumbridge.core.types import ProofKind
from quorumbridge.proving.backends import NativeStarkSystem
from quorumbridge.proving.deadline import Deadline
from quorumbridge.proving.pipeline import ProofPipeline, make_statement
from quorumbridge.verification import rules

from conftest import NEXT_SEEDS, SMALL_STARK


@pytest.fixture
def pipeline(client, config):
    return ProofPipeline(client.registry, config)


class TestProve:
    def test_native_batch_verifies(self, client, pipeline, factory):
        qcs = [factory.qc(0, 1), factory.qc(0, 4)]
        bp = pipeline.prove(qcs, ProofKind.NATIVE, start=client.head)

        assert (bp.start_epoch, bp.start_height) == (0, 0)
        assert (bp.end_epoch, bp.end_height) == (0, 4)
        assert bp.proof_kind is ProofKind.NATIVE
        assert bp.public_inputs.proof_kind is ProofKind.NATIVE
        assert bp.public_inputs.old_state_root == client.head.state_root
        assert bp.public_inputs.new_state_root == qcs[-1].ledger_info.state_root
        assert NativeStarkSystem(SMALL_STARK).verify(bp.proof_bytes, bp.statement)

    def test_statement_matches_projection(self, client, factory):
        qcs = [factory.qc(0, 2)]
        end = rules.project_head(client.head, qcs)
        statement = make_statement(client.head, end, ProofKind.NATIVE)
        assert statement.end == (0, 2)
        assert statement.public_inputs.new_validator_set_commitment == client.head.validator_set_commitment


class TestPipelineErrors:
    def test_gap_across_epoch(self, client, pipeline, factory):
        with pytest.raises(ChainGap):
            pipeline.prove([factory.qc(1, 0)], ProofKind.NATIVE, start=client.head)

    def test_replayed_height(self, client, pipeline, factory):
        with pytest.raises(ChainGap):
            pipeline.prove([factory.qc(0, 0)], ProofKind.NATIVE, start=client.head)

    def test_wrapped_without_setup(self, client, pipeline, factory):
        with pytest.raises(SetupMissing):
            pipeline.prove([factory.qc(0, 1)], ProofKind.WRAPPED_SUCCINCT, start=client.head)

    def test_batch_too_large(self, client, factory):
        config = BridgeConfig(stark=SMALL_STARK, store=StoreConfig(path=None),
                              prover=ProverConfig(max_batch_size=1))
        pipeline = ProofPipeline(client.registry, config)
        with pytest.raises(ResourceExhausted):
            pipeline.prove([factory.qc(0, 1), factory.qc(0, 2)], ProofKind.NATIVE, start=client.head)

    def test_cancelled(self, client, pipeline, factory):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ProvingTimeout) as exc:
            pipeline.prove([factory.qc(0, 1)], ProofKind.NATIVE, start=client.head,
                            deadline=Deadline(cancel=cancel))
        assert exc.value.retryable

    def test_unknown_validator_set(self, client, config, factory):
        pipeline = ProofPipeline(ValidatorSetRegistry(), config)
        with pytest.raises(ValidatorSetUnavailable):
            pipeline.prove([factory.qc(0, 1)], ProofKind.NATIVE, start=client.head)

    def test_insufficient_quorum(self, client, pipeline, factory):
        with pytest.raises(InsufficientQuorum):
            pipeline.prove([factory.qc(0, 1, signers=(0,))], ProofKind.NATIVE, start=client.head)


class TestValidatorSetRegistration:
    def test_failed_batch_registers_nothing(self, client, pipeline, factory, next_validator_set):
        closing = factory.qc(0, 1, next_validator_set=next_validator_set)
        with pytest.raises(InsufficientQuorum):
            pipeline.prove([closing, factory.qc(1, 1, signers=(0,), seeds=NEXT_SEEDS)],
                           ProofKind.NATIVE, start=client.head)
        with pytest.raises(ChainGap):
            pipeline.prove([closing, factory.qc(0, 2)], ProofKind.NATIVE, start=client.head)
        assert client.registry.get(next_validator_set.commitment) is None

    def test_epoch_crossing_batch_registers_next_set(self, client, pipeline, factory, next_validator_set):
        qcs = [factory.qc(0, 1, next_validator_set=next_validator_set), factory.qc(1, 1, seeds=NEXT_SEEDS)]
        bp = pipeline.prove(qcs, ProofKind.NATIVE, start=client.head)
        assert bp.public_inputs.new_validator_set_commitment == next_validator_set.commitment
        assert client.registry.get(next_validator_set.commitment) == next_validator_set
        assert NativeStarkSystem(SMALL_STARK).verify(bp.proof_bytes, bp.statement)

    def test_ranges_use_sets_learned_in_earlier_groups(self, client, pipeline, factory, next_validator_set):
        groups = [[factory.qc(0, 1, next_validator_set=next_validator_set)], [factory.qc(1, 1, seeds=NEXT_SEEDS)]]
        first, second = pipeline.prove_ranges(groups, ProofKind.NATIVE, start=client.head, max_workers=2)
        assert second.start_epoch_complete
        assert (second.start_epoch, second.start_height) == (0, 1)
        assert client.registry.get(next_validator_set.commitment) == next_validator_set
        for bp in (first, second):
            assert NativeStarkSystem(SMALL_STARK).verify(bp.proof_bytes, bp.statement)


class TestDeadline:
    def test_expires(self):
        assert Deadline(timeout=0).expired
        with pytest.raises(ProvingTimeout):
            Deadline(timeout=0).check("stage")

    def test_unbounded(self):
        deadline = Deadline()
        assert not deadline.expired
        assert deadline.remaining is None
        deadline.check("stage")
