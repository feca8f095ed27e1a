"""Proofs a dishonest prover could build for claims the certificates do not support.

Each forgery satisfies its own constraint system; the verifier must still
refuse it because it rebuilds the public values from the carried evidence.
"""

from __future__ import annotations

import dataclasses
import hashlib

import pytest

from quorumbridge.aggregation.aggregator import union_statement
from quorumbridge.aggregation.chain import build_chain_trace
from quorumbridge.core.errors import ProofInvalid, SoundnessError
from quorumbridge.core.types import BatchProof, ProofKind, VerificationStatus
from quorumbridge.proving import groth16
from quorumbridge.proving.air import build_quorum_trace
from quorumbridge.proving.backends import encode_wrapped
from quorumbridge.proving.envelope import Envelope
from quorumbridge.proving.pipeline import ProofPipeline, make_statement
from quorumbridge.proving.stark import StarkProver
from quorumbridge.verification import rules
from quorumbridge.verification.native import check_range

from conftest import NEXT_SEEDS, SMALL_STARK, make_client, make_validator_set

FAKE_ROOT = hashlib.sha256(b"state the chain never reached").digest()


def seal(statement, witnesses, certificates, validator_set) -> BatchProof:
    """Prove the quorum trace for the given witnesses and ship it with the given evidence."""
    air, trace = build_quorum_trace(statement, witnesses)
    core = StarkProver(SMALL_STARK).prove(air, trace, statement.digest).to_bytes()
    envelope = Envelope(proof=core, validator_set=validator_set, certificates=tuple(certificates))
    return BatchProof.from_statement(statement, envelope.to_bytes())


def honest_statement(client, qcs, kind=ProofKind.NATIVE, **head_changes):
    end = dataclasses.replace(rules.project_head(client.head, qcs), **head_changes)
    return make_statement(client.head, end, kind)


def assert_rejected(client, bp):
    before = client.head
    assert client.check(bp).status is VerificationStatus.INVALID_PROOF
    with pytest.raises(ProofInvalid):
        client.submit(bp)
    assert client.head == before
    assert client.recent_public_inputs == []


class TestForgedQuorumProofs:
    def test_invented_state_root(self, client, validator_set, factory):
        qcs = [factory.qc(0, 1)]
        statement = honest_statement(client, qcs, state_root=FAKE_ROOT)
        honest = check_range(client.head, validator_set, qcs).witnesses
        forged = [dataclasses.replace(honest[0], state_root=FAKE_ROOT)]
        assert_rejected(client, seal(statement, forged, qcs, validator_set))

    def test_under_signed_certificate(self, client, validator_set, factory):
        qcs = [factory.qc(0, 1, signers=(0, 1))]
        statement = honest_statement(client, qcs)
        honest = check_range(client.head, validator_set, qcs).witnesses
        with pytest.raises(SoundnessError):
            build_quorum_trace(statement, honest)

        inflated = [dataclasses.replace(honest[0], mask=(1, 1, 1, 0))]
        assert_rejected(client, seal(statement, inflated, qcs, validator_set))

    def test_inflated_voting_power(self, client, validator_set, factory):
        qcs = [factory.qc(0, 1, signers=(0, 1))]
        statement = honest_statement(client, qcs)
        honest = check_range(client.head, validator_set, qcs).witnesses
        reweighted = [dataclasses.replace(honest[0], powers=(3, 3, 1, 1))]
        assert_rejected(client, seal(statement, reweighted, qcs, validator_set))

    def test_foreign_validator_set(self, client, factory):
        foreign = make_validator_set(NEXT_SEEDS)
        qcs = [factory.qc(0, 1, seeds=NEXT_SEEDS)]
        statement = honest_statement(client, qcs)
        own_start = dataclasses.replace(client.head, validator_set_commitment=foreign.commitment)
        walked = check_range(own_start, foreign, qcs).witnesses
        relabelled = [
            dataclasses.replace(w, validator_set_commitment=client.head.validator_set_commitment) for w in walked
        ]
        assert_rejected(client, seal(statement, relabelled, qcs, foreign))

    def test_certificates_swapped_for_other_signers(self, client, factory, proved_chain):
        envelope = Envelope.from_bytes(proved_chain.first.proof_bytes)
        swapped = dataclasses.replace(envelope, certificates=(factory.qc(0, 1, signers=(1, 2, 3)),))
        assert_rejected(client, dataclasses.replace(proved_chain.first, proof_bytes=swapped.to_bytes()))

    def test_bare_proof_without_evidence(self, client, proved_chain):
        core = Envelope.from_bytes(proved_chain.first.proof_bytes).proof
        assert_rejected(client, dataclasses.replace(proved_chain.first, proof_bytes=core))


class TestForgedChainProofs:
    def test_chain_without_inner_proofs(self, client, proved_chain):
        first, second = proved_chain.first, proved_chain.second
        outer = union_statement([first, second])
        air, trace = build_chain_trace(outer, [first.statement, second.statement])
        core = StarkProver(SMALL_STARK).prove(air, trace, outer.digest).to_bytes()

        assert_rejected(client, BatchProof.from_statement(outer, core))
        assert_rejected(client, BatchProof.from_statement(outer, Envelope(proof=core).to_bytes()))
        single = Envelope(proof=core, inner=(first,)).to_bytes()
        assert_rejected(client, BatchProof.from_statement(outer, single))

    def test_invented_intermediate_statement(self, client, proved_chain):
        first, second = proved_chain.first, proved_chain.second
        invented = dataclasses.replace(
            second, public_inputs=dataclasses.replace(second.public_inputs, new_state_root=FAKE_ROOT),
        )
        outer = union_statement([first, invented])
        assert outer.public_inputs.new_state_root == FAKE_ROOT
        air, trace = build_chain_trace(outer, [first.statement, invented.statement])
        core = StarkProver(SMALL_STARK).prove(air, trace, outer.digest).to_bytes()
        envelope = Envelope(proof=core, inner=(first, invented))
        assert_rejected(client, BatchProof.from_statement(outer, envelope.to_bytes()))


@pytest.mark.slow
class TestForgedWrappedProofs:
    def test_inflated_mask_in_circuit_witness(self, config, genesis, validator_set, setup_params, factory):
        client = make_client(config, genesis, validator_set, setup_params)
        qcs = [factory.qc(0, 1, signers=(0, 1))]
        statement = honest_statement(client, qcs, kind=ProofKind.WRAPPED_SUCCINCT)
        honest = check_range(client.head, validator_set, qcs).witnesses
        inflated = [dataclasses.replace(honest[0], mask=(1, 1, 1, 0))]

        circuit = setup_params.circuit
        proof = groth16.prove(setup_params.proving_key, circuit.cs, circuit.assign(statement, inflated))
        envelope = Envelope(
            proof=encode_wrapped(setup_params.version, proof),
            validator_set=validator_set,
            certificates=tuple(qcs),
        )
        assert_rejected(client, BatchProof.from_statement(statement, envelope.to_bytes()))

    def test_certificates_swapped_for_other_signers(self, config, genesis, validator_set, setup_params, factory):
        client = make_client(config, genesis, validator_set, setup_params)
        pipeline = ProofPipeline(client.registry, config, setup_params)
        wrapped = pipeline.prove([factory.qc(0, 1)], ProofKind.WRAPPED_SUCCINCT, start=client.head)
        envelope = Envelope.from_bytes(wrapped.proof_bytes)
        swapped = dataclasses.replace(envelope, certificates=(factory.qc(0, 1, signers=(1, 2, 3)),))
        assert_rejected(client, dataclasses.replace(wrapped, proof_bytes=swapped.to_bytes()))
