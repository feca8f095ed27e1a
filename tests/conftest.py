"""
Shared pytest fixtures for the test suite.

Provides:
- Deterministic BLS validator sets (genesis and a successor epoch)
- A certificate factory with cached signatures
- In-memory light clients and a small STARK configuration
- A seeded quorum-circuit ceremony
- Native batch proofs over a short certificate chain
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

import pytest

from quorumbridge.client.engine import LightClient
from quorumbridge.client.store import HeadStore, ValidatorSetRegistry
from quorumbridge.core.config import BridgeConfig, StarkConfig, StoreConfig
from quorumbridge.core.encoding import signing_message
from quorumbridge.core.types import (
    BatchProof,
    LedgerInfo,
    ProofKind,
    QuorumCertificate,
    SignerMask,
    ValidatorInfo,
    ValidatorSet,
    VerifiedHead,
)
from quorumbridge.crypto import bls
from quorumbridge.proving.pipeline import ProofPipeline
from quorumbridge.proving.setup import SetupParameters, run_ceremony
from quorumbridge.verification import rules

SMALL_STARK = StarkConfig(blowup=8, num_queries=8)


# =============================================================================
# KEYS AND VALIDATOR SETS
# =============================================================================

@lru_cache(maxsize=None)
def secret_key(seed: int) -> int:
    return bls.derive_secret_key(hashlib.sha256(b"validator-seed-%d" % seed).digest())


@lru_cache(maxsize=None)
def _signature(seed: int, message: bytes) -> bytes:
    return bls.sign(secret_key(seed), message)


def make_validator_set(seeds: Sequence[int], power: int = 1) -> ValidatorSet:
    return ValidatorSet(tuple(
        ValidatorInfo(
            identity=b"validator-%d" % s,
            public_key=bls.public_key(secret_key(s)),
            voting_power=power,
        )
        for s in seeds
    ))


def root(label: str) -> bytes:
    return hashlib.sha256(label.encode()).digest()


class CertificateFactory:
    """Builds ledger infos and signs them with the seeds behind a validator set."""

    def ledger_info(self, epoch: int, height: int, next_validator_set: ValidatorSet | None = None) -> LedgerInfo:
        return LedgerInfo(
            epoch=epoch,
            height=height,
            state_root=root(f"state:{epoch}:{height}"),
            consensus_digest=root(f"consensus:{epoch}:{height}"),
            next_validator_set=next_validator_set,
        )

    def certify(
        self,
        ledger_info: LedgerInfo,
        signers: Sequence[int] = (0, 1, 2),
        seeds: Sequence[int] = (0, 1, 2, 3),
    ) -> QuorumCertificate:
        message = signing_message(ledger_info)
        signature = bls.aggregate_signatures([_signature(seeds[i], message) for i in signers])
        return QuorumCertificate(
            ledger_info=ledger_info,
            signer_mask=SignerMask.from_indices(signers),
            aggregate_signature=signature,
        )

    def qc(self, epoch: int, height: int, signers: Sequence[int] = (0, 1, 2),
           seeds: Sequence[int] = (0, 1, 2, 3),
           next_validator_set: ValidatorSet | None = None) -> QuorumCertificate:
        return self.certify(self.ledger_info(epoch, height, next_validator_set), signers, seeds)


GENESIS_SEEDS = (0, 1, 2, 3)
NEXT_SEEDS = (4, 5, 6, 7)


@pytest.fixture(scope="session")
def validator_set() -> ValidatorSet:
    return make_validator_set(GENESIS_SEEDS)


@pytest.fixture(scope="session")
def next_validator_set() -> ValidatorSet:
    return make_validator_set(NEXT_SEEDS)


@pytest.fixture(scope="session")
def factory() -> CertificateFactory:
    return CertificateFactory()


@pytest.fixture(scope="session")
def genesis(factory: CertificateFactory) -> LedgerInfo:
    return factory.ledger_info(0, 0)


# =============================================================================
# CLIENTS
# =============================================================================

@pytest.fixture
def config() -> BridgeConfig:
    return BridgeConfig(stark=SMALL_STARK, store=StoreConfig(path=None))


def make_client(config: BridgeConfig, genesis: LedgerInfo, validator_set: ValidatorSet,
                setup: SetupParameters | None = None) -> LightClient:
    client = LightClient(config, setup, HeadStore(), ValidatorSetRegistry())
    client.initialize(genesis, validator_set)
    return client


@pytest.fixture
def client(config: BridgeConfig, genesis: LedgerInfo, validator_set: ValidatorSet) -> LightClient:
    return make_client(config, genesis, validator_set)


# =============================================================================
# STRUCTURED SETUP
# =============================================================================

@pytest.fixture(scope="session")
def setup_params() -> SetupParameters:
    return run_ceremony("wrap-v1", seed=7, certificates=2, slots=4)


# =============================================================================
# PRE-PROVED BATCHES
# =============================================================================

@dataclass(frozen=True)
class ProvedChain:
    """Certificates (0,1), (0,3), (0,4) and native batch proofs over [(0,1)] and [(0,3), (0,4)]."""

    certificates: list[QuorumCertificate]
    first: BatchProof
    second: BatchProof


@pytest.fixture(scope="session")
def proved_chain(genesis, validator_set, factory) -> ProvedChain:
    registry = ValidatorSetRegistry()
    registry.register(validator_set)
    pipeline = ProofPipeline(registry, BridgeConfig(stark=SMALL_STARK, store=StoreConfig(path=None)))
    qcs = [factory.qc(0, 1), factory.qc(0, 3), factory.qc(0, 4)]
    start = VerifiedHead.from_genesis(genesis, validator_set)
    first = pipeline.prove(qcs[:1], ProofKind.NATIVE, start=start)
    second = pipeline.prove(qcs[1:], ProofKind.NATIVE, start=rules.project_head(start, qcs[:1]))
    return ProvedChain(qcs, first, second)
