"""Light client facade: genesis, submission and query."""

from __future__ import annotations

import structlog

from quorumbridge.client.store import HeadStore, ValidatorSetRegistry
from quorumbridge.core.config import BridgeConfig
from quorumbridge.core.types import (
    BatchProof,
    Bytes32,
    LedgerInfo,
    PublicInputs,
    QuorumCertificate,
    ValidatorSet,
    VerificationReport,
    VerifiedHead,
)
from quorumbridge.proving.setup import SetupParameters
from quorumbridge.verification.dual import DualProofVerifier
from quorumbridge.verification.native import NativeVerifier

logger = structlog.get_logger()


class LightClient:
    """Holds the verified head and accepts certificates or batch proofs."""

    def __init__(
        self,
        config: BridgeConfig | None = None,
        setup: SetupParameters | None = None,
        store: HeadStore | None = None,
        registry: ValidatorSetRegistry | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        base_path = self.config.store.path
        self.store = store or HeadStore(base_path, self.config.store.proof_window)
        self.registry = registry or ValidatorSetRegistry(base_path)
        self.setup = setup
        self.native = NativeVerifier(self.store, self.registry)
        self.dual = DualProofVerifier(self.store, self.registry, self.config.stark, setup)

    @classmethod
    def from_config(cls, config: BridgeConfig) -> LightClient:
        """Build a client, loading pinned setup parameters when a path is configured."""
        setup = None
        if config.setup.path is not None:
            setup = SetupParameters.load(
                config.setup.path,
                expected_version=config.setup.version,
                expected_digest=config.setup.expected_digest,
            )
        return cls(config, setup)

    def initialize(self, genesis: LedgerInfo, validator_set: ValidatorSet) -> VerifiedHead:
        """Install the trusted genesis snapshot. Only allowed once."""
        self.registry.register(validator_set)
        if genesis.next_validator_set is not None:
            self.registry.register(genesis.next_validator_set)
        head = VerifiedHead.from_genesis(genesis, validator_set)
        self.store.initialize(head)
        return head

    def submit(self, bp: BatchProof) -> VerifiedHead:
        return self.dual.verify_and_advance(bp)

    def submit_certificate(self, qc: QuorumCertificate) -> VerifiedHead:
        return self.native.verify_and_advance(qc)

    def check(self, bp: BatchProof) -> VerificationReport:
        return self.dual.check(bp)

    def register_validator_set(self, validator_set: ValidatorSet) -> Bytes32:
        return self.registry.register(validator_set)

    @property
    def head(self) -> VerifiedHead:
        return self.store.head

    @property
    def active_validator_set(self) -> ValidatorSet | None:
        return self.registry.get(self.store.head.validator_set_commitment)

    @property
    def last_public_inputs(self) -> PublicInputs | None:
        return self.store.last_public_inputs

    @property
    def recent_public_inputs(self) -> list[PublicInputs]:
        return self.store.recent_public_inputs
