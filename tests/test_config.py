"""Configuration loading and canonical encodings."""

from __future__ import annotations

import hashlib

import pytest
from pydantic import ValidationError

from quorumbridge.core import encoding
from quorumbridge.core.config import BridgeConfig, StarkConfig
from quorumbridge.core.errors import ErrorCategory, SetupMissing, StaleProof
from quorumbridge.core.types import ProofKind, PublicInputs, Statement


def statement(kind: ProofKind = ProofKind.NATIVE) -> Statement:
    d = hashlib.sha256(b"x").digest()
    return Statement(0, 0, False, 0, 5, False, PublicInputs(d, d, d, d, kind))


class TestBridgeConfig:
    def test_defaults(self):
        config = BridgeConfig()
        assert config.stark.blowup == 8
        assert config.prover.max_batch_size == 16
        assert config.setup.version == "wrap-v1"

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "stark:\n  num_queries: 12\n"
            "prover:\n  max_batch_size: 4\n"
            "relayer:\n  proof_kind: wrapped_succinct\n"
            "log_level: DEBUG\n"
        )
        config = BridgeConfig.from_yaml(path)
        assert config.stark.num_queries == 12
        assert config.prover.max_batch_size == 4
        assert config.relayer.proof_kind == "wrapped_succinct"
        assert config.log_level == "DEBUG"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("QUORUMBRIDGE_PROVER__MAX_BATCH_SIZE", "3")
        assert BridgeConfig().prover.max_batch_size == 3

    def test_blowup_power_of_two(self):
        with pytest.raises(ValidationError):
            StarkConfig(blowup=12)


class TestEncoding:
    def test_statement_digest_binds_kind(self):
        assert statement(ProofKind.NATIVE).digest != statement(ProofKind.WRAPPED_SUCCINCT).digest

    def test_roots_must_be_32_bytes(self):
        bad = Statement(0, 0, False, 0, 1, False, PublicInputs(b"\x00" * 31, b"", b"", b"", ProofKind.NATIVE))
        with pytest.raises(ValueError):
            encoding.statement_digest(bad)

    def test_certificate_json(self, factory):
        qc = factory.qc(0, 1)
        assert encoding.certificate_from_json(encoding.certificate_to_json(qc)) == qc

    def test_batch_proof_json(self, proved_chain):
        bp = proved_chain.first
        assert encoding.batch_proof_from_json(encoding.batch_proof_to_json(bp)) == bp

    def test_signing_message_covers_next_set(self, factory, next_validator_set):
        plain = factory.ledger_info(0, 2)
        closing = factory.ledger_info(0, 2, next_validator_set)
        assert encoding.signing_message(plain) != encoding.signing_message(closing)


class TestErrors:
    def test_categories(self):
        assert StaleProof.category is ErrorCategory.STALENESS
        assert StaleProof().retryable
        assert SetupMissing().message == "setup_missing"
