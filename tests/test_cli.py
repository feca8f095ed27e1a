"""Command-line interface end to end."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from quorumbridge.cli.main import app
from quorumbridge.core import encoding

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, genesis, validator_set):
    config = tmp_path / "config.yaml"
    config.write_text(
        f"store:\n  path: {tmp_path / 'state'}\n"
        "stark:\n  num_queries: 8\n"
        "log_level: WARNING\n"
    )
    (tmp_path / "genesis.json").write_text(json.dumps(encoding.ledger_info_to_json(genesis)))
    (tmp_path / "validators.json").write_text(json.dumps(encoding.validator_set_to_json(validator_set)))
    return tmp_path


def invoke(workspace, *args):
    return runner.invoke(app, [*args, "--config", str(workspace / "config.yaml")])


class TestCli:
    def test_genesis_then_head(self, workspace):
        result = invoke(workspace, "genesis", str(workspace / "genesis.json"), str(workspace / "validators.json"))
        assert result.exit_code == 0, result.output
        assert "(0, 0)" in result.output

        result = invoke(workspace, "head")
        assert result.exit_code == 0
        assert json.loads(result.output)["height"] == 0

        again = invoke(workspace, "genesis", str(workspace / "genesis.json"), str(workspace / "validators.json"))
        assert again.exit_code != 0

    def test_head_before_genesis(self, workspace):
        result = invoke(workspace, "head")
        assert result.exit_code != 0

    def test_submit_certificate(self, workspace, factory):
        invoke(workspace, "genesis", str(workspace / "genesis.json"), str(workspace / "validators.json"))
        qc_path = workspace / "qc.json"
        qc_path.write_text(json.dumps(encoding.certificate_to_json(factory.qc(0, 1))))

        result = invoke(workspace, "submit-certificate", str(qc_path))
        assert result.exit_code == 0, result.output
        assert "(0, 1)" in result.output

        replay = invoke(workspace, "submit-certificate", str(qc_path))
        assert replay.exit_code == 2

    def test_prove_inspect_submit(self, workspace, factory):
        invoke(workspace, "genesis", str(workspace / "genesis.json"), str(workspace / "validators.json"))
        certs = workspace / "certs.json"
        certs.write_text(json.dumps([encoding.certificate_to_json(factory.qc(0, 1))]))
        proof = workspace / "proof.json"

        result = invoke(workspace, "prove", str(certs), "--output", str(proof))
        assert result.exit_code == 0, result.output

        result = invoke(workspace, "inspect", str(proof))
        assert result.exit_code == 0, result.output
        assert "Status: valid" in result.output

        result = invoke(workspace, "submit", str(proof))
        assert result.exit_code == 0, result.output
        assert "(0, 1)" in result.output

        result = invoke(workspace, "inspect", str(proof))
        assert result.exit_code == 1
        assert "Status: stale" in result.output

    def test_unknown_kind_is_a_usage_error(self, workspace, factory):
        invoke(workspace, "genesis", str(workspace / "genesis.json"), str(workspace / "validators.json"))
        certs = workspace / "certs.json"
        certs.write_text(json.dumps([encoding.certificate_to_json(factory.qc(0, 1))]))

        result = invoke(workspace, "prove", str(certs), "--kind", "bogus")
        assert result.exit_code == 2
        assert not isinstance(result.exception, KeyError)

        result = invoke(workspace, "prove", str(certs), "--kind", "NATIVE", "--output", str(workspace / "proof.json"))
        assert result.exit_code == 0, result.output
