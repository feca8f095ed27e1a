"""CLI entry point for quorumbridge."""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import structlog
import typer

from quorumbridge.core.config import BridgeConfig
from quorumbridge.core.errors import QuorumBridgeError

app = typer.Typer(
    name="quorumbridge",
    help="Quorum-certificate light client with transparent and succinct proofs",
)

logger = structlog.get_logger()


class KindChoice(str, Enum):
    native = "native"
    wrapped_succinct = "wrapped_succinct"


CONFIG_OPTION = typer.Option(
    Path("config.yaml"),
    "--config", "-c",
    help="Path to configuration file",
)


def _load_config(config_path: Path) -> BridgeConfig:
    config = BridgeConfig.from_yaml(config_path) if config_path.exists() else BridgeConfig()
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(config.log_level)),
    )
    return config


def _read_json(path: Path) -> Any:
    with open(path) as f:
        return json.load(f)


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def _fail(exc: QuorumBridgeError) -> typer.Exit:
    typer.echo(f"{exc.kind.value}: {exc.message}", err=True)
    if exc.head is not None:
        typer.echo(f"current head: ({exc.head.epoch}, {exc.head.height})", err=True)
    return typer.Exit(2 if exc.retryable else 1)


@app.command()
def genesis(
    ledger_info_path: Path = typer.Argument(..., help="Genesis ledger info JSON"),
    validator_set_path: Path = typer.Argument(..., help="Genesis validator set JSON"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Initialize the head from a trusted genesis snapshot."""
    from quorumbridge.client.engine import LightClient
    from quorumbridge.core.encoding import ledger_info_from_json, validator_set_from_json

    config = _load_config(config_path)
    client = LightClient(config)
    try:
        head = client.initialize(
            ledger_info_from_json(_read_json(ledger_info_path)),
            validator_set_from_json(_read_json(validator_set_path)),
        )
    except QuorumBridgeError as exc:
        raise _fail(exc)
    typer.echo(f"Initialized at ({head.epoch}, {head.height})")


@app.command()
def head(config_path: Path = CONFIG_OPTION) -> None:
    """Show the verified head."""
    from quorumbridge.client.engine import LightClient
    from quorumbridge.core.encoding import head_to_json

    client = LightClient(_load_config(config_path))
    try:
        typer.echo(json.dumps(head_to_json(client.head), indent=2))
    except QuorumBridgeError as exc:
        raise _fail(exc)


@app.command("submit-certificate")
def submit_certificate(
    certificate_path: Path = typer.Argument(..., help="Quorum certificate JSON"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Verify a certificate directly and advance the head."""
    from quorumbridge.client.engine import LightClient
    from quorumbridge.core.encoding import certificate_from_json

    client = LightClient(_load_config(config_path))
    try:
        new_head = client.submit_certificate(certificate_from_json(_read_json(certificate_path)))
    except QuorumBridgeError as exc:
        raise _fail(exc)
    typer.echo(f"Head advanced to ({new_head.epoch}, {new_head.height})")


@app.command()
def submit(
    proof_path: Path = typer.Argument(..., help="Batch proof JSON"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Verify a batch proof and advance the head."""
    from quorumbridge.client.engine import LightClient
    from quorumbridge.core.encoding import batch_proof_from_json

    config = _load_config(config_path)
    try:
        client = LightClient.from_config(config)
        new_head = client.submit(batch_proof_from_json(_read_json(proof_path)))
    except QuorumBridgeError as exc:
        raise _fail(exc)
    typer.echo(f"Head advanced to ({new_head.epoch}, {new_head.height})")


@app.command()
def inspect(
    proof_path: Path = typer.Argument(..., help="Batch proof JSON"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Check a batch proof against the head without applying it."""
    from quorumbridge.client.engine import LightClient
    from quorumbridge.core.encoding import batch_proof_from_json

    config = _load_config(config_path)
    try:
        client = LightClient.from_config(config)
        report = client.check(batch_proof_from_json(_read_json(proof_path)))
    except QuorumBridgeError as exc:
        raise _fail(exc)
    typer.echo(f"Status: {report.status.value}")
    typer.echo(f"Method: {report.method.name.lower()}")
    typer.echo(f"Size: {report.proof_size:,} bytes")
    typer.echo(f"Time: {report.elapsed_us / 1000:.1f} ms")
    typer.echo(f"Detail: {report.message}")
    if not report.valid:
        raise typer.Exit(1)


@app.command()
def prove(
    certificates_path: Path = typer.Argument(..., help="JSON list of consecutive certificates"),
    output: Path = typer.Option(Path("proof.json"), "--output", "-o"),
    kind: KindChoice = typer.Option(KindChoice.native, "--kind", "-k", case_sensitive=False),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Prove consecutive certificates from the current head."""
    from quorumbridge.client.engine import LightClient
    from quorumbridge.core.encoding import batch_proof_to_json, certificate_from_json
    from quorumbridge.core.types import ProofKind
    from quorumbridge.proving.pipeline import ProofPipeline

    config = _load_config(config_path)
    try:
        client = LightClient.from_config(config)
        pipeline = ProofPipeline(client.registry, config, client.setup)
        qcs = [certificate_from_json(c) for c in _read_json(certificates_path)]
        bp = pipeline.prove(qcs, ProofKind[kind.value.upper()], start=client.head)
    except QuorumBridgeError as exc:
        raise _fail(exc)
    _write_json(output, batch_proof_to_json(bp))
    typer.echo(f"Proved ({bp.start_epoch}, {bp.start_height}) -> ({bp.end_epoch}, {bp.end_height}): {bp.size:,} bytes")


@app.command()
def aggregate(
    proof_paths: list[Path] = typer.Argument(..., help="Batch proof JSON files in chain order"),
    output: Path = typer.Option(Path("aggregate.json"), "--output", "-o"),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Fold consecutive batch proofs into one."""
    from quorumbridge.aggregation.aggregator import BatchAggregator
    from quorumbridge.core.encoding import batch_proof_from_json, batch_proof_to_json
    from quorumbridge.proving.setup import SetupParameters

    config = _load_config(config_path)
    try:
        setup = None
        if config.setup.path is not None:
            setup = SetupParameters.load(config.setup.path, config.setup.version, config.setup.expected_digest)
        aggregator = BatchAggregator(config.stark, setup)
        bp = aggregator.aggregate([batch_proof_from_json(_read_json(p)) for p in proof_paths])
    except QuorumBridgeError as exc:
        raise _fail(exc)
    _write_json(output, batch_proof_to_json(bp))
    typer.echo(f"Aggregated {len(proof_paths)} proofs: {bp.size:,} bytes")


@app.command()
def ceremony(
    output: Path = typer.Option(Path("setup.json"), "--output", "-o"),
    version: str = typer.Option("wrap-v1", "--version"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Deterministic, insecure; tests only"),
    certificates: int = typer.Option(2, "--certificates", min=1, help="Certificates per wrapped proof"),
    slots: int = typer.Option(4, "--slots", min=1, help="Largest validator set the circuit accepts"),
) -> None:
    """Run a single-party setup ceremony for development networks."""
    from quorumbridge.proving.setup import run_ceremony

    params = run_ceremony(version, seed, certificates=certificates, slots=slots)
    params.save(output)
    typer.echo(f"Setup {version} ({certificates} certificates x {slots} slots) written to {output}")
    typer.echo(f"Digest: {params.digest}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
