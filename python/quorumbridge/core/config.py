"""Configuration management for quorumbridge."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class StarkConfig(BaseModel):
    """Transparent proof parameters. Prover and verifier must agree."""

    blowup: int = Field(default=8, ge=4, description="LDE blowup factor (power of two)")
    num_queries: int = Field(default=32, ge=4, description="FRI query count")
    max_lde_size: int = Field(default=1 << 18, ge=1 << 10, description="Largest LDE domain the prover will build")

    @field_validator("blowup")
    @classmethod
    def _power_of_two(cls, v: int) -> int:
        if v & (v - 1):
            raise ValueError("blowup must be a power of two")
        return v


class ProverConfig(BaseModel):
    """Proof-generation pipeline limits."""

    max_batch_size: int = Field(default=16, ge=1)
    timeout_seconds: float | None = Field(default=600.0, gt=0)
    workers: int = Field(default=2, ge=1)


class SetupConfig(BaseModel):
    """Structured-setup parameters for the wrapped proof."""

    path: Path | None = Field(default=None, description="Setup parameter file")
    version: str = Field(default="wrap-v1")
    expected_digest: str | None = Field(default=None, description="Hex SHA-256 the loaded file must match")


class StoreConfig(BaseModel):
    """Head store persistence."""

    path: Path | None = Field(default=Path("data/head"))
    proof_window: int = Field(default=16, ge=1, description="Recently accepted public inputs kept")


class RelayerConfig(BaseModel):
    """Relayer polling behaviour."""

    poll_interval: float = Field(default=2.0, gt=0)
    max_retries: int = Field(default=5, ge=0)
    proof_kind: Literal["native", "wrapped_succinct"] = Field(default="native")


class BridgeConfig(BaseSettings):
    """Root configuration for quorumbridge."""

    stark: StarkConfig = Field(default_factory=StarkConfig)
    prover: ProverConfig = Field(default_factory=ProverConfig)
    setup: SetupConfig = Field(default_factory=SetupConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    relayer: RelayerConfig = Field(default_factory=RelayerConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    model_config = {"env_prefix": "QUORUMBRIDGE_", "env_nested_delimiter": "__"}

    @classmethod
    def from_yaml(cls, path: Path) -> BridgeConfig:
        import yaml
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)
