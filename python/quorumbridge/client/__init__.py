"""Light client, persistent head store and relayer."""

from quorumbridge.client.engine import LightClient
from quorumbridge.client.store import HeadStore, ValidatorSetRegistry
from quorumbridge.client.relayer import Relayer

__all__ = ["LightClient", "HeadStore", "ValidatorSetRegistry", "Relayer"]
