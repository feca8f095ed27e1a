"""Persistent storage for the verified head and known validator sets."""

from __future__ import annotations

import json
import os
import threading
from collections import deque
from pathlib import Path

import structlog

from quorumbridge.core.encoding import (
    head_from_json,
    head_to_json,
    public_inputs_from_json,
    public_inputs_to_json,
    validator_set_from_json,
    validator_set_to_json,
)
from quorumbridge.core.errors import AlreadyInitialized, NotInitialized, StoreWriteFailed
from quorumbridge.core.types import Bytes32, PublicInputs, ValidatorSet, VerifiedHead

logger = structlog.get_logger()


def _atomic_write(path: Path, payload: object) -> None:
    """Write payload as JSON next to path, then rename it into place."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w") as f:
        json.dump(payload, f)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def _persist(path: Path, payload: object) -> None:
    try:
        _atomic_write(path, payload)
    except OSError as exc:
        raise StoreWriteFailed(f"could not write {path}: {exc}") from exc


class ValidatorSetRegistry:
    """Validator sets indexed by commitment."""

    def __init__(self, base_path: Path | None = None) -> None:
        self._sets: dict[Bytes32, ValidatorSet] = {}
        self._lock = threading.Lock()
        self.sets_path = base_path / "validator_sets" if base_path else None
        if self.sets_path is not None:
            self.sets_path.mkdir(parents=True, exist_ok=True)
            self._load()

    def register(self, validator_set: ValidatorSet) -> Bytes32:
        commitment = validator_set.commitment
        with self._lock:
            if commitment in self._sets:
                return commitment
            if self.sets_path is not None:
                _persist(
                    self.sets_path / f"{commitment.hex()}.json",
                    validator_set_to_json(validator_set),
                )
            self._sets[commitment] = validator_set
        logger.debug("validator_set_registered", commitment=commitment.hex()[:16], size=len(validator_set))
        return commitment

    def get(self, commitment: Bytes32) -> ValidatorSet | None:
        with self._lock:
            return self._sets.get(commitment)

    def __contains__(self, commitment: object) -> bool:
        return commitment in self._sets

    def __len__(self) -> int:
        return len(self._sets)

    def _load(self) -> None:
        assert self.sets_path is not None
        for file in sorted(self.sets_path.glob("*.json")):
            with open(file) as f:
                vs = validator_set_from_json(json.load(f))
            self._sets[vs.commitment] = vs


class HeadStore:
    """Init-once, advance-only verified head with a bounded window of accepted inputs.

    All mutation goes through compare_and_swap, which is serialized by one lock
    and persisted with a single atomic file replace.
    """

    def __init__(self, base_path: Path | None = None, window: int = 16) -> None:
        self.base_path = base_path
        self._lock = threading.Lock()
        self._head: VerifiedHead | None = None
        self._recent: deque[PublicInputs] = deque(maxlen=window)

        self.head_path: Path | None = None
        if base_path is not None:
            base_path.mkdir(parents=True, exist_ok=True)
            self.head_path = base_path / "head.json"
            self._load()

    @property
    def initialized(self) -> bool:
        return self._head is not None

    @property
    def head(self) -> VerifiedHead:
        head = self._head
        if head is None:
            raise NotInitialized("head store has no genesis")
        return head

    def initialize(self, head: VerifiedHead) -> None:
        with self._lock:
            if self._head is not None:
                raise AlreadyInitialized("head already initialized", head=self._head)
            self._save(head, self._recent)
            self._head = head
        logger.info("head_initialized", epoch=head.epoch, height=head.height)

    def compare_and_swap(
        self,
        expected: VerifiedHead,
        new: VerifiedHead,
        public_inputs: PublicInputs | None = None,
    ) -> bool:
        """Replace the head only if it still equals expected.

        The new state is written first and assigned only once the write
        succeeded, so a failed write raises StoreWriteFailed and leaves the
        head where it was.
        """
        with self._lock:
            if self._head is None:
                raise NotInitialized("head store has no genesis")
            if self._head != expected:
                return False
            recent = deque(self._recent, maxlen=self._recent.maxlen)
            if public_inputs is not None:
                recent.append(public_inputs)
            self._save(new, recent)
            self._head = new
            self._recent = recent
        logger.debug("head_swapped", epoch=new.epoch, height=new.height)
        return True

    @property
    def recent_public_inputs(self) -> list[PublicInputs]:
        with self._lock:
            return list(self._recent)

    @property
    def last_public_inputs(self) -> PublicInputs | None:
        with self._lock:
            return self._recent[-1] if self._recent else None

    def _save(self, head: VerifiedHead, recent: deque[PublicInputs]) -> None:
        if self.head_path is None:
            return
        _persist(self.head_path, {
            "head": head_to_json(head),
            "recent": [public_inputs_to_json(pi) for pi in recent],
        })

    def _load(self) -> None:
        if self.head_path is None or not self.head_path.exists():
            return
        with open(self.head_path) as f:
            raw = json.load(f)
        self._head = head_from_json(raw["head"])
        for pi in raw.get("recent", []):
            self._recent.append(public_inputs_from_json(pi))
