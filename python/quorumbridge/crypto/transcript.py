"""Fiat-Shamir transcript over SHA-256."""

from __future__ import annotations

import hashlib
import struct

from quorumbridge.crypto.field import P


class Transcript:
    """Hash-chained transcript. Prover and verifier must absorb identically."""

    def __init__(self, label: bytes) -> None:
        self._state = hashlib.sha256(b"QUORUMBRIDGE::Transcript" + label).digest()
        self._counter = 0

    def absorb(self, label: bytes, data: bytes) -> None:
        h = hashlib.sha256(self._state)
        h.update(struct.pack(">I", len(label)))
        h.update(label)
        h.update(struct.pack(">I", len(data)))
        h.update(data)
        self._state = h.digest()
        self._counter = 0

    def absorb_ints(self, label: bytes, values: list[int] | tuple[int, ...]) -> None:
        self.absorb(label, b"".join(struct.pack(">Q", v) for v in values))

    def _squeeze(self, label: bytes) -> bytes:
        out = hashlib.sha256(self._state + label + struct.pack(">I", self._counter)).digest()
        self._counter += 1
        return out

    def field_element(self, label: bytes) -> int:
        # Rejection sampling keeps the challenge uniform in [0, P).
        while True:
            candidate = int.from_bytes(self._squeeze(label)[:4], "little") & 0x7FFFFFFF
            if candidate < P:
                return candidate

    def field_elements(self, label: bytes, count: int) -> list[int]:
        return [self.field_element(label) for _ in range(count)]

    def indices(self, label: bytes, bound: int, count: int) -> list[int]:
        """Distinct indices in [0, bound)."""
        if count > bound:
            raise ValueError(f"Cannot draw {count} distinct indices below {bound}")
        seen: set[int] = set()
        out: list[int] = []
        while len(out) < count:
            candidate = int.from_bytes(self._squeeze(label)[:8], "little") % bound
            if candidate not in seen:
                seen.add(candidate)
                out.append(candidate)
        return out
