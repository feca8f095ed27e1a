"""Merkle commitments over proof-system rows."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Sequence

from quorumbridge.core.types import Bytes32

LEAF_PREFIX = b"\x00"
NODE_PREFIX = b"\x01"


@dataclass(frozen=True, slots=True)
class MerklePath:
    index: int
    siblings: tuple[Bytes32, ...]


class MerkleTree:
    """Binary Merkle tree with domain-separated leaf and node hashing."""

    def __init__(self, hash_function: str = "sha256") -> None:
        self.hash_function = hash_function
        self._leaves: list[Bytes32] = []
        self._tree: list[list[Bytes32]] = []
        self._root: Bytes32 = b""

    def build(self, leaves: Sequence[bytes]) -> Bytes32:
        """Build the tree from raw leaf data and return the root."""
        if not leaves:
            self._root = self._hash(b"empty")
            return self._root

        self._leaves = [self._hash(LEAF_PREFIX + d) for d in leaves]

        # Pad to power of 2
        target_size = 1
        while target_size < len(self._leaves):
            target_size *= 2
        while len(self._leaves) < target_size:
            self._leaves.append(self._hash(b"padding"))

        self._tree = [self._leaves]
        current_level = self._leaves
        while len(current_level) > 1:
            next_level = [
                self._hash(NODE_PREFIX + current_level[i] + current_level[i + 1])
                for i in range(0, len(current_level), 2)
            ]
            self._tree.append(next_level)
            current_level = next_level

        self._root = self._tree[-1][0]
        return self._root

    @property
    def root(self) -> Bytes32:
        return self._root

    def __len__(self) -> int:
        return len(self._leaves)

    def open(self, index: int) -> MerklePath:
        """Authentication path for the leaf at index."""
        if not 0 <= index < len(self._leaves):
            raise IndexError(f"Index {index} out of range")

        siblings: list[Bytes32] = []
        current_index = index
        for level in self._tree[:-1]:
            siblings.append(level[current_index ^ 1])
            current_index //= 2
        return MerklePath(index=index, siblings=tuple(siblings))

    def verify(self, leaf: bytes, path: MerklePath, expected_root: Bytes32) -> bool:
        """Check that leaf data sits at path.index under expected_root."""
        current = self._hash(LEAF_PREFIX + leaf)
        index = path.index
        for sibling in path.siblings:
            if index & 1:
                current = self._hash(NODE_PREFIX + sibling + current)
            else:
                current = self._hash(NODE_PREFIX + current + sibling)
            index >>= 1
        return index == 0 and current == expected_root

    def _hash(self, data: bytes) -> Bytes32:
        if self.hash_function == "blake2b":
            return hashlib.blake2b(data, digest_size=32).digest()
        return hashlib.sha256(data).digest()
