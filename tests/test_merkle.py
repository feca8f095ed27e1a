"""Merkle commitments and Fiat-Shamir transcript."""

from __future__ import annotations

import pytest

from quorumbridge.crypto.field import P
from quorumbridge.crypto.merkle import MerklePath, MerkleTree
from quorumbridge.crypto.transcript import Transcript


class TestMerkleTree:
    @pytest.mark.parametrize("hash_function", ["sha256", "blake2b"])
    def test_every_leaf_opens(self, hash_function):
        leaves = [b"row-%d" % i for i in range(6)]
        tree = MerkleTree(hash_function)
        root = tree.build(leaves)
        assert len(tree) == 8
        for i, leaf in enumerate(leaves):
            assert tree.verify(leaf, tree.open(i), root)

    def test_wrong_leaf_or_position_rejected(self):
        tree = MerkleTree()
        root = tree.build([b"a", b"b", b"c", b"d"])
        path = tree.open(1)
        assert not tree.verify(b"a", path, root)
        moved = MerklePath(index=2, siblings=path.siblings)
        assert not tree.verify(b"b", moved, root)

    def test_index_beyond_depth_rejected(self):
        tree = MerkleTree()
        root = tree.build([b"a", b"b"])
        path = tree.open(0)
        assert not tree.verify(b"a", MerklePath(index=2, siblings=path.siblings), root)

    def test_leaf_cannot_pose_as_node(self):
        tree = MerkleTree()
        root = tree.build([b"a", b"b", b"c", b"d"])
        level1 = tree._tree[1][0]
        assert not tree.verify(level1, MerklePath(index=0, siblings=(tree._tree[1][1],)), root)

    def test_open_out_of_range(self):
        tree = MerkleTree()
        tree.build([b"a"])
        with pytest.raises(IndexError):
            tree.open(1)


class TestTranscript:
    def test_same_absorptions_same_challenges(self):
        a, b = Transcript(b"t"), Transcript(b"t")
        for t in (a, b):
            t.absorb(b"root", b"\x01" * 32)
        assert a.field_elements(b"x", 4) == b.field_elements(b"x", 4)

    def test_absorbed_data_changes_challenges(self):
        a, b = Transcript(b"t"), Transcript(b"t")
        a.absorb(b"root", b"\x01" * 32)
        b.absorb(b"root", b"\x02" * 32)
        assert a.field_element(b"x") != b.field_element(b"x")

    def test_challenges_in_field(self):
        t = Transcript(b"t")
        assert all(0 <= v < P for v in t.field_elements(b"x", 64))

    def test_distinct_indices(self):
        t = Transcript(b"t")
        indices = t.indices(b"q", 16, 16)
        assert sorted(indices) == list(range(16))
        with pytest.raises(ValueError):
            t.indices(b"q", 4, 5)
