"""Transparent STARK prover and verifier for an Air."""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from typing import Any

import lz4.frame
import numpy as np
import structlog

from quorumbridge.core.config import StarkConfig
from quorumbridge.core.errors import ResourceExhausted
from quorumbridge.core.types import Bytes32
from quorumbridge.crypto.field import (
    GENERATOR,
    P,
    FieldArray,
    coset_domain,
    evaluate,
    interpolate,
    inv,
    inv_array,
    low_degree_extend,
    pow_array,
    root_of_unity,
)
from quorumbridge.crypto.merkle import MerklePath, MerkleTree
from quorumbridge.crypto.transcript import Transcript
from quorumbridge.proving import fri
from quorumbridge.proving.air import Air
from quorumbridge.proving.deadline import NO_DEADLINE, Deadline

logger = structlog.get_logger()

PROOF_MAGIC = b"QBS1"


@dataclass(frozen=True, slots=True)
class QueryOpening:
    index: int
    row: tuple[int, ...]
    row_path: MerklePath
    next_row: tuple[int, ...]
    next_path: MerklePath
    layers: tuple[fri.FriLayerOpening, ...]


@dataclass(frozen=True, slots=True)
class StarkProof:
    air_id: str
    params: tuple[int, ...]
    trace_length: int
    blowup: int
    num_queries: int
    trace_root: Bytes32
    fri_roots: tuple[Bytes32, ...]
    fri_final: int
    queries: tuple[QueryOpening, ...]

    def to_bytes(self) -> bytes:
        def path(p: MerklePath) -> list[str]:
            return [s.hex() for s in p.siblings]

        body = {
            "air": self.air_id,
            "params": list(self.params),
            "n": self.trace_length,
            "blowup": self.blowup,
            "queries": self.num_queries,
            "trace_root": self.trace_root.hex(),
            "fri_roots": [r.hex() for r in self.fri_roots],
            "fri_final": self.fri_final,
            "openings": [
                {
                    "i": q.index,
                    "row": list(q.row),
                    "row_path": path(q.row_path),
                    "next": list(q.next_row),
                    "next_path": path(q.next_path),
                    "fri": [[o.lo, o.hi, path(o.path)] for o in q.layers],
                }
                for q in self.queries
            ],
        }
        return PROOF_MAGIC + lz4.frame.compress(json.dumps(body, separators=(",", ":")).encode())

    @classmethod
    def from_bytes(cls, data: bytes) -> StarkProof:
        """Decode a proof. Raises ValueError on any malformed input."""
        if not data.startswith(PROOF_MAGIC):
            raise ValueError("not a STARK proof")
        try:
            body = json.loads(lz4.frame.decompress(data[len(PROOF_MAGIC):]))
            blowup = int(body["blowup"])
            trace_length = int(body["n"])
            lde_size = trace_length * blowup
            queries: list[QueryOpening] = []
            for q in body["openings"]:
                index = int(q["i"])
                half = lde_size // 2
                layers = []
                j = index
                for lo, hi, siblings in q["fri"]:
                    j %= half
                    layers.append(fri.FriLayerOpening(
                        lo=int(lo), hi=int(hi), path=_path(j, siblings),
                    ))
                    half //= 2
                queries.append(QueryOpening(
                    index=index,
                    row=tuple(int(v) for v in q["row"]),
                    row_path=_path(index, q["row_path"]),
                    next_row=tuple(int(v) for v in q["next"]),
                    next_path=_path((index + blowup) % lde_size, q["next_path"]),
                    layers=tuple(layers),
                ))
            return cls(
                air_id=str(body["air"]),
                params=tuple(int(p) for p in body["params"]),
                trace_length=trace_length,
                blowup=blowup,
                num_queries=int(body["queries"]),
                trace_root=bytes.fromhex(body["trace_root"]),
                fri_roots=tuple(bytes.fromhex(r) for r in body["fri_roots"]),
                fri_final=int(body["fri_final"]),
                queries=tuple(queries),
            )
        except (RuntimeError, KeyError, IndexError, TypeError, AttributeError, ZeroDivisionError) as exc:
            raise ValueError(f"malformed STARK proof: {exc}") from exc


def _path(index: int, siblings: list[str]) -> MerklePath:
    return MerklePath(index=index, siblings=tuple(bytes.fromhex(s) for s in siblings))


def _row_leaf(row: tuple[int, ...]) -> bytes:
    return struct.pack(f"<{len(row)}I", *row)


def _seed_transcript(air: Air, trace_length: int, blowup: int, num_queries: int, statement_digest: Bytes32) -> Transcript:
    transcript = Transcript(b"quorumbridge-stark-v2")
    transcript.absorb(b"air", air.air_id.encode())
    transcript.absorb_ints(b"params", air.params)
    transcript.absorb_ints(b"shape", (trace_length, air.width, blowup, num_queries))
    transcript.absorb(b"statement", statement_digest)
    transcript.absorb(b"public", air.public_digest())
    return transcript


def _extend_public(air: Air, blowup: int) -> FieldArray:
    """Public columns evaluated over the same coset as the committed trace."""
    public = air.public_trace()
    if not len(public):
        return np.zeros((0, air.trace_length * blowup), dtype=np.uint64)
    return low_degree_extend(public, blowup, GENERATOR)


def _num_folds(degree_bound: int) -> int:
    return degree_bound.bit_length() - 1


class StarkProver:
    """Commits to the trace LDE, builds the composition codeword and runs FRI."""

    def __init__(self, config: StarkConfig | None = None) -> None:
        self.config = config or StarkConfig()

    def prove(self, air: Air, trace: FieldArray, statement_digest: Bytes32,
              deadline: Deadline = NO_DEADLINE) -> StarkProof:
        cfg = self.config
        N, W, blowup = air.trace_length, air.width, cfg.blowup
        L = N * blowup
        if L > cfg.max_lde_size:
            raise ResourceExhausted(f"LDE size {L} exceeds limit {cfg.max_lde_size}")
        if blowup <= air.constraint_degree:
            raise ResourceExhausted(f"blowup {blowup} too small for degree {air.constraint_degree}")

        transcript = _seed_transcript(air, N, blowup, cfg.num_queries, statement_digest)

        # Step 1: trace commitment
        deadline.check("trace extension")
        lde = low_degree_extend(trace, blowup, GENERATOR)
        rows = np.ascontiguousarray(lde.T).astype("<u4")
        trace_tree = MerkleTree()
        trace_tree.build([r.tobytes() for r in rows])
        transcript.absorb(b"trace-root", trace_tree.root)
        public_lde = _extend_public(air, blowup)

        alphas = transcript.field_elements(b"alpha", air.num_transitions)
        boundaries = air.boundaries()
        betas = transcript.field_elements(b"beta", len(boundaries))
        gammas = transcript.field_elements(b"gamma", W)

        # Step 2: composition codeword
        deadline.check("composition")
        x = coset_domain(L, GENERATOR)
        columns = np.vstack((lde, public_lde))
        nxt = np.roll(columns, -blowup, axis=1)
        periodic = [low_degree_extend(col, blowup, GENERATOR)[0] for col in air.periodic_trace()]
        constraints = air.transitions(list(columns), list(nxt), periodic)
        if len(constraints) != air.num_transitions:
            raise ValueError(f"{air.air_id} produced {len(constraints)} constraints")

        combined = np.zeros(L, dtype=np.uint64)
        for alpha, c in zip(alphas, constraints):
            combined = (combined + np.asarray(c, dtype=np.uint64) * np.uint64(alpha) % P) % P
        last_row = pow(root_of_unity(N), N - 1, P)
        zerofier_inv = inv_array((pow_array(x, N) + P - 1) % P) * ((x + P - last_row) % P) % P
        composition = combined * zerofier_inv % P

        omega = root_of_unity(N)
        for beta, b in zip(betas, boundaries):
            denom_inv = inv_array((x + P - pow(omega, b.row, P)) % P)
            quotient = (columns[b.column] + P - b.value % P) % P * denom_inv % P
            composition = (composition + quotient * np.uint64(beta) % P) % P
        for gamma, column in zip(gammas, lde):
            composition = (composition + column * np.uint64(gamma) % P) % P

        # Step 3: FRI
        commitment = fri.commit(composition, GENERATOR, _num_folds(air.degree_bound), transcript, deadline)

        # Step 4: queries
        deadline.check("queries")
        indices = transcript.indices(b"query", L, cfg.num_queries)
        queries = []
        for q in indices:
            n = (q + blowup) % L
            queries.append(QueryOpening(
                index=q,
                row=tuple(int(v) for v in lde[:, q]),
                row_path=trace_tree.open(q),
                next_row=tuple(int(v) for v in lde[:, n]),
                next_path=trace_tree.open(n),
                layers=tuple(fri.open_query(commitment, q)),
            ))

        proof = StarkProof(
            air_id=air.air_id,
            params=air.params,
            trace_length=N,
            blowup=blowup,
            num_queries=cfg.num_queries,
            trace_root=trace_tree.root,
            fri_roots=tuple(commitment.roots),
            fri_final=commitment.final,
            queries=tuple(queries),
        )
        logger.debug("stark_proved", air=air.air_id, trace_length=N, width=W, lde_size=L)
        return proof


class StarkVerifier:
    """Replays the transcript and checks every query against the committed roots."""

    def __init__(self, config: StarkConfig | None = None) -> None:
        self.config = config or StarkConfig()

    def verify(self, air: Air, proof: StarkProof, statement_digest: Bytes32) -> bool:
        cfg = self.config
        N, W = air.trace_length, air.width
        if (
            proof.air_id != air.air_id
            or proof.params != air.params
            or proof.trace_length != N
            or proof.blowup != cfg.blowup
            or proof.num_queries != cfg.num_queries
            or len(proof.queries) != cfg.num_queries
        ):
            logger.debug("stark_shape_mismatch", air=air.air_id)
            return False
        blowup = cfg.blowup
        L = N * blowup
        if L > cfg.max_lde_size or len(proof.fri_roots) != _num_folds(air.degree_bound):
            return False

        transcript = _seed_transcript(air, N, blowup, cfg.num_queries, statement_digest)
        transcript.absorb(b"trace-root", proof.trace_root)
        alphas = transcript.field_elements(b"alpha", air.num_transitions)
        boundaries = air.boundaries()
        betas = transcript.field_elements(b"beta", len(boundaries))
        gammas = transcript.field_elements(b"gamma", W)
        if not 0 <= proof.fri_final < P:
            return False
        fri_betas = fri.replay_challenges(proof.fri_roots, proof.fri_final, transcript)
        indices = transcript.indices(b"query", L, cfg.num_queries)

        public_lde = _extend_public(air, blowup)
        periodic_polys = [(interpolate(col), N // len(col)) for col in air.periodic_columns()]
        omega = root_of_unity(N)
        omega_lde = root_of_unity(L)
        last_row = pow(omega, N - 1, P)
        depth = L.bit_length() - 1
        tree = MerkleTree()

        for q, opening in zip(indices, proof.queries):
            if opening.index != q:
                return False
            nxt_index = (q + blowup) % L
            for row, path, idx in (
                (opening.row, opening.row_path, q),
                (opening.next_row, opening.next_path, nxt_index),
            ):
                if len(row) != W or any(not 0 <= v < P for v in row):
                    return False
                if path.index != idx or len(path.siblings) != depth:
                    return False
                if not tree.verify(_row_leaf(row), path, proof.trace_root):
                    return False

            x = GENERATOR * pow(omega_lde, q, P) % P
            periodic = [evaluate(coeffs, pow(x, step, P)) for coeffs, step in periodic_polys]
            cur = opening.row + tuple(int(v) for v in public_lde[:, q])
            nxt = opening.next_row + tuple(int(v) for v in public_lde[:, nxt_index])
            constraints = air.transitions(cur, nxt, periodic)
            combined = sum(a * c for a, c in zip(alphas, constraints)) % P
            zerofier = (pow(x, N, P) - 1) * inv(x - last_row) % P
            value = combined * inv(zerofier) % P
            for beta, b in zip(betas, boundaries):
                value += beta * (cur[b.column] - b.value) * inv(x - pow(omega, b.row, P))
            for gamma, v in zip(gammas, opening.row):
                value += gamma * v
            value %= P

            if not fri.verify_query(q, value, opening.layers, proof.fri_roots, fri_betas,
                                    proof.fri_final, L, GENERATOR):
                return False
        return True
