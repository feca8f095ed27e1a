"""Asynchronous relayer: fetch certificates, prove, submit, retry on staleness."""

from __future__ import annotations

import asyncio
from functools import partial
from typing import AsyncIterator, Protocol, Sequence

import structlog

from quorumbridge.client.engine import LightClient
from quorumbridge.core.config import BridgeConfig
from quorumbridge.core.errors import ProveError, ProvingTimeout, ResourceExhausted, StaleProof
from quorumbridge.core.types import BatchProof, ProofKind, QuorumCertificate, VerifiedHead
from quorumbridge.proving.deadline import Deadline
from quorumbridge.proving.pipeline import ProofPipeline

logger = structlog.get_logger()


class CertificateFeed(Protocol):
    async def certificates_after(self, head: VerifiedHead, limit: int) -> list[QuorumCertificate]:
        ...


class MemoryFeed:
    """Certificates held in memory, served in chain order."""

    def __init__(self, certificates: Sequence[QuorumCertificate] = ()) -> None:
        self._certificates = sorted(certificates, key=lambda qc: qc.ledger_info.position)

    def extend(self, certificates: Sequence[QuorumCertificate]) -> None:
        self._certificates = sorted(
            [*self._certificates, *certificates], key=lambda qc: qc.ledger_info.position
        )

    async def certificates_after(self, head: VerifiedHead, limit: int) -> list[QuorumCertificate]:
        pending = [qc for qc in self._certificates if qc.ledger_info.position > head.position]
        return pending[:limit]


class Relayer:
    """Drives certificates from a feed into batch proofs against the light client."""

    def __init__(
        self,
        client: LightClient,
        pipeline: ProofPipeline,
        feed: CertificateFeed,
        config: BridgeConfig | None = None,
        kind: ProofKind | None = None,
    ) -> None:
        self.client = client
        self.pipeline = pipeline
        self.feed = feed
        self.config = config or client.config
        self.kind = kind or ProofKind[self.config.relayer.proof_kind.upper()]
        self.batch_size = self.config.prover.max_batch_size
        self.restarts = 0

    async def _prove(self, qcs: list[QuorumCertificate], head: VerifiedHead) -> BatchProof:
        loop = asyncio.get_running_loop()
        deadline = Deadline(self.config.prover.timeout_seconds)
        return await loop.run_in_executor(
            None, partial(self.pipeline.prove, qcs, self.kind, start=head, deadline=deadline)
        )

    async def step(self) -> VerifiedHead | None:
        """Prove and submit the next pending batch. Returns the new head, or None if idle."""
        head = self.client.head
        qcs = await self.feed.certificates_after(head, self.batch_size)
        if not qcs:
            return None

        last_error: ProveError | StaleProof | None = None
        for attempt in range(self.config.relayer.max_retries + 1):
            try:
                bp = await self._prove(qcs, head)
                new_head = self.client.submit(bp)
                self._regrow()
                logger.info(
                    "batch_relayed",
                    certificates=len(qcs),
                    epoch=new_head.epoch,
                    height=new_head.height,
                    attempt=attempt,
                )
                return new_head
            except StaleProof as exc:
                # Another submitter won the race; rebuild from the head it left.
                last_error = exc
                self.restarts += 1
                head = exc.head or self.client.head
                logger.info("relay_restart", head=(head.epoch, head.height), attempt=attempt)
                qcs = await self.feed.certificates_after(head, self.batch_size)
                if not qcs:
                    return head
            except (ProvingTimeout, ResourceExhausted) as exc:
                last_error = exc
                if len(qcs) == 1:
                    raise
                self.batch_size = max(1, len(qcs) // 2)
                qcs = qcs[:self.batch_size]
                logger.warning("relay_shrink_batch", kind=exc.kind.value, batch_size=self.batch_size)

        assert last_error is not None
        raise last_error

    def _regrow(self) -> None:
        """Double the batch size after a success, up to the configured maximum."""
        limit = self.config.prover.max_batch_size
        if self.batch_size < limit:
            self.batch_size = min(limit, self.batch_size * 2)
            logger.debug("relay_grow_batch", batch_size=self.batch_size)

    async def run(self, stop: asyncio.Event | None = None) -> AsyncIterator[VerifiedHead]:
        """Yield each new head until stop is set."""
        while stop is None or not stop.is_set():
            head = await self.step()
            if head is not None:
                yield head
            else:
                await asyncio.sleep(self.config.relayer.poll_interval)
