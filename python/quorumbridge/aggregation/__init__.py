"""Folding of consecutive batch proofs into one."""

from quorumbridge.aggregation.chain import ChainAir
from quorumbridge.aggregation.aggregator import BatchAggregator

__all__ = ["ChainAir", "BatchAggregator"]
