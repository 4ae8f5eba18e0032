"""
Priority aggregation package.

Merges per-source batches into ranked snapshots with capacity statistics.
"""

from .service import CapacityConfig, IdentityResolver, PriorityAggregator, aggregation_service

__all__ = ["CapacityConfig", "IdentityResolver", "PriorityAggregator", "aggregation_service"]
