"""
Domain types for the priority feature: work items, badges, snapshots,
the error taxonomy and role-gated views.
"""

from .errors import (  # noqa: F401
    CacheCorruption,
    InvalidFocusUser,
    InvalidScoringConfig,
    NoDataAvailable,
    PriorityError,
    SourceUnavailable,
)
from .models import (  # noqa: F401
    AggregationSnapshot,
    CacheLookup,
    CapacityIndicator,
    CapacityLevel,
    NormalizedBatch,
    PriorityBadge,
    Source,
    SourceBatch,
    SourceStatus,
    SnapshotSummary,
    Urgency,
    WorkItem,
)
