"""
Snapshot cache for the priority feature.
"""

from .mirror import RedisSnapshotMirror
from .serialization import dumps_snapshot, loads_snapshot, validate_snapshot
from .snapshot_cache import RefreshEvent, RefreshEventType, SnapshotCache, utc_now

__all__ = [
    "RedisSnapshotMirror",
    "RefreshEvent",
    "RefreshEventType",
    "SnapshotCache",
    "dumps_snapshot",
    "loads_snapshot",
    "utc_now",
    "validate_snapshot",
]
