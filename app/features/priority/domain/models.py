"""
Domain models for the priority feature.

Everything handed out of the pipeline is a frozen dataclass holding tuples,
so a snapshot served from the cache cannot be mutated by a caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class Source(str, Enum):
    JIRA = "jira"
    OUTLOOK = "outlook"
    CONFLUENCE = "confluence"

    @property
    def label(self) -> str:
        return {"jira": "JIRA", "outlook": "Outlook", "confluence": "Confluence"}[self.value]


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _URGENCY_RANK[self]


_URGENCY_RANK = {Urgency.LOW: 0, Urgency.MEDIUM: 1, Urgency.HIGH: 2, Urgency.CRITICAL: 3}


class CapacityLevel(str, Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    OVERLOADED = "OVERLOADED"


@dataclass(slots=True, frozen=True)
class WorkItem:
    """A unit of actionable information from one source."""

    id: str
    source: Source
    title: str
    updated_at: datetime
    owner_id: str
    due_at: datetime | None = None
    raw_priority: str | None = None
    url: str | None = None

    @property
    def identity(self) -> tuple[Source, str]:
        return (self.source, self.id)


@dataclass(slots=True, frozen=True)
class NormalizedBatch:
    """Normalizer output for one source."""

    source: Source
    items: tuple[WorkItem, ...]
    dropped: int = 0


@dataclass(slots=True, frozen=True)
class SourceBatch:
    """One source's contribution to an aggregation cycle."""

    source: Source
    ok: bool
    items: tuple[WorkItem, ...] = ()
    dropped: int = 0
    error: str | None = None
    fetched_at: datetime | None = None

    @classmethod
    def failed(cls, source: Source, error: str) -> SourceBatch:
        return cls(source=source, ok=False, error=error)


@dataclass(slots=True, frozen=True)
class PriorityBadge:
    """Ranked, display-ready view of a WorkItem."""

    id: str
    source: Source
    title: str
    score: float
    urgency: Urgency
    due_at: datetime | None = None
    url: str | None = None

    def sort_key(self) -> tuple:
        # Items without a due date sort after items with one on equal score
        return (
            -self.score,
            self.due_at is None,
            self.due_at or EPOCH,
            self.id,
            self.source.value,
        )


@dataclass(slots=True, frozen=True)
class SourceStatus:
    source: Source
    ok: bool
    error: str | None = None
    item_count: int = 0
    dropped: int = 0
    fetched_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class CapacityIndicator:
    level: CapacityLevel
    percentage: float


@dataclass(slots=True, frozen=True)
class SnapshotSummary:
    last_updated: datetime
    source_status: tuple[SourceStatus, ...]
    total_items: int = 0
    tier_counts: tuple[tuple[Urgency, int], ...] = ()
    source_counts: tuple[tuple[Source, int], ...] = ()
    overdue_count: int = 0
    average_score: float = 0.0

    def status_for(self, source: Source) -> SourceStatus | None:
        return next((status for status in self.source_status if status.source == source), None)

    def tier_count(self, urgency: Urgency) -> int:
        return dict(self.tier_counts).get(urgency, 0)

    @property
    def failed_sources(self) -> tuple[Source, ...]:
        return tuple(status.source for status in self.source_status if not status.ok)

    @property
    def healthy_sources(self) -> tuple[Source, ...]:
        return tuple(status.source for status in self.source_status if status.ok)

    @property
    def all_sources_failed(self) -> bool:
        return bool(self.source_status) and not self.healthy_sources


@dataclass(slots=True, frozen=True)
class AggregationSnapshot:
    """One complete aggregation result for a focus user."""

    focus_user: str
    badges: tuple[PriorityBadge, ...]
    summary: SnapshotSummary
    capacity_indicator: CapacityIndicator

    @property
    def is_degraded(self) -> bool:
        return bool(self.summary.failed_sources)

    def urgent_badges(self) -> tuple[PriorityBadge, ...]:
        return tuple(
            badge for badge in self.badges if badge.urgency in (Urgency.HIGH, Urgency.CRITICAL)
        )


@dataclass(slots=True, frozen=True)
class CacheLookup:
    """Result of a cache read: the snapshot and whether it is past its TTL."""

    snapshot: AggregationSnapshot
    stale: bool
    age_seconds: float = 0.0
