"""
Priority aggregation service.

Merges one normalized batch per source into a ranked AggregationSnapshot for
a focus user: identity filtering, (source, id) deduplication, scoring,
ranking, summary statistics and the capacity indicator.

A failed source contributes no items for the cycle and is reported through
``summary.source_status``; nothing from an earlier cycle is carried over.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from app.config import Settings, settings
from app.features.priority.domain.models import (
    AggregationSnapshot,
    CapacityIndicator,
    CapacityLevel,
    PriorityBadge,
    SnapshotSummary,
    Source,
    SourceBatch,
    SourceStatus,
    Urgency,
    WorkItem,
)
from app.features.priority.pipeline.scoring.service import UrgencyScorer
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class IdentityResolver:
    """
    Resolves a focus user to every identity that should count as theirs.

    Alias groups are symmetric: looking up any member (username, employee
    code, email) yields the whole group. Matching is case-insensitive.
    """

    def __init__(self, aliases: Mapping[str, Iterable[str]] | None = None):
        self._groups: dict[str, frozenset[str]] = {}
        for primary, others in (aliases or {}).items():
            group = {self._key(primary), *(self._key(alias) for alias in others)}
            group.discard("")
            merged = set(group)
            for member in group:
                merged |= self._groups.get(member, frozenset())
            frozen = frozenset(merged)
            for member in frozen:
                self._groups[member] = frozen

    @staticmethod
    def _key(value: str | None) -> str:
        return (value or "").strip().casefold()

    def identities_for(self, focus_user: str) -> frozenset[str]:
        key = self._key(focus_user)
        if not key:
            return frozenset()
        return self._groups.get(key, frozenset({key}))

    def matches(self, owner_id: str, identities: frozenset[str]) -> bool:
        return bool(owner_id) and self._key(owner_id) in identities


@dataclass(slots=True, frozen=True)
class CapacityConfig:
    baseline: float = 10.0
    critical_weight: float = 2.0
    high_weight: float = 1.0
    moderate_percent: float = 25.0
    high_percent: float = 50.0
    overloaded_percent: float = 80.0

    @classmethod
    def from_settings(cls, config: Settings = settings) -> CapacityConfig:
        return cls(
            baseline=config.CAPACITY_BASELINE,
            critical_weight=config.CAPACITY_CRITICAL_WEIGHT,
            high_weight=config.CAPACITY_HIGH_WEIGHT,
            moderate_percent=config.CAPACITY_MODERATE_PERCENT,
            high_percent=config.CAPACITY_HIGH_PERCENT,
            overloaded_percent=config.CAPACITY_OVERLOADED_PERCENT,
        )


class PriorityAggregator:
    def __init__(
        self,
        scorer: UrgencyScorer | None = None,
        identity_resolver: IdentityResolver | None = None,
        capacity: CapacityConfig | None = None,
    ):
        self.scorer = scorer or UrgencyScorer()
        self.identity_resolver = identity_resolver or IdentityResolver(settings.FOCUS_USER_ALIASES)
        self.capacity = capacity or CapacityConfig.from_settings()

    def aggregate(
        self,
        focus_user: str,
        batches: Iterable[SourceBatch],
        now: datetime,
    ) -> AggregationSnapshot:
        identities = self.identity_resolver.identities_for(focus_user)
        by_source = {batch.source: batch for batch in batches}

        statuses: list[SourceStatus] = []
        badges: list[PriorityBadge] = []
        overdue_count = 0

        for source in Source:
            batch = by_source.get(source)
            if batch is None:
                statuses.append(SourceStatus(source=source, ok=False, error="Source not queried"))
                continue
            if not batch.ok:
                statuses.append(
                    SourceStatus(
                        source=source,
                        ok=False,
                        error=batch.error or "Source unavailable",
                        fetched_at=batch.fetched_at,
                    )
                )
                continue

            owned = [
                item
                for item in self._deduplicate(batch.items)
                if self.identity_resolver.matches(item.owner_id, identities)
            ]
            for item in owned:
                badges.append(self.scorer.badge(item, now))
                if item.due_at is not None and item.due_at < now:
                    overdue_count += 1

            statuses.append(
                SourceStatus(
                    source=source,
                    ok=True,
                    item_count=len(owned),
                    dropped=batch.dropped,
                    fetched_at=batch.fetched_at,
                )
            )

        badges.sort(key=PriorityBadge.sort_key)
        summary = self._build_summary(badges, statuses, overdue_count, now)
        snapshot = AggregationSnapshot(
            focus_user=focus_user,
            badges=tuple(badges),
            summary=summary,
            capacity_indicator=self.capacity_indicator(badges),
        )

        logger.info(
            "Priority snapshot aggregated",
            focus_user=focus_user,
            badges=len(badges),
            failed_sources=[source.value for source in summary.failed_sources],
            capacity=snapshot.capacity_indicator.level.value,
        )
        return snapshot

    @staticmethod
    def _deduplicate(items: Iterable[WorkItem]) -> list[WorkItem]:
        # Later records win ties so a re-fetch replaces the earlier copy
        latest: dict[tuple[Source, str], WorkItem] = {}
        for item in items:
            current = latest.get(item.identity)
            if current is None or item.updated_at >= current.updated_at:
                latest[item.identity] = item
        return list(latest.values())

    def capacity_indicator(self, badges: Iterable[PriorityBadge]) -> CapacityIndicator:
        weighted = 0.0
        for badge in badges:
            if badge.urgency is Urgency.CRITICAL:
                weighted += self.capacity.critical_weight
            elif badge.urgency is Urgency.HIGH:
                weighted += self.capacity.high_weight

        if self.capacity.baseline <= 0:
            percentage = 100.0 if weighted > 0 else 0.0
        else:
            percentage = min(max(weighted / self.capacity.baseline * 100, 0.0), 100.0)
        percentage = round(percentage, 1)

        if percentage >= self.capacity.overloaded_percent:
            level = CapacityLevel.OVERLOADED
        elif percentage >= self.capacity.high_percent:
            level = CapacityLevel.HIGH
        elif percentage >= self.capacity.moderate_percent:
            level = CapacityLevel.MODERATE
        else:
            level = CapacityLevel.LOW

        return CapacityIndicator(level=level, percentage=percentage)

    @staticmethod
    def _build_summary(
        badges: list[PriorityBadge],
        statuses: list[SourceStatus],
        overdue_count: int,
        now: datetime,
    ) -> SnapshotSummary:
        tiers = Counter(badge.urgency for badge in badges)
        sources = Counter(badge.source for badge in badges)
        average = round(sum(badge.score for badge in badges) / len(badges), 2) if badges else 0.0

        return SnapshotSummary(
            last_updated=now,
            source_status=tuple(statuses),
            total_items=len(badges),
            tier_counts=tuple((urgency, tiers.get(urgency, 0)) for urgency in Urgency),
            source_counts=tuple((source, sources.get(source, 0)) for source in Source),
            overdue_count=overdue_count,
            average_score=average,
        )


aggregation_service = PriorityAggregator()
