"""
Snapshot (de)serialization for the Redis mirror, plus the shape checks a
snapshot must pass before the cache will serve it.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from app.features.priority.domain.errors import CacheCorruption
from app.features.priority.domain.models import (
    AggregationSnapshot,
    CapacityIndicator,
    CapacityLevel,
    PriorityBadge,
    SnapshotSummary,
    Source,
    SourceStatus,
    Urgency,
)
from app.features.priority.pipeline.scoring.service import UrgencyScorer

SCHEMA_VERSION = 1


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def snapshot_to_dict(snapshot: AggregationSnapshot) -> dict[str, Any]:
    summary = snapshot.summary
    return {
        "schema": SCHEMA_VERSION,
        "focus_user": snapshot.focus_user,
        "badges": [
            {
                "id": badge.id,
                "source": badge.source.value,
                "title": badge.title,
                "score": badge.score,
                "urgency": badge.urgency.value,
                "due_at": _iso(badge.due_at),
                "url": badge.url,
            }
            for badge in snapshot.badges
        ],
        "summary": {
            "last_updated": _iso(summary.last_updated),
            "source_status": [
                {
                    "source": status.source.value,
                    "ok": status.ok,
                    "error": status.error,
                    "item_count": status.item_count,
                    "dropped": status.dropped,
                    "fetched_at": _iso(status.fetched_at),
                }
                for status in summary.source_status
            ],
            "total_items": summary.total_items,
            "tier_counts": {urgency.value: count for urgency, count in summary.tier_counts},
            "source_counts": {source.value: count for source, count in summary.source_counts},
            "overdue_count": summary.overdue_count,
            "average_score": summary.average_score,
        },
        "capacity_indicator": {
            "level": snapshot.capacity_indicator.level.value,
            "percentage": snapshot.capacity_indicator.percentage,
        },
    }


def snapshot_from_dict(data: dict[str, Any]) -> AggregationSnapshot:
    """Rebuild a snapshot; any structural problem surfaces as CacheCorruption."""
    try:
        if data.get("schema") != SCHEMA_VERSION:
            raise CacheCorruption(f"Unsupported snapshot schema {data.get('schema')!r}")

        summary = data["summary"]
        return AggregationSnapshot(
            focus_user=data["focus_user"],
            badges=tuple(
                PriorityBadge(
                    id=badge["id"],
                    source=Source(badge["source"]),
                    title=badge["title"],
                    score=float(badge["score"]),
                    urgency=Urgency(badge["urgency"]),
                    due_at=_dt(badge.get("due_at")),
                    url=badge.get("url"),
                )
                for badge in data["badges"]
            ),
            summary=SnapshotSummary(
                last_updated=_dt(summary["last_updated"]),
                source_status=tuple(
                    SourceStatus(
                        source=Source(status["source"]),
                        ok=bool(status["ok"]),
                        error=status.get("error"),
                        item_count=int(status.get("item_count", 0)),
                        dropped=int(status.get("dropped", 0)),
                        fetched_at=_dt(status.get("fetched_at")),
                    )
                    for status in summary["source_status"]
                ),
                total_items=int(summary["total_items"]),
                tier_counts=tuple(
                    (urgency, int(summary["tier_counts"].get(urgency.value, 0)))
                    for urgency in Urgency
                ),
                source_counts=tuple(
                    (source, int(summary["source_counts"].get(source.value, 0)))
                    for source in Source
                ),
                overdue_count=int(summary["overdue_count"]),
                average_score=float(summary["average_score"]),
            ),
            capacity_indicator=CapacityIndicator(
                level=CapacityLevel(data["capacity_indicator"]["level"]),
                percentage=float(data["capacity_indicator"]["percentage"]),
            ),
        )
    except CacheCorruption:
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise CacheCorruption(f"Undecodable snapshot payload: {type(e).__name__}: {e}") from e


def dumps_snapshot(snapshot: AggregationSnapshot) -> str:
    return json.dumps(snapshot_to_dict(snapshot), separators=(",", ":"))


def loads_snapshot(payload: str) -> AggregationSnapshot:
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise CacheCorruption(f"Snapshot payload is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise CacheCorruption("Snapshot payload is not an object")
    return snapshot_from_dict(data)


def validate_snapshot(
    snapshot: AggregationSnapshot,
    focus_user: str,
    scorer: UrgencyScorer | None = None,
) -> None:
    """Raise CacheCorruption when a snapshot breaks its own invariants."""
    if not isinstance(snapshot, AggregationSnapshot):
        raise CacheCorruption("Cached value is not a snapshot", focus_user)
    if snapshot.focus_user != focus_user:
        raise CacheCorruption(
            f"Snapshot belongs to {snapshot.focus_user!r}, not {focus_user!r}", focus_user
        )
    if snapshot.summary.last_updated is None or snapshot.summary.last_updated.tzinfo is None:
        raise CacheCorruption("Snapshot has no aware last_updated timestamp", focus_user)

    indicator = snapshot.capacity_indicator
    if not 0.0 <= indicator.percentage <= 100.0:
        raise CacheCorruption(f"Capacity percentage {indicator.percentage} out of range", focus_user)

    if snapshot.summary.total_items != len(snapshot.badges):
        raise CacheCorruption("Summary item count does not match badges", focus_user)

    sources = [status.source for status in snapshot.summary.source_status]
    if len(sources) != len(set(sources)):
        raise CacheCorruption("Duplicate source status entries", focus_user)

    seen: set[tuple[Source, str]] = set()
    previous_key = None
    for badge in snapshot.badges:
        if not 0.0 <= badge.score <= 100.0:
            raise CacheCorruption(f"Badge {badge.id} score out of range", focus_user)
        if scorer is not None and scorer.urgency_for(badge.score) is not badge.urgency:
            raise CacheCorruption(f"Badge {badge.id} urgency does not match score", focus_user)
        identity = (badge.source, badge.id)
        if identity in seen:
            raise CacheCorruption(f"Duplicate badge {badge.source.value}:{badge.id}", focus_user)
        seen.add(identity)
        key = badge.sort_key()
        if previous_key is not None and key < previous_key:
            raise CacheCorruption("Badges are not in rank order", focus_user)
        previous_key = key
