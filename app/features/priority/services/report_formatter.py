"""
Narrative report built from a snapshot.

The report restates the dashboard in prose: what is on the user's plate,
which sources could not be read on the last refresh, the badges grouped by
tier, and a short list of recommendations driven by the summary counts.

The listed badges can be cut down by a minimum score and an item cap; the
narrative and recommendations always describe the whole snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.features.priority.domain.models import (
    AggregationSnapshot,
    CapacityLevel,
    PriorityBadge,
    Urgency,
)

URGENT_RECOMMENDATION_THRESHOLD = 5
OVERDUE_RECOMMENDATION_THRESHOLD = 3


@dataclass(slots=True, frozen=True)
class Recommendation:
    type: str
    message: str
    action: str


@dataclass(slots=True, frozen=True)
class ReportSection:
    urgency: Urgency
    badges: tuple[PriorityBadge, ...]


@dataclass(slots=True, frozen=True)
class PriorityReport:
    focus_user: str
    greeting: str
    narrative: str
    unavailable_sources: tuple[str, ...]
    sections: tuple[ReportSection, ...]
    recommendations: tuple[Recommendation, ...]
    snapshot: AggregationSnapshot
    stale: bool = False
    omitted_items: int = 0


def generate_recommendations(snapshot: AggregationSnapshot) -> list[Recommendation]:
    summary = snapshot.summary
    recommendations: list[Recommendation] = []

    if summary.tier_count(Urgency.CRITICAL) > URGENT_RECOMMENDATION_THRESHOLD:
        recommendations.append(
            Recommendation(
                type="CRITICAL",
                message="You have many urgent items. Consider delegating or rescheduling non-critical tasks.",
                action="Review urgent items and prioritize top 3",
            )
        )

    if summary.overdue_count > OVERDUE_RECOMMENDATION_THRESHOLD:
        recommendations.append(
            Recommendation(
                type="WARNING",
                message="Multiple overdue items detected. Address these first.",
                action="Focus on overdue tasks before starting new work",
            )
        )

    if snapshot.capacity_indicator.level is CapacityLevel.OVERLOADED:
        recommendations.append(
            Recommendation(
                type="SUGGESTION",
                message="Your workload is very high. Take breaks and focus on one task at a time.",
                action="Consider time blocking for deep work sessions",
            )
        )

    if summary.total_items == 0:
        recommendations.append(
            Recommendation(
                type="INFO",
                message="No high-priority items found. Great job staying on top of things!",
                action="Use this time for strategic planning or professional development",
            )
        )

    return recommendations


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def build_narrative(snapshot: AggregationSnapshot) -> str:
    summary = snapshot.summary
    if summary.total_items == 0:
        text = "Nothing is waiting on you right now."
    else:
        critical = summary.tier_count(Urgency.CRITICAL)
        high = summary.tier_count(Urgency.HIGH)
        sources = [source.label for source, count in summary.source_counts if count]
        text = (
            f"You have {_plural(summary.total_items, 'open item')} from {', '.join(sources)}: "
            f"{critical} critical and {high} high priority."
        )
        if summary.overdue_count:
            text += f" {_plural(summary.overdue_count, 'item')} past due."
        top = snapshot.badges[0]
        text += f" Start with \"{top.title}\" ({top.source.label}, score {top.score:g})."

    text += (
        f" Workload is {snapshot.capacity_indicator.level.value.lower()} "
        f"at {snapshot.capacity_indicator.percentage:g}% of capacity."
    )
    return text


def unavailable_source_notes(snapshot: AggregationSnapshot) -> tuple[str, ...]:
    counts = dict(snapshot.summary.source_counts)
    notes = []
    for status in snapshot.summary.source_status:
        if status.ok:
            continue
        # After a total outage the previous badges are kept, so a failed
        # source can still have items on the dashboard
        consequence = (
            "its items are from an earlier refresh and may be out of date"
            if counts.get(status.source)
            else "its items are not included"
        )
        notes.append(
            f"{status.source.label} could not be reached on the last refresh "
            f"({status.error}); {consequence}."
        )
    return tuple(notes)


def select_badges(
    badges: tuple[PriorityBadge, ...],
    max_items: int | None = None,
    min_score: float | None = None,
) -> tuple[PriorityBadge, ...]:
    """Ranked badges scoring at least ``min_score``, at most ``max_items`` of them."""
    selected = [b for b in badges if min_score is None or b.score >= min_score]
    if max_items is not None:
        selected = selected[: max(max_items, 0)]
    return tuple(selected)


def build_report(
    snapshot: AggregationSnapshot,
    greeting: str,
    stale: bool = False,
    max_items: int | None = None,
    min_score: float | None = None,
) -> PriorityReport:
    listed = select_badges(snapshot.badges, max_items, min_score)
    sections = tuple(
        ReportSection(
            urgency=urgency,
            badges=tuple(badge for badge in listed if badge.urgency is urgency),
        )
        for urgency in sorted(Urgency, key=lambda u: u.rank, reverse=True)
    )
    return PriorityReport(
        focus_user=snapshot.focus_user,
        greeting=greeting,
        narrative=build_narrative(snapshot),
        unavailable_sources=unavailable_source_notes(snapshot),
        sections=sections,
        recommendations=tuple(generate_recommendations(snapshot)),
        snapshot=snapshot,
        stale=stale,
        omitted_items=len(snapshot.badges) - len(listed),
    )
