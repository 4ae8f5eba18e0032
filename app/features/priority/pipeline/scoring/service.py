"""
Urgency scoring service - turns a WorkItem into a 0-100 score and a tier.

score = base weight (source-native priority)
      + due term      (items with a due date; climbs as the due date nears and passes)
      + recency term  (items without a due date; bounded below the due term)

The tier is a pure function of the score, so ordering by score and by tier
never disagree.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime

from app.config import Settings, settings
from app.features.priority.domain.models import PriorityBadge, Urgency, WorkItem
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_SCORE = 100.0
# Scores are stored at two decimals; a not-yet-due item stays one step below
# the due weight so rounding never ties it with an overdue one
SCORE_RESOLUTION = 0.01


@dataclass(slots=True, frozen=True)
class ScoringConfig:
    base_weights: dict[str, float] = field(
        default_factory=lambda: dict(Settings.model_fields["PRIORITY_BASE_WEIGHTS"].default)
    )
    default_base_weight: float = 10.0
    due_weight: float = 40.0
    due_horizon_hours: float = 72.0
    overdue_bonus: float = 10.0
    overdue_cap_hours: float = 336.0
    recency_weight: float = 15.0
    recency_half_life_hours: float = 72.0
    critical_threshold: float = 75.0
    high_threshold: float = 55.0
    medium_threshold: float = 35.0

    @classmethod
    def from_settings(cls, config: Settings = settings) -> ScoringConfig:
        return cls(
            base_weights=dict(config.PRIORITY_BASE_WEIGHTS),
            default_base_weight=config.PRIORITY_DEFAULT_BASE_WEIGHT,
            due_weight=config.PRIORITY_DUE_WEIGHT,
            due_horizon_hours=config.PRIORITY_DUE_HORIZON_HOURS,
            overdue_bonus=config.PRIORITY_OVERDUE_BONUS,
            overdue_cap_hours=config.PRIORITY_OVERDUE_CAP_HOURS,
            recency_weight=config.PRIORITY_RECENCY_WEIGHT,
            recency_half_life_hours=config.PRIORITY_RECENCY_HALF_LIFE_HOURS,
            critical_threshold=config.URGENCY_CRITICAL_THRESHOLD,
            high_threshold=config.URGENCY_HIGH_THRESHOLD,
            medium_threshold=config.URGENCY_MEDIUM_THRESHOLD,
        )

    def with_updates(
        self, base_weights: dict[str, float] | None = None, **changes: float
    ) -> ScoringConfig:
        """
        Copy with some parameters replaced. ``base_weights`` is merged into
        the current table (keys lower-cased) rather than replacing it.
        """
        unknown = set(changes) - {f.name for f in fields(self) if f.name != "base_weights"}
        if unknown:
            raise ValueError(f"Unknown scoring parameters: {', '.join(sorted(unknown))}")

        weights = dict(self.base_weights)
        if base_weights:
            weights.update({key.strip().lower(): value for key, value in base_weights.items()})
        updated = replace(self, base_weights=weights, **changes)

        if any(value < 0 for value in updated.base_weights.values()):
            raise ValueError("Base weights must not be negative")
        if updated.due_horizon_hours <= 0 or updated.overdue_cap_hours <= 0:
            raise ValueError("Due horizon and overdue cap must be positive")
        if updated.recency_half_life_hours <= 0:
            raise ValueError("Recency half-life must be positive")
        if updated.recency_weight >= updated.due_weight:
            raise ValueError("Recency weight must stay below the due weight")
        return updated


class UrgencyScorer:
    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig.from_settings()
        if not (
            self.config.critical_threshold
            > self.config.high_threshold
            > self.config.medium_threshold
        ):
            raise ValueError("Urgency thresholds must be strictly decreasing")

    def score(self, item: WorkItem, now: datetime) -> float:
        """Deterministic score in [0, 100] for ``item`` at ``now``."""
        total = self.base_weight(item.raw_priority)
        if item.due_at is not None:
            total += self.due_term(item.due_at, now)
        else:
            total += self.recency_term(item.updated_at, now)
        return round(min(max(total, 0.0), MAX_SCORE), 2)

    def base_weight(self, raw_priority: str | None) -> float:
        if not raw_priority:
            return self.config.default_base_weight
        return self.config.base_weights.get(raw_priority.lower(), self.config.default_base_weight)

    def due_term(self, due_at: datetime, now: datetime) -> float:
        hours_until_due = (due_at - now).total_seconds() / 3600
        if hours_until_due > 0:
            horizon = self.config.due_horizon_hours
            value = self.config.due_weight * horizon / (horizon + hours_until_due)
            return min(value, self.config.due_weight - SCORE_RESOLUTION)

        hours_overdue = min(-hours_until_due, self.config.overdue_cap_hours)
        return self.config.due_weight + (
            self.config.overdue_bonus * hours_overdue / self.config.overdue_cap_hours
        )

    def recency_term(self, updated_at: datetime, now: datetime) -> float:
        # Future timestamps (clock skew) count as brand new
        age_hours = max((now - updated_at).total_seconds() / 3600, 0.0)
        return self.config.recency_weight * 0.5 ** (age_hours / self.config.recency_half_life_hours)

    def urgency_for(self, score: float) -> Urgency:
        if score >= self.config.critical_threshold:
            return Urgency.CRITICAL
        if score >= self.config.high_threshold:
            return Urgency.HIGH
        if score >= self.config.medium_threshold:
            return Urgency.MEDIUM
        return Urgency.LOW

    def badge(self, item: WorkItem, now: datetime) -> PriorityBadge:
        value = self.score(item, now)
        return PriorityBadge(
            id=item.id,
            source=item.source,
            title=item.title,
            score=value,
            urgency=self.urgency_for(value),
            due_at=item.due_at,
            url=item.url,
        )


scoring_service = UrgencyScorer()
