# app/models/api/priority_response.py
"""
Priority dashboard API response models.
Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PriorityResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UrgencyBadgeResponse(PriorityResponseModel):
    """One ranked work item."""

    id: str = Field(..., description="Native item id (issue key, message id, page id)")
    title: str = Field(..., description="Item title")
    urgency: str = Field(..., description="LOW, MEDIUM, HIGH or CRITICAL")
    score: float = Field(..., description="Priority score, 0-100")
    source: str = Field(..., description="jira, outlook or confluence")
    due_at: datetime | None = Field(None, description="Due date, when the item has one")
    url: str | None = Field(None, description="Deep link into the source system")


class SourceStatusResponse(PriorityResponseModel):
    ok: bool = Field(..., description="Whether the source answered on the last refresh")
    error: str | None = Field(None, description="Failure reason when ok is false")
    item_count: int = Field(default=0, description="Items contributed for the focus user")
    dropped: int = Field(default=0, description="Malformed records skipped")
    fetched_at: datetime | None = Field(None, description="When the source was read")


class SummaryResponse(PriorityResponseModel):
    last_updated: datetime = Field(..., description="When the snapshot was aggregated")
    source_status: dict[str, SourceStatusResponse] = Field(
        ..., description="Per-source availability keyed by source name"
    )
    total_items: int = Field(..., description="Number of badges")
    tier_counts: dict[str, int] = Field(..., description="Badge count per urgency tier")
    source_counts: dict[str, int] = Field(..., description="Badge count per source")
    overdue_count: int = Field(..., description="Items past their due date")
    average_score: float = Field(..., description="Mean badge score")


class CapacityIndicatorResponse(PriorityResponseModel):
    level: str = Field(..., description="LOW, MODERATE, HIGH or OVERLOADED")
    percentage: float = Field(..., description="Weighted load against the capacity baseline, 0-100")


class DashboardResponse(PriorityResponseModel):
    """Response for the main dashboard."""

    focus_user: str = Field(..., description="Identity the dashboard was built for")
    greeting: str = Field(..., description="Header greeting")
    summary: SummaryResponse
    capacity_indicator: CapacityIndicatorResponse
    urgency_badges: list[UrgencyBadgeResponse] = Field(..., description="All badges, ranked")
    stale: bool = Field(default=False, description="Served past the freshness TTL")


class UrgentResponse(PriorityResponseModel):
    focus_user: str
    urgency_badges: list[UrgencyBadgeResponse] = Field(
        ..., description="HIGH and CRITICAL badges, ranked"
    )
    last_updated: datetime
    stale: bool = False


class WorkloadResponse(PriorityResponseModel):
    focus_user: str
    capacity_indicator: CapacityIndicatorResponse
    total_items: int
    tier_counts: dict[str, int]
    overdue_count: int
    last_updated: datetime
    stale: bool = False


class RecommendationResponse(PriorityResponseModel):
    type: str = Field(..., description="CRITICAL, WARNING, SUGGESTION or INFO")
    message: str
    action: str


class ReportSectionResponse(PriorityResponseModel):
    urgency: str
    badges: list[UrgencyBadgeResponse]


class ReportResponse(PriorityResponseModel):
    """Narrative variant of the dashboard."""

    focus_user: str
    greeting: str
    narrative: str = Field(..., description="Plain-language summary of the snapshot")
    unavailable_sources: list[str] = Field(
        ..., description="Disclosure lines for sources missing from this snapshot"
    )
    sections: list[ReportSectionResponse] = Field(..., description="Badges grouped by tier")
    omitted_items: int = Field(
        default=0, description="Badges left out by the maxItems and minScore filters"
    )
    recommendations: list[RecommendationResponse]
    summary: SummaryResponse
    capacity_indicator: CapacityIndicatorResponse
    stale: bool = False


class CacheClearResponse(PriorityResponseModel):
    cleared: bool = Field(..., description="Always true once the cache is emptied")
    entries: int = Field(default=0, description="Snapshots dropped from memory")


class ViewResponse(PriorityResponseModel):
    id: str
    label: str


class ViewsResponse(PriorityResponseModel):
    role: str = Field(..., description="Resolved role; unknown roles resolve to USER")
    views: list[ViewResponse] = Field(..., description="Views the role may open, in sidebar order")


class ScoringConfigResponse(PriorityResponseModel):
    """Scoring parameters currently in effect."""

    base_weights: dict[str, float] = Field(..., description="Weight per source priority signal")
    default_base_weight: float
    due_weight: float
    due_horizon_hours: float
    overdue_bonus: float
    overdue_cap_hours: float
    recency_weight: float
    recency_half_life_hours: float
    critical_threshold: float
    high_threshold: float
    medium_threshold: float
    cleared_entries: int | None = Field(
        None, description="Snapshots dropped because they were ranked under the old weights"
    )
