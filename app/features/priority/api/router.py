"""
Priority dashboard routes.

Thin HTTP layer over DashboardService: query parsing, error mapping and
conversion of domain snapshots into camelCase response models.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.config import settings
from app.features.priority.domain.errors import (
    InvalidFocusUser,
    InvalidScoringConfig,
    NoDataAvailable,
    PriorityError,
)
from app.features.priority.domain.models import AggregationSnapshot, PriorityBadge
from app.features.priority.domain.permissions import VIEW_LABELS, ViewerPermissions
from app.features.priority.pipeline.scoring.service import ScoringConfig
from app.features.priority.services.dashboard_service import (
    DashboardService,
    get_dashboard_service,
)
from app.infrastructure.observability.logging import get_logger
from app.models.api.priority_request import ScoringUpdateRequest
from app.models.api.priority_response import (
    CacheClearResponse,
    CapacityIndicatorResponse,
    DashboardResponse,
    RecommendationResponse,
    ReportResponse,
    ReportSectionResponse,
    ScoringConfigResponse,
    SourceStatusResponse,
    SummaryResponse,
    UrgencyBadgeResponse,
    UrgentResponse,
    ViewResponse,
    ViewsResponse,
    WorkloadResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/priority", tags=["priority"])

ERROR_STATUS = {
    NoDataAvailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    InvalidFocusUser: status.HTTP_400_BAD_REQUEST,
    InvalidScoringConfig: status.HTTP_400_BAD_REQUEST,
}

FOCUS_USER_QUERY = Query(default="", alias="focusUser", description="Username or employee code")


def _http_error(error: PriorityError) -> HTTPException:
    status_code = ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning(
        "Priority request rejected",
        error=error.code,
        message=error.message,
        focus_user=error.focus_user,
        status_code=status_code,
    )
    return HTTPException(
        status_code=status_code, detail={"error": error.code, "message": error.message}
    )


def _badge(badge: PriorityBadge) -> UrgencyBadgeResponse:
    return UrgencyBadgeResponse(
        id=badge.id,
        title=badge.title,
        urgency=badge.urgency.value,
        score=badge.score,
        source=badge.source.value,
        due_at=badge.due_at,
        url=badge.url,
    )


def _summary(snapshot: AggregationSnapshot) -> SummaryResponse:
    summary = snapshot.summary
    return SummaryResponse(
        last_updated=summary.last_updated,
        source_status={
            s.source.value: SourceStatusResponse(
                ok=s.ok,
                error=s.error,
                item_count=s.item_count,
                dropped=s.dropped,
                fetched_at=s.fetched_at,
            )
            for s in summary.source_status
        },
        total_items=summary.total_items,
        tier_counts={urgency.value: count for urgency, count in summary.tier_counts},
        source_counts={source.value: count for source, count in summary.source_counts},
        overdue_count=summary.overdue_count,
        average_score=summary.average_score,
    )


def _capacity(snapshot: AggregationSnapshot) -> CapacityIndicatorResponse:
    return CapacityIndicatorResponse(
        level=snapshot.capacity_indicator.level.value,
        percentage=snapshot.capacity_indicator.percentage,
    )


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    focus_user: str = FOCUS_USER_QUERY,
    service: DashboardService = Depends(get_dashboard_service),
):
    """Greeting, summary, capacity and ranked badges for the focus user."""
    try:
        view = await service.dashboard(focus_user)
    except PriorityError as e:
        raise _http_error(e) from e

    return DashboardResponse(
        focus_user=view.focus_user,
        greeting=view.greeting,
        summary=_summary(view.snapshot),
        capacity_indicator=_capacity(view.snapshot),
        urgency_badges=[_badge(badge) for badge in view.snapshot.badges],
        stale=view.stale,
    )


@router.get("/report", response_model=ReportResponse)
async def get_report(
    focus_user: str = FOCUS_USER_QUERY,
    max_items: int = Query(
        default=settings.REPORT_MAX_ITEMS,
        alias="maxItems",
        ge=1,
        le=500,
        description="Most badges to list",
    ),
    min_score: float = Query(
        default=settings.REPORT_MIN_SCORE,
        alias="minScore",
        ge=0,
        le=100,
        description="Lowest score to list",
    ),
    service: DashboardService = Depends(get_dashboard_service),
):
    """Narrative report with recommendations."""
    try:
        report = await service.report(focus_user, max_items=max_items, min_score=min_score)
    except PriorityError as e:
        raise _http_error(e) from e

    return ReportResponse(
        focus_user=report.focus_user,
        greeting=report.greeting,
        narrative=report.narrative,
        unavailable_sources=list(report.unavailable_sources),
        sections=[
            ReportSectionResponse(
                urgency=section.urgency.value,
                badges=[_badge(badge) for badge in section.badges],
            )
            for section in report.sections
        ],
        omitted_items=report.omitted_items,
        recommendations=[
            RecommendationResponse(type=r.type, message=r.message, action=r.action)
            for r in report.recommendations
        ],
        summary=_summary(report.snapshot),
        capacity_indicator=_capacity(report.snapshot),
        stale=report.stale,
    )


@router.get("/workload", response_model=WorkloadResponse)
async def get_workload(
    focus_user: str = FOCUS_USER_QUERY,
    service: DashboardService = Depends(get_dashboard_service),
):
    try:
        view = await service.workload(focus_user)
    except PriorityError as e:
        raise _http_error(e) from e

    summary = view.snapshot.summary
    return WorkloadResponse(
        focus_user=view.focus_user,
        capacity_indicator=_capacity(view.snapshot),
        total_items=summary.total_items,
        tier_counts={urgency.value: count for urgency, count in summary.tier_counts},
        overdue_count=summary.overdue_count,
        last_updated=summary.last_updated,
        stale=view.stale,
    )


@router.get("/urgent", response_model=UrgentResponse)
async def get_urgent(
    focus_user: str = FOCUS_USER_QUERY,
    service: DashboardService = Depends(get_dashboard_service),
):
    """HIGH and CRITICAL badges only."""
    try:
        view = await service.urgent(focus_user)
    except PriorityError as e:
        raise _http_error(e) from e

    return UrgentResponse(
        focus_user=view.focus_user,
        urgency_badges=[_badge(badge) for badge in view.badges],
        last_updated=view.snapshot.summary.last_updated,
        stale=view.stale,
    )


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_cache(service: DashboardService = Depends(get_dashboard_service)):
    result = await service.cache_clear()
    logger.info("Priority cache cleared via API", entries=result["entries"])
    return CacheClearResponse(cleared=result["cleared"], entries=result["entries"])


def _scoring(config: ScoringConfig, cleared_entries: int | None = None) -> ScoringConfigResponse:
    return ScoringConfigResponse(
        base_weights=dict(config.base_weights),
        default_base_weight=config.default_base_weight,
        due_weight=config.due_weight,
        due_horizon_hours=config.due_horizon_hours,
        overdue_bonus=config.overdue_bonus,
        overdue_cap_hours=config.overdue_cap_hours,
        recency_weight=config.recency_weight,
        recency_half_life_hours=config.recency_half_life_hours,
        critical_threshold=config.critical_threshold,
        high_threshold=config.high_threshold,
        medium_threshold=config.medium_threshold,
        cleared_entries=cleared_entries,
    )


@router.get("/scoring", response_model=ScoringConfigResponse)
async def get_scoring(service: DashboardService = Depends(get_dashboard_service)):
    return _scoring(service.scoring_config)


@router.put("/scoring", response_model=ScoringConfigResponse)
async def update_scoring(
    request: ScoringUpdateRequest,
    service: DashboardService = Depends(get_dashboard_service),
):
    """Change scoring weights at runtime; clears every cached snapshot."""
    try:
        config, cleared = await service.update_scoring(request.base_weights, **request.parameters())
    except PriorityError as e:
        raise _http_error(e) from e
    return _scoring(config, cleared_entries=cleared)


@router.get("/views", response_model=ViewsResponse)
async def get_views(role: str | None = Query(default=None, description="Organisational role")):
    """Dashboard views the role may open."""
    permissions = ViewerPermissions.for_role(role)
    return ViewsResponse(
        role=permissions.role.value,
        views=[
            ViewResponse(id=view.value, label=VIEW_LABELS[view])
            for view in permissions.ordered_views()
        ],
    )
