"""
Priority dashboard feature package.

Every layer of the priority aggregation flow lives here: domain models,
source adapters, the normalize/score/aggregate pipeline, the snapshot
cache, the dashboard service and the HTTP router.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as priority_router  # noqa: F401
from .services.dashboard_service import (  # noqa: F401
    DashboardService,
    build_dashboard_service,
    get_dashboard_service,
)
from .cache.snapshot_cache import SnapshotCache, RefreshEvent  # noqa: F401
from .domain.models import AggregationSnapshot, PriorityBadge, Urgency  # noqa: F401
