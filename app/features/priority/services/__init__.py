"""
Service layer for the priority feature.
"""

from .dashboard_service import (
    DashboardService,
    DashboardView,
    UrgentView,
    WorkloadView,
    build_dashboard_service,
    get_dashboard_service,
    validate_focus_user,
)
from .greeting import (
    GreetingProvider,
    TimeOfDayGreeting,
    default_greeting,
    greeting_from_settings,
)
from .report_formatter import PriorityReport, Recommendation, ReportSection, build_report

__all__ = [
    "DashboardService",
    "DashboardView",
    "GreetingProvider",
    "PriorityReport",
    "Recommendation",
    "ReportSection",
    "TimeOfDayGreeting",
    "UrgentView",
    "WorkloadView",
    "build_dashboard_service",
    "build_report",
    "default_greeting",
    "get_dashboard_service",
    "greeting_from_settings",
    "validate_focus_user",
]
