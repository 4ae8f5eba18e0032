"""
Role-gated dashboard views.

The dashboard sidebar shows different views per organisational role. The
permitted set is resolved once per session into a ViewerPermissions value
instead of testing role strings wherever a view is rendered.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "USER"
    TEAM_LEAD = "TL"
    MANAGER = "MANAGER"
    PROJECT_MANAGER = "PM"
    BUSINESS_UNIT = "BU"
    CTO = "CTO"
    CEO = "CEO"

    @classmethod
    def parse(cls, value: str | None) -> Role:
        if not value:
            return cls.USER
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.USER


class View(str, Enum):
    FOCUS = "focus"
    TEAM = "team"
    PORTFOLIO = "portfolio"
    INSIGHTS = "insights"
    EXEC = "exec"


VIEW_LABELS: dict[View, str] = {
    View.FOCUS: "My Focus",
    View.TEAM: "Team View",
    View.PORTFOLIO: "Proj Port.",
    View.INSIGHTS: "BU Insights",
    View.EXEC: "Exec View",
}

# Views with no entry are open to every role
_VIEW_ROLES: dict[View, frozenset[Role]] = {
    View.TEAM: frozenset({Role.TEAM_LEAD, Role.MANAGER}),
    View.PORTFOLIO: frozenset({Role.PROJECT_MANAGER}),
    View.INSIGHTS: frozenset({Role.BUSINESS_UNIT}),
    View.EXEC: frozenset({Role.CTO, Role.CEO}),
}


@dataclass(slots=True, frozen=True)
class ViewerPermissions:
    role: Role
    views: frozenset[View]

    @classmethod
    def for_role(cls, role: Role | str | None) -> ViewerPermissions:
        resolved = role if isinstance(role, Role) else Role.parse(role)
        views = frozenset(
            view for view in View if resolved in _VIEW_ROLES.get(view, frozenset(Role))
        )
        return cls(role=resolved, views=views)

    def can_view(self, view: View) -> bool:
        return view in self.views

    def ordered_views(self) -> list[View]:
        return [view for view in View if view in self.views]
