"""Error taxonomy for the priority pipeline."""

from __future__ import annotations


class PriorityError(Exception):
    """Base class for priority pipeline errors."""

    def __init__(self, message: str, focus_user: str | None = None):
        self.message = message
        self.focus_user = focus_user
        super().__init__(message)

    @property
    def code(self) -> str:
        return type(self).__name__


class SourceUnavailable(PriorityError):
    """A source adapter failed or timed out. Recorded in source status, never propagated."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


class NoDataAvailable(PriorityError):
    """Every source failed and no cached snapshot exists for the focus user."""


class InvalidFocusUser(PriorityError):
    """The focus user identity is malformed."""


class CacheCorruption(PriorityError):
    """A cached snapshot failed its own shape checks."""


class InvalidScoringConfig(PriorityError):
    """A scoring update would leave the scorer inconsistent."""
