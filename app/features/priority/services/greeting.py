"""
Greeting providers for the dashboard header.
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo

from app.config import Settings, settings
from app.features.priority.domain.models import AggregationSnapshot, CapacityLevel

WORKLOAD_MESSAGES = {
    CapacityLevel.OVERLOADED: "Your workload is quite heavy today. Let's prioritize!",
    CapacityLevel.HIGH: "You have a busy day ahead. Here are your priorities:",
    CapacityLevel.MODERATE: "Here's what needs your attention today:",
    CapacityLevel.LOW: "Looking good! Here's your priority overview:",
}


class GreetingProvider(Protocol):
    def __call__(self, focus_user: str, snapshot: AggregationSnapshot, now: datetime) -> str: ...


class TimeOfDayGreeting:
    """
    'Good morning, <user>! <workload message>'.

    The hour is read in ``tz``; with no zone the server's local time is used.
    """

    def __init__(self, tz: tzinfo | None = None):
        self.tz = tz

    def time_greeting(self, now: datetime) -> str:
        hour = now.astimezone(self.tz).hour
        if hour < 12:
            return "Good morning"
        if hour < 17:
            return "Good afternoon"
        return "Good evening"

    def __call__(self, focus_user: str, snapshot: AggregationSnapshot, now: datetime) -> str:
        name = focus_user or "there"
        message = WORKLOAD_MESSAGES[snapshot.capacity_indicator.level]
        return f"{self.time_greeting(now)}, {name}! {message}"


def greeting_from_settings(config: Settings = settings) -> TimeOfDayGreeting:
    """Greeting in GREETING_TIMEZONE; raises ZoneInfoNotFoundError for an unknown zone."""
    zone = ZoneInfo(config.GREETING_TIMEZONE) if config.GREETING_TIMEZONE else None
    return TimeOfDayGreeting(tz=zone)


default_greeting = TimeOfDayGreeting()
