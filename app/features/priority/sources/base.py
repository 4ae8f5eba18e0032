"""
Source adapter contract.

Adapters are thin collaborators around the JIRA, Outlook and Confluence
clients. They return the native records for one focus user and raise on
failure; retry policy, if any, lives inside the adapter.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from app.features.priority.domain.models import Source


@dataclass(slots=True, frozen=True)
class RawSourceResult:
    source: Source
    records: Sequence[Mapping[str, Any]]
    fetched_at: datetime


@runtime_checkable
class SourceAdapter(Protocol):
    source: Source

    async def fetch(self, focus_user: str) -> RawSourceResult: ...


class SourceAdapterError(Exception):
    """Raised by adapters when the upstream call fails."""

    def __init__(self, source: Source, message: str):
        self.source = source
        super().__init__(message)
