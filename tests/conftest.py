import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from app.features.priority.cache import SnapshotCache
from app.features.priority.domain.models import Source
from app.features.priority.pipeline.aggregation.service import (
    CapacityConfig,
    IdentityResolver,
    PriorityAggregator,
)
from app.features.priority.pipeline.scoring.service import ScoringConfig, UrgencyScorer
from app.features.priority.services.dashboard_service import DashboardService
from app.features.priority.services.greeting import TimeOfDayGreeting
from app.features.priority.sources import SourceCollector
from app.features.priority.sources.base import RawSourceResult, SourceAdapterError

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=UTC)


def iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl_s
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def delete_prefix(self, prefix: str, batch_size: int = 100) -> int:
        keys = [key for key in self.store if key.startswith(prefix)]
        for key in keys:
            del self.store[key]
        return len(keys)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeAdapter:
    """Counts fetches; optionally delays, fails or blocks until released."""

    def __init__(self, source: Source, records=(), error: Exception | None = None, delay=0.0):
        self.source = source
        self.records = list(records)
        self.error = error
        self.delay = delay
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def fetch(self, focus_user: str) -> RawSourceResult:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RawSourceResult(source=self.source, records=list(self.records), fetched_at=NOW)


def jira_records(now: datetime = NOW):
    return [
        {
            "key": "PROJ-101",
            "summary": "Fix login outage",
            "priority": {"name": "High"},
            "dueDate": iso(now - timedelta(days=1)),
            "updated": iso(now - timedelta(hours=2)),
            "assignee": {"name": "alice"},
            "status": {"name": "In Progress"},
        }
    ]


def outlook_records(now: datetime = NOW):
    return [
        {
            "id": "AAMk-1",
            "subject": "Budget sign-off needed",
            "importance": "high",
            "flag": {"flagStatus": "flagged"},
            "receivedDateTime": iso(now - timedelta(hours=1)),
            "toRecipients": [{"emailAddress": {"address": "alice"}}],
        }
    ]


def confluence_records(now: datetime = NOW):
    return [
        {
            "id": "98765",
            "title": "Architecture notes",
            "version": {"when": iso(now - timedelta(days=30)), "by": {"username": "alice"}},
            "labels": [],
        }
    ]


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scorer():
    return UrgencyScorer(ScoringConfig())


@pytest.fixture
def aggregator(scorer):
    return PriorityAggregator(
        scorer=scorer,
        identity_resolver=IdentityResolver({"alice": ["EMP042", "alice@example.com"]}),
        capacity=CapacityConfig(),
    )


@pytest.fixture
def adapters():
    return {
        Source.JIRA: FakeAdapter(Source.JIRA, jira_records()),
        Source.OUTLOOK: FakeAdapter(Source.OUTLOOK, outlook_records()),
        Source.CONFLUENCE: FakeAdapter(Source.CONFLUENCE, confluence_records()),
    }


@pytest.fixture
def make_service(aggregator, clock):
    def _make(adapters, mirror=None, timeout_seconds=1.0):
        cache = SnapshotCache(
            ttl_seconds=60,
            retention_seconds=900,
            mirror=mirror,
            clock=clock,
            scorer=aggregator.scorer,
        )
        collector = SourceCollector(list(adapters.values()), timeout_seconds=timeout_seconds)
        return DashboardService(
            collector=collector,
            aggregator=aggregator,
            cache=cache,
            greeting=TimeOfDayGreeting(tz=UTC),
            clock=clock,
        )

    return _make


@pytest.fixture
def failing_adapters():
    return {
        source: FakeAdapter(source, error=SourceAdapterError(source, "connection refused"))
        for source in Source
    }
