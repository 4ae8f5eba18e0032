"""
Dashboard service - the single entry point the API and jobs call.

Read paths differ in how they treat a stale cache entry:

- dashboard / urgent: serve the stale snapshot immediately and refresh in
  the background.
- report / workload: serve the stale snapshot as-is.

A miss always refreshes synchronously, and concurrent misses for the same
focus user share one refresh. When every source fails, the cache keeps the
previous badges and marks every source as failed; with nothing cached the
caller gets NoDataAvailable.

A background refresh that fails (or finds every source down) is not retried
for one TTL, so a stale entry during an outage does not fan out to every
source on each read.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache, partial

from app.config import Settings, settings
from app.features.priority.cache import (
    RedisSnapshotMirror,
    RefreshEvent,
    SnapshotCache,
    utc_now,
)
from app.features.priority.cache.snapshot_cache import Clock
from app.features.priority.domain.errors import (
    InvalidFocusUser,
    InvalidScoringConfig,
    NoDataAvailable,
)
from app.features.priority.domain.models import AggregationSnapshot, PriorityBadge
from app.features.priority.pipeline.aggregation.service import (
    CapacityConfig,
    IdentityResolver,
    PriorityAggregator,
)
from app.features.priority.pipeline.normalization.service import Normalizer
from app.features.priority.pipeline.scoring.service import ScoringConfig, UrgencyScorer
from app.features.priority.sources import SourceCollector, build_source_adapters
from app.infrastructure.observability.logging import get_logger

from .greeting import GreetingProvider, default_greeting, greeting_from_settings
from .report_formatter import PriorityReport, build_report

logger = get_logger(__name__)

MAX_FOCUS_USER_LENGTH = 128
# Usernames, employee codes, emails and display names ("Abrar ul haq N")
FOCUS_USER_PATTERN = re.compile(r"^[\w][\w .@'+\-]*$")


@dataclass(slots=True, frozen=True)
class DashboardView:
    focus_user: str
    greeting: str
    snapshot: AggregationSnapshot
    stale: bool = False


@dataclass(slots=True, frozen=True)
class UrgentView:
    focus_user: str
    badges: tuple[PriorityBadge, ...]
    snapshot: AggregationSnapshot
    stale: bool = False


@dataclass(slots=True, frozen=True)
class WorkloadView:
    focus_user: str
    snapshot: AggregationSnapshot
    stale: bool = False


def validate_focus_user(focus_user: str | None) -> str:
    """Return the canonical cache key for a focus user or raise."""
    value = (focus_user or "").strip()
    if not value:
        raise NoDataAvailable("No focus user supplied; nothing to aggregate")
    if len(value) > MAX_FOCUS_USER_LENGTH or not FOCUS_USER_PATTERN.match(value):
        raise InvalidFocusUser(f"Malformed focus user identity: {value[:40]!r}", value[:40])
    return value


class DashboardService:
    def __init__(
        self,
        collector: SourceCollector,
        aggregator: PriorityAggregator | None = None,
        cache: SnapshotCache | None = None,
        greeting: GreetingProvider = default_greeting,
        clock: Clock = utc_now,
    ):
        self.collector = collector
        self.aggregator = aggregator or PriorityAggregator()
        self.cache = cache or SnapshotCache(clock=clock, scorer=self.aggregator.scorer)
        self.greeting = greeting
        self.clock = clock
        self._background: set[asyncio.Task] = set()
        # focus user -> earliest time another background refresh may start
        self._retry_after: dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def dashboard(self, focus_user: str | None) -> DashboardView:
        key = validate_focus_user(focus_user)
        snapshot, stale = await self._snapshot(key, refresh_stale=True)
        return DashboardView(
            focus_user=key,
            greeting=self.greeting(key, snapshot, self.clock()),
            snapshot=snapshot,
            stale=stale,
        )

    async def report(
        self,
        focus_user: str | None,
        max_items: int | None = None,
        min_score: float | None = None,
    ) -> PriorityReport:
        """Narrative report; ``max_items`` and ``min_score`` only trim the listed badges."""
        key = validate_focus_user(focus_user)
        snapshot, stale = await self._snapshot(key, refresh_stale=False)
        return build_report(
            snapshot,
            self.greeting(key, snapshot, self.clock()),
            stale=stale,
            max_items=max_items,
            min_score=min_score,
        )

    async def workload(self, focus_user: str | None) -> WorkloadView:
        key = validate_focus_user(focus_user)
        snapshot, stale = await self._snapshot(key, refresh_stale=False)
        return WorkloadView(focus_user=key, snapshot=snapshot, stale=stale)

    async def urgent(self, focus_user: str | None) -> UrgentView:
        key = validate_focus_user(focus_user)
        snapshot, stale = await self._snapshot(key, refresh_stale=True)
        return UrgentView(
            focus_user=key, badges=snapshot.urgent_badges(), snapshot=snapshot, stale=stale
        )

    async def cache_clear(self) -> dict:
        cleared = await self.cache.invalidate_all()
        self._retry_after.clear()
        return {"cleared": True, "entries": cleared}

    async def warm(self, focus_user: str) -> AggregationSnapshot:
        """Force a refresh regardless of freshness (cache warm job)."""
        key = validate_focus_user(focus_user)
        snapshot = await self.cache.refresh(key, partial(self._load, key))
        self._record_outcome(key, snapshot)
        return snapshot

    @property
    def scoring_config(self) -> ScoringConfig:
        return self.aggregator.scorer.config

    async def update_scoring(
        self, base_weights: dict[str, float] | None = None, **parameters: float
    ) -> tuple[ScoringConfig, int]:
        """
        Replace the scoring parameters at runtime. Returns the new configuration
        and the number of cached snapshots dropped.

        Every cached snapshot was ranked under the old weights, so the whole
        cache is cleared and the next read of each focus user re-aggregates.
        Only this process changes; other workers keep their configuration.
        """
        try:
            config = self.scoring_config.with_updates(base_weights, **parameters)
            scorer = UrgencyScorer(config)
        except (TypeError, ValueError) as e:
            raise InvalidScoringConfig(str(e)) from e

        self.aggregator.scorer = scorer
        self.cache.scorer = scorer
        cleared = await self.cache_clear()
        logger.info(
            "Scoring configuration updated",
            changed=sorted(parameters),
            base_weights=sorted(base_weights or {}),
            cleared_entries=cleared["entries"],
        )
        return config, cleared["entries"]

    def subscribe(self, callback: Callable[[RefreshEvent], None]) -> Callable[[], None]:
        """Receive snapshot updates and clears; returns an unsubscribe function."""
        return self.cache.add_listener(callback)

    async def close(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        for adapter in self.collector.adapters:
            close = getattr(adapter, "close", None)
            if close is not None:
                await close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _snapshot(self, key: str, refresh_stale: bool) -> tuple[AggregationSnapshot, bool]:
        lookup = await self.cache.get(key)
        if lookup is not None:
            if lookup.stale and refresh_stale:
                self._refresh_in_background(key)
            logger.debug(
                "Serving cached snapshot",
                focus_user=key,
                stale=lookup.stale,
                age_seconds=round(lookup.age_seconds, 1),
            )
            return lookup.snapshot, lookup.stale

        try:
            snapshot = await self.cache.refresh(key, partial(self._load, key))
        except NoDataAvailable:
            # Another caller may have stored an entry while this refresh ran
            lookup = await self.cache.get(key)
            if lookup is not None:
                return lookup.snapshot, lookup.stale
            raise
        self._record_outcome(key, snapshot)
        return snapshot, False

    async def _load(self, key: str) -> AggregationSnapshot:
        # An all-failed result is returned as is; the cache decides what to keep
        batches = await self.collector.collect(key)
        return self.aggregator.aggregate(key, batches, self.clock())

    def _record_outcome(self, key: str, snapshot: AggregationSnapshot) -> None:
        if snapshot.summary.all_sources_failed:
            self._back_off(key)
        else:
            self._retry_after.pop(key, None)

    def _back_off(self, key: str) -> None:
        self._retry_after[key] = self.clock() + timedelta(seconds=self.cache.ttl_seconds)

    def _refresh_in_background(self, key: str) -> None:
        if self.cache.is_refreshing(key):
            return
        retry_after = self._retry_after.get(key)
        if retry_after is not None and self.clock() < retry_after:
            logger.debug(
                "Background refresh backing off after failure",
                focus_user=key,
                retry_after=retry_after.isoformat(),
            )
            return
        task = self.cache.schedule_refresh(key, partial(self._load, key))
        self._background.add(task)
        task.add_done_callback(partial(self._background_done, key))

    def _background_done(self, key: str, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._back_off(key)
            logger.warning(
                "Background refresh failed; serving cached snapshot",
                focus_user=key,
                error=str(error),
            )
            return
        self._record_outcome(key, task.result())


def build_dashboard_service(config: Settings = settings) -> DashboardService:
    scorer = UrgencyScorer(ScoringConfig.from_settings(config))
    aggregator = PriorityAggregator(
        scorer=scorer,
        identity_resolver=IdentityResolver(config.FOCUS_USER_ALIASES),
        capacity=CapacityConfig.from_settings(config),
    )
    mirror = (
        RedisSnapshotMirror(
            prefix=config.REDIS_KEY_PREFIX,
            ttl_seconds=config.PRIORITY_CACHE_RETENTION_SECONDS,
        )
        if config.redis_enabled()
        else None
    )
    cache = SnapshotCache(
        ttl_seconds=config.PRIORITY_CACHE_TTL_SECONDS,
        retention_seconds=config.PRIORITY_CACHE_RETENTION_SECONDS,
        mirror=mirror,
        scorer=scorer,
    )
    collector = SourceCollector(
        build_source_adapters(config),
        normalizer=Normalizer(),
        timeout_seconds=config.SOURCE_TIMEOUT_SECONDS,
    )
    return DashboardService(
        collector=collector,
        aggregator=aggregator,
        cache=cache,
        greeting=greeting_from_settings(config),
    )


@lru_cache(maxsize=1)
def get_dashboard_service() -> DashboardService:
    """Process-wide service; FastAPI dependency and job entry point."""
    return build_dashboard_service()
