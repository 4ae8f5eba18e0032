"""
Snapshot Cache

Holds the latest AggregationSnapshot per focus user.

- Freshness is measured from summary.last_updated against an injectable
  clock: younger than the TTL is fresh, older is stale, and past the
  retention window the entry is evicted.
- Concurrent refreshes for the same key share one in-flight task, so N
  simultaneous misses invoke the loader (and the source adapters) once.
- invalidate_all bumps an epoch; a refresh that started before the clear
  still completes for its waiters but its result is never stored.
- A refresh in which every source failed keeps the previous badges and
  stores them under the failed cycle's source_status, so readers see the
  outage. With no previous entry it raises NoDataAvailable instead.
- Every read re-validates the entry's shape. A snapshot that fails
  validation raises CacheCorruption internally, is discarded, and the
  read reports a miss.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from functools import partial

from app.config import settings
from app.features.priority.domain.errors import CacheCorruption, NoDataAvailable
from app.features.priority.domain.models import AggregationSnapshot, CacheLookup
from app.features.priority.pipeline.scoring.service import UrgencyScorer
from app.infrastructure.observability.logging import get_logger

from .mirror import RedisSnapshotMirror
from .serialization import validate_snapshot

logger = get_logger(__name__)

Loader = Callable[[], Awaitable[AggregationSnapshot]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class RefreshEventType(str, Enum):
    SNAPSHOT_UPDATED = "snapshot_updated"
    INVALIDATED = "invalidated"
    CACHE_CLEARED = "cache_cleared"


@dataclass(slots=True, frozen=True)
class RefreshEvent:
    type: RefreshEventType
    focus_user: str | None = None
    snapshot: AggregationSnapshot | None = None


Listener = Callable[[RefreshEvent], None]


class SnapshotCache:
    def __init__(
        self,
        ttl_seconds: float | None = None,
        retention_seconds: float | None = None,
        mirror: RedisSnapshotMirror | None = None,
        clock: Clock = utc_now,
        scorer: UrgencyScorer | None = None,
    ):
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.PRIORITY_CACHE_TTL_SECONDS
        )
        self.retention_seconds = (
            retention_seconds
            if retention_seconds is not None
            else settings.PRIORITY_CACHE_RETENTION_SECONDS
        )
        if self.retention_seconds < self.ttl_seconds:
            raise ValueError("Cache retention must not be shorter than the freshness TTL")

        self.mirror = mirror
        self.clock = clock
        self.scorer = scorer

        self._entries: dict[str, AggregationSnapshot] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: str) -> CacheLookup | None:
        """Return the entry with its staleness, or None on a miss."""
        snapshot = self._entries.get(key)
        if snapshot is None and self.mirror is not None:
            snapshot = await self._load_from_mirror(key)
        if snapshot is None:
            return None

        try:
            validate_snapshot(snapshot, key, self.scorer)
        except CacheCorruption as e:
            logger.error("Discarding corrupted cache entry", focus_user=key, error=e.message)
            await self._discard(key, snapshot)
            return None

        age = (self.clock() - snapshot.summary.last_updated).total_seconds()
        if age > self.retention_seconds:
            logger.debug("Cache entry past retention", focus_user=key, age_seconds=round(age, 1))
            await self._discard(key, snapshot)
            return None

        return CacheLookup(snapshot=snapshot, stale=age > self.ttl_seconds, age_seconds=max(age, 0.0))

    def peek(self, key: str) -> AggregationSnapshot | None:
        """In-memory entry without validation or freshness checks."""
        return self._entries.get(key)

    def is_refreshing(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def _load_from_mirror(self, key: str) -> AggregationSnapshot | None:
        try:
            snapshot = await self.mirror.load(key)
        except CacheCorruption as e:
            logger.error("Discarding corrupted mirror entry", focus_user=key, error=e.message)
            await self.mirror.delete(key)
            return None
        if snapshot is None:
            return None
        # A refresh may have stored a newer entry while the mirror was read
        return self._entries.setdefault(key, snapshot)

    async def _discard(self, key: str, snapshot: AggregationSnapshot) -> None:
        if self._entries.get(key) is snapshot:
            del self._entries[key]
        if self.mirror is not None:
            await self.mirror.delete(key)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, key: str, snapshot: AggregationSnapshot) -> None:
        validate_snapshot(snapshot, key, self.scorer)
        async with self._lock_for(key):
            await self._store(key, snapshot)

    async def _store(self, key: str, snapshot: AggregationSnapshot) -> None:
        self._entries[key] = snapshot
        if self.mirror is not None:
            await self.mirror.save(snapshot)
        self._notify(RefreshEvent(RefreshEventType.SNAPSHOT_UPDATED, key, snapshot))

    async def invalidate(self, key: str) -> bool:
        """Drop one entry; an in-flight refresh for it will not be stored."""
        self._generations[key] = self._generations.get(key, 0) + 1
        self._inflight.pop(key, None)
        existed = self._entries.pop(key, None) is not None
        if self.mirror is not None:
            await self.mirror.delete(key)
        logger.info("Cache entry invalidated", focus_user=key, existed=existed)
        self._notify(RefreshEvent(RefreshEventType.INVALIDATED, key))
        return existed

    async def invalidate_all(self) -> int:
        """Drop every entry and detach every in-flight refresh."""
        self._epoch += 1
        cleared = len(self._entries)
        detached = len(self._inflight)
        self._entries.clear()
        self._inflight.clear()
        if self.mirror is not None:
            await self.mirror.clear()
        logger.info("Snapshot cache cleared", entries=cleared, detached_refreshes=detached)
        self._notify(RefreshEvent(RefreshEventType.CACHE_CLEARED))
        return cleared

    # ------------------------------------------------------------------
    # Refresh coalescing
    # ------------------------------------------------------------------

    async def refresh(self, key: str, loader: Loader) -> AggregationSnapshot:
        """
        Run the loader for `key` and store its result, joining an in-flight
        refresh when one exists. Loader exceptions propagate to every waiter
        and nothing is stored.
        """
        task = self._ensure_refresh(key, loader)
        # shield: one waiter being cancelled must not cancel the shared task
        return await asyncio.shield(task)

    def schedule_refresh(self, key: str, loader: Loader) -> asyncio.Task:
        """Start (or join) a refresh without waiting for it."""
        return self._ensure_refresh(key, loader)

    def _ensure_refresh(self, key: str, loader: Loader) -> asyncio.Task:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._run_refresh(key, loader, self._token(key)))
            self._inflight[key] = task
            task.add_done_callback(partial(self._refresh_done, key))
        return task

    async def _run_refresh(
        self, key: str, loader: Loader, token: tuple[int, int]
    ) -> AggregationSnapshot:
        async with self._lock_for(key):
            snapshot = await loader()
            if snapshot.summary.all_sources_failed:
                snapshot = self._with_outage(key, snapshot)
            if token != self._token(key):
                logger.info("Discarding refresh result after invalidation", focus_user=key)
                return snapshot
            validate_snapshot(snapshot, key, self.scorer)
            await self._store(key, snapshot)
            return snapshot

    def _with_outage(self, key: str, failed: AggregationSnapshot) -> AggregationSnapshot:
        """Previous entry with the failed cycle's source statuses."""
        errors = {s.source.value: s.error for s in failed.summary.source_status}
        current = self._entries.get(key)
        if current is None:
            logger.warning(
                "Every source failed and nothing is cached", focus_user=key, errors=errors
            )
            raise NoDataAvailable("All priority sources are unavailable", key)

        logger.warning(
            "Every source failed; keeping previous badges", focus_user=key, errors=errors
        )
        # last_updated is kept: it dates the badges, not the status check
        return replace(
            current,
            summary=replace(current.summary, source_status=failed.summary.source_status),
        )

    def _refresh_done(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("Refresh task failed", focus_user=key, error=str(error))

    def _token(self, key: str) -> tuple[int, int]:
        return (self._epoch, self._generations.get(key, 0))

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, event: RefreshEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "Cache listener failed",
                    event=event.type.value,
                    focus_user=event.focus_user,
                    error=str(e),
                )
