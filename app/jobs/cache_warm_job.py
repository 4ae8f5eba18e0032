"""
Cache Warm Job - keeps snapshots for known focus users fresh.

Runs as a separate worker process, so its in-memory cache is private; the
value it adds for the API processes comes through the Redis mirror, which
they read on a memory miss. Without REDIS_URL the job still runs (useful for
exercising sources) but warms nothing the API can see.
"""

import asyncio
import time
from datetime import UTC, datetime

from app.config import settings
from app.features.priority.domain.errors import PriorityError
from app.features.priority.services.dashboard_service import (
    DashboardService,
    get_dashboard_service,
)
from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

MAX_CONCURRENT_WARMS = 5
ERROR_BACKOFF_SECONDS = 30


class CacheWarmMetrics:
    """Per-run counters for the warm job."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.users_processed = 0
        self.snapshots_warmed = 0
        self.warm_failures = 0
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_success(self, focus_user: str, duration_ms: float, badges: int):
        self.users_processed += 1
        self.snapshots_warmed += 1
        logger.debug(
            "Snapshot warmed",
            focus_user=focus_user,
            duration_ms=duration_ms,
            badges=badges,
            job_run="cache_warm",
        )

    def record_failure(self, focus_user: str, error: str):
        self.users_processed += 1
        self.warm_failures += 1
        self.errors.append({"focus_user": focus_user, "error": error})
        logger.warning(
            "Snapshot warm failed", focus_user=focus_user, error=error, job_run="cache_warm"
        )

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "users_processed": self.users_processed,
            "snapshots_warmed": self.snapshots_warmed,
            "warm_failures": self.warm_failures,
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "errors": self.errors,
        }


class CacheWarmJob:
    def __init__(
        self,
        service: DashboardService | None = None,
        focus_users: list[str] | None = None,
        max_concurrent: int = MAX_CONCURRENT_WARMS,
    ):
        self._service = service
        self.focus_users = (
            focus_users if focus_users is not None else settings.CACHE_WARM_FOCUS_USERS
        )
        self.max_concurrent = max_concurrent
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.metrics = CacheWarmMetrics()

    @property
    def service(self) -> DashboardService:
        if self._service is None:
            self._service = get_dashboard_service()
        return self._service

    async def run_once(self) -> dict:
        if self.is_running:
            logger.warning("Cache warm job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.metrics.reset()

            if not self.focus_users:
                logger.info("No focus users configured for cache warming")
                self.metrics.finalize()
                return self.metrics.to_dict()

            semaphore = asyncio.Semaphore(self.max_concurrent)
            await asyncio.gather(
                *(self._warm_with_semaphore(semaphore, user) for user in self.focus_users)
            )

            self.metrics.finalize()
            self.last_run_time = datetime.now(UTC)
            metrics = self.metrics.to_dict()
            logger.info(
                "Cache warm job completed",
                **{k: v for k, v in metrics.items() if k != "errors"},
            )
            return metrics
        finally:
            self.is_running = False

    async def _warm_with_semaphore(self, semaphore: asyncio.Semaphore, focus_user: str):
        async with semaphore:
            await self._warm(focus_user)

    async def _warm(self, focus_user: str):
        start = time.time()
        try:
            snapshot = await self.service.warm(focus_user)
        except PriorityError as e:
            self.metrics.record_failure(focus_user, f"{e.code}: {e.message}")
            return
        if snapshot.summary.all_sources_failed:
            self.metrics.record_failure(focus_user, "All sources failed; previous snapshot kept")
            return
        self.metrics.record_success(
            focus_user, round((time.time() - start) * 1000, 2), len(snapshot.badges)
        )


async def run_cache_warm_once() -> None:
    """Single pass, for cron-style scheduling."""
    if settings.redis_enabled():
        await fast_redis.initialize()
    try:
        await CacheWarmJob().run_once()
    finally:
        await get_dashboard_service().close()
        if settings.redis_enabled():
            await fast_redis.close()


async def start_cache_warm_scheduler():
    """Warm every configured focus user on a fixed interval until stopped."""
    interval = settings.CACHE_WARM_INTERVAL_SECONDS
    logger.info(
        "Starting cache warm scheduler",
        interval_seconds=interval,
        focus_users=len(settings.CACHE_WARM_FOCUS_USERS),
    )
    if settings.redis_enabled():
        await fast_redis.initialize()

    job = CacheWarmJob()
    try:
        while True:
            try:
                await job.run_once()
                await asyncio.sleep(interval)
            except Exception as e:
                logger.error(
                    "Error in cache warm scheduler", error=str(e), error_type=type(e).__name__
                )
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
    finally:
        await job.service.close()
        if settings.redis_enabled():
            await fast_redis.close()
