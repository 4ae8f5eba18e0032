# app/features/priority/cache/mirror.py
"""
Redis mirror for aggregation snapshots.

The in-process cache is authoritative; the mirror lets a restarted process
(or a second replica) start from the last snapshot instead of a cold miss.
Redis failures are logged by the client and read as a miss here.
"""

from __future__ import annotations

from app.config import settings
from app.features.priority.domain.models import AggregationSnapshot
from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import FastRedisClient, fast_redis

from .serialization import dumps_snapshot, loads_snapshot

logger = get_logger(__name__)


class RedisSnapshotMirror:
    def __init__(
        self,
        client: FastRedisClient = fast_redis,
        prefix: str | None = None,
        ttl_seconds: int | None = None,
    ):
        self.client = client
        self.prefix = prefix or settings.REDIS_KEY_PREFIX
        self.ttl_seconds = ttl_seconds or settings.PRIORITY_CACHE_RETENTION_SECONDS

    def _key(self, focus_user: str) -> str:
        return f"{self.prefix}{focus_user}"

    async def load(self, focus_user: str) -> AggregationSnapshot | None:
        """Raises CacheCorruption if the stored payload cannot be decoded."""
        payload = await self.client.get(self._key(focus_user))
        if payload is None:
            return None
        snapshot = loads_snapshot(payload)
        logger.debug("Snapshot loaded from redis mirror", focus_user=focus_user)
        return snapshot

    async def save(self, snapshot: AggregationSnapshot) -> bool:
        ok = await self.client.set_with_ttl(
            self._key(snapshot.focus_user), dumps_snapshot(snapshot), ttl_s=self.ttl_seconds
        )
        if not ok:
            logger.warning("Snapshot mirror write failed", focus_user=snapshot.focus_user)
        return ok

    async def delete(self, focus_user: str) -> bool:
        return await self.client.delete(self._key(focus_user))

    async def clear(self) -> int:
        removed = await self.client.delete_prefix(self.prefix)
        logger.info("Snapshot mirror cleared", prefix=self.prefix, removed=removed)
        return removed
