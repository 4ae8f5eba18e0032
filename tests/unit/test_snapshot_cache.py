"""
Tests for the snapshot cache: freshness, coalescing, invalidation,
corruption handling and the Redis mirror.
"""

import asyncio
from dataclasses import replace

import pytest

from app.features.priority.cache import (
    RedisSnapshotMirror,
    RefreshEventType,
    SnapshotCache,
    dumps_snapshot,
    loads_snapshot,
)
from app.features.priority.domain.errors import CacheCorruption, NoDataAvailable
from app.features.priority.domain.models import (
    CapacityIndicator,
    CapacityLevel,
    Source,
    SourceBatch,
)
from app.features.priority.pipeline.normalization.service import Normalizer
from tests.conftest import confluence_records, jira_records, outlook_records


@pytest.fixture
def snapshot_for(aggregator, clock):
    normalizer = Normalizer()

    def _build(focus_user="alice"):
        batches = [
            SourceBatch(source=source, ok=True, items=normalizer.normalize(source, records).items)
            for source, records in (
                (Source.JIRA, jira_records()),
                (Source.OUTLOOK, outlook_records()),
                (Source.CONFLUENCE, confluence_records()),
            )
        ]
        return aggregator.aggregate(focus_user, batches, clock())

    return _build


@pytest.fixture
def cache(clock, scorer):
    return SnapshotCache(ttl_seconds=60, retention_seconds=900, clock=clock, scorer=scorer)


@pytest.mark.asyncio
async def test_fresh_then_stale_then_evicted(cache, clock, snapshot_for):
    await cache.put("alice", snapshot_for())

    lookup = await cache.get("alice")
    assert lookup.stale is False

    clock.advance(61)
    lookup = await cache.get("alice")
    assert lookup.stale is True
    assert lookup.age_seconds == 61

    clock.advance(900)
    assert await cache.get("alice") is None
    assert "alice" not in cache


@pytest.mark.asyncio
async def test_miss_returns_none(cache):
    assert await cache.get("nobody") is None


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_loader_call(cache, snapshot_for):
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return snapshot_for()

    results = await asyncio.gather(*(cache.refresh("alice", loader) for _ in range(10)))

    assert calls == 1
    assert all(result is results[0] for result in results)
    assert cache.peek("alice") is results[0]
    assert not cache.is_refreshing("alice")


@pytest.mark.asyncio
async def test_loader_failure_propagates_and_stores_nothing(cache):
    async def loader():
        raise RuntimeError("sources down")

    with pytest.raises(RuntimeError):
        await cache.refresh("alice", loader)

    assert cache.peek("alice") is None


@pytest.mark.asyncio
async def test_invalidate_all_discards_inflight_result(cache, snapshot_for):
    release = asyncio.Event()

    async def loader():
        await release.wait()
        return snapshot_for()

    pending = asyncio.create_task(cache.refresh("alice", loader))
    await asyncio.sleep(0)

    assert await cache.invalidate_all() == 0
    release.set()
    result = await pending

    assert result.focus_user == "alice"
    assert cache.peek("alice") is None


@pytest.mark.asyncio
async def test_invalidate_single_key(cache, snapshot_for):
    await cache.put("alice", snapshot_for())

    assert await cache.invalidate("alice") is True
    assert await cache.invalidate("alice") is False
    assert await cache.get("alice") is None


@pytest.mark.asyncio
async def test_put_rejects_snapshot_for_another_key(cache, snapshot_for):
    with pytest.raises(CacheCorruption):
        await cache.put("bob", snapshot_for("alice"))


@pytest.mark.asyncio
async def test_corrupted_entry_is_discarded_as_miss(cache, snapshot_for):
    snapshot = snapshot_for()
    broken = replace(snapshot, badges=tuple(reversed(snapshot.badges)))
    cache._entries["alice"] = broken

    assert await cache.get("alice") is None
    assert cache.peek("alice") is None


@pytest.mark.asyncio
async def test_out_of_range_capacity_is_corruption(cache, snapshot_for):
    snapshot = snapshot_for()
    cache._entries["alice"] = replace(
        snapshot, capacity_indicator=CapacityIndicator(CapacityLevel.OVERLOADED, 140.0)
    )

    assert await cache.get("alice") is None


@pytest.mark.asyncio
async def test_listeners_receive_updates_and_clears(cache, snapshot_for):
    events = []
    unsubscribe = cache.add_listener(events.append)

    await cache.put("alice", snapshot_for())
    await cache.invalidate_all()
    unsubscribe()
    await cache.put("alice", snapshot_for())

    assert [e.type for e in events] == [
        RefreshEventType.SNAPSHOT_UPDATED,
        RefreshEventType.CACHE_CLEARED,
    ]
    assert events[0].focus_user == "alice"


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_store(cache, snapshot_for):
    def broken(event):
        raise ValueError("ui gone")

    cache.add_listener(broken)
    await cache.put("alice", snapshot_for())

    assert cache.peek("alice") is not None


def test_retention_shorter_than_ttl_is_rejected():
    with pytest.raises(ValueError):
        SnapshotCache(ttl_seconds=60, retention_seconds=30)


@pytest.mark.asyncio
async def test_mirror_round_trip_serves_after_memory_loss(fake_redis, clock, scorer, snapshot_for):
    mirror = RedisSnapshotMirror(client=fake_redis, prefix="test:", ttl_seconds=900)
    first = SnapshotCache(
        ttl_seconds=60, retention_seconds=900, mirror=mirror, clock=clock, scorer=scorer
    )
    snapshot = snapshot_for()
    await first.put("alice", snapshot)

    assert fake_redis.ttls["test:alice"] == 900

    second = SnapshotCache(
        ttl_seconds=60, retention_seconds=900, mirror=mirror, clock=clock, scorer=scorer
    )
    lookup = await second.get("alice")

    assert lookup.snapshot == snapshot
    assert lookup.stale is False


@pytest.mark.asyncio
async def test_undecodable_mirror_payload_is_deleted(fake_redis, clock, scorer):
    fake_redis.store["test:alice"] = "{not json"
    mirror = RedisSnapshotMirror(client=fake_redis, prefix="test:", ttl_seconds=900)
    cache = SnapshotCache(mirror=mirror, clock=clock, scorer=scorer)

    assert await cache.get("alice") is None
    assert "test:alice" not in fake_redis.store


@pytest.mark.asyncio
async def test_invalidate_all_clears_mirror(fake_redis, clock, scorer, snapshot_for):
    mirror = RedisSnapshotMirror(client=fake_redis, prefix="test:", ttl_seconds=900)
    cache = SnapshotCache(mirror=mirror, clock=clock, scorer=scorer)
    await cache.put("alice", snapshot_for())
    fake_redis.store["other:key"] = "kept"

    await cache.invalidate_all()

    assert fake_redis.store == {"other:key": "kept"}


def test_serialized_snapshot_decodes_to_equal_value(snapshot_for):
    snapshot = snapshot_for()

    assert loads_snapshot(dumps_snapshot(snapshot)) == snapshot


def test_wrong_schema_is_corruption():
    with pytest.raises(CacheCorruption):
        loads_snapshot('{"schema": 99}')


@pytest.fixture
def outage_for(aggregator, clock):
    def _build(focus_user="alice"):
        batches = [SourceBatch.failed(source, "connection refused") for source in Source]
        return aggregator.aggregate(focus_user, batches, clock())

    return _build


@pytest.mark.asyncio
async def test_outage_without_entry_raises_and_stores_nothing(cache, outage_for):
    async def loader():
        return outage_for()

    with pytest.raises(NoDataAvailable):
        await cache.refresh("alice", loader)

    assert "alice" not in cache


@pytest.mark.asyncio
async def test_outage_keeps_badges_but_records_failed_sources(
    cache, clock, snapshot_for, outage_for
):
    previous = snapshot_for()
    await cache.put("alice", previous)
    clock.advance(120)

    async def loader():
        return outage_for()

    degraded = await cache.refresh("alice", loader)

    assert degraded.badges == previous.badges
    assert degraded.summary.last_updated == previous.summary.last_updated
    assert degraded.summary.failed_sources == (Source.JIRA, Source.OUTLOOK, Source.CONFLUENCE)
    assert degraded.summary.status_for(Source.JIRA).error == "connection refused"
    assert cache.peek("alice") is degraded
    assert (await cache.get("alice")).stale is True
