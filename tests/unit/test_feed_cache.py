from __future__ import annotations

import asyncio

import pytest

from transit_fusion.app.ports.output import IRealtimeFeedProvider
from transit_fusion.app.services.feed_cache import RealtimeFeedCache
from transit_fusion.domain.exceptions import FeedDecodeError, FeedUnavailable
from transit_fusion.domain.models.realtime import FeedKind, FeedSnapshot

T0 = 1_790_000_000.0


class _Clock:
    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _FakeProvider(IRealtimeFeedProvider):
    def __init__(self, clock: _Clock) -> None:
        self.clock = clock
        self.calls = 0
        self.fail_with: Exception | None = None
        self.lag_s = 0.0
        self.delay_s = 0.0

    async def fetch(self, kind: FeedKind) -> FeedSnapshot:
        self.calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.fail_with is not None:
            raise self.fail_with
        return FeedSnapshot(
            kind=kind,
            decoded_at=self.clock(),
            generated_at=int(self.clock() - self.lag_s),
            payload=(self.calls,),
        )


def _cache() -> tuple[RealtimeFeedCache, _FakeProvider, _Clock]:
    clock = _Clock()
    provider = _FakeProvider(clock)
    cache = RealtimeFeedCache(provider, stale_after_s=300, clock=clock)
    return cache, provider, clock


@pytest.mark.unit
@pytest.mark.anyio
async def test_reads_inside_ttl_hit_memory() -> None:
    cache, provider, clock = _cache()

    first = await cache.get(FeedKind.VEHICLE_POSITIONS)
    clock.now += 4
    second = await cache.get(FeedKind.VEHICLE_POSITIONS)

    assert second is first
    assert provider.calls == 1


@pytest.mark.unit
@pytest.mark.anyio
async def test_expired_entry_is_refetched() -> None:
    cache, provider, clock = _cache()

    await cache.get(FeedKind.TRIP_UPDATES)
    clock.now += 5
    snap = await cache.get(FeedKind.TRIP_UPDATES)

    assert provider.calls == 2
    assert snap.payload == (2,)


@pytest.mark.unit
@pytest.mark.anyio
async def test_alerts_use_longer_ttl() -> None:
    cache, provider, clock = _cache()

    await cache.get(FeedKind.ALERTS)
    clock.now += 30
    await cache.get(FeedKind.ALERTS)

    assert provider.calls == 1


@pytest.mark.unit
@pytest.mark.anyio
async def test_force_bypasses_ttl() -> None:
    cache, provider, _clock = _cache()

    await cache.get(FeedKind.ALERTS)
    await cache.get(FeedKind.ALERTS, force=True)

    assert provider.calls == 2


@pytest.mark.unit
@pytest.mark.anyio
async def test_failed_refresh_serves_previous_snapshot() -> None:
    cache, provider, clock = _cache()
    first = await cache.get(FeedKind.TRIP_UPDATES)

    provider.fail_with = FeedUnavailable(FeedKind.TRIP_UPDATES, "HTTP 502")
    clock.now += 10
    again = await cache.get(FeedKind.TRIP_UPDATES)

    assert again is first
    assert provider.calls == 2


@pytest.mark.unit
@pytest.mark.anyio
async def test_failed_refresh_serves_stale_snapshot() -> None:
    cache, provider, clock = _cache()
    provider.lag_s = 600
    first = await cache.get(FeedKind.TRIP_UPDATES)

    provider.fail_with = FeedUnavailable(FeedKind.TRIP_UPDATES, "timeout")
    clock.now += 10
    again = await cache.get(FeedKind.TRIP_UPDATES)

    assert again is first
    assert again.is_stale(clock(), stale_after_s=300)
    assert provider.calls == 2


@pytest.mark.unit
@pytest.mark.anyio
async def test_cold_cache_failure_raises_unavailable() -> None:
    cache, provider, _clock = _cache()
    provider.fail_with = FeedDecodeError("not a FeedMessage")

    with pytest.raises(FeedUnavailable) as excinfo:
        await cache.get(FeedKind.VEHICLE_POSITIONS)

    assert excinfo.value.kind == FeedKind.VEHICLE_POSITIONS
    assert await cache.get_or_none(FeedKind.VEHICLE_POSITIONS) is None


@pytest.mark.unit
@pytest.mark.anyio
async def test_stale_upstream_is_not_hammered() -> None:
    cache, provider, clock = _cache()
    provider.lag_s = 900

    snap = await cache.get(FeedKind.VEHICLE_POSITIONS)
    clock.now += 1
    await cache.get(FeedKind.VEHICLE_POSITIONS)

    assert snap.is_stale(clock(), stale_after_s=300)
    assert provider.calls == 1


@pytest.mark.unit
@pytest.mark.anyio
async def test_concurrent_readers_share_one_fetch() -> None:
    cache, provider, _clock = _cache()
    provider.delay_s = 0.01

    results = await asyncio.gather(
        *(cache.get(FeedKind.TRIP_UPDATES) for _ in range(5))
    )

    assert provider.calls == 1
    assert all(r is results[0] for r in results)


@pytest.mark.unit
@pytest.mark.anyio
async def test_status_reports_age_and_freshness() -> None:
    cache, provider, clock = _cache()
    cold = cache.status(FeedKind.TRIP_UPDATES, fresh_within_s=180)
    assert not cold.available

    await cache.get(FeedKind.TRIP_UPDATES)
    clock.now += 200
    status = cache.status(FeedKind.TRIP_UPDATES, fresh_within_s=180)

    assert status.available
    assert status.age_s == pytest.approx(200)
    assert not status.fresh
    assert not status.stale
    assert cache.peek(FeedKind.ALERTS) is None
