from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from glucosync.adapters.health_store import DeviceHealthStoreAdapter
from glucosync.adapters.official import OfficialFeedAdapter
from glucosync.config import SyncConfig
from glucosync.exceptions import (
    FeedAuthenticationError,
    FeedTransportError,
    HealthStorePermissionError,
)
from glucosync.models.reading import Reading, SourceLabel
from glucosync.models.sync import DataSourceLabel, RefreshResult
from glucosync.store import PersistentReadingStore
from glucosync.sync.events import RefreshEventChannel, RefreshTrigger
from glucosync.sync.orchestrator import (
    NO_DATA_MESSAGE,
    PERMISSION_MESSAGE,
    RECONNECT_MESSAGE,
    SyncOrchestrator,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class _Clock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _reading(minutes_ago: float, value: float, source: SourceLabel) -> Reading:
    return Reading(timestamp=NOW - timedelta(minutes=minutes_ago), value=value, source=source)


def _every_five(start_min: int, end_min: int, value: float, source: SourceLabel) -> list[Reading]:
    """Readings every five minutes from *start_min* down to *end_min* minutes ago."""
    return [_reading(m, value, source) for m in range(start_min, end_min - 1, -5)]


class _FakeSource:
    def __init__(
        self,
        label: SourceLabel,
        readings: list[Reading] | None = None,
        *,
        available: bool = True,
        error: Exception | None = None,
        boundary: datetime | None = None,
    ) -> None:
        self.label = label
        self.readings = readings or []
        self.available = available
        self.error = error
        self.boundary = boundary
        self.calls: list[tuple[datetime, datetime]] = []

    def most_recent_available_date(self) -> datetime:
        assert self.boundary is not None
        return self.boundary

    async def is_available(self) -> bool:
        return self.available

    async def fetch_readings(self, start: datetime, end: datetime) -> list[Reading]:
        self.calls.append((start, end))
        if self.error is not None:
            raise self.error
        return [r for r in self.readings if start <= r.timestamp <= end]


class _GatedSource(_FakeSource):
    """Blocks the first fetch until released; later fetches answer at once."""

    def __init__(self, label: SourceLabel, responses: list[list[Reading]]) -> None:
        super().__init__(label)
        self.responses = responses
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_readings(self, start: datetime, end: datetime) -> list[Reading]:
        index = len(self.calls)
        self.calls.append((start, end))
        if index == 0:
            self.started.set()
            await self.release.wait()
        return self.responses[index]


class _HangingSource(_FakeSource):
    """Never answers the availability check or the fetch, as chosen."""

    def __init__(self, label: SourceLabel, *, hang_available: bool = False, hang_fetch: bool = False) -> None:
        super().__init__(label, boundary=NOW - timedelta(hours=3))
        self.hang_available = hang_available
        self.hang_fetch = hang_fetch

    async def is_available(self) -> bool:
        if self.hang_available:
            await asyncio.sleep(3600)
        return True

    async def fetch_readings(self, start: datetime, end: datetime) -> list[Reading]:
        self.calls.append((start, end))
        if self.hang_fetch:
            await asyncio.sleep(3600)
        return []


class _PayloadTransport:
    def __init__(self, payload: Any) -> None:
        self.payload = payload

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        return self.payload


class _FailingHealthBackend:
    def has_glucose_access(self) -> bool:
        return True

    def glucose_samples(self, start: datetime, end: datetime, limit: int) -> list[Any]:
        raise OSError("HealthKit query failed")


class _FakeMeals:
    def __init__(self, times: list[datetime], *, fail: bool = False) -> None:
        self.times = times
        self.fail = fail

    async def meal_times(self, start: datetime, end: datetime) -> list[datetime]:
        if self.fail:
            raise RuntimeError("meal log unavailable")
        return self.times


def _official(readings: list[Reading] | None = None, **kwargs: Any) -> _FakeSource:
    return _FakeSource(SourceLabel.OFFICIAL, readings, boundary=NOW - timedelta(hours=3), **kwargs)


def _share(readings: list[Reading] | None = None, **kwargs: Any) -> _FakeSource:
    return _FakeSource(SourceLabel.SHARE, readings, **kwargs)


def _orchestrator(config: SyncConfig | None = None, **kwargs: Any) -> SyncOrchestrator:
    kwargs.setdefault("clock", _Clock())
    kwargs.setdefault("store", PersistentReadingStore(":memory:"))
    return SyncOrchestrator(config or SyncConfig(), **kwargs)


@pytest.mark.asyncio
async def test_rapid_refreshes_hit_the_feed_once() -> None:
    share = _share(_every_five(60, 5, 120.0, SourceLabel.SHARE))
    orchestrator = _orchestrator(share=share)

    first = await orchestrator.refresh()
    second = await orchestrator.refresh()

    assert len(share.calls) == 1
    assert not first.debounced
    assert second.debounced
    assert second.points == first.points


@pytest.mark.asyncio
async def test_forced_refresh_bypasses_debounce() -> None:
    share = _share(_every_five(60, 5, 120.0, SourceLabel.SHARE))
    orchestrator = _orchestrator(share=share)

    await orchestrator.refresh()
    await orchestrator.refresh(force=True)

    assert len(share.calls) == 2


@pytest.mark.asyncio
async def test_refresh_after_interval_fetches_again() -> None:
    clock = _Clock()
    share = _share(_every_five(60, 5, 120.0, SourceLabel.SHARE))
    orchestrator = _orchestrator(share=share, clock=clock)

    await orchestrator.refresh()
    clock.now = NOW + timedelta(seconds=31)
    await orchestrator.refresh()

    assert len(share.calls) == 2


@pytest.mark.asyncio
async def test_empty_result_is_not_debounced() -> None:
    share = _share([])
    orchestrator = _orchestrator(share=share)

    await orchestrator.refresh()
    await orchestrator.refresh()

    assert len(share.calls) == 2


@pytest.mark.asyncio
async def test_both_feeds_produce_hybrid_label() -> None:
    official = _official(_every_five(600, 200, 110.0, SourceLabel.OFFICIAL))
    share = _share(_every_five(300, 5, 130.0, SourceLabel.SHARE))
    orchestrator = _orchestrator(official=official, share=share)

    result = await orchestrator.refresh()

    assert result.data_source is DataSourceLabel.HYBRID
    assert result.error_message is None
    assert not any(p.has_gap_before for p in result.points)
    times = [r.timestamp for r in result.readings]
    assert times == sorted(times)


@pytest.mark.asyncio
async def test_official_only_is_clamped_to_its_boundary() -> None:
    official = _official(_every_five(600, 200, 110.0, SourceLabel.OFFICIAL))
    orchestrator = _orchestrator(official=official, share=_share(available=False))

    result = await orchestrator.refresh()

    assert result.data_source is DataSourceLabel.OFFICIAL_ONLY
    ((_, end),) = official.calls
    assert end == NOW - timedelta(hours=3)


@pytest.mark.asyncio
async def test_share_only_label() -> None:
    orchestrator = _orchestrator(share=_share(_every_five(60, 5, 120.0, SourceLabel.SHARE)))

    result = await orchestrator.refresh()

    assert result.data_source is DataSourceLabel.SHARE_ONLY
    assert len(result.points) == 12


@pytest.mark.asyncio
async def test_cached_only_when_no_feed_is_available() -> None:
    store = PersistentReadingStore(":memory:")
    store.upsert(_every_five(30, 10, 100.0, SourceLabel.SHARE), now=NOW)
    orchestrator = _orchestrator(store=store, share=_share(available=False))

    result = await orchestrator.refresh()

    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert [p.value for p in result.points] == [100.0] * 5
    assert all(r.source is SourceLabel.CACHED for r in result.readings)
    assert result.error_message is None


@pytest.mark.asyncio
async def test_failed_feed_keeps_baseline_without_error() -> None:
    store = PersistentReadingStore(":memory:")
    store.upsert(_every_five(30, 10, 100.0, SourceLabel.SHARE), now=NOW)
    share = _share(error=FeedTransportError("offline", source="share"))
    orchestrator = _orchestrator(store=store, share=share)

    result = await orchestrator.refresh()

    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert len(result.points) == 5
    assert result.error_message is None


@pytest.mark.asyncio
async def test_live_readings_are_persisted_for_next_cold_start() -> None:
    store = PersistentReadingStore(":memory:")
    share = _share(_every_five(60, 5, 120.0, SourceLabel.SHARE))
    await _orchestrator(store=store, share=share).refresh()

    assert store.count() == 12

    cold = _orchestrator(store=store, share=_share(available=False))
    result = await cold.refresh()

    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert len(result.points) == 12


@pytest.mark.asyncio
async def test_live_data_overlays_baseline_without_duplicates() -> None:
    store = PersistentReadingStore(":memory:")
    store.upsert(_every_five(60, 30, 100.0, SourceLabel.SHARE), now=NOW)
    # Same samples seen again 20 seconds later plus newer ones.
    live = [
        Reading(timestamp=r.timestamp + timedelta(seconds=20), value=101.0, source=SourceLabel.SHARE)
        for r in _every_five(60, 5, 0.1, SourceLabel.SHARE)
    ]
    orchestrator = _orchestrator(store=store, share=_share(live))

    result = await orchestrator.refresh()

    assert len(result.readings) == 12
    assert [r.value for r in result.readings[:7]] == [100.0] * 7
    assert [r.value for r in result.readings[7:]] == [101.0] * 5


@pytest.mark.asyncio
async def test_health_store_used_when_live_tier_is_empty() -> None:
    health = _FakeSource(SourceLabel.HEALTH_STORE, _every_five(60, 5, 95.0, SourceLabel.HEALTH_STORE))
    orchestrator = _orchestrator(
        share=_share(error=FeedTransportError("offline", source="share")),
        health_store=health,
    )

    result = await orchestrator.refresh()

    assert result.data_source is DataSourceLabel.HEALTH_STORE
    assert len(result.points) == 12
    assert result.error_message is None


@pytest.mark.asyncio
async def test_health_store_skipped_when_series_has_data() -> None:
    health = _FakeSource(SourceLabel.HEALTH_STORE, _every_five(60, 5, 95.0, SourceLabel.HEALTH_STORE))
    orchestrator = _orchestrator(share=_share(_every_five(60, 5, 120.0, SourceLabel.SHARE)), health_store=health)

    await orchestrator.refresh()

    assert health.calls == []


@pytest.mark.asyncio
async def test_permission_denied_surfaces_permission_message() -> None:
    health = _FakeSource(
        SourceLabel.HEALTH_STORE,
        error=HealthStorePermissionError("denied", source="health_store"),
    )
    orchestrator = _orchestrator(share=_share(available=False), health_store=health)

    result = await orchestrator.refresh()

    assert result.points == []
    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert result.error_message == PERMISSION_MESSAGE


@pytest.mark.asyncio
async def test_authentication_failure_asks_to_reconnect() -> None:
    share = _share(error=FeedAuthenticationError("rejected", source="share", status_code=401))
    orchestrator = _orchestrator(share=share)

    result = await orchestrator.refresh()

    assert result.error_message == RECONNECT_MESSAGE


@pytest.mark.asyncio
async def test_nothing_anywhere_reports_no_data() -> None:
    orchestrator = _orchestrator()

    result = await orchestrator.refresh()

    assert result.is_empty
    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert result.error_message == NO_DATA_MESSAGE


@pytest.mark.asyncio
async def test_superseded_refresh_is_discarded() -> None:
    slow = [_reading(10, 100.0, SourceLabel.SHARE)]
    fast = [_reading(10, 200.0, SourceLabel.SHARE), _reading(5, 205.0, SourceLabel.SHARE)]
    share = _GatedSource(SourceLabel.SHARE, [slow, fast])
    orchestrator = _orchestrator(share=share)

    first = asyncio.create_task(orchestrator.refresh(force=True))
    await share.started.wait()
    second = await orchestrator.refresh(force=True)
    share.release.set()
    first_result = await first

    assert first_result.superseded
    assert second.generation == 2
    assert [r.value for r in orchestrator.snapshot().readings] == [200.0, 205.0]
    assert orchestrator.state.published_generation == 2


@pytest.mark.asyncio
async def test_interim_baseline_is_published_before_live_data() -> None:
    store = PersistentReadingStore(":memory:")
    store.upsert(_every_five(30, 10, 100.0, SourceLabel.SHARE), now=NOW)
    published: list[RefreshResult] = []
    orchestrator = _orchestrator(
        store=store,
        share=_share(_every_five(60, 5, 120.0, SourceLabel.SHARE)),
        on_publish=published.append,
    )

    await orchestrator.refresh()

    assert [r.data_source for r in published] == [DataSourceLabel.CACHED_ONLY, DataSourceLabel.SHARE_ONLY]


@pytest.mark.asyncio
async def test_meal_times_in_window_are_overlaid() -> None:
    meals = _FakeMeals([NOW - timedelta(hours=2), NOW - timedelta(hours=30), NOW - timedelta(hours=5)])
    orchestrator = _orchestrator(share=_share(_every_five(60, 5, 120.0, SourceLabel.SHARE)), meals=meals)

    result = await orchestrator.refresh()

    assert result.meal_times == [NOW - timedelta(hours=5), NOW - timedelta(hours=2)]


@pytest.mark.asyncio
async def test_meal_source_failure_does_not_break_refresh() -> None:
    orchestrator = _orchestrator(
        share=_share(_every_five(60, 5, 120.0, SourceLabel.SHARE)),
        meals=_FakeMeals([], fail=True),
    )

    result = await orchestrator.refresh()

    assert result.meal_times == []
    assert len(result.points) == 12


@pytest.mark.asyncio
async def test_window_is_rolling_last_hours() -> None:
    orchestrator = SyncOrchestrator(SyncConfig(window_hours=6), clock=_Clock())

    result = await orchestrator.refresh()

    assert result.window is not None
    assert result.window.end == NOW
    assert result.window.start == NOW - timedelta(hours=6)


@pytest.mark.asyncio
async def test_events_trigger_forced_refreshes() -> None:
    share = _share(_every_five(60, 5, 120.0, SourceLabel.SHARE))
    orchestrator = _orchestrator(share=share)
    channel = RefreshEventChannel()

    channel.publish(RefreshTrigger.FOREGROUND)
    channel.publish(RefreshTrigger.STORE_CHANGED, detail="new samples")
    channel.close()
    await asyncio.wait_for(orchestrator.consume(channel), timeout=5)

    assert len(share.calls) == 2


def _seeded_store() -> PersistentReadingStore:
    store = PersistentReadingStore(":memory:")
    store.upsert(_every_five(30, 10, 100.0, SourceLabel.SHARE), now=NOW)
    return store


@pytest.mark.asyncio
async def test_hung_availability_check_is_bounded() -> None:
    official = _HangingSource(SourceLabel.OFFICIAL, hang_available=True)
    orchestrator = _orchestrator(
        SyncConfig(adapter_timeout=0.1),
        store=_seeded_store(),
        official=official,
        share=_share(available=False),
    )

    result = await asyncio.wait_for(orchestrator.refresh(), timeout=5)

    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert len(result.points) == 5
    assert result.error_message is None
    assert official.calls == []


@pytest.mark.asyncio
async def test_hung_token_provider_falls_back_to_share() -> None:
    async def never_answers() -> str | None:
        await asyncio.sleep(3600)
        return "token"

    config = SyncConfig(adapter_timeout=0.1)
    official = OfficialFeedAdapter(config, _PayloadTransport({}), token_provider=never_answers, clock=_Clock())
    share = _share(_every_five(60, 5, 120.0, SourceLabel.SHARE))
    orchestrator = _orchestrator(config, official=official, share=share)

    result = await asyncio.wait_for(orchestrator.refresh(), timeout=5)

    assert result.data_source is DataSourceLabel.SHARE_ONLY
    assert len(result.points) == 12


@pytest.mark.asyncio
async def test_hung_share_fetch_keeps_baseline() -> None:
    share = _HangingSource(SourceLabel.SHARE, hang_fetch=True)
    orchestrator = _orchestrator(SyncConfig(adapter_timeout=0.1), store=_seeded_store(), share=share)

    result = await asyncio.wait_for(orchestrator.refresh(), timeout=5)

    assert len(share.calls) == 1
    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert len(result.points) == 5
    assert result.error_message is None


@pytest.mark.asyncio
async def test_hung_hybrid_legs_keep_baseline() -> None:
    official = _HangingSource(SourceLabel.OFFICIAL, hang_fetch=True)
    share = _HangingSource(SourceLabel.SHARE, hang_fetch=True)
    orchestrator = _orchestrator(
        SyncConfig(adapter_timeout=0.1),
        store=_seeded_store(),
        official=official,
        share=share,
    )

    result = await asyncio.wait_for(orchestrator.refresh(), timeout=5)

    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert len(result.points) == 5
    assert result.error_message is None


@pytest.mark.asyncio
async def test_health_store_backend_failure_reports_no_data() -> None:
    health = DeviceHealthStoreAdapter(_FailingHealthBackend())
    orchestrator = _orchestrator(share=_share(available=False), health_store=health)

    result = await orchestrator.refresh()

    assert result.points == []
    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert result.error_message == NO_DATA_MESSAGE


@pytest.mark.asyncio
async def test_unexpected_feed_error_falls_back_to_baseline() -> None:
    share = _share(error=RuntimeError("decoder bug"))
    orchestrator = _orchestrator(store=_seeded_store(), share=share)

    result = await orchestrator.refresh()

    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert len(result.points) == 5
    assert result.error_message is None


@pytest.mark.asyncio
async def test_malformed_official_record_does_not_lose_the_batch() -> None:
    payload = {
        "records": [
            {"recordId": 17, "systemTime": "2026-03-01T08:00:00", "value": 120},
            {"recordId": "b", "systemTime": "2026-03-01T08:05:00", "value": 125},
            {"recordId": "c", "systemTime": "2026-03-01T08:10:00", "value": 130, "raw": "not a mapping"},
        ]
    }
    config = SyncConfig(official_access_token="token-1")
    official = OfficialFeedAdapter(config, _PayloadTransport(payload), clock=_Clock())
    orchestrator = _orchestrator(config, official=official, share=_share(available=False))

    result = await orchestrator.refresh()

    assert result.data_source is DataSourceLabel.OFFICIAL_ONLY
    assert [r.value for r in result.readings] == [120.0, 125.0]


@pytest.mark.asyncio
async def test_empty_hybrid_result_is_labelled_cached_only() -> None:
    orchestrator = _orchestrator(official=_official([]), share=_share([]))

    result = await orchestrator.refresh()

    assert result.points == []
    assert result.data_source is DataSourceLabel.CACHED_ONLY
    assert result.error_message == NO_DATA_MESSAGE
