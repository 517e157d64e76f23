"""Top-level refresh coordinator.

A refresh runs through fallback tiers: the local store baseline, then the
live feeds, then the device health store. Each tier's failures are logged
and absorbed; only an empty final series produces a user-visible message.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Protocol

from glucosync.adapters.base import Clock, ReadingSource, utcnow
from glucosync.config import SyncConfig
from glucosync.exceptions import (
    FeedAuthenticationError,
    FeedError,
    HealthStorePermissionError,
    ReadingStoreError,
)
from glucosync.ingestion.normalize import ensure_utc
from glucosync.models.reading import Reading, SourceLabel, TimeWindow
from glucosync.models.sync import DataSourceLabel, RefreshResult, SyncState
from glucosync.store import PersistentReadingStore
from glucosync.sync.events import RefreshEventChannel
from glucosync.sync.gaps import annotate
from glucosync.sync.merge import DelayedReadingSource, HybridMerger, call_with_timeout, merge_into_baseline

_logger = logging.getLogger(__name__)

PERMISSION_MESSAGE = "Allow read access to blood glucose in the health settings to show readings."
RECONNECT_MESSAGE = "Could not sign in to the glucose feed. Reconnect your CGM account."
NO_DATA_MESSAGE = "No glucose data in the selected time range."


class MealTimeSource(Protocol):
    """Read-only provider of logged meal times for the chart overlay."""

    async def meal_times(self, start: datetime, end: datetime) -> Sequence[datetime]: ...


class _Superseded(Exception):
    """A newer refresh started; this one must not publish."""


class SyncOrchestrator:
    """Produces the published glucose series.

    All state lives on one event loop. Overlapping refreshes are resolved
    with a generation counter: only the most recently started refresh may
    publish, older ones stop at the next tier boundary.

    Parameters
    ----------
    config : SyncConfig
        Engine configuration.
    store : PersistentReadingStore, optional
        Local reading cache providing the baseline.
    official : OfficialFeedAdapter, optional
        Delayed official feed.
    share : ShareFeedAdapter, optional
        Near-real-time feed.
    health_store : DeviceHealthStoreAdapter, optional
        Last-resort fallback, only consulted while the series is empty.
    meals : MealTimeSource, optional
        Meal times shown on top of the chart.
    on_publish : callable, optional
        Called with a :class:`RefreshResult` every time state is published,
        including the interim cached baseline.
    clock : callable, optional
        Returns the current aware UTC instant.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        store: PersistentReadingStore | None = None,
        official: DelayedReadingSource | None = None,
        share: ReadingSource | None = None,
        health_store: ReadingSource | None = None,
        meals: MealTimeSource | None = None,
        on_publish: Callable[[RefreshResult], None] | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._config = config
        self._store = store
        self._official = official
        self._share = share
        self._health_store = health_store
        self._meals = meals
        self._on_publish = on_publish
        self._clock = clock
        self._state = SyncState()
        self._merger: HybridMerger | None = None
        if official is not None and share is not None:
            self._merger = HybridMerger(
                official,
                share,
                split_buffer=config.official_split_buffer,
                timeout=config.adapter_timeout,
                dedup_tolerance=config.dedup_tolerance,
            )

    @property
    def state(self) -> SyncState:
        return self._state

    def snapshot(self, *, debounced: bool = False, superseded: bool = False) -> RefreshResult:
        """Currently published state."""
        state = self._state
        return RefreshResult(
            points=annotate(state.cached_series, self._config.gap_threshold),
            readings=list(state.cached_series),
            data_source=state.data_source,
            error_message=state.error_message,
            window=state.window,
            meal_times=list(state.meal_times),
            generation=state.published_generation,
            debounced=debounced,
            superseded=superseded,
        )

    def compute_window(self, now: datetime) -> TimeWindow:
        """Rolling window of ``config.window_hours`` ending at *now*."""
        return TimeWindow.ending_at(now, self._config.window)

    def _is_debounced(self, now: datetime) -> bool:
        state = self._state
        if state.last_load_time is None or not state.cached_series:
            return False
        elapsed = (now - state.last_load_time).total_seconds()
        return 0 <= elapsed < self._config.minimum_refresh_interval

    def _check_current(self, generation: int) -> None:
        if self._state.in_flight_generation != generation:
            raise _Superseded

    def _publish(
        self,
        generation: int,
        series: list[Reading],
        data_source: DataSourceLabel,
        error_message: str | None,
        window: TimeWindow,
        meal_times: list[datetime] | None = None,
    ) -> None:
        state = self._state
        state.cached_series = series
        state.data_source = data_source
        state.error_message = None if series else error_message
        state.window = window
        if meal_times is not None:
            state.meal_times = meal_times
        state.published_generation = generation
        _logger.debug("Published %d readings (%s, generation %d)", len(series), data_source, generation)
        if self._on_publish is not None:
            self._on_publish(self.snapshot())

    async def refresh(self, force: bool = False) -> RefreshResult:
        """Recompute and publish the series for the current window.

        A non-forced refresh within ``minimum_refresh_interval`` of the
        previous one is a no-op as long as something has been published.
        """
        now = ensure_utc(self._clock())
        if not force and self._is_debounced(now):
            _logger.debug("Refresh debounced")
            return self.snapshot(debounced=True)

        state = self._state
        state.in_flight_generation += 1
        generation = state.in_flight_generation
        state.last_load_time = now
        window = self.compute_window(now)

        try:
            return await self._run(generation, window)
        except _Superseded:
            _logger.debug("Refresh generation %d superseded by %d", generation, state.in_flight_generation)
            return self.snapshot(superseded=True)

    async def _run(self, generation: int, window: TimeWindow) -> RefreshResult:
        baseline = await self._load_baseline(window)
        self._check_current(generation)
        if baseline:
            self._publish(generation, baseline, DataSourceLabel.CACHED_ONLY, None, window)

        failures: list[BaseException] = []
        series, data_source = await self._live_tier(window, baseline, failures)
        self._check_current(generation)

        fresh = [r for r in series if r.source is not SourceLabel.CACHED]
        if fresh and self._store is not None and self._config.persist_live_readings:
            await self._persist(self._store, fresh)

        permission_denied = False
        if not series and self._health_store is not None:
            try:
                series = await call_with_timeout(
                    self._health_store, window.start, window.end, self._config.adapter_timeout
                )
            except HealthStorePermissionError as exc:
                permission_denied = True
                _logger.info("Health store fallback unavailable: %s", exc)
            except FeedError as exc:
                failures.append(exc)
                _logger.warning("Health store fallback failed: %s", exc)
            except Exception as exc:
                failures.append(exc)
                _logger.warning("Health store fallback raised unexpectedly", exc_info=True)
            else:
                if series:
                    data_source = DataSourceLabel.HEALTH_STORE
            self._check_current(generation)

        meal_times = await self._load_meals(window)
        self._check_current(generation)

        if not series:
            data_source = DataSourceLabel.CACHED_ONLY

        self._publish(
            generation,
            series,
            data_source,
            self._error_message(permission_denied, failures),
            window,
            meal_times,
        )
        return self.snapshot()

    async def _load_baseline(self, window: TimeWindow) -> list[Reading]:
        if self._store is None:
            return []
        try:
            return await asyncio.to_thread(self._store.fetch_readings, window.start, window.end)
        except ReadingStoreError as exc:
            _logger.warning("Reading store unavailable, continuing without baseline: %s", exc)
            return []

    async def _persist(self, store: PersistentReadingStore, readings: list[Reading]) -> None:
        try:
            await asyncio.to_thread(store.upsert, readings, now=ensure_utc(self._clock()))
        except ReadingStoreError as exc:
            _logger.warning("Could not persist %d live readings: %s", len(readings), exc)

    async def _available(self, source: ReadingSource | None) -> bool:
        if source is None:
            return False
        try:
            return await asyncio.wait_for(source.is_available(), timeout=self._config.adapter_timeout)
        except asyncio.TimeoutError:
            _logger.warning(
                "%s availability check did not answer within %ss", source.label, self._config.adapter_timeout
            )
            return False
        except FeedError as exc:
            _logger.info("%s feed unavailable: %s", source.label, exc)
            return False
        except Exception:
            _logger.warning("%s availability check raised unexpectedly", source.label, exc_info=True)
            return False

    async def _live_tier(
        self,
        window: TimeWindow,
        baseline: list[Reading],
        failures: list[BaseException],
    ) -> tuple[list[Reading], DataSourceLabel]:
        official_ready = await self._available(self._official)
        share_ready = await self._available(self._share)

        if official_ready and share_ready and self._merger is not None:
            fetched = await self._merger.fetch_fresh(window)
            failures.extend(fetched.failures)
            if fetched.succeeded:
                merged = merge_into_baseline(baseline, fetched.readings, self._config.dedup_tolerance)
                return merged, DataSourceLabel.HYBRID
            return baseline, DataSourceLabel.CACHED_ONLY

        single: ReadingSource | None = None
        label = DataSourceLabel.CACHED_ONLY
        sub: TimeWindow | None = window
        if official_ready and self._official is not None:
            single, label = self._official, DataSourceLabel.OFFICIAL_ONLY
            sub = window.clamp_end(self._official.most_recent_available_date())
        elif share_ready and self._share is not None:
            single, label = self._share, DataSourceLabel.SHARE_ONLY

        if single is None or sub is None:
            return baseline, DataSourceLabel.CACHED_ONLY

        try:
            readings = await call_with_timeout(single, sub.start, sub.end, self._config.adapter_timeout)
        except FeedError as exc:
            failures.append(exc)
            _logger.warning("%s feed failed: %s", single.label, exc)
            return baseline, DataSourceLabel.CACHED_ONLY
        except Exception as exc:
            failures.append(exc)
            _logger.warning("%s feed raised unexpectedly", single.label, exc_info=True)
            return baseline, DataSourceLabel.CACHED_ONLY
        return merge_into_baseline(baseline, readings, self._config.dedup_tolerance), label

    async def _load_meals(self, window: TimeWindow) -> list[datetime]:
        if self._meals is None:
            return []
        try:
            times = await self._meals.meal_times(window.start, window.end)
        except Exception:
            _logger.warning("Meal time lookup failed", exc_info=True)
            return []
        return sorted(ensure_utc(t) for t in times if window.contains(ensure_utc(t)))

    def _error_message(self, permission_denied: bool, failures: list[BaseException]) -> str:
        if permission_denied:
            return PERMISSION_MESSAGE
        if any(isinstance(exc, FeedAuthenticationError) for exc in failures):
            return RECONNECT_MESSAGE
        return NO_DATA_MESSAGE

    async def consume(self, channel: RefreshEventChannel) -> None:
        """Run a forced refresh for every event until *channel* is closed."""
        async for event in channel:
            _logger.debug("Refresh requested by %s", event.trigger)
            await self.refresh(force=True)
