"""Adapter for the permission-gated device health store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from glucosync.adapters.base import check_range
from glucosync.exceptions import FeedTimeoutError, FeedTransportError, HealthStorePermissionError
from glucosync.ingestion.normalize import ensure_utc
from glucosync.ingestion.readings import health_store_readings
from glucosync.models.reading import Reading, SourceLabel

_logger = logging.getLogger(__name__)


class HealthStoreBackend(Protocol):
    """Platform health-data API.

    Implementations are synchronous and may block; the adapter calls them
    from a worker thread. ``glucose_samples`` returns mappings or
    :class:`~glucosync.models.feeds.HealthSample` objects.
    """

    def has_glucose_access(self) -> bool: ...

    def glucose_samples(self, start: datetime, end: datetime, limit: int) -> Iterable[Any]: ...


class DeviceHealthStoreAdapter:
    """Fallback reading source backed by the device health store.

    Read permission is checked before every query. A denial raises
    :class:`HealthStorePermissionError`, which the orchestrator turns into
    a user-actionable message.
    """

    label = SourceLabel.HEALTH_STORE

    def __init__(self, backend: HealthStoreBackend, *, limit: int = 2000, timeout: float = 15.0) -> None:
        self._backend = backend
        self._limit = limit
        self._timeout = timeout

    async def _run(self, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise FeedTimeoutError(
                f"Health store call {getattr(fn, '__name__', '?')} timed out after {self._timeout}s",
                source=self.label,
            ) from exc
        except Exception as exc:
            raise FeedTransportError(
                f"Health store call {getattr(fn, '__name__', '?')} failed: {exc}",
                source=self.label,
            ) from exc

    async def is_available(self) -> bool:
        return bool(await self._run(self._backend.has_glucose_access))

    async def fetch_readings(self, start: datetime, end: datetime) -> list[Reading]:
        start = ensure_utc(start)
        end = ensure_utc(end)
        check_range(start, end, source=self.label)

        if not await self.is_available():
            raise HealthStorePermissionError(
                "Read access to blood glucose in the health store has not been granted",
                source=self.label,
            )

        def glucose_samples() -> list[Any]:
            return list(self._backend.glucose_samples(start, end, self._limit))

        samples = await self._run(glucose_samples)
        readings = health_store_readings(samples, start=start, end=end)
        _logger.debug("Health store: %d readings in [%s, %s]", len(readings), start.isoformat(), end.isoformat())
        return readings
