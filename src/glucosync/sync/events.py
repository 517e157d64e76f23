"""Explicit refresh event channel.

Platform notifications (app returned to the foreground, health store
changed, a feed account was connected) are published here as events; the
orchestrator consumes them and runs a forced refresh for each.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from enum import StrEnum

from pydantic import Field

from glucosync.adapters.base import utcnow
from glucosync.models._base import GlucoseBaseModel, UtcDatetime

_logger = logging.getLogger(__name__)


class RefreshTrigger(StrEnum):
    FOREGROUND = "foreground"
    STORE_CHANGED = "store_changed"
    FEED_CONNECTED = "feed_connected"
    MANUAL = "manual"


class RefreshEvent(GlucoseBaseModel):
    trigger: RefreshTrigger
    created_at: UtcDatetime = Field(default_factory=utcnow)
    detail: str | None = None


_CLOSED = object()


class RefreshEventChannel:
    """Single-consumer queue of :class:`RefreshEvent` objects."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, trigger: RefreshTrigger | RefreshEvent, *, detail: str | None = None) -> RefreshEvent:
        """Queue a refresh event. Publishing to a closed channel is an error."""
        if self._closed:
            raise RuntimeError("Refresh event channel is closed")
        event = trigger if isinstance(trigger, RefreshEvent) else RefreshEvent(trigger=trigger, detail=detail)
        self._queue.put_nowait(event)
        _logger.debug("Refresh event queued: %s", event.trigger)
        return event

    def close(self) -> None:
        """Stop iteration once the already queued events are consumed."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[RefreshEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            assert isinstance(item, RefreshEvent)
            yield item
