"""Common contract for reading sources."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Protocol

from glucosync.exceptions import FeedWindowError
from glucosync.models.reading import Reading, SourceLabel

Clock = Callable[[], datetime]
TokenProvider = Callable[[], Awaitable[str | None]]


def utcnow() -> datetime:
    return datetime.now(UTC)


class ReadingSource(Protocol):
    """A source of glucose readings.

    ``fetch_readings`` returns readings sorted ascending and filtered to
    ``[start, end]``. Failures are raised as :class:`~glucosync.exceptions.FeedError`
    subclasses; adapters never retry.
    """

    label: SourceLabel

    async def fetch_readings(self, start: datetime, end: datetime) -> list[Reading]: ...

    async def is_available(self) -> bool: ...


def check_range(start: datetime, end: datetime, *, source: str) -> None:
    if start > end:
        raise FeedWindowError(
            f"Range start {start.isoformat()} is after end {end.isoformat()}",
            source=source,
        )
