"""Hybrid fetch across the two live feeds, and time-proximity dedup.

The official feed is authoritative but delayed; the Share feed is near
real time but only covers the last day. A window is split at the
official availability boundary (minus a safety buffer): the official
feed serves everything up to the split and Share serves the rest.
"""

from __future__ import annotations

import asyncio
import bisect
import dataclasses
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import Protocol

from glucosync._constants import DEDUP_TOLERANCE
from glucosync.adapters.base import ReadingSource
from glucosync.exceptions import AllFeedsFailedError, FeedTimeoutError
from glucosync.models.reading import Reading, TimeWindow

_logger = logging.getLogger(__name__)


class DelayedReadingSource(ReadingSource, Protocol):
    def most_recent_available_date(self) -> datetime: ...


def merge_into_baseline(
    baseline: Iterable[Reading],
    incoming: Iterable[Reading],
    tolerance: timedelta = DEDUP_TOLERANCE,
) -> list[Reading]:
    """Overlay *incoming* readings on *baseline*.

    Baseline readings are kept as they are. An incoming reading is dropped
    when an already accepted reading lies within *tolerance* of it;
    incoming readings are considered in ascending time order so the
    earliest one of a close pair wins. The result is sorted ascending.
    """
    accepted = sorted(baseline, key=lambda r: r.timestamp)
    times = [r.timestamp for r in accepted]
    for reading in sorted(incoming, key=lambda r: r.timestamp):
        pos = bisect.bisect_left(times, reading.timestamp)
        if pos < len(times) and times[pos] - reading.timestamp <= tolerance:
            continue
        if pos > 0 and reading.timestamp - times[pos - 1] <= tolerance:
            continue
        times.insert(pos, reading.timestamp)
        accepted.insert(pos, reading)
    return accepted


@dataclasses.dataclass
class HybridFetch:
    """Outcome of one hybrid fetch, leg by leg."""

    official: list[Reading] = dataclasses.field(default_factory=list)
    share: list[Reading] = dataclasses.field(default_factory=list)
    official_error: BaseException | None = None
    share_error: BaseException | None = None
    official_range: TimeWindow | None = None
    share_range: TimeWindow | None = None

    @property
    def failures(self) -> list[BaseException]:
        return [exc for exc in (self.official_error, self.share_error) if exc is not None]

    @property
    def attempted(self) -> int:
        return int(self.official_range is not None) + int(self.share_range is not None)

    @property
    def succeeded(self) -> bool:
        """At least one attempted leg returned without error."""
        return self.attempted > len(self.failures)

    @property
    def readings(self) -> list[Reading]:
        return [*self.official, *self.share]


async def call_with_timeout(
    source: ReadingSource,
    start: datetime,
    end: datetime,
    timeout: float,
) -> list[Reading]:
    """Run ``source.fetch_readings`` bounded by *timeout* seconds."""
    try:
        return await asyncio.wait_for(source.fetch_readings(start, end), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise FeedTimeoutError(f"{source.label} feed did not answer within {timeout}s", source=source.label) from exc


class HybridMerger:
    """Fetch a window from both live feeds and merge the results.

    Parameters
    ----------
    official : DelayedReadingSource
        Official feed adapter; exposes ``most_recent_available_date()``.
    share : ReadingSource
        Share feed adapter.
    split_buffer : timedelta
        Margin subtracted from the official availability boundary.
    timeout : float
        Per-leg timeout in seconds.
    dedup_tolerance : timedelta
        Readings closer than this are treated as the same sample.
    """

    def __init__(
        self,
        official: DelayedReadingSource,
        share: ReadingSource,
        *,
        split_buffer: timedelta = timedelta(minutes=15),
        timeout: float = 15.0,
        dedup_tolerance: timedelta = DEDUP_TOLERANCE,
    ) -> None:
        self._official = official
        self._share = share
        self._split_buffer = split_buffer
        self._timeout = timeout
        self._dedup_tolerance = dedup_tolerance

    def split_point(self) -> datetime:
        return self._official.most_recent_available_date() - self._split_buffer

    def plan(self, window: TimeWindow) -> tuple[TimeWindow | None, TimeWindow | None]:
        """Sub-ranges for the official and Share legs; ``None`` skips a leg.

        The official leg covers ``[start, min(end, split)]`` and the Share
        leg ``(max(start, split), end]``.
        """
        split = self.split_point()
        official_range = window.clamp_end(split)
        share_range = None
        if window.end > split:
            share_range = TimeWindow(start=max(window.start, split), end=window.end)
        return official_range, share_range

    async def _leg(self, source: ReadingSource, sub: TimeWindow | None) -> list[Reading]:
        if sub is None:
            return []
        return await call_with_timeout(source, sub.start, sub.end, self._timeout)

    async def fetch_fresh(self, window: TimeWindow) -> HybridFetch:
        """Fetch both legs concurrently and report each leg's outcome."""
        official_range, share_range = self.plan(window)
        official_result, share_result = await asyncio.gather(
            self._leg(self._official, official_range),
            self._leg(self._share, share_range),
            return_exceptions=True,
        )
        result = HybridFetch(official_range=official_range, share_range=share_range)

        if isinstance(official_result, BaseException):
            if not isinstance(official_result, Exception):
                raise official_result
            result.official_error = official_result
            _logger.warning("Official leg failed: %s", official_result)
        else:
            result.official = official_result

        if isinstance(share_result, BaseException):
            if not isinstance(share_result, Exception):
                raise share_result
            result.share_error = share_result
            _logger.warning("Share leg failed: %s", share_result)
        else:
            # Share's first reading can sit exactly on the split instant.
            if share_range is not None and official_range is not None:
                share_result = [r for r in share_result if r.timestamp > share_range.start]
            result.share = share_result

        _logger.debug(
            "Hybrid fetch: official=%d share=%d failures=%d",
            len(result.official),
            len(result.share),
            len(result.failures),
        )
        return result

    async def fetch(self, window: TimeWindow, baseline: Sequence[Reading] = ()) -> list[Reading]:
        """Fresh readings for *window* overlaid on *baseline*.

        Raises
        ------
        AllFeedsFailedError
            If every attempted leg failed and *baseline* is empty.
        """
        fresh = await self.fetch_fresh(window)
        if fresh.attempted and not fresh.succeeded:
            if baseline:
                _logger.warning("Both live feeds failed; keeping %d baseline readings", len(baseline))
                return sorted(baseline, key=lambda r: r.timestamp)
            raise AllFeedsFailedError("Both live feeds failed", causes=fresh.failures)
        return merge_into_baseline(baseline, fresh.readings, self._dedup_tolerance)
