"""Reading, display point and time window models."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import Field, model_validator

from glucosync.models._base import GlucoseBaseModel, UtcDatetime


class SourceLabel(StrEnum):
    """Where a reading came from. Informational only."""

    OFFICIAL = "official"
    SHARE = "share"
    HEALTH_STORE = "health_store"
    CACHED = "cached"


class Reading(GlucoseBaseModel):
    """A single glucose sample in mg/dL.

    Parameters
    ----------
    timestamp : datetime
        Measurement instant (aware, UTC).
    value : float
        Glucose concentration in mg/dL; always positive.
    source : SourceLabel
        Provenance of the sample.
    """

    timestamp: UtcDatetime
    value: float = Field(gt=0)
    source: SourceLabel

    def relabel(self, source: SourceLabel) -> Reading:
        """Return a copy carrying a different provenance label."""
        return self.model_copy(update={"source": source})


class DisplayPoint(GlucoseBaseModel):
    """Chart point derived from a reading; never persisted."""

    time: UtcDatetime
    value: float
    has_gap_before: bool = False


class TimeWindow(GlucoseBaseModel):
    """Closed time range ``[start, end]`` computed once per refresh."""

    start: UtcDatetime
    end: UtcDatetime

    @model_validator(mode="after")
    def _check_order(self) -> TimeWindow:
        if self.start > self.end:
            raise ValueError(f"window start {self.start.isoformat()} is after end {self.end.isoformat()}")
        return self

    @classmethod
    def ending_at(cls, end: datetime, length: timedelta) -> TimeWindow:
        """Rolling window of *length* that ends at *end*."""
        return cls(start=end - length, end=end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end

    def clamp_end(self, limit: datetime) -> TimeWindow | None:
        """Part of the window that ends no later than *limit*, or ``None``."""
        if limit < self.start:
            return None
        return TimeWindow(start=self.start, end=min(self.end, limit))
