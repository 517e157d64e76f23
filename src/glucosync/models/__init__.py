"""Data models for glucose readings, feed payloads and sync state."""

from glucosync.models._base import GlucoseBaseModel, UtcDatetime
from glucosync.models.feeds import HealthSample, OfficialEgv, OfficialEgvResponse, ShareGlucoseValue
from glucosync.models.reading import DisplayPoint, Reading, SourceLabel, TimeWindow
from glucosync.models.sync import DataSourceLabel, RefreshResult, SyncState

__all__ = [
    "DataSourceLabel",
    "DisplayPoint",
    "GlucoseBaseModel",
    "HealthSample",
    "OfficialEgv",
    "OfficialEgvResponse",
    "Reading",
    "RefreshResult",
    "ShareGlucoseValue",
    "SourceLabel",
    "SyncState",
    "TimeWindow",
    "UtcDatetime",
]
