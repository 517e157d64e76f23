"""Wire models for the official feed, the Share feed and the health store.

These models are deliberately lenient: every field is optional and
unparseable values become ``None``. Whether an entry is usable is decided
in :mod:`glucosync.ingestion.readings`, where malformed entries are dropped.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from glucosync._constants import mmol_to_mgdl
from glucosync.ingestion.normalize import parse_share_date, parse_timestamp, safe_float
from glucosync.models._base import GlucoseBaseModel


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


class OfficialEgv(GlucoseBaseModel):
    """One estimated glucose value record from the official ``egvs`` endpoint.

    ``systemTime`` is UTC; ``displayTime`` is the receiver's local clock
    without an offset and only used when ``systemTime`` is missing.
    """

    record_id: str | None = Field(default=None, validation_alias=AliasChoices("recordId", "record_id"))
    system_time: datetime | None = Field(default=None, validation_alias=AliasChoices("systemTime", "system_time"))
    display_time: datetime | None = Field(default=None, validation_alias=AliasChoices("displayTime", "display_time"))
    value: float | None = None
    unit: str | None = None
    status: str | None = None
    trend: str | None = None
    trend_rate: float | None = Field(default=None, validation_alias=AliasChoices("trendRate", "trend_rate"))
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if isinstance(values, dict) and "raw" not in values:
            values = {**values, "raw": dict(values)}
        return values

    @field_validator("system_time", "display_time", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("value", "trend_rate", mode="before")
    @classmethod
    def _coerce_float(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("record_id", "unit", "status", "trend", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return _optional_str(value)

    @property
    def timestamp(self) -> datetime | None:
        return self.system_time or self.display_time


class OfficialEgvResponse(GlucoseBaseModel):
    """Envelope returned by ``GET /v3/users/self/egvs``."""

    record_type: str | None = Field(default=None, validation_alias=AliasChoices("recordType", "record_type"))
    record_version: str | None = Field(
        default=None, validation_alias=AliasChoices("recordVersion", "record_version")
    )
    user_id: str | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    records: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("record_type", "record_version", "user_id", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return _optional_str(value)

    @field_validator("records", mode="before")
    @classmethod
    def _only_dicts(cls, value: Any) -> list[dict[str, Any]]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]


class ShareGlucoseValue(GlucoseBaseModel):
    """One entry of ``ReadPublisherLatestGlucoseValues``.

    Share always reports mg/dL. ``DT`` (display time) is the measurement
    instant used for readings.
    """

    wall_time: datetime | None = Field(default=None, validation_alias=AliasChoices("WT", "wall_time"))
    system_time: datetime | None = Field(default=None, validation_alias=AliasChoices("ST", "system_time"))
    display_time: datetime | None = Field(default=None, validation_alias=AliasChoices("DT", "display_time"))
    value: float | None = Field(default=None, validation_alias=AliasChoices("Value", "value"))
    trend: str | None = Field(default=None, validation_alias=AliasChoices("Trend", "trend"))

    @field_validator("wall_time", "system_time", "display_time", mode="before")
    @classmethod
    def _coerce_share_date(cls, value: Any) -> datetime | None:
        return parse_share_date(value)

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("trend", mode="before")
    @classmethod
    def _coerce_trend(cls, value: Any) -> str | None:
        # Older servers send the trend as an integer code.
        return _optional_str(value)

    @property
    def timestamp(self) -> datetime | None:
        return self.display_time or self.wall_time or self.system_time


class HealthSample(GlucoseBaseModel):
    """Blood glucose sample handed over by a health-store backend."""

    timestamp: datetime | None = Field(
        default=None, validation_alias=AliasChoices("timestamp", "start", "startDate", "start_date")
    )
    value: float | None = None
    unit: str = "mg/dL"
    source_name: str | None = Field(default=None, validation_alias=AliasChoices("source_name", "sourceName", "source"))

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def value_mgdl(self) -> float | None:
        if self.value is None:
            return None
        normalized = self.unit.replace(" ", "").lower()
        if normalized in {"mmol/l", "mmol"}:
            return mmol_to_mgdl(self.value)
        return self.value
