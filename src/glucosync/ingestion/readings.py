"""Convert feed payloads into readings.

Malformed entries (missing or non-positive value, unparseable timestamp)
are dropped here and only logged at DEBUG level.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from glucosync.ingestion.normalize import positive_value
from glucosync.models.feeds import HealthSample, OfficialEgv, OfficialEgvResponse, ShareGlucoseValue
from glucosync.models.reading import Reading, SourceLabel

_logger = logging.getLogger(__name__)


def _make_reading(timestamp: datetime | None, value: Any, source: SourceLabel) -> Reading | None:
    mgdl = positive_value(value)
    if timestamp is None or mgdl is None:
        return None
    return Reading(timestamp=timestamp, value=mgdl, source=source)


def _in_range(readings: Iterable[Reading], start: datetime | None, end: datetime | None) -> list[Reading]:
    selected = [
        r for r in readings if (start is None or r.timestamp >= start) and (end is None or r.timestamp <= end)
    ]
    selected.sort(key=lambda r: r.timestamp)
    return selected


def official_readings(
    payload: Any,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Reading]:
    """Readings from an official ``egvs`` response, ascending and in range."""
    if not isinstance(payload, dict):
        return []
    try:
        response = OfficialEgvResponse.model_validate(payload)
    except ValidationError:
        _logger.debug("Ignoring malformed official egvs envelope", exc_info=True)
        return []
    readings: list[Reading] = []
    dropped = 0
    for item in response.records:
        try:
            egv = OfficialEgv.model_validate(item)
        except ValidationError:
            dropped += 1
            continue
        reading = _make_reading(egv.timestamp, egv.value, SourceLabel.OFFICIAL)
        if reading is None:
            dropped += 1
            continue
        readings.append(reading)
    if dropped:
        _logger.debug("Dropped %d malformed official records", dropped)
    return _in_range(readings, start, end)


def share_readings(
    payload: Any,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Reading]:
    """Readings from a Share glucose list, ascending and in range."""
    if not isinstance(payload, list):
        return []
    readings: list[Reading] = []
    dropped = 0
    for item in payload:
        if not isinstance(item, dict):
            dropped += 1
            continue
        try:
            entry = ShareGlucoseValue.model_validate(item)
        except ValidationError:
            dropped += 1
            continue
        reading = _make_reading(entry.timestamp, entry.value, SourceLabel.SHARE)
        if reading is None:
            dropped += 1
            continue
        readings.append(reading)
    if dropped:
        _logger.debug("Dropped %d malformed share entries", dropped)
    return _in_range(readings, start, end)


def health_store_readings(
    samples: Iterable[Any],
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Reading]:
    """Readings from health-store samples (dicts or :class:`HealthSample`)."""
    readings: list[Reading] = []
    dropped = 0
    for item in samples:
        try:
            sample = item if isinstance(item, HealthSample) else HealthSample.model_validate(item)
        except ValidationError:
            dropped += 1
            continue
        reading = _make_reading(sample.timestamp, sample.value_mgdl, SourceLabel.HEALTH_STORE)
        if reading is None:
            dropped += 1
            continue
        readings.append(reading)
    if dropped:
        _logger.debug("Dropped %d malformed health-store samples", dropped)
    return _in_range(readings, start, end)
