"""Normalization helpers.

Centralizes defensive parsing of feed payload values so adapters can drop
malformed readings at the boundary instead of raising.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Any

# Share wraps epoch milliseconds as "Date(1640995200000)", "/Date(1640995200000)/"
# or with a trailing offset such as "Date(1640995200000+0300)".
_SHARE_DATE_RE = re.compile(r"^/?Date\((?P<ms>-?\d+)(?P<offset>[+-]\d{4})?\)/?$")

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1e11


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def positive_value(value: Any) -> float | None:
    """Return *value* as a float when it is a usable glucose value (> 0)."""
    parsed = safe_float(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_share_date(value: Any) -> datetime | None:
    """Parse a Share timestamp.

    The epoch-millisecond forms are absolute instants; the optional
    ``+zzzz`` suffix only describes the display zone and is ignored.
    Falls back to :func:`parse_timestamp` for ISO-8601 strings.
    """
    if isinstance(value, str):
        match = _SHARE_DATE_RE.match(value.strip())
        if match is not None:
            try:
                return datetime.fromtimestamp(int(match.group("ms")) / 1000.0, tz=UTC)
            except (OverflowError, OSError, ValueError):
                return None
    return parse_timestamp(value)


def parse_timestamp(value: Any) -> datetime | None:
    """Best-effort conversion of a payload timestamp to an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (``Z`` suffix allowed; naive values
    are UTC) and epoch numbers in seconds or milliseconds. Returns ``None``
    when the value cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        ts = float(value)
        if math.isnan(ts) or ts <= 0:
            return None
        if ts > _MS_THRESHOLD:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def to_epoch_ms(value: datetime) -> int:
    """Epoch milliseconds for an aware or naive (UTC) datetime."""
    return int(round(ensure_utc(value).timestamp() * 1000))
