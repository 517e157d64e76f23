"""Base model and shared field types for glucosync models.

Value objects inherit from :class:`GlucoseBaseModel` which is frozen and
ignores unknown keys. Instants use :data:`UtcDatetime`, which coerces
ISO strings, epoch numbers and naive datetimes to aware UTC datetimes so
comparisons across feeds never mix naive and aware values.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict

from glucosync.ingestion.normalize import parse_timestamp


def _coerce_utc(value: Any) -> Any:
    parsed = parse_timestamp(value)
    if parsed is None:
        # Let pydantic report the original value as invalid.
        return value
    return parsed


UtcDatetime = Annotated[datetime, BeforeValidator(_coerce_utc)]
"""Annotated type that normalizes any accepted timestamp to aware UTC."""


class GlucoseBaseModel(BaseModel):
    """Frozen base for glucosync value objects."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
