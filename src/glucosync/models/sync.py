"""Orchestrator state and published result models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from glucosync.models._base import GlucoseBaseModel
from glucosync.models.reading import DisplayPoint, Reading, TimeWindow


class DataSourceLabel(StrEnum):
    """Provenance label published alongside the series."""

    CACHED_ONLY = "cached-only"
    HYBRID = "cached+live-hybrid"
    OFFICIAL_ONLY = "official-only"
    SHARE_ONLY = "share-only"
    HEALTH_STORE = "health-store"


class SyncState(BaseModel):
    """Process-local orchestrator state.

    Mutated only by :class:`~glucosync.sync.orchestrator.SyncOrchestrator`
    on its own event loop.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=False)

    last_load_time: datetime | None = None
    in_flight_generation: int = 0
    cached_series: list[Reading] = Field(default_factory=list)
    data_source: DataSourceLabel | None = None
    error_message: str | None = None
    window: TimeWindow | None = None
    meal_times: list[datetime] = Field(default_factory=list)
    published_generation: int = 0


class RefreshResult(GlucoseBaseModel):
    """Snapshot of what is (or would have been) published to the UI.

    ``debounced`` marks a no-op refresh that returned the current state;
    ``superseded`` marks a refresh overtaken by a newer one whose result
    was discarded.
    """

    points: list[DisplayPoint] = Field(default_factory=list)
    readings: list[Reading] = Field(default_factory=list)
    data_source: DataSourceLabel | None = None
    error_message: str | None = None
    window: TimeWindow | None = None
    meal_times: list[datetime] = Field(default_factory=list)
    generation: int = 0
    debounced: bool = False
    superseded: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.points
