"""Adapter for the delayed official CGM feed."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from glucosync._api import official as _official_api
from glucosync._constants import OFFICIAL_MAX_WINDOW
from glucosync._transport import Transport
from glucosync.adapters.base import Clock, TokenProvider, check_range, utcnow
from glucosync.config import SyncConfig
from glucosync.exceptions import FeedAuthenticationError, FeedWindowError
from glucosync.ingestion.normalize import ensure_utc
from glucosync.ingestion.readings import official_readings
from glucosync.models.reading import Reading, SourceLabel

_logger = logging.getLogger(__name__)


class OfficialFeedAdapter:
    """Reads estimated glucose values from the official cloud API.

    The official feed only serves readings older than
    ``config.official_delay_hours``; asking for anything newer is a
    :class:`FeedWindowError`, never a silent empty result.

    Parameters
    ----------
    config : SyncConfig
        Engine configuration (base URL, delay, optional static token).
    transport : Transport
        JSON transport.
    token_provider : callable, optional
        Async callable returning the current bearer token. Takes
        precedence over ``config.official_access_token``.
    clock : callable, optional
        Returns the current aware UTC instant.
    """

    label = SourceLabel.OFFICIAL

    def __init__(
        self,
        config: SyncConfig,
        transport: Transport,
        *,
        token_provider: TokenProvider | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._config = config
        self._transport = transport
        self._token_provider = token_provider
        self._clock = clock

    @property
    def delay(self) -> timedelta:
        return timedelta(hours=self._config.official_delay_hours)

    def most_recent_available_date(self) -> datetime:
        """Latest instant for which the feed is expected to have data."""
        return ensure_utc(self._clock()) - self.delay

    async def _access_token(self) -> str | None:
        if self._token_provider is not None:
            token = await self._token_provider()
            if token:
                return token
        return self._config.official_access_token or None

    async def is_available(self) -> bool:
        return bool(await self._access_token())

    async def fetch_readings(self, start: datetime, end: datetime) -> list[Reading]:
        start = ensure_utc(start)
        end = ensure_utc(end)
        check_range(start, end, source=self.label)

        boundary = self.most_recent_available_date()
        if end > boundary:
            raise FeedWindowError(
                f"Official feed has no data after {boundary.isoformat()} (requested end {end.isoformat()})",
                source=self.label,
            )
        if end - start > OFFICIAL_MAX_WINDOW:
            raise FeedWindowError(
                f"Official feed serves at most {OFFICIAL_MAX_WINDOW.days} days per request",
                source=self.label,
            )

        token = await self._access_token()
        if not token:
            raise FeedAuthenticationError("No official feed access token configured", source=self.label)

        payload = await _official_api.fetch_egvs(
            self._transport,
            self._config.official_base_url,
            token,
            start,
            end,
        )
        readings = official_readings(payload, start=start, end=end)
        _logger.debug("Official feed: %d readings in [%s, %s]", len(readings), start.isoformat(), end.isoformat())
        return readings
