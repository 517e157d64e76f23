"""Adapter for the near-real-time Share feed."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from glucosync._api import share as _share_api
from glucosync._constants import CGM_SAMPLE_INTERVAL
from glucosync._transport import Transport
from glucosync.adapters.base import Clock, check_range, utcnow
from glucosync.config import SyncConfig
from glucosync.exceptions import FeedAuthenticationError, FeedSessionExpiredError
from glucosync.ingestion.normalize import ensure_utc
from glucosync.ingestion.readings import share_readings
from glucosync.models.reading import Reading, SourceLabel
from glucosync.session import ShareSession

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class ShareFeedAdapter:
    """Polls the Share service for the latest readings.

    Share only answers "the last N minutes" relative to now, so the
    requested range is converted to a minute count from *start* and the
    response is filtered back down to ``[start, end]``.

    The session id is cached for ``config.share_session_ttl`` seconds.
    When Share rejects it the adapter logs in again once and repeats the
    read; this is session renewal, not a retry policy.
    """

    label = SourceLabel.SHARE

    def __init__(
        self,
        config: SyncConfig,
        transport: Transport,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._config = config
        self._transport = transport
        self._clock = clock
        self._session: ShareSession | None = None
        self._login_lock = asyncio.Lock()

    @property
    def session(self) -> ShareSession | None:
        return self._session

    def invalidate_session(self) -> None:
        self._session = None

    async def is_available(self) -> bool:
        return self._config.has_share_credentials

    async def ensure_session(self) -> ShareSession:
        """Return a valid session, logging in when needed."""
        async with self._login_lock:
            if self._session is not None and not self._session.is_expired:
                return self._session
            return await self._login()

    async def _login(self) -> ShareSession:
        username = self._config.share_username
        password = self._config.share_password
        if not username or not password:
            raise FeedAuthenticationError("Share credentials are not configured", source=self.label)

        base_url = self._config.share_base_url
        application_id = self._config.share_application_id
        account_id = await _share_api.authenticate_account(
            self._transport, base_url, username, password, application_id
        )
        session_id = await _share_api.login_by_id(self._transport, base_url, account_id, password, application_id)
        self._session = ShareSession(
            session_id=session_id,
            account_id=account_id,
            ttl=self._config.share_session_ttl,
        )
        _logger.debug("Share login succeeded against %s", base_url)
        return self._session

    async def _call_with_reauth(self, fn: Callable[[ShareSession], Awaitable[T]]) -> T:
        """Run a session-scoped call, renewing the session once on expiry."""
        session = await self.ensure_session()
        try:
            return await fn(session)
        except FeedSessionExpiredError:
            _logger.info("Share session expired; logging in again")
            self.invalidate_session()
            session = await self.ensure_session()
            return await fn(session)

    def request_span(self, start: datetime) -> tuple[int, int]:
        """``(minutes, max_count)`` needed to cover *start* up to now."""
        elapsed = ensure_utc(self._clock()) - start
        minutes = _share_api.clamp_minutes(math.ceil(elapsed.total_seconds() / 60))
        interval_minutes = int(CGM_SAMPLE_INTERVAL.total_seconds() // 60)
        max_count = _share_api.clamp_count(minutes // interval_minutes)
        return minutes, max_count

    async def fetch_readings(self, start: datetime, end: datetime) -> list[Reading]:
        start = ensure_utc(start)
        end = ensure_utc(end)
        check_range(start, end, source=self.label)
        minutes, max_count = self.request_span(start)
        base_url = self._config.share_base_url

        async def _read(session: ShareSession) -> list:
            return await _share_api.read_latest_values(
                self._transport, base_url, session.session_id, minutes, max_count
            )

        payload = await self._call_with_reauth(_read)
        readings = share_readings(payload, start=start, end=end)
        _logger.debug("Share feed: %d readings in [%s, %s]", len(readings), start.isoformat(), end.isoformat())
        return readings
