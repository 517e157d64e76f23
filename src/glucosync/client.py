"""High-level async client wiring the sync engine together."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from glucosync._transport import HttpTransport
from glucosync.adapters.base import TokenProvider
from glucosync.adapters.health_store import DeviceHealthStoreAdapter, HealthStoreBackend
from glucosync.adapters.official import OfficialFeedAdapter
from glucosync.adapters.share import ShareFeedAdapter
from glucosync.config import SyncConfig
from glucosync.exceptions import GlucoseSyncError
from glucosync.models.sync import RefreshResult
from glucosync.store import PersistentReadingStore
from glucosync.sync.events import RefreshEventChannel
from glucosync.sync.orchestrator import MealTimeSource, SyncOrchestrator

_logger = logging.getLogger(__name__)


class GlucoseSyncClient:
    """Async client owning the HTTP session, store and orchestrator.

    Usage::

        async with GlucoseSyncClient(SyncConfig.from_env()) as client:
            result = await client.refresh()
            for point in result.points:
                ...

    The official feed adapter is created when an access token or token
    provider is present, the Share adapter when credentials are configured,
    and the health-store adapter when a backend is passed in.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        store: PersistentReadingStore | None = None,
        health_store_backend: HealthStoreBackend | None = None,
        meal_source: MealTimeSource | None = None,
        token_provider: TokenProvider | None = None,
        on_publish: Callable[[RefreshResult], None] | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._external_store = store is not None
        self._store = store
        self._health_store_backend = health_store_backend
        self._meal_source = meal_source
        self._token_provider = token_provider
        self._on_publish = on_publish
        self._orchestrator: SyncOrchestrator | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GlucoseSyncClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        if self._store is None:
            self._store = PersistentReadingStore(self._config.store_path)
        transport = HttpTransport(self._http_session, timeout=self._config.adapter_timeout)

        official = None
        if self._config.official_access_token or self._token_provider is not None:
            official = OfficialFeedAdapter(self._config, transport, token_provider=self._token_provider)
        share = ShareFeedAdapter(self._config, transport) if self._config.has_share_credentials else None
        health_store = None
        if self._health_store_backend is not None:
            health_store = DeviceHealthStoreAdapter(
                self._health_store_backend,
                limit=self._config.health_store_limit,
                timeout=self._config.adapter_timeout,
            )
        _logger.debug(
            "Sync engine ready: official=%s share=%s health_store=%s store=%s",
            official is not None,
            share is not None,
            health_store is not None,
            self._store.path,
        )

        self._orchestrator = SyncOrchestrator(
            self._config,
            store=self._store,
            official=official,
            share=share,
            health_store=health_store,
            meals=self._meal_source,
            on_publish=self._on_publish,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._orchestrator = None
        if not self._external_store and self._store is not None:
            self._store.close()
            self._store = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def orchestrator(self) -> SyncOrchestrator:
        if self._orchestrator is None:
            raise GlucoseSyncError("Client not initialized. Use 'async with GlucoseSyncClient(...) as client:'")
        return self._orchestrator

    async def refresh(self, force: bool = False) -> RefreshResult:
        """Refresh and return the published series."""
        return await self.orchestrator.refresh(force=force)

    def snapshot(self) -> RefreshResult:
        return self.orchestrator.snapshot()

    async def consume(self, channel: RefreshEventChannel) -> None:
        await self.orchestrator.consume(channel)
