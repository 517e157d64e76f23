"""Engine configuration for glucosync."""

from __future__ import annotations

import dataclasses
import os
from datetime import timedelta
from typing import Any

from glucosync._constants import (
    DEDUP_TOLERANCE,
    GAP_THRESHOLD,
    OFFICIAL_BASE_URL,
    OFFICIAL_DELAY_HOURS,
    SHARE_APPLICATION_ID,
    SHARE_SERVERS,
)
from glucosync.exceptions import ConfigError


def _resolve_share_server(server: str) -> str:
    server = server.strip()
    if server.startswith("https://") or server.startswith("http://"):
        return server.rstrip("/")
    try:
        return SHARE_SERVERS[server.lower()]
    except KeyError:
        raise ConfigError(
            f"Unknown share_server {server!r}; expected one of {sorted(SHARE_SERVERS)} or a URL"
        ) from None


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Engine configuration.

    Parameters
    ----------
    official_base_url : str
        Official feed base URL. Defaults to the EU endpoint.
    official_access_token : str or None
        OAuth bearer token for the official feed. Obtaining and refreshing
        it is the job of the authentication screens; a token provider can
        also be injected into :class:`~glucosync.adapters.OfficialFeedAdapter`.
    official_delay_hours : int
        Hours after measurement before the official feed serves a reading.
    official_split_buffer : timedelta
        Extra margin subtracted from the official availability boundary
        when splitting a window between the two live feeds.
    share_server : str
        ``"us"``, ``"international"`` or a full base URL.
    share_username : str or None
        Share account name (email, phone or username).
    share_password : str or None
        Share account password.
    share_application_id : str
        Application id sent on Share login.
    share_session_ttl : float
        Seconds a Share session id is reused before logging in again.
    window_hours : float
        Length of the rolling chart window ending now.
    minimum_refresh_interval : float
        Seconds during which a non-forced refresh is a no-op once data
        has been published.
    adapter_timeout : float
        Upper bound, in seconds, for every adapter call.
    dedup_tolerance : timedelta
        Two readings closer than this are the same physical sample.
    gap_threshold : timedelta
        A larger distance between consecutive points is a data gap.
    health_store_limit : int
        Maximum samples read from the health store per refresh.
    store_path : str
        SQLite file for the persistent reading store (``":memory:"`` allowed).
    persist_live_readings : bool
        Upsert accepted live readings into the store after each refresh.
    """

    official_base_url: str = OFFICIAL_BASE_URL
    official_access_token: str | None = None
    official_delay_hours: int = OFFICIAL_DELAY_HOURS
    official_split_buffer: timedelta = timedelta(minutes=15)
    share_server: str = "international"
    share_username: str | None = None
    share_password: str | None = None
    share_application_id: str = SHARE_APPLICATION_ID
    share_session_ttl: float = 24 * 3600
    window_hours: float = 24.0
    minimum_refresh_interval: float = 30.0
    adapter_timeout: float = 15.0
    dedup_tolerance: timedelta = DEDUP_TOLERANCE
    gap_threshold: timedelta = GAP_THRESHOLD
    health_store_limit: int = 2000
    store_path: str = "glucosync.sqlite3"
    persist_live_readings: bool = True

    def __post_init__(self) -> None:
        if self.official_delay_hours < 0:
            raise ConfigError(f"official_delay_hours must be >= 0, got {self.official_delay_hours}")
        if self.window_hours <= 0:
            raise ConfigError(f"window_hours must be > 0, got {self.window_hours}")
        if self.adapter_timeout <= 0:
            raise ConfigError(f"adapter_timeout must be > 0, got {self.adapter_timeout}")
        if self.minimum_refresh_interval < 0:
            raise ConfigError(f"minimum_refresh_interval must be >= 0, got {self.minimum_refresh_interval}")
        if self.dedup_tolerance < timedelta(0) or self.gap_threshold <= timedelta(0):
            raise ConfigError("dedup_tolerance must be >= 0 and gap_threshold > 0")
        if self.health_store_limit < 1:
            raise ConfigError(f"health_store_limit must be >= 1, got {self.health_store_limit}")
        _resolve_share_server(self.share_server)

    @property
    def share_base_url(self) -> str:
        """Resolved Share base URL for :attr:`share_server`."""
        return _resolve_share_server(self.share_server)

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.window_hours)

    @property
    def has_share_credentials(self) -> bool:
        return bool(self.share_username and self.share_password)

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from environment variables.

        Reads ``GLUCOSYNC_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SyncConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "GLUCOSYNC_OFFICIAL_BASE_URL": "official_base_url",
            "GLUCOSYNC_OFFICIAL_ACCESS_TOKEN": "official_access_token",
            "GLUCOSYNC_SHARE_SERVER": "share_server",
            "GLUCOSYNC_SHARE_USERNAME": "share_username",
            "GLUCOSYNC_SHARE_PASSWORD": "share_password",
            "GLUCOSYNC_SHARE_APPLICATION_ID": "share_application_id",
            "GLUCOSYNC_STORE_PATH": "store_path",
        }
        _ENV_FLOAT_MAP = {
            "GLUCOSYNC_SHARE_SESSION_TTL": "share_session_ttl",
            "GLUCOSYNC_WINDOW_HOURS": "window_hours",
            "GLUCOSYNC_MIN_REFRESH_INTERVAL": "minimum_refresh_interval",
            "GLUCOSYNC_ADAPTER_TIMEOUT": "adapter_timeout",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)

            delay_env = env.get("GLUCOSYNC_OFFICIAL_DELAY_HOURS")
            if delay_env is not None and "official_delay_hours" not in overrides:
                config_kwargs["official_delay_hours"] = int(delay_env)

            limit_env = env.get("GLUCOSYNC_HEALTH_STORE_LIMIT")
            if limit_env is not None and "health_store_limit" not in overrides:
                config_kwargs["health_store_limit"] = int(limit_env)

            dedup_env = env.get("GLUCOSYNC_DEDUP_TOLERANCE_SECONDS")
            if dedup_env is not None and "dedup_tolerance" not in overrides:
                config_kwargs["dedup_tolerance"] = timedelta(seconds=float(dedup_env))

            gap_env = env.get("GLUCOSYNC_GAP_THRESHOLD_MINUTES")
            if gap_env is not None and "gap_threshold" not in overrides:
                config_kwargs["gap_threshold"] = timedelta(minutes=float(gap_env))
        except ValueError as exc:
            raise ConfigError(f"Invalid numeric GLUCOSYNC_* environment value: {exc}") from exc

        if "persist_live_readings" not in overrides:
            config_kwargs["persist_live_readings"] = _env_bool(env.get("GLUCOSYNC_PERSIST_LIVE_READINGS"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
