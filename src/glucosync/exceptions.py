"""Custom exception hierarchy for glucosync."""

from __future__ import annotations

from typing import Any


class GlucoseSyncError(Exception):
    """Base exception for all glucosync errors."""


class ConfigError(GlucoseSyncError):
    """Invalid or missing configuration."""


class ReadingStoreError(GlucoseSyncError):
    """The local reading store could not be read or written."""


class FeedError(GlucoseSyncError):
    """A reading source failed.

    ``source`` is the adapter label (``"official"``, ``"share"``,
    ``"health_store"``) so fallback logging can name the failing tier.
    """

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = source
        super().__init__(message)


class FeedTransportError(FeedError):
    """Network-level failure (connection refused, DNS, reset, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        source: str = "",
        endpoint: str = "",
    ) -> None:
        self.endpoint = endpoint
        super().__init__(message, source=source)


class FeedTimeoutError(FeedTransportError):
    """The adapter call exceeded its bounded timeout."""


class FeedApiError(FeedError):
    """The feed answered with an unusable status or payload.

    ``body`` holds the decoded error payload when the feed sent one.
    """

    def __init__(
        self,
        message: str,
        *,
        source: str = "",
        status_code: int | None = None,
        endpoint: str = "",
        body: Any = None,
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body
        super().__init__(message, source=source)


class FeedAuthenticationError(FeedApiError):
    """Credentials missing or rejected by the feed.

    Needs user action (reconnect the account); never retried automatically.
    """


class FeedSessionExpiredError(FeedAuthenticationError):
    """Session token rejected by the feed.

    The share adapter catches this internally to renew its session once.
    """


class FeedRateLimitError(FeedApiError):
    """The feed throttled the request (HTTP 429)."""


class FeedWindowError(FeedError):
    """Requested time range cannot be served by this feed.

    Raised for inverted ranges, ranges longer than the feed allows, and
    official-feed requests ending past the data-delay boundary.
    """


class HealthStorePermissionError(FeedError):
    """The user has not granted read access to glucose in the health store.

    Surfaced to the user as an actionable message; never retried.
    """


class AllFeedsFailedError(FeedError):
    """Both live feeds failed and there was no baseline to fall back to."""

    def __init__(self, message: str, *, causes: list[BaseException] | None = None) -> None:
        self.causes: list[BaseException] = list(causes or [])
        super().__init__(message, source="hybrid")
