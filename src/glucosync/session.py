"""Share session state."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

#: Default Share session time-to-live in seconds (24 hours).
#: Share does not return an expiry; a rejected session is renewed on demand.
DEFAULT_SESSION_TTL: float = 24 * 3600


class ShareSession(BaseModel):
    """Authenticated Share session.

    Parameters
    ----------
    session_id : str
        Session id returned by ``LoginPublisherAccountById``.
    account_id : str
        Account id returned by ``AuthenticatePublisherAccount``.
    created_at : float
        Monotonic timestamp (``time.monotonic()``) when the session
        was created.  Defaults to *now* if not provided.
    ttl : float
        Time-to-live in seconds.  After this period a new login is made
        before the next read.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    session_id: str
    account_id: str = ""
    created_at: float = Field(default_factory=time.monotonic)
    ttl: float = DEFAULT_SESSION_TTL

    @property
    def is_expired(self) -> bool:
        """Whether the session has exceeded its TTL."""
        return (time.monotonic() - self.created_at) >= self.ttl

    @property
    def age(self) -> float:
        """Seconds since the session was created."""
        return time.monotonic() - self.created_at
