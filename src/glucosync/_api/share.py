"""Share web service endpoints.

Endpoints:
  - POST /ShareWebServices/Services/General/AuthenticatePublisherAccount
  - POST /ShareWebServices/Services/General/LoginPublisherAccountById
  - POST /ShareWebServices/Services/Publisher/ReadPublisherLatestGlucoseValues

Login is a two-step exchange: account name and password yield an account
id, which together with the password yields a session id. Readings are
then read with the session id in the query string.

Share reports faults as HTTP 500 with a JSON body such as
``{"Code": "SessionIdNotFound", "Message": "..."}``.
"""

from __future__ import annotations

import logging
from typing import Any, NoReturn

from glucosync._constants import (
    SHARE_AUTHENTICATE_PATH,
    SHARE_BAD_CREDENTIAL_CODES,
    SHARE_LOGIN_BY_ID_PATH,
    SHARE_MAX_COUNT,
    SHARE_MAX_MINUTES,
    SHARE_MIN_COUNT,
    SHARE_NULL_SESSION_ID,
    SHARE_READINGS_PATH,
    SHARE_SESSION_EXPIRED_CODES,
    SHARE_USER_AGENT,
)
from glucosync._transport import Transport
from glucosync.exceptions import FeedApiError, FeedAuthenticationError, FeedSessionExpiredError

_logger = logging.getLogger(__name__)

SOURCE = "share"

_HEADERS: dict[str, str] = {
    "content-type": "application/json",
    "user-agent": SHARE_USER_AGENT,
}


def _fault_code(body: Any) -> str | None:
    if isinstance(body, dict):
        code = body.get("Code") or body.get("code")
        if code:
            return str(code)
    return None


def _raise_for_fault(exc: FeedApiError, endpoint: str, *, session_scoped: bool) -> NoReturn:
    """Re-raise a Share fault as the most specific feed error.

    On session-scoped calls an unexplained 401 or 500 also means the
    session id is no longer valid.
    """
    code = _fault_code(exc.body)
    expired = code in SHARE_SESSION_EXPIRED_CODES or (
        session_scoped and code not in SHARE_BAD_CREDENTIAL_CODES and exc.status_code in (401, 500)
    )
    if expired:
        raise FeedSessionExpiredError(
            f"Share session rejected ({code})",
            source=SOURCE,
            status_code=exc.status_code,
            endpoint=endpoint,
            body=exc.body,
        ) from exc
    if code in SHARE_BAD_CREDENTIAL_CODES:
        raise FeedAuthenticationError(
            f"Share credentials rejected ({code})",
            source=SOURCE,
            status_code=exc.status_code,
            endpoint=endpoint,
            body=exc.body,
        ) from exc
    raise exc


async def _post(
    transport: Transport,
    base_url: str,
    path: str,
    *,
    session_scoped: bool = False,
    **kwargs: Any,
) -> Any:
    try:
        return await transport.request_json(
            "POST",
            f"{base_url.rstrip('/')}{path}",
            headers=_HEADERS,
            source=SOURCE,
            **kwargs,
        )
    except FeedApiError as exc:
        _raise_for_fault(exc, path, session_scoped=session_scoped)


def _require_id(value: Any, what: str, endpoint: str) -> str:
    if not isinstance(value, str) or not value.strip() or value == SHARE_NULL_SESSION_ID:
        raise FeedAuthenticationError(
            f"Share login returned no usable {what}",
            source=SOURCE,
            endpoint=endpoint,
            body=value,
        )
    return value


async def authenticate_account(
    transport: Transport,
    base_url: str,
    username: str,
    password: str,
    application_id: str,
) -> str:
    """Exchange account name and password for the Share account id."""
    body = {"accountName": username, "password": password, "applicationId": application_id}
    account_id = await _post(transport, base_url, SHARE_AUTHENTICATE_PATH, json=body)
    return _require_id(account_id, "account id", SHARE_AUTHENTICATE_PATH)


async def login_by_id(
    transport: Transport,
    base_url: str,
    account_id: str,
    password: str,
    application_id: str,
) -> str:
    """Exchange an account id and password for a session id."""
    body = {"accountId": account_id, "password": password, "applicationId": application_id}
    session_id = await _post(transport, base_url, SHARE_LOGIN_BY_ID_PATH, json=body)
    return _require_id(session_id, "session id", SHARE_LOGIN_BY_ID_PATH)


def clamp_minutes(minutes: int) -> int:
    return max(1, min(int(minutes), SHARE_MAX_MINUTES))


def clamp_count(count: int) -> int:
    return max(SHARE_MIN_COUNT, min(int(count), SHARE_MAX_COUNT))


async def read_latest_values(
    transport: Transport,
    base_url: str,
    session_id: str,
    minutes: int,
    max_count: int,
) -> list[Any]:
    """Read the latest glucose entries, newest first as Share returns them.

    ``minutes`` is clamped to 1..1440 and ``max_count`` to 1..288.

    Raises
    ------
    FeedSessionExpiredError
        If Share no longer accepts *session_id*.
    FeedApiError
        If the response is not a JSON list.
    """
    params = {
        "sessionId": session_id,
        "minutes": clamp_minutes(minutes),
        "maxCount": clamp_count(max_count),
    }
    payload = await _post(transport, base_url, SHARE_READINGS_PATH, session_scoped=True, params=params)
    if payload is None:
        return []
    if not isinstance(payload, list):
        code = _fault_code(payload)
        if code in SHARE_SESSION_EXPIRED_CODES:
            raise FeedSessionExpiredError(
                f"Share session rejected ({code})",
                source=SOURCE,
                endpoint=SHARE_READINGS_PATH,
                body=payload,
            )
        raise FeedApiError(
            f"Unexpected Share readings payload type {type(payload).__name__}",
            source=SOURCE,
            endpoint=SHARE_READINGS_PATH,
            body=payload,
        )
    _logger.debug(
        "Share returned %d entries (minutes=%s maxCount=%s)",
        len(payload),
        params["minutes"],
        params["maxCount"],
    )
    return payload
