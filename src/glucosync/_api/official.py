"""Official feed estimated glucose values endpoint.

Endpoint:
  - GET /v3/users/self/egvs?startDate=...&endDate=...

Both dates are UTC wall-clock times without an offset.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from glucosync._constants import OFFICIAL_DATE_FORMAT, OFFICIAL_EGVS_PATH
from glucosync._transport import Transport
from glucosync.exceptions import FeedApiError

_logger = logging.getLogger(__name__)

SOURCE = "official"


def format_official_date(value: datetime) -> str:
    """Format *value* as the UTC ``YYYY-MM-DDTHH:MM:SS`` form the API expects."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(OFFICIAL_DATE_FORMAT)


def build_egvs_params(start: datetime, end: datetime) -> dict[str, str]:
    return {
        "startDate": format_official_date(start),
        "endDate": format_official_date(end),
    }


async def fetch_egvs(
    transport: Transport,
    base_url: str,
    access_token: str,
    start: datetime,
    end: datetime,
) -> dict[str, Any]:
    """Fetch the raw ``egvs`` envelope for ``[start, end]``.

    Raises
    ------
    FeedApiError
        If the response is not a JSON object.
    """
    url = f"{base_url.rstrip('/')}{OFFICIAL_EGVS_PATH}"
    payload = await transport.request_json(
        "GET",
        url,
        params=build_egvs_params(start, end),
        headers={"authorization": f"Bearer {access_token}"},
        source=SOURCE,
    )
    if not isinstance(payload, dict):
        raise FeedApiError(
            f"Unexpected egvs payload type {type(payload).__name__}",
            source=SOURCE,
            endpoint=OFFICIAL_EGVS_PATH,
            body=payload,
        )
    records = payload.get("records")
    _logger.debug("egvs returned %s records", len(records) if isinstance(records, list) else 0)
    return payload
