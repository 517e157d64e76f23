"""HTTP transport for the glucose feeds with typed error mapping."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from glucosync._redact import redact_for_log, redact_url
from glucosync.exceptions import (
    FeedApiError,
    FeedAuthenticationError,
    FeedRateLimitError,
    FeedTimeoutError,
    FeedTransportError,
)

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the endpoint modules.

    Endpoint modules only ever see this protocol, so tests can pass
    in-memory doubles while production code uses :class:`HttpTransport`.
    """

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        source: str = "",
    ) -> Any: ...


def _decode_body(text: str) -> Any:
    """Best-effort decode of an error body; ``None`` when it is not JSON."""
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _parse_json(text: str) -> Any:
    return json.loads(text)


class HttpTransport:
    """JSON-over-HTTP transport backed by a caller-owned aiohttp session.

    Non-2xx statuses become :class:`FeedApiError` subclasses carrying the
    decoded error body; network failures become :class:`FeedTransportError`.
    """

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        source: str = "",
    ) -> Any:
        request_headers = {"accept": "application/json"}
        if headers:
            request_headers.update(headers)
        query = {k: str(v) for k, v in params.items()} if params else None

        _logger.debug(
            "%s %s params=%s body=%s",
            method,
            redact_url(url),
            redact_for_log(query),
            redact_for_log(json),
        )

        try:
            async with self._http.request(
                method,
                url,
                params=query,
                json=json,
                headers=request_headers,
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except asyncio.TimeoutError as exc:
            raise FeedTimeoutError(
                f"Request to {redact_url(url)} timed out",
                source=source,
                endpoint=url,
            ) from exc
        except aiohttp.ClientError as exc:
            raise FeedTransportError(
                f"Request to {redact_url(url)} failed: {exc}",
                source=source,
                endpoint=url,
            ) from exc

        if status < 200 or status >= 300:
            body = _decode_body(text)
            _logger.debug("HTTP %s from %s: %s", status, redact_url(url), redact_for_log(body))
            message = f"HTTP {status} from {redact_url(url)}: {text[:200]}"
            if status in (401, 403):
                raise FeedAuthenticationError(message, source=source, status_code=status, endpoint=url, body=body)
            if status == 429:
                raise FeedRateLimitError(message, source=source, status_code=status, endpoint=url, body=body)
            raise FeedApiError(message, source=source, status_code=status, endpoint=url, body=body)

        if not text.strip():
            return None
        try:
            return _parse_json(text)
        except ValueError as exc:
            raise FeedTransportError(
                f"Invalid JSON from {redact_url(url)}: {text[:200]}",
                source=source,
                endpoint=url,
            ) from exc

