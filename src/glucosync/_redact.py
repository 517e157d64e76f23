"""Helpers for safe debug logging.

Feed requests carry account passwords, bearer tokens and Share session ids
(the latter even in the query string). Everything logged at DEBUG goes
through these helpers first.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "accountname",
        "accountid",
        "sessionid",
        "authorization",
        "access_token",
        "accesstoken",
        "refresh_token",
        "refreshtoken",
        "client_secret",
        "cookie",
    }
)

_MASK = "<redacted>"


def _is_sensitive(key: Any) -> bool:
    return str(key).replace("-", "_").lower() in _SENSITIVE_KEYS


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a copy of *value* with secrets masked and long strings cut."""
    if _depth > 10:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, Mapping):
        return {
            str(k): _MASK if _is_sensitive(k) else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        if len(value) > 20:
            return f"<list:{len(value)} items>"
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]
    return repr(value)


def redact_url(url: str) -> str:
    """Mask sensitive query parameters such as ``sessionId``."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [(k, _MASK if _is_sensitive(k) else v) for k, v in parse_qsl(parts.query, keep_blank_values=True)]
    return urlunsplit(parts._replace(query=urlencode(query, safe="<>")))
