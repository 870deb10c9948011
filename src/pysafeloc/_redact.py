"""Helpers for safe debug logging.

Directory providers are called with API keys in the query string, and
device positions are personal data. This module redacts both before
anything is emitted at DEBUG level.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "key",
        "apikey",
        "api_key",
        "signature",
        "token",
        "authorization",
        "cookie",
    }
)

# Logged with reduced precision (~1 km) instead of being dropped.
_COORDINATE_KEYS: frozenset[str] = frozenset({"lat", "lon", "lng", "latitude", "longitude", "latlng", "location"})


def _coarse(value: Any) -> Any:
    if isinstance(value, float):
        return round(value, 2)
    if isinstance(value, str):
        parts = value.split(",")
        try:
            return ",".join(f"{float(part):.2f}" for part in parts)
        except ValueError:
            return "<redacted>"
    return "<redacted>"


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _COORDINATE_KEYS:
                redacted[key] = _coarse(v)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
