"""Duration parsing for lease TTLs and retry intervals.

Accepts the forms operators tend to write in job definitions::

    60            -> 60.0 seconds
    2.5           -> 2.5 seconds
    "500ms"       -> 0.5
    "1s" / "1m"   -> 1.0 / 60.0
    "1.5h"        -> 5400.0
    "1d"          -> 86400.0
    timedelta(minutes=2) -> 120.0
"""

from __future__ import annotations

import re
from datetime import timedelta

from fleetcron.core.errors import ValidationError

_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "m": 60.0,
    "min": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

_PATTERN = re.compile(r"^\s*(?P<amount>\d+(?:\.\d+)?)\s*(?P<unit>ms|sec|min|s|m|h|d)?\s*$", re.IGNORECASE)


def parse_duration(value: float | int | str | timedelta, *, field: str = "duration") -> float:
    """Return ``value`` as a non-negative number of seconds.

    Raises:
        ValidationError: For negative numbers or unparseable strings
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, bool):
        raise ValidationError(f"Invalid {field}: {value!r}", field=field, value=value)
    elif isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        match = _PATTERN.match(value)
        if not match:
            raise ValidationError(f"Invalid {field}: {value!r}", field=field, value=value)
        unit = (match.group("unit") or "s").lower()
        seconds = float(match.group("amount")) * _UNITS[unit]
    else:
        raise ValidationError(f"Invalid {field}: {value!r}", field=field, value=value)

    if seconds < 0:
        raise ValidationError(f"{field} must be >= 0, got {value!r}", field=field, value=value)
    return seconds


def format_duration(seconds: float) -> str:
    """Render seconds compactly for logs (``1500ms``, ``60s``)."""
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    if seconds == int(seconds):
        return f"{int(seconds)}s"
    return f"{seconds:.3f}s"
