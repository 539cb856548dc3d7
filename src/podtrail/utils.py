"""Shared utilities for podtrail."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

import dateparser

_TIME_UNITS: dict[str, str] = {
    "s": "seconds",
    "sec": "seconds",
    "second": "seconds",
    "seconds": "seconds",
    "m": "minutes",
    "min": "minutes",
    "minute": "minutes",
    "minutes": "minutes",
    "h": "hours",
    "hour": "hours",
    "hours": "hours",
    "d": "days",
    "day": "days",
    "days": "days",
    "w": "weeks",
    "week": "weeks",
    "weeks": "weeks",
}


def parse_time(value: str, now: datetime | None = None) -> datetime:
    """Parse a point in time.

    Supports:
    - Relative shorthand: 5m, 1h, 2d, 30s, 1week
    - Natural language: "2 hours ago", "yesterday 7:58"
    - ISO 8601: 2024-01-15T10:30:00Z
    """
    stripped = value.strip()
    ref = now or datetime.now(tz=UTC)

    match = re.match(r"^(\d+)\s*([a-z]+)$", stripped.lower())
    if match:
        amount = int(match.group(1))
        unit = match.group(2)
        if unit in _TIME_UNITS:
            return ref - timedelta(**{_TIME_UNITS[unit]: amount})

    settings: dict[str, object] = {
        "TIMEZONE": "UTC",
        "RETURN_AS_TIMEZONE_AWARE": True,
        "PREFER_DATES_FROM": "past",
        "RELATIVE_BASE": ref.replace(tzinfo=None),
    }
    result = dateparser.parse(stripped, settings=settings)
    if result is not None:
        return result

    msg = f"Cannot parse time: {value!r}"
    raise ValueError(msg)


def since_seconds(value: str | None, now: datetime | None = None) -> int | None:
    """Convert a `--since` value into whole seconds before now; None or "0" means all time."""
    if value is None or value.strip() in {"", "0"}:
        return None
    ref = now or datetime.now(tz=UTC)
    seconds = int((ref - parse_time(value, now=ref)).total_seconds())
    return max(seconds, 1)


def compact_count(count: int) -> str:
    """Badge text for a level count: 999, then 1k, 2k, ..."""
    return f"{count // 1000}k" if count > 999 else str(count)  # noqa: PLR2004
