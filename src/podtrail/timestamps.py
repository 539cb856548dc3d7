"""Timestamp extraction and normalization for text log lines."""

from __future__ import annotations

import re
from datetime import UTC, datetime

# ISO 8601: "2024-01-15T10:30:00Z", "2024-01-15T10:30:00.123+00:00"
_ISO_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?")

# Bracketed: "[2024-01-15 10:30:00]", "[2024-01-15 10:30:00.123 +0000]", "[10:30:00]"
_BRACKET_RE = re.compile(
    r"\[(?P<ts>\d{4}-\d{2}-\d{2}[\sT]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:\s*[+-]\d{4})?|\d{2}:\d{2}:\d{2}(?:\.\d+)?)\]"
)

# Bare date-space-time without a T: "2024-01-15 10:30:00", "2024-01-15 10:30:00.123 +0000"
_DATETIME_SPACE_RE = re.compile(r"\d{4}-\d{2}-\d{2}\s\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:\s*[+-]\d{4})?")

_DATE_TIME_SEP_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\s(\d{2}:\d{2}:\d{2})")
_COMPACT_OFFSET_RE = re.compile(r"\s*([+-])(\d{2})(\d{2})$")


def normalize_timestamp(raw: str) -> str:
    """Rewrite a date-time into ISO 8601 shape.

    "2024-01-15 10:30:00.123 +0000" -> "2024-01-15T10:30:00.123+00:00"
    """
    ts = raw.strip()
    ts = _DATE_TIME_SEP_RE.sub(r"\1T\2", ts)
    return _COMPACT_OFFSET_RE.sub(r"\1\2:\3", ts)


def extract_timestamp(text: str) -> str | None:
    """Find the first timestamp in a line: ISO, then bracketed, then bare date-time."""
    m = _ISO_RE.search(text)
    if m:
        return m.group(0)
    m = _BRACKET_RE.search(text)
    if m:
        return normalize_timestamp(m.group("ts"))
    m = _DATETIME_SPACE_RE.search(text)
    if m:
        return normalize_timestamp(m.group(0))
    return None


def parse_instant(ts: str | None) -> datetime | None:
    """Parse a normalized timestamp into an aware datetime.

    Naive values are read as UTC. Time-only values carry no date and yield None.
    """
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt
