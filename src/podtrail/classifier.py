"""Line classifier: raw text line to level, timestamp and message."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from podtrail.ansi import strip_ansi
from podtrail.models import ClassifierConfig, LogLevel, ParsedLine
from podtrail.timestamps import extract_timestamp

if TYPE_CHECKING:
    from collections.abc import Iterable

# JSON field names to check for log level (in priority order)
DEFAULT_JSON_LEVEL_FIELDS: tuple[str, ...] = ("level", "severity", "log_level", "loglevel", "levelname")

# Log level normalization mapping
DEFAULT_LEVEL_MAPPING: dict[str, LogLevel] = {
    "error": LogLevel.ERROR,
    "err": LogLevel.ERROR,
    "fatal": LogLevel.ERROR,
    "critical": LogLevel.ERROR,
    "panic": LogLevel.ERROR,
    "alert": LogLevel.ERROR,
    "emerg": LogLevel.ERROR,
    "emergency": LogLevel.ERROR,
    "warn": LogLevel.WARN,
    "warning": LogLevel.WARN,
    "info": LogLevel.INFO,
    "information": LogLevel.INFO,
    "notice": LogLevel.INFO,
    "debug": LogLevel.DEBUG,
    "trace": LogLevel.TRACE,
    "verbose": LogLevel.TRACE,
}

DEFAULT_CONFIG = ClassifierConfig(
    json_level_fields=DEFAULT_JSON_LEVEL_FIELDS,
    level_mapping=DEFAULT_LEVEL_MAPPING,
)

# Text patterns for log level detection, highest priority first
_TEXT_LEVEL_PATTERNS: tuple[tuple[re.Pattern[str], LogLevel], ...] = (
    (re.compile(r"\b(ERROR|ERR|FATAL|CRITICAL|PANIC|ALERT|EMERG|EMERGENCY)\b", re.IGNORECASE), LogLevel.ERROR),
    (re.compile(r"\b(WARN|WARNING)\b", re.IGNORECASE), LogLevel.WARN),
    (re.compile(r"\b(INFO|INFORMATION|NOTICE)\b", re.IGNORECASE), LogLevel.INFO),
    (re.compile(r"\b(DEBUG)\b", re.IGNORECASE), LogLevel.DEBUG),
    (re.compile(r"\b(TRACE|VERBOSE)\b", re.IGNORECASE), LogLevel.TRACE),
)

_MESSAGE_JSON_KEYS = ("message", "msg")
_TIMESTAMP_JSON_KEYS = ("timestamp", "time", "ts", "@timestamp")


def classify(raw: str, config: ClassifierConfig = DEFAULT_CONFIG) -> ParsedLine:
    """Classify one raw line.

    JSON objects are read field-wise; anything else (including malformed JSON
    and arrays) goes through word-boundary level detection on the
    escape-stripped text. Never raises.
    """
    plain = strip_ansi(raw)

    parsed_json = _parse_json_object(plain)
    if parsed_json is not None:
        timestamp = _first_string(parsed_json, _TIMESTAMP_JSON_KEYS)
        message = _first_string(parsed_json, _MESSAGE_JSON_KEYS)
        return ParsedLine(
            raw=raw,
            level=_json_level(parsed_json, config),
            timestamp=timestamp if timestamp is not None else extract_timestamp(plain),
            message=message if message is not None else plain,
        )

    return ParsedLine(
        raw=raw,
        level=detect_text_level(plain, config),
        timestamp=extract_timestamp(plain),
        message=plain,
    )


def classify_many(lines: Iterable[str], config: ClassifierConfig = DEFAULT_CONFIG) -> list[ParsedLine]:
    """Classify a batch of lines, preserving order."""
    return [classify(line, config) for line in lines]


def detect_text_level(text: str, config: ClassifierConfig = DEFAULT_CONFIG) -> LogLevel:
    """Scan for level tokens in priority order; a configured alias beats the fixed default."""
    for pattern, default_level in _TEXT_LEVEL_PATTERNS:
        m = pattern.search(text)
        if m:
            mapped = config.resolve(m.group(1))
            return mapped if mapped != LogLevel.UNKNOWN else default_level
    return LogLevel.UNKNOWN


def _parse_json_object(text: str) -> dict[str, Any] | None:
    """Parse text as a JSON object, or None if it is anything else."""
    trimmed = text.lstrip()
    if not trimmed.startswith("{"):
        return None
    try:
        parsed = json.loads(trimmed)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _json_level(parsed_json: dict[str, Any], config: ClassifierConfig) -> LogLevel:
    for key in config.json_level_fields:
        value = parsed_json.get(key)
        if isinstance(value, str) and value:
            level = config.resolve(value)
            if level != LogLevel.UNKNOWN:
                return level
    return LogLevel.UNKNOWN


def _first_string(parsed_json: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = parsed_json.get(key)
        if isinstance(value, str):
            return value
    return None
