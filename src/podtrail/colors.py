"""Level and search highlight styles for terminal output."""

from __future__ import annotations

from rich.style import Style

from podtrail.models import LogLevel

# (label, foreground) per level; "unknown" lines are shown as OTHER
_LEVEL_STYLES: dict[LogLevel, tuple[str, str]] = {
    LogLevel.ERROR: ("ERROR", "#f87171"),
    LogLevel.WARN: ("WARN", "#facc15"),
    LogLevel.INFO: ("INFO", "#60a5fa"),
    LogLevel.DEBUG: ("DEBUG", "#9ca3af"),
    LogLevel.TRACE: ("TRACE", "#6b7280"),
    LogLevel.UNKNOWN: ("OTHER", "#a3a3a3"),
}

# Amber background with white text, matching the in-browser <mark> highlight
_SEARCH_BG = "#6e5600"


def level_label(level: LogLevel) -> str:
    """Short filter-chip label for a level."""
    return _LEVEL_STYLES[level][0]


def level_style(level: LogLevel) -> Style:
    """Foreground style for a level badge."""
    return Style(color=_LEVEL_STYLES[level][1], bold=level == LogLevel.ERROR)


def search_match_style() -> Style:
    """Highlight style for search matches."""
    return Style(bgcolor=_SEARCH_BG, color="#ffffff")
