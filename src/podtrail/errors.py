"""Exception types for podtrail."""

from __future__ import annotations


class PodtrailError(Exception):
    """Base class for podtrail errors."""


class StreamError(PodtrailError):
    """A log source could not be opened or failed while streaming."""

    def __init__(self, session_id: str, reason: str) -> None:
        super().__init__(f"stream {session_id}: {reason}")
        self.session_id = session_id
        self.reason = reason


class ConfigError(PodtrailError):
    """Persisted configuration could not be read."""
