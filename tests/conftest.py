"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, override

import pytest

from podtrail.errors import StreamError
from podtrail.registry import SessionRegistry
from podtrail.transports import EventBus, StreamTransport

if TYPE_CHECKING:
    from podtrail.models import LogTarget

SAMPLE_LINES = [
    '{"level": "info", "message": "Server started", "port": 8080}',
    "2024-01-15T10:30:01Z ERROR connection refused",
    '{"severity": "WARNING", "msg": "slow query", "ts": "2024-01-15T10:30:02Z"}',
    "[2024-01-15 10:30:03.123 +0000] DEBUG cache miss",
    "\x1b[31mFATAL\x1b[0m disk full",
    "plain text without a level",
    "2024-01-15 10:30:05 TRACE entering handler",
]


class FakeTransport(StreamTransport):
    """In-memory transport: records open/close calls, lets tests push batches."""

    def __init__(self, bus: EventBus, initial: dict[str, list[str]] | None = None) -> None:
        super().__init__(bus)
        self.initial = initial or {}
        self.failing: set[str] = set()
        self.opened: dict[str, LogTarget] = {}
        self.open_calls: list[dict[str, object]] = []
        self.closed: list[str] = []
        self.gate: asyncio.Event | None = None

    @override
    async def open_stream(
        self,
        session_id: str,
        target: LogTarget,
        *,
        container: str | None = None,
        tail_lines: int | None = None,
        since_seconds: int | None = None,
    ) -> list[str]:
        self.open_calls.append(
            {
                "session_id": session_id,
                "target": target,
                "container": container,
                "tail_lines": tail_lines,
                "since_seconds": since_seconds,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if target.name in self.failing:
            raise StreamError(session_id, f"{target.name} unavailable")
        self.opened[session_id] = target
        return list(self.initial.get(target.name, []))

    @override
    def close_stream(self, session_id: str) -> None:
        self.closed.append(session_id)
        self.opened.pop(session_id, None)

    def push(self, session_id: str, lines: list[str]) -> None:
        self.emit_lines(session_id, lines)

    def session_for(self, name: str) -> str:
        """Most recent session id opened for a target name."""
        for call in reversed(self.open_calls):
            target = call["target"]
            if getattr(target, "name", None) == name:
                return str(call["session_id"])
        msg = f"no stream opened for {name}"
        raise KeyError(msg)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def transport(bus: EventBus) -> FakeTransport:
    return FakeTransport(bus)


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()
