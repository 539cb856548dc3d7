"""Tests for binding log sessions to a transport."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from podtrail.models import LogTarget
from podtrail.streams import LogStream
from podtrail.transports import EventBus, log_data_channel, log_ended_channel

if TYPE_CHECKING:
    from conftest import FakeTransport

    from podtrail.registry import SessionRegistry


def _lines(registry: SessionRegistry, sid: str) -> list[str]:
    session = registry.get(sid)
    assert session is not None
    return list(session.lines)


class TestLogStream:
    @pytest.mark.asyncio
    async def test_initial_and_pushed_batches(self, registry: SessionRegistry, transport: FakeTransport) -> None:
        transport.initial["api-0"] = ["one", "two"]
        sid = registry.open_log_session(LogTarget(name="api-0"), container="app")
        stream = LogStream(registry, transport, sid, tail_lines=100, since_seconds=60)
        await stream.start()
        transport.push(sid, ["three"])
        assert _lines(registry, sid) == ["one", "two", "three"]
        call = transport.open_calls[0]
        assert call["container"] == "app"
        assert call["tail_lines"] == 100
        assert call["since_seconds"] == 60

    @pytest.mark.asyncio
    async def test_ended_marks_not_streaming(self, registry: SessionRegistry, transport: FakeTransport) -> None:
        sid = registry.open_log_session(LogTarget(name="api-0"))
        await LogStream(registry, transport, sid).start()
        transport.emit_ended(sid)
        session = registry.get(sid)
        assert session is not None
        assert not session.is_streaming

    @pytest.mark.asyncio
    async def test_open_failure_is_visible(self, registry: SessionRegistry, transport: FakeTransport) -> None:
        transport.failing.add("ghost")
        sid = registry.open_log_session(LogTarget(name="ghost"))
        await LogStream(registry, transport, sid).start()
        session = registry.get(sid)
        assert session is not None
        assert not session.is_streaming
        assert list(session.lines) == ["[Error starting log stream: ghost unavailable]"]

    @pytest.mark.asyncio
    async def test_close_stops_source_once_and_drops_late_batches(
        self, registry: SessionRegistry, transport: FakeTransport, bus: EventBus
    ) -> None:
        sid = registry.open_log_session(LogTarget(name="api-0"))
        stream = LogStream(registry, transport, sid)
        await stream.start()
        registry.close(sid)
        stream.close()
        assert transport.closed == [sid]
        assert stream.closed
        assert not bus.has_subscribers(log_data_channel(sid))
        assert not bus.has_subscribers(log_ended_channel(sid))
        transport.push(sid, ["late"])
        assert registry.get(sid) is None

    @pytest.mark.asyncio
    async def test_close_during_open(self, registry: SessionRegistry, transport: FakeTransport, bus: EventBus) -> None:
        transport.initial["api-0"] = ["early"]
        transport.gate = asyncio.Event()
        sid = registry.open_log_session(LogTarget(name="api-0"))
        stream = LogStream(registry, transport, sid)
        task = asyncio.create_task(stream.start())
        await asyncio.sleep(0)
        registry.close(sid)
        transport.gate.set()
        await task
        assert transport.closed == [sid]
        assert not bus.has_subscribers(log_data_channel(sid))

    @pytest.mark.asyncio
    async def test_restart_switches_container(self, registry: SessionRegistry, transport: FakeTransport) -> None:
        transport.initial["api-0"] = ["x"]
        sid = registry.open_log_session(LogTarget(name="api-0"), container="app")
        stream = LogStream(registry, transport, sid)
        await stream.start()
        await stream.restart("sidecar")
        assert transport.closed == [sid]
        assert transport.open_calls[-1]["container"] == "sidecar"
        assert _lines(registry, sid) == ["x"]
        transport.push(sid, ["y"])
        assert _lines(registry, sid) == ["x", "y"]
        registry.close(sid)
        assert transport.closed == [sid, sid]


class TestEventBus:
    def test_subscribe_emit_unsubscribe(self) -> None:
        bus = EventBus()
        seen: list[object] = []
        unsubscribe = bus.subscribe("ch", seen.append)
        bus.emit("ch", 1)
        unsubscribe()
        unsubscribe()
        bus.emit("ch", 2)
        assert seen == [1]

    def test_failing_handler_does_not_block_others(self) -> None:
        bus = EventBus()
        seen: list[object] = []

        def boom(_payload: object) -> None:
            raise RuntimeError("x")

        bus.subscribe("ch", boom)
        bus.subscribe("ch", seen.append)
        bus.emit("ch", "p")
        assert seen == ["p"]
