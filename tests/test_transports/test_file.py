"""Tests for the local file transport."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from podtrail.errors import StreamError
from podtrail.models import LogTarget
from podtrail.transports import EventBus, FileTransport, log_data_channel, log_ended_channel

if TYPE_CHECKING:
    from pathlib import Path


async def _wait_for(predicate, timeout: float = 3.0) -> None:  # type: ignore[no-untyped-def]
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.02)


class TestFileTransport:
    @pytest.mark.asyncio
    async def test_tail_lines_and_end(self, tmp_path: Path) -> None:
        (tmp_path / "api-0.log").write_text("one\ntwo\nthree\n")
        bus = EventBus()
        ended: list[object] = []
        bus.subscribe(log_ended_channel("s1"), ended.append)
        transport = FileTransport(bus, tmp_path, follow=False)

        initial = await transport.open_stream("s1", LogTarget(name="api-0"), tail_lines=2)
        assert initial == ["two", "three"]
        await asyncio.sleep(0)
        assert ended == [None]

    @pytest.mark.asyncio
    async def test_container_file_and_bare_name(self, tmp_path: Path) -> None:
        (tmp_path / "api-0_sidecar.log").write_text("side\n")
        (tmp_path / "raw.txt").write_text("bare\n")
        transport = FileTransport(EventBus(), tmp_path, follow=False)
        assert await transport.open_stream("s1", LogTarget(name="api-0"), container="sidecar") == ["side"]
        assert await transport.open_stream("s2", LogTarget(name="raw.txt")) == ["bare"]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        transport = FileTransport(EventBus(), tmp_path)
        with pytest.raises(StreamError):
            await transport.open_stream("s1", LogTarget(name="ghost"))

    @pytest.mark.asyncio
    async def test_follow_emits_appended_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "api-0.log"
        path.write_text("first\n")
        bus = EventBus()
        received: list[str] = []
        bus.subscribe(log_data_channel("s1"), lambda batch: received.extend(batch.lines))
        transport = FileTransport(bus, tmp_path)

        initial = await transport.open_stream("s1", LogTarget(name="api-0"))
        assert initial == ["first"]
        with path.open("a") as f:
            f.write("second\nthird\n")
        await _wait_for(lambda: len(received) >= 2)
        assert received == ["second", "third"]
        transport.close_stream("s1")
        transport.close_stream("s1")
        await asyncio.sleep(0)
