"""Log streaming from local files, optionally tailing."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING, override

import aiofiles

from podtrail.errors import StreamError
from podtrail.transports.base import EventBus, StreamTransport

if TYPE_CHECKING:
    from podtrail.models import LogTarget

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


class FileTransport(StreamTransport):
    """Serves a local file as a log source.

    The target name is resolved against `root` (a pod called `api-0` reads
    `root/api-0.log` when that exists, else `root/api-0`). The initial batch
    holds the last `tail_lines` lines; with `follow`, appended lines are
    emitted as they are written and truncation restarts from the top.
    """

    def __init__(self, bus: EventBus, root: Path | None = None, *, follow: bool = True) -> None:
        super().__init__(bus)
        self.root = root or Path()
        self.follow = follow
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def resolve(self, target: LogTarget, container: str | None = None) -> Path:
        name = f"{target.name}_{container}" if container else target.name
        candidate = self.root / f"{name}.log"
        return candidate if candidate.exists() else self.root / name

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
        path = self.resolve(target, container)
        try:
            async with aiofiles.open(path) as f:
                content = await f.read()
                position = await f.tell()
        except OSError as exc:
            raise StreamError(session_id, f"cannot read {path}: {exc}") from exc

        lines = content.splitlines()
        if tail_lines is not None:
            lines = list(deque(lines, maxlen=tail_lines)) if tail_lines > 0 else []

        if self.follow:
            self._tasks[session_id] = asyncio.create_task(self._tail(session_id, path, position))
        else:
            # Deliver end-of-stream after the caller has consumed the initial batch
            asyncio.get_running_loop().call_soon(self.emit_ended, session_id)
        return lines

    @override
    def close_stream(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def _tail(self, session_id: str, path: Path, position: int) -> None:
        try:
            async with aiofiles.open(path) as f:
                await f.seek(position)
                last_size = position
                while True:
                    chunk = await f.read()
                    if chunk:
                        self.emit_lines(session_id, chunk.splitlines())
                        last_size = await f.tell()
                        continue
                    try:
                        current_size = path.stat().st_size
                    except OSError:
                        await asyncio.sleep(_POLL_INTERVAL * 2)
                        continue
                    if current_size < last_size:
                        # File was truncated, seek to beginning
                        await f.seek(0)
                    last_size = current_size
                    await asyncio.sleep(_POLL_INTERVAL)
        except OSError as exc:
            logger.warning("tailing %s stopped: %s", path, exc)
            self.emit_lines(session_id, [f"[Error reading logs: {exc}]"])
        finally:
            self._tasks.pop(session_id, None)
            self.emit_ended(session_id)
