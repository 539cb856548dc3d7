"""Log streaming through `kubectl logs -f`."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import TYPE_CHECKING, override

from podtrail.errors import StreamError
from podtrail.models import LogTarget, TargetKind
from podtrail.transports.base import EventBus, StreamTransport

if TYPE_CHECKING:
    from asyncio.subprocess import Process

logger = logging.getLogger(__name__)

DEFAULT_TAIL_LINES = 1000
DEFAULT_BATCH_INTERVAL = 0.05
# Longer lines are cut here and marked
DEFAULT_MAX_LINE_BYTES = 1024 * 1024
TRUNCATED_MARKER = " [line truncated]"


def kubectl_target(target: LogTarget) -> str:
    """Resource argument for `kubectl logs`: bare pod name or `<kind>/<name>`."""
    if target.kind == TargetKind.POD:
        return target.name
    return f"{target.kind.value}/{target.name}"


def build_command(
    target: LogTarget,
    *,
    kubectl: str = "kubectl",
    context: str | None = None,
    namespace: str | None = None,
    container: str | None = None,
    tail_lines: int = DEFAULT_TAIL_LINES,
    since_seconds: int | None = None,
) -> list[str]:
    """Assemble the `kubectl logs -f` argument vector."""
    cmd = [kubectl, "logs", "-f", kubectl_target(target)]
    if namespace:
        cmd += ["-n", namespace]
    if context:
        cmd += ["--context", context]
    cmd += ["--tail", str(tail_lines)]
    if since_seconds:
        cmd += ["--since", f"{since_seconds}s"]
    if container:
        cmd += ["-c", container]
    return cmd


class KubectlTransport(StreamTransport):
    """Runs one `kubectl logs -f` process per session and emits batched lines."""

    def __init__(
        self,
        bus: EventBus,
        *,
        kubectl: str = "kubectl",
        context: str | None = None,
        namespace: str | None = None,
        batch_interval: float = DEFAULT_BATCH_INTERVAL,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ) -> None:
        super().__init__(bus)
        self.kubectl = kubectl
        self.context = context
        self.namespace = namespace
        self.batch_interval = batch_interval
        self.max_line_bytes = max_line_bytes
        self._processes: dict[str, Process] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

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
        cmd = build_command(
            target,
            kubectl=self.kubectl,
            context=self.context,
            namespace=self.namespace,
            container=container,
            tail_lines=tail_lines if tail_lines is not None else DEFAULT_TAIL_LINES,
            since_seconds=since_seconds,
        )
        logger.debug("starting %s", " ".join(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self.emit_lines(session_id, [f"[Failed to start kubectl: {exc}]"])
            self.emit_ended(session_id)
            raise StreamError(session_id, str(exc)) from exc

        self._processes[session_id] = process
        self._tasks[session_id] = asyncio.create_task(self._pump(session_id, process))
        return []

    @override
    def close_stream(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None and not task.done():
            task.cancel()
        process = self._processes.pop(session_id, None)
        if process is not None and process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()

    async def _pump(self, session_id: str, process: Process) -> None:
        """Forward stdout in time-bounded batches and stderr line by line."""
        assert process.stdout is not None  # noqa: S101
        assert process.stderr is not None  # noqa: S101
        stderr_task = asyncio.create_task(self._pump_stderr(session_id, process.stderr))
        batch: list[str] = []
        last_emit = time.monotonic()
        pending_line: asyncio.Future[bytes] | None = None
        try:
            while True:
                if pending_line is None:
                    pending_line = asyncio.ensure_future(self._read_line(process.stdout))
                timeout = None
                if batch:
                    timeout = max(0.0, last_emit + self.batch_interval - time.monotonic())
                done, _ = await asyncio.wait({pending_line}, timeout=timeout)
                if not done:
                    # Batch window elapsed with no new line
                    self.emit_lines(session_id, batch)
                    batch = []
                    last_emit = time.monotonic()
                    continue
                try:
                    raw = pending_line.result()
                except OSError as exc:
                    batch.append(f"[Error reading logs: {exc}]")
                    break
                finally:
                    pending_line = None
                if not raw:
                    break
                batch.append(self._decode(raw))
                now = time.monotonic()
                if now - last_emit >= self.batch_interval:
                    self.emit_lines(session_id, batch)
                    batch = []
                    last_emit = now
            self.emit_lines(session_id, batch)
            await stderr_task
        finally:
            if pending_line is not None:
                pending_line.cancel()
            stderr_task.cancel()
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
            self._processes.pop(session_id, None)
            self._tasks.pop(session_id, None)
            self.emit_ended(session_id)

    async def _pump_stderr(self, session_id: str, stream: asyncio.StreamReader) -> None:
        while raw := await self._read_line(stream):
            self.emit_lines(session_id, [f"[stderr] {self._decode(raw).rstrip()}"])

    async def _read_line(self, stream: asyncio.StreamReader) -> bytes:
        """Read one line of any length; b"" at end of stream.

        Lines longer than the reader's buffer limit are drained chunk by chunk
        and kept up to `max_line_bytes`. A cut line ends in `TRUNCATED_MARKER`.
        """
        line = bytearray()
        truncated = False
        while True:
            try:
                chunk = await stream.readuntil(b"\n")
                done = True
            except asyncio.IncompleteReadError as exc:
                chunk = exc.partial
                done = True
            except asyncio.LimitOverrunError as exc:
                chunk = await stream.readexactly(exc.consumed)
                done = False
            room = self.max_line_bytes - len(line)
            if len(chunk.rstrip(b"\r\n")) > room:
                line += chunk[:room]
                truncated = True
            elif not truncated:
                line += chunk
            if done:
                break
        if truncated:
            logger.debug("truncated a log line longer than %d bytes", self.max_line_bytes)
            line += TRUNCATED_MARKER.encode()
        return bytes(line)

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.decode(errors="replace").rstrip("\r\n")
