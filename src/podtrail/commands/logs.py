"""Logs command - follow one pod or workload and print classified, filtered lines."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.text import Text

from podtrail.colors import level_label, level_style
from podtrail.commands.common import (
    ContextOption,
    FileOption,
    GrepOption,
    NamespaceOption,
    SinceOption,
    build_transport,
    load_app_config,
    parse_since,
)
from podtrail.markup import render_text
from podtrail.models import ALL_LOG_LEVELS, LogLevel, LogTarget, ParsedLine, TargetKind
from podtrail.registry import SessionRegistry
from podtrail.streams import LogStream
from podtrail.transports import EventBus
from podtrail.utils import compact_count
from podtrail.viewer import LogWindow

if TYPE_CHECKING:
    from pathlib import Path

    from podtrail.config import AppConfig

_LABEL_WIDTH = 5


def format_line(line: ParsedLine, query: str = "") -> Text:
    """Level badge followed by the colored line with search matches highlighted."""
    text = Text()
    text.append(level_label(line.level).ljust(_LABEL_WIDTH), style=level_style(line.level))
    text.append(" ")
    text.append_text(render_text(line.raw, query))
    return text


class LinePrinter:
    """Prints the lines of a window that have not been printed yet.

    The first flush (and the first flush after the buffer is cleared) prints
    the newest page; later flushes print only lines appended since.
    """

    def __init__(self, window: LogWindow, console: Console) -> None:
        self.window = window
        self.console = console
        self._position: int | None = None
        self._generation = -1

    def flush(self) -> int:
        session = self.window.session
        if session is None:
            return 0
        query = session.search_query
        if self._position is None or session.generation != self._generation:
            lines = self.window.snapshot().lines
        else:
            parsed = self.window.parsed_lines()
            fresh = parsed[max(0, self._position - session.evicted) :]
            lines = [line for line in fresh if self.window.accepts(line, query)]
        self._position = session.evicted + len(session.lines)
        self._generation = session.generation
        for line in lines:
            self.console.print(format_line(line, query), soft_wrap=True)
        return len(lines)


def summary_line(counts: dict[LogLevel, int]) -> Text:
    """Per-level badge counts, e.g. `ERROR 3  WARN 1k`."""
    text = Text()
    for level in ALL_LOG_LEVELS:
        if not counts.get(level):
            continue
        if text:
            text.append("  ")
        text.append(level_label(level), style=level_style(level))
        text.append(f" {compact_count(counts[level])}")
    return text


def _resolve_file_target(file: Path, name: str) -> tuple[Path, str]:
    """Root directory and target name for the file transport."""
    if file.is_dir():
        return file, name
    return file.parent, file.name


async def _follow(
    config: AppConfig,
    target: LogTarget,
    *,
    container: str | None,
    seconds: int | None,
    grep: str | None,
    levels: list[LogLevel] | None,
    namespace: str | None,
    context: str | None,
    root: Path | None,
    follow: bool,
    console: Console,
) -> None:
    bus = EventBus()
    transport = build_transport(bus, config, namespace=namespace, context=context, root=root, follow=follow)
    registry = SessionRegistry()
    session_id = registry.open_log_session(target, container=container)
    window = LogWindow(registry, session_id, config.classifier)
    if grep:
        window.set_search_query(grep)
    if levels:
        window.active_levels = set(levels)
    printer = LinePrinter(window, console)
    stream = LogStream(registry, transport, session_id, tail_lines=config.tail_lines, since_seconds=seconds)
    interval = config.batch_interval_ms / 1000
    try:
        await stream.start()
        while True:
            printer.flush()
            session = registry.get(session_id)
            if session is None or not session.is_streaming:
                break
            await asyncio.sleep(interval)
        printer.flush()
        if summary := summary_line(window.snapshot().level_counts):
            Console(stderr=True, highlight=False).print(summary)
    finally:
        registry.close(session_id)


def logs(
    target: Annotated[str, typer.Argument(help="Pod or workload name")],
    kind: Annotated[TargetKind, typer.Option("--kind", "-k", help="Workload kind of TARGET")] = TargetKind.POD,
    container: Annotated[str | None, typer.Option("--container", "-c", help="Container to stream")] = None,
    since: SinceOption = None,
    grep: GrepOption = None,
    level: Annotated[
        list[LogLevel] | None, typer.Option("--level", "-l", help="Only show these levels (repeatable)")
    ] = None,
    namespace: NamespaceOption = None,
    context: ContextOption = None,
    file: FileOption = None,
    follow: Annotated[bool, typer.Option("--follow/--no-follow", help="Keep reading new lines (file sources)")] = True,  # noqa: FBT002
) -> None:
    """Follow the logs of one pod or workload."""
    config = load_app_config()
    seconds = parse_since(since)

    root: Path | None = None
    name = target
    if file is not None:
        if not file.exists():
            typer.echo(f"Error: {file} does not exist", err=True)
            raise typer.Exit(1)
        root, name = _resolve_file_target(file, target)

    console = Console(highlight=False)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(
            _follow(
                config,
                LogTarget(kind=kind, name=name),
                container=container,
                seconds=seconds,
                grep=grep,
                levels=level,
                namespace=namespace,
                context=context,
                root=root,
                follow=follow,
                console=console,
            )
        )
