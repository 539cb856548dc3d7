"""Errors command - aggregate error and warning lines across many pods."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from podtrail.aggregator import ErrorAggregator
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
from podtrail.models import AggregatedEntry, SourceDescriptor
from podtrail.transports import EventBus

if TYPE_CHECKING:
    from pathlib import Path

    from podtrail.aggregator import AggregationHandle
    from podtrail.config import AppConfig

_MAX_SOURCES_SHOWN = 3


def parse_sources(values: list[str]) -> list[SourceDescriptor]:
    """Parse `POD` or `POD=WORKLOAD` arguments."""
    sources: list[SourceDescriptor] = []
    for value in values:
        name, _, workload = value.partition("=")
        name = name.strip()
        if not name:
            msg = f"invalid pod argument {value!r}"
            raise typer.BadParameter(msg)
        sources.append(SourceDescriptor(name=name, workload_name=workload.strip() or None))
    return sources


class ErrorWatch:
    """One aggregation run; keeps its handle so results survive an interrupt."""

    def __init__(self, aggregator: ErrorAggregator) -> None:
        self.aggregator = aggregator
        self.handle: AggregationHandle | None = None

    async def run(
        self,
        sources: list[SourceDescriptor],
        *,
        seconds: int | None,
        grep: str | None,
        workload: str | None,
        duration: float | None,
    ) -> None:
        self.handle = self.aggregator.start(sources, seconds, grep, workload=workload)
        try:
            await self.handle.wait()
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            self.aggregator.stop(self.handle)

    def entries(self) -> list[AggregatedEntry]:
        if self.handle is None:
            return []
        return self.aggregator.entries(self.handle)


def build_table(entries: list[AggregatedEntry]) -> Table:
    table = Table(show_lines=False, expand=True)
    table.add_column("Level", no_wrap=True)
    table.add_column("Count", justify="right", no_wrap=True)
    table.add_column("Last seen", no_wrap=True)
    table.add_column("Workload", no_wrap=True)
    table.add_column("Pods")
    table.add_column("Message", ratio=1)
    for entry in entries:
        pods = sorted(entry.sources)
        shown = ", ".join(pods[:_MAX_SOURCES_SHOWN])
        if len(pods) > _MAX_SOURCES_SHOWN:
            shown += f" +{len(pods) - _MAX_SOURCES_SHOWN}"
        last_seen = datetime.fromtimestamp(entry.epoch_ms / 1000, tz=UTC).strftime("%H:%M:%S")
        table.add_row(
            Text(level_label(entry.level), style=level_style(entry.level)),
            str(entry.count),
            last_seen,
            entry.workload_name,
            shown,
            Text(entry.message.strip()),
        )
    return table


def _make_aggregator(
    config: AppConfig,
    *,
    namespace: str | None,
    context: str | None,
    root: Path | None,
) -> ErrorAggregator:
    transport = build_transport(EventBus(), config, namespace=namespace, context=context, root=root)
    return ErrorAggregator(transport, config.classifier, max_streams=config.max_concurrent_streams)


def errors(
    pods: Annotated[list[str], typer.Argument(help="Pods to watch, as POD or POD=WORKLOAD")],
    workload: Annotated[str | None, typer.Option("--workload", "-w", help="Only watch pods of this workload")] = None,
    since: SinceOption = None,
    grep: GrepOption = None,
    duration: Annotated[
        float | None, typer.Option("--duration", "-d", help="Seconds to collect before printing (default: until Ctrl-C)")
    ] = None,
    namespace: NamespaceOption = None,
    context: ContextOption = None,
    file: FileOption = None,
) -> None:
    """Collect deduplicated errors and warnings from many pods."""
    config = load_app_config()
    seconds = parse_since(since)
    sources = parse_sources(pods)
    if file is not None and not file.is_dir():
        typer.echo(f"Error: {file} is not a directory", err=True)
        raise typer.Exit(1)

    watch = ErrorWatch(_make_aggregator(config, namespace=namespace, context=context, root=file))
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(watch.run(sources, seconds=seconds, grep=grep, workload=workload, duration=duration))

    console = Console(highlight=False)
    entries = watch.entries()
    if not entries:
        console.print("No errors or warnings found.")
        return
    console.print(build_table(entries))
