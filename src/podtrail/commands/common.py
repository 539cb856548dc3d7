"""Option helpers shared by the podtrail commands."""

from __future__ import annotations

from pathlib import Path  # noqa: TC003 - typer needs this at runtime for argument parsing
from typing import Annotated

import typer

from podtrail.config import AppConfig, load_config
from podtrail.errors import ConfigError
from podtrail.transports import EventBus, FileTransport, KubectlTransport, StreamTransport
from podtrail.utils import since_seconds

SinceOption = Annotated[
    str | None, typer.Option("--since", "-s", help="Only logs newer than this (5m, 1h, '2 hours ago', ISO 8601)")
]
GrepOption = Annotated[str | None, typer.Option("--grep", "-g", help="Case-insensitive text filter")]
NamespaceOption = Annotated[str | None, typer.Option("--namespace", "-n", help="Namespace (default: from config)")]
ContextOption = Annotated[str | None, typer.Option("--context", help="kubectl context (default: from config)")]
FileOption = Annotated[
    Path | None,
    typer.Option("--file", "-f", help="Read logs from a local file, or a directory of <pod>.log files, not kubectl"),
]


def load_app_config() -> AppConfig:
    """Read the config file strictly; a broken file is a usage error."""
    try:
        return load_config(strict=True)
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)  # noqa: B904


def parse_since(value: str | None) -> int | None:
    try:
        return since_seconds(value)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)  # noqa: B904


def build_transport(
    bus: EventBus,
    config: AppConfig,
    *,
    namespace: str | None = None,
    context: str | None = None,
    root: Path | None = None,
    follow: bool = True,
) -> StreamTransport:
    """kubectl by default, local files when `root` is given."""
    if root is not None:
        return FileTransport(bus, root, follow=follow)
    return KubectlTransport(
        bus,
        kubectl=config.kubectl,
        context=context or config.context,
        namespace=namespace or config.namespace,
        batch_interval=config.batch_interval_ms / 1000,
    )
