"""CLI entry point for podtrail."""

from __future__ import annotations

import logging
import os
import sys
from typing import Annotated

import typer

from podtrail.commands.errors import errors
from podtrail.commands.logs import logs

app = typer.Typer(add_completion=False, help="Stream, filter and triage Kubernetes pod logs.")
app.command()(logs)
app.command()(errors)


def configure_logging(*, verbose: bool = False) -> None:
    """Send library logging to stderr. `--verbose` wins over PODTRAIL_LOG_LEVEL."""
    if verbose:
        level = logging.DEBUG
    else:
        name = os.environ.get("PODTRAIL_LOG_LEVEL", "WARNING").upper()
        level = logging.getLevelNamesMapping().get(name, logging.WARNING)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def _root(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output to stderr")] = False,  # noqa: FBT002
) -> None:
    configure_logging(verbose=verbose)


def main() -> None:
    """Entry point for the CLI."""
    app()
