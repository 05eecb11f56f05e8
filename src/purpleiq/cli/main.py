"""PurpleIQ CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from purpleiq.cli.ask import ask_cmd
from purpleiq.cli.chunk import chunk_cmd
from purpleiq.cli.ingest import ingest_cmd
from purpleiq.cli.remove import remove_cmd
from purpleiq.cli.status import status_cmd
from purpleiq.config import ConfigError, load_config
from purpleiq.logs import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("purpleiq")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _configured_log_level() -> str:
    # Commands report configuration errors themselves.
    try:
        return load_config().logging.level
    except ConfigError:
        return "WARNING"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"purpleiq {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="purpleiq",
    help=(
        "PurpleIQ: QA assistant over your project documents.\n\n"
        "  purpleiq ingest  Index documents for a project.\n"
        "  purpleiq ask     Ask a question; test cases, bug reports, test plans and more."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log provider calls, retries and failover."),
    ] = False,
) -> None:
    """PurpleIQ: QA assistant over your project documents."""
    configure_logging("DEBUG" if verbose else _configured_log_level())


app.command("ingest")(ingest_cmd)
app.command("chunk")(chunk_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed PurpleIQ version."""
    typer.echo(f"purpleiq {_installed_version()}")


if __name__ == "__main__":
    app()
