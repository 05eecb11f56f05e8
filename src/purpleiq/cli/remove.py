"""purpleiq remove: delete a project's indexed documents.

Usage:
  purpleiq remove --project acme
  purpleiq remove --project acme --yes
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console

from purpleiq.agent.service import QAService
from purpleiq.cli.errors import err_config, err_invalid_project
from purpleiq.config import ConfigError, load_config
from purpleiq.errors import InvalidProjectIdError

console = Console()


def remove_cmd(
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project identifier to remove."),
    ],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove all vectors stored for a project."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    service = QAService(cfg)
    try:
        chunk_count = asyncio.run(service.store.count(project))
    except InvalidProjectIdError as exc:
        console.print(err_invalid_project(str(exc)))
        raise typer.Exit(1)

    if chunk_count == 0:
        console.print(f"[yellow]Project '{project}' has no indexed documents.[/] Nothing to remove.")
        raise typer.Exit(0)

    console.print(f"\nRemove project: [bold]{project}[/]")
    console.print(f"  Chunks: {chunk_count}")

    if not yes:
        if not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    asyncio.run(service.delete_project(project))
    console.print(f"\n[green]✓[/] Removed: {project} ({chunk_count} chunks deleted)")
