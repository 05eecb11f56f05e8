"""purpleiq ingest: chunk, embed and store documents for a project.

Supported sources:
  .pdf                           → pypdf text extraction
  .html / .htm                   → BeautifulSoup + html2text
  .txt .md .rst .csv .log .json  → read as text
  directory                      → expanded to supported files (--recursive for subdirs)
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from purpleiq.agent.service import QAService
from purpleiq.cli.errors import err_config, err_invalid_project, err_provider, err_unsupported_source
from purpleiq.config import ConfigError, PurpleIQConfig, load_config
from purpleiq.errors import InvalidProjectIdError, ProviderError
from purpleiq.ingest import UnsupportedDocumentError, read_document
from purpleiq.ingest.readers import SUPPORTED_EXTS
from purpleiq.store import validate_project_id

console = Console()

_MAX_DEPTH = 10


def ingest_cmd(
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project identifier."),
    ],
    source: Annotated[
        list[Path] | None,
        typer.Option("--source", "-s", help="Document or directory path (repeatable)."),
    ] = None,
    recursive: Annotated[
        bool,
        typer.Option("--recursive", help="Recurse into subdirectories (max 10 levels)."),
    ] = False,
) -> None:
    """Index documents into a project's vector store."""
    if not source:
        console.print("[red]Error:[/] No --source specified. Use --source PATH.")
        raise typer.Exit(1)

    try:
        validate_project_id(project)
    except InvalidProjectIdError as exc:
        console.print(err_invalid_project(str(exc)))
        raise typer.Exit(1)

    cfg = _config_or_exit()
    paths = _expand_sources(source, recursive=recursive)
    if not paths:
        console.print("[yellow]No supported documents found to ingest.[/]")
        raise typer.Exit(0)

    documents: list[tuple[str, str]] = []
    for path in paths:
        try:
            documents.append((path.name, read_document(path)))
        except (UnsupportedDocumentError, OSError) as exc:
            console.print(err_unsupported_source(str(path), str(exc)))

    if not documents:
        raise typer.Exit(1)

    service = QAService(cfg)
    total = 0
    for name, text in documents:
        console.print(f"\n[bold]→ {name}[/]")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task("Chunking and embedding…", total=None)
            try:
                added = asyncio.run(service.ingest(project, name, text))
            except ProviderError as exc:
                console.print(err_provider(exc))
                raise typer.Exit(1)

        if added:
            console.print(f"  [green]✓[/] {added} chunks indexed")
        else:
            console.print("  [yellow]✗ No chunks produced (empty document)[/]")
        total += added

    console.print(f"\n[green]Done.[/] {total} chunks added to project [bold]{project}[/].")


def _config_or_exit() -> PurpleIQConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def _expand_sources(sources: list[Path], recursive: bool) -> list[Path]:
    """Expand directories into supported files; keep explicit file paths as given."""
    result: list[Path] = []
    for src in sources:
        if src.is_dir():
            result.extend(_walk(src, recursive, depth=0))
        else:
            result.append(src)
    return result


def _walk(directory: Path, recursive: bool, depth: int) -> list[Path]:
    found: list[Path] = []
    for entry in sorted(directory.iterdir()):
        if entry.is_file() and entry.suffix.lower() in SUPPORTED_EXTS:
            found.append(entry)
        elif entry.is_dir() and recursive and depth < _MAX_DEPTH and not entry.name.startswith("."):
            found.extend(_walk(entry, recursive, depth + 1))
    return found
