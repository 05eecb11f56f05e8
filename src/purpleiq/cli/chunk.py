"""purpleiq chunk: preview how a document would be chunked (no network)."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from purpleiq.cli.errors import err_config, err_unsupported_source
from purpleiq.config import ConfigError, load_config
from purpleiq.ingest import BoundaryChunker, UnsupportedDocumentError, read_document

console = Console()

_PREVIEW_CHARS = 60


def chunk_cmd(
    source: Annotated[
        Path,
        typer.Option("--source", "-s", help="Document to chunk."),
    ],
    size: Annotated[
        int | None,
        typer.Option("--size", help="Target chunk size in characters (200-1000)."),
    ] = None,
    overlap: Annotated[
        int | None,
        typer.Option("--overlap", help="Overlap between chunks in characters."),
    ] = None,
) -> None:
    """Show the chunks a document would be split into."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    try:
        text = read_document(source)
    except (UnsupportedDocumentError, OSError) as exc:
        console.print(err_unsupported_source(str(source), str(exc)))
        raise typer.Exit(1)

    chunker = BoundaryChunker(
        size if size is not None else cfg.chunking.target_size,
        overlap if overlap is not None else cfg.chunking.overlap,
    )
    chunks = chunker.chunk(text, document_name=source.name)
    if not chunks:
        console.print("[yellow]No chunks produced (empty document).[/]")
        raise typer.Exit(0)

    table = Table(title=f"{source.name}: {len(chunks)} chunks", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Span", justify="right")
    table.add_column("Chars", justify="right")
    table.add_column("~Tokens", justify="right")
    table.add_column("Section")
    table.add_column("Preview")
    for c in chunks:
        preview = " ".join(c.text.split())
        if len(preview) > _PREVIEW_CHARS:
            preview = preview[:_PREVIEW_CHARS] + "…"
        table.add_row(
            str(c.index),
            f"{c.char_start}-{c.char_end}",
            str(c.char_length),
            str(BoundaryChunker.count_tokens(c.text)),
            c.section or "",
            preview,
        )
    console.print(table)
    console.print(
        f"[dim]target={chunker.target_size} overlap={chunker.overlap} "
        f"document={len(text):,} chars[/]"
    )
