"""purpleiq status command.

Shows the project's indexed documents and the provider configuration the
next request would use. With ``--check`` it also runs live health checks
against every provider, the embedding model and vector search.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from purpleiq.agent.service import build_persistence
from purpleiq.cli.errors import err_config, err_invalid_project, err_no_documents
from purpleiq.config import ConfigError, PurpleIQConfig, load_config
from purpleiq.errors import InvalidProjectIdError
from purpleiq.providers.credentials import CredentialStore, requires_key
from purpleiq.providers.health import HealthChecker, HealthReport, HealthState
from purpleiq.store import VectorStore

console = Console()


def status_cmd(
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project identifier."),
    ],
    check: Annotated[
        bool,
        typer.Option("--check", help="Run live provider, embedding and vector-search checks."),
    ] = False,
) -> None:
    """Show indexed documents and provider configuration for a project."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    store = VectorStore(build_persistence(cfg))
    try:
        documents, dimension = asyncio.run(_store_stats(store, project))
    except InvalidProjectIdError as exc:
        console.print(err_invalid_project(str(exc)))
        raise typer.Exit(1)

    # ---- Panel 1: Knowledge base ----
    if documents:
        table = Table(title=f"Project [bold]{project}[/]", show_header=True)
        table.add_column("Document")
        table.add_column("Chunks", justify="right")
        for name, count in sorted(documents.items()):
            table.add_row(name, str(count))
        console.print(table)
        console.print(
            f"Chunks: [bold]{sum(documents.values()):,}[/]  |  "
            f"Dimension: [bold]{dimension}[/]  |  "
            f"Storage: {cfg.storage.backend} ({cfg.storage.data_dir})"
        )
    else:
        console.print(err_no_documents(project))

    # ---- Panel 2: Providers ----
    _show_providers_panel(cfg)

    # ---- Panel 3: Health ----
    if check:
        report = asyncio.run(HealthChecker(cfg).run_all())
        _show_health_panel(report)
        if report.status == "unhealthy":
            raise typer.Exit(1)


async def _store_stats(store: VectorStore, project: str) -> tuple[dict[str, int], int | None]:
    return await store.documents(project), await store.dimension(project)


def _show_providers_panel(cfg: PurpleIQConfig) -> None:
    credentials = CredentialStore()
    lines: list[str] = []
    for i, provider in enumerate(cfg.provider_order()):
        if not requires_key(provider):
            key_state = "[green]no key needed[/]"
        elif credentials.lookup(provider):
            key_state = "[green]key set[/]"
        else:
            key_state = "[yellow]no key[/]"
        models = ", ".join(cfg.providers.models.get(provider, [])) or "[dim](none)[/]"
        marker = "[bold]*[/]" if i == 0 else " "
        lines.append(f"{marker} {provider:<10} {key_state}  {models}")

    lines.append("")
    lines.append(f"Embedding model: {cfg.embedding.model}")
    lines.append(
        f"Retry: {cfg.retry.max_retries}x, {cfg.retry.base_delay:g}s→{cfg.retry.max_delay:g}s  |  "
        f"Timeout: {cfg.providers.timeout:g}s  |  "
        f"Fallback answers: {'on' if cfg.fallback.enabled else 'off'}"
    )
    console.print(Panel("\n".join(lines), title="[bold]Providers[/]", expand=False))


_STATE_STYLE = {
    HealthState.UP: "[green]up[/]",
    HealthState.DEGRADED: "[yellow]degraded[/]",
    HealthState.DOWN: "[red]down[/]",
}


def _show_health_panel(report: HealthReport) -> None:
    table = Table(show_header=True, box=None)
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Error")
    for name, result in report.checks.items():
        error = f"[dim]{result.kind}:[/] {escape(result.error)}" if result.error else ""
        table.add_row(name, _STATE_STYLE[result.state], f"{result.response_time_ms:.0f}ms", error)

    color = {"healthy": "green", "degraded": "yellow"}.get(report.status, "red")
    console.print(
        Panel(
            table,
            title=f"[bold]Health: [{color}]{report.status}[/][/]",
            subtitle=f"{report.total_time_ms:.0f}ms",
            expand=False,
        )
    )
