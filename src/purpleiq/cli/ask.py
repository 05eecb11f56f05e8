"""purpleiq ask: answer a QA question against a project's documents."""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import Annotated

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from purpleiq.agent.service import QAResponse, QAService
from purpleiq.cli.errors import err_config, err_invalid_project, err_no_documents, err_provider
from purpleiq.config import ConfigError, load_config
from purpleiq.errors import InvalidProjectIdError, ProviderError
from purpleiq.events import Event

console = Console()


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question or task for the QA assistant.")],
    project: Annotated[
        str,
        typer.Option("--project", "-p", help="Project identifier."),
    ],
    provider: Annotated[
        str | None,
        typer.Option("--provider", help="Provider to try first (e.g. openai, gemini)."),
    ] = None,
    events: Annotated[
        bool,
        typer.Option("--events", help="Print request state and gateway events as they happen."),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the full response as JSON."),
    ] = False,
) -> None:
    """Ask a question; the intent decides which QA workflow answers it."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    service = QAService(cfg)
    try:
        response = asyncio.run(_ask(service, project, question, provider, events))
    except InvalidProjectIdError as exc:
        console.print(err_invalid_project(str(exc)))
        raise typer.Exit(1)
    except ProviderError as exc:
        console.print(err_provider(exc))
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(response.to_dict(), default=str))
        return
    _render(response, project)


async def _ask(
    service: QAService,
    project: str,
    question: str,
    provider: str | None,
    show_events: bool,
) -> QAResponse:
    async with service:
        if not show_events:
            return await service.ask(project, question, provider)

        queue = service.events.subscribe()
        printer = asyncio.create_task(_print_events(queue))
        try:
            return await service.ask(project, question, provider)
        finally:
            printer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await printer
            while not queue.empty():
                _print_event(queue.get_nowait())
            service.events.unsubscribe(queue)


async def _print_events(queue: asyncio.Queue[Event]) -> None:
    while True:
        _print_event(await queue.get())


def _print_event(event: Event) -> None:
    details = " ".join(f"{k}={v}" for k, v in event.data.items())
    console.print(f"[dim]· {event.name}[/] {details}")


def _render(response: QAResponse, project: str) -> None:
    retrieval_error = response.metadata.get("retrievalError")
    if retrieval_error:
        console.print(f"[yellow]Warning:[/] Document search failed, answered without project context: {retrieval_error}")
    elif not response.sources:
        console.print(err_no_documents(project))

    console.print(Panel(Markdown(response.answer), title=f"[bold]{response.workflow}[/]", expand=False))

    parts = [
        f"intent={response.intent.value}",
        f"provider={response.provider}/{response.model}",
        f"retries={response.retries}",
    ]
    if response.failover_used:
        parts.append("failover")
    if response.fallback_used:
        parts.append("[yellow]fallback answer[/]")
    if response.quality_score is not None:
        status = "[green]valid[/]" if response.validated else "[yellow]unvalidated[/]"
        parts.append(f"quality={response.quality_score} {status}")
    console.print("[dim]" + "  ".join(parts) + "[/]")

    if response.sources:
        names = ", ".join(dict.fromkeys(s["documentName"] for s in response.sources))
        console.print(f"[dim]Sources: {names}[/]")
    for warning in response.metadata.get("warnings", []):
        console.print(f"[yellow]Warning:[/] {warning}")
