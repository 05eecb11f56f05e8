"""PurpleIQ rich error messages.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from purpleiq.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from purpleiq.errors import AllProvidersFailedError, ErrorKind, ProviderError
from purpleiq.providers.credentials import env_var_for


def err_no_api_key(provider: str) -> str:
    """No usable API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = env_var_for(provider) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_all_providers_failed(exc: AllProvidersFailedError) -> str:
    """Every provider and model failed; list what was tried."""
    lines = ["[red]Error:[/] All AI providers failed."]
    for err in exc.errors:
        where = "/".join(p for p in (err.provider, err.model) if p)
        lines.append(f"  - {where or 'unknown'}: {err.kind.value}: {err.user_message}")
    missing = sorted({e.provider for e in exc.errors if e.kind is ErrorKind.API_KEY_MISSING and e.provider})
    for provider in missing:
        env_var = env_var_for(provider) or f"{provider.upper()}_API_KEY"
        lines.append(f"  Set:  export {env_var}=...")
    if not missing:
        lines.append("  Check your network connection and provider status, then retry.")
    return "\n".join(lines)


def err_provider(exc: ProviderError) -> str:
    """Single classified provider error (embedding calls, for example)."""
    if isinstance(exc, AllProvidersFailedError):
        return err_all_providers_failed(exc)
    if exc.kind is ErrorKind.API_KEY_MISSING and exc.provider:
        return err_no_api_key(exc.provider)
    return f"[red]Error:[/] {exc.user_message}\n  Details: {exc}"


def err_config(message: str) -> str:
    """Configuration could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix purpleiq.yaml (or ~/.purpleiq/config.yaml) and retry."
    )


def err_invalid_project(message: str) -> str:
    return (
        f"[red]Error:[/] {message}\n"
        "  Use letters, digits, '.', '_' or '-' (max 128 characters)."
    )


def err_no_documents(project_id: str) -> str:
    """Project has no indexed documents."""
    return (
        f"[yellow]Warning:[/] Project '{project_id}' has no indexed documents.\n"
        f"  Run:  purpleiq ingest --project {project_id} --source <file>"
    )


def err_unsupported_source(path: str, reason: str) -> str:
    return f"  [red]✗ Skipped:[/] {path}: {reason}"
