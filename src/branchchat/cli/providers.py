"""Factory functions for CLI commands.

Centralizes creation of settings, the backend client and the reconciler
from the environment. Hides configuration details from command
implementations.
"""

from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.text import Text

from ..api import ChatBackend, create_chat_backend
from ..catalog import ModelSelection
from ..config import Settings, load_settings
from ..conversation import ReconcilerCallback, StreamingReconciler

# Default console for output
_console = Console()

_LEVEL_STYLES = {
    "debug": "dim",
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
}


def get_settings(console: Console | None = None) -> Settings:
    """Load settings from the environment.

    Raises:
        SystemExit: If a variable holds an invalid value
    """
    con = console or _console
    try:
        return load_settings()
    except (ValidationError, ValueError) as e:
        con.print(f"[red]Error: invalid configuration: {e}[/red]")
        raise typer.Exit(code=1)


def get_backend(settings: Settings, debug_callback: Any | None = None) -> ChatBackend:
    """Create the HTTP backend client for ``settings``.

    Environment variables (via Settings):
        BRANCHCHAT_API_URL: Backend base URL
        BRANCHCHAT_TOKEN: Bearer token
        BRANCHCHAT_TIMEOUT: Request timeout in seconds
    """
    backend = create_chat_backend(
        "http",
        base_url=settings.api_url,
        token=settings.token,
        timeout=settings.timeout,
    )
    if debug_callback is not None:
        backend.set_debug_callback(debug_callback)
    return backend


def require_ready(backend: ChatBackend, console: Console | None = None) -> None:
    """Stop the command when no token is configured.

    Raises:
        SystemExit: If authentication is not ready
    """
    con = console or _console
    if not backend.is_ready:
        con.print("[red]Error: not signed in, set BRANCHCHAT_TOKEN[/red]")
        raise typer.Exit(code=1)


def get_reconciler(
    backend: ChatBackend,
    settings: Settings,
    callback: ReconcilerCallback | None = None,
    debug_callback: Any | None = None,
) -> StreamingReconciler:
    """Create a reconciler using the configured typing delay and failure policies.

    The CLI has no typing animation, so the placeholder delay is skipped.
    """
    reconciler = StreamingReconciler(
        backend,
        callback=callback,
        typing_delay=0,
        single_failure=settings.single_failure,
        dual_failure=settings.dual_failure,
    )
    if debug_callback is not None:
        reconciler.set_debug_callback(debug_callback)
    return reconciler


def get_selection(
    settings: Settings,
    provider: str | None,
    model: str | None,
    console: Console | None = None,
) -> ModelSelection:
    """Combine command line options with the configured defaults.

    An explicit provider without a model picks that provider's first model.

    Raises:
        SystemExit: If the provider is unknown
    """
    con = console or _console
    try:
        if provider is None:
            return ModelSelection(provider=settings.provider, model=model or settings.model)
        return ModelSelection(provider=provider, model=model)
    except ValidationError as e:
        con.print(f"[red]Error: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(code=1)


def debug_printer(console: Console) -> Any:
    """Build a debug callback that prints to ``console``.

    Returns:
        Callable(level: str, component: str, message: str)
    """
    def _print(level: str, component: str, message: str) -> None:
        line = Text()
        line.append(f"{level.upper():<7}", style=_LEVEL_STYLES.get(level, "white"))
        line.append(f"[{component}] ", style="bold")
        line.append(message)
        console.print(line)

    return _print
