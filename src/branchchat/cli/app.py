"""Main CLI application using Typer."""
import asyncio
from typing import NoReturn

import typer
from rich.columns import Columns
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..api import BackendError
from ..catalog import PROVIDER_MODELS, providers
from ..conversation import MessageList, SendStatus
from ..dashboard import DashboardService
from .output import ConsoleStreamCallback, chat_forest, messages_table
from .providers import (
    debug_printer,
    get_backend,
    get_reconciler,
    get_selection,
    get_settings,
    require_ready,
)

# Create Typer app
app = typer.Typer(
    name="branchchat",
    help="Client for branching multi-provider chats",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output; debug output goes to stderr so streamed replies stay clean
console = Console()
err_console = Console(stderr=True)

_state = {"verbose": False}


@app.callback()
def _main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Print debug output from the backend client and reconciler"
    ),
):
    _state["verbose"] = verbose


def _debug_callback():
    return debug_printer(err_console) if _state["verbose"] else None


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error: {escape(message)}[/red]")
    raise typer.Exit(code=1)


def _provider_option():
    return typer.Option(None, "--provider", "-p", help="LLM provider (gemini, openai, claude)")


def _model_option():
    return typer.Option(None, "--model", "-m", help="Model (default: provider's first model)")


@app.command()
def chats():
    """Show all chats as a branch tree."""
    async def _chats():
        settings = get_settings(console)
        async with get_backend(settings, _debug_callback()) as backend:
            require_ready(backend, console)
            service = DashboardService(backend)
            try:
                await service.refresh_chats()
            except BackendError as e:
                _fail(str(e))

            if not service.chats:
                console.print("[dim]No chats yet. Create one with: branchchat new[/dim]")
                return
            console.print(chat_forest(service.tree()))

    asyncio.run(_chats())


@app.command()
def new():
    """Create an empty chat and print its id."""
    async def _new():
        settings = get_settings(console)
        async with get_backend(settings, _debug_callback()) as backend:
            require_ready(backend, console)
            try:
                chat_id = await DashboardService(backend).create_chat()
            except BackendError as e:
                _fail(str(e))
            console.print(f"[green]Created chat[/green] {chat_id}")

    asyncio.run(_new())


@app.command()
def delete(
    chat_id: str = typer.Argument(..., help="Chat to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a chat."""
    if not yes and not typer.confirm(f"Delete chat {chat_id}?"):
        console.print("[dim]Aborted.[/dim]")
        return

    async def _delete():
        settings = get_settings(console)
        async with get_backend(settings, _debug_callback()) as backend:
            require_ready(backend, console)
            try:
                await DashboardService(backend).delete_chat(chat_id)
            except BackendError as e:
                _fail(str(e))
            console.print(f"[green]Deleted chat[/green] {chat_id}")

    asyncio.run(_delete())


@app.command()
def messages(chat_id: str = typer.Argument(..., help="Chat to show")):
    """List the messages of a chat."""
    async def _messages():
        settings = get_settings(console)
        async with get_backend(settings, _debug_callback()) as backend:
            require_ready(backend, console)
            reconciler = get_reconciler(backend, settings, debug_callback=_debug_callback())
            history = MessageList(chat_id)
            try:
                await reconciler.load(history)
            except BackendError as e:
                _fail(str(e))
            console.print(messages_table(history))

    asyncio.run(_messages())


@app.command()
def send(
    chat_id: str = typer.Argument(..., help="Chat to send to"),
    text: str = typer.Argument(..., help="Message text"),
    provider: str | None = _provider_option(),
    model: str | None = _model_option(),
):
    """Send a message and stream the reply."""
    async def _send():
        settings = get_settings(console)
        selection = get_selection(settings, provider, model, console)
        async with get_backend(settings, _debug_callback()) as backend:
            require_ready(backend, console)
            reconciler = get_reconciler(
                backend, settings, ConsoleStreamCallback(console), _debug_callback()
            )
            history = MessageList(chat_id)
            result = await reconciler.send_message(
                history, text, selection.provider, selection.model
            )
            if result.status == SendStatus.SKIPPED:
                _fail(f"not sent: {result.reason}")
            if not result.ok:
                raise typer.Exit(code=1)

    asyncio.run(_send())


@app.command()
def compare(
    chat_id: str = typer.Argument(..., help="Main chat"),
    compare_chat_id: str = typer.Argument(..., help="Chat to compare with"),
    text: str = typer.Argument(..., help="Message text sent to both chats"),
    provider: str | None = _provider_option(),
    model: str | None = _model_option(),
    compare_provider: str | None = typer.Option(
        None, "--compare-provider", help="Provider for the compare chat (default: same as main)"
    ),
    compare_model: str | None = typer.Option(
        None, "--compare-model", help="Model for the compare chat"
    ),
):
    """Send one message to two chats and show both replies side by side."""
    if chat_id == compare_chat_id:
        _fail("main and compare chat must differ")

    async def _compare():
        settings = get_settings(console)
        main_selection = get_selection(settings, provider, model, console)
        if compare_provider is None and compare_model is None:
            compare_selection = main_selection
        else:
            compare_selection = get_selection(
                settings, compare_provider or main_selection.provider, compare_model, console
            )

        async with get_backend(settings, _debug_callback()) as backend:
            require_ready(backend, console)
            reconciler = get_reconciler(backend, settings, debug_callback=_debug_callback())
            main, other = MessageList(chat_id), MessageList(compare_chat_id)
            with console.status("Waiting for both replies..."):
                result = await reconciler.send_to_both(
                    main, other, text, main_selection, compare_selection
                )

            if result.main.status == SendStatus.SKIPPED:
                _fail(f"not sent: {result.main.reason}")

            panels = []
            for leg, selection in ((result.main, main_selection), (result.compare, compare_selection)):
                if leg.ok:
                    body, style = escape(leg.content), "green"
                else:
                    body, style = f"[red]{escape(leg.reason or 'failed')}[/red]", "red"
                panels.append(Panel(body, title=f"{leg.chat_id[:8]} · {selection}", border_style=style))
            console.print(Columns(panels, equal=True, expand=True))
            if not result.ok:
                raise typer.Exit(code=1)

    asyncio.run(_compare())


@app.command()
def branch(
    chat_id: str = typer.Argument(..., help="Chat holding the message"),
    message_id: str = typer.Argument(..., help="Message to branch from"),
    name: str = typer.Option("", "--name", "-n", help="Name of the new branch"),
    tags: str = typer.Option("", "--tags", "-t", help="Comma separated tags"),
    provider: str | None = _provider_option(),
    model: str | None = _model_option(),
):
    """Branch a new chat off a message.

    Branching from a user message re-sends it into the new chat and streams
    the reply; branching from an assistant message only copies it.
    """
    async def _branch():
        settings = get_settings(console)
        selection = get_selection(settings, provider, model, console)
        async with get_backend(settings, _debug_callback()) as backend:
            require_ready(backend, console)
            reconciler = get_reconciler(
                backend, settings, ConsoleStreamCallback(console), _debug_callback()
            )
            source = MessageList(chat_id)
            try:
                await reconciler.load(source)
                result = await reconciler.create_branch(
                    source, message_id, selection, name=name, tags=tags
                )
            except (BackendError, ValueError) as e:
                _fail(str(e))

            if not result.created:
                _fail(result.skipped_reason or "branch was not created")
            console.print(f"[green]Created branch[/green] {result.new_chat_id}")
            if result.send is not None and not result.send.ok:
                raise typer.Exit(code=1)

    asyncio.run(_branch())


@app.command()
def usage():
    """Show token usage and subscription plan."""
    async def _usage():
        settings = get_settings(console)
        async with get_backend(settings, _debug_callback()) as backend:
            require_ready(backend, console)
            try:
                tokens = await DashboardService(backend).refresh_usage()
            except BackendError as e:
                _fail(str(e))

            table = Table(show_header=False, box=None)
            table.add_column("Metric", style="bold cyan", width=15)
            table.add_column("Value")
            count = tokens.token_count if tokens is not None else None
            table.add_row("Tokens used", f"{count:,}" if count is not None else "-")
            table.add_row("Plan", (tokens.plan if tokens is not None else None) or "free")
            console.print(table)

    asyncio.run(_usage())


@app.command()
def subscribe(
    plan: str = typer.Argument(..., help="Plan to subscribe to"),
    open_browser: bool = typer.Option(False, "--open", "-o", help="Open the checkout page"),
):
    """Start a subscription checkout and print its URL."""
    async def _subscribe():
        settings = get_settings(console)
        async with get_backend(settings, _debug_callback()) as backend:
            try:
                url = await DashboardService(backend).subscribe(plan)
            except BackendError as e:
                _fail(str(e))
            _show_url(url, open_browser)

    asyncio.run(_subscribe())


@app.command()
def portal(
    open_browser: bool = typer.Option(False, "--open", "-o", help="Open the portal page"),
):
    """Open the subscription management portal."""
    async def _portal():
        settings = get_settings(console)
        async with get_backend(settings, _debug_callback()) as backend:
            try:
                url = await DashboardService(backend).manage_subscription()
            except BackendError as e:
                _fail(str(e))
            _show_url(url, open_browser)

    asyncio.run(_portal())


def _show_url(url: str | None, open_browser: bool) -> None:
    if not url:
        _fail("the backend did not return a URL")
    console.print(url, markup=False, highlight=False)
    if open_browser:
        typer.launch(url)


@app.command()
def models(provider: str | None = typer.Argument(None, help="Only this provider")):
    """List providers and their models."""
    names = providers() if provider is None else [provider.lower()]
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Provider", style="yellow")
    table.add_column("Models")
    for name in names:
        if name not in PROVIDER_MODELS:
            _fail(f"Unsupported provider: {name}")
        table.add_row(name, ", ".join(PROVIDER_MODELS[name]))
    console.print(table)


@app.command()
def health():
    """Check configuration and backend connectivity."""
    async def _health():
        settings = get_settings(console)
        console.print(f"[green]+[/green] Backend URL: {settings.api_url}")
        console.print(f"[green]+[/green] Default model: {settings.provider}/{settings.default_model}")

        async with get_backend(settings, _debug_callback()) as backend:
            if not backend.is_ready:
                console.print("[yellow]![/yellow] BRANCHCHAT_TOKEN: NOT SET")
                raise typer.Exit(code=1)
            console.print("[green]+[/green] BRANCHCHAT_TOKEN: SET")

            try:
                chat_list = await backend.list_chats()
                console.print(f"[green]+[/green] Backend connection: OK ({len(chat_list)} chats)")
            except BackendError as e:
                console.print(f"[red]x[/red] Backend connection: FAILED ({escape(str(e))})")
                raise typer.Exit(code=1)

    asyncio.run(_health())


@app.command(name="tui")
def tui_command(
    chat_id: str | None = typer.Option(
        None,
        "--chat",
        "-c",
        help="Chat to open (default: first chat, or a new one)"
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Show log panel with level: debug (all), info, warning, or error"
    ),
):
    """Launch the interactive TUI."""
    async def _tui():
        from ..ui import run_textual_tui

        settings = get_settings(console)
        async with get_backend(settings) as backend:
            await run_textual_tui(
                backend=backend,
                settings=settings,
                chat_id=chat_id,
                log_level=log_level,
            )
        console.print("\n[dim]Goodbye![/dim]")

    try:
        asyncio.run(_tui())
    except KeyboardInterrupt:
        pass


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
