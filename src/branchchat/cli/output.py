"""Console rendering for CLI commands.

Hides how chats, messages and streamed replies are laid out with Rich.
"""

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from ..api.models import Chat
from ..conversation import LocalMessage, MessageList, ReconcilerCallback
from ..tree import BranchTree


def chat_forest(tree: BranchTree, title: str = "Chats") -> Tree:
    """Build a Rich tree of every chat, branches nested under their parent."""
    forest = Tree(f"[bold cyan]{escape(title)}[/bold cyan]")
    parents: list[Tree] = [forest]
    for depth, chat in tree.walk_forest():
        del parents[depth + 1:]
        parents.append(parents[depth].add(_chat_line(chat)))
    return forest


def _chat_line(chat: Chat) -> str:
    line = f"{escape(chat.label)} [dim]{chat.id}[/dim]"
    if chat.created_at is not None:
        line += f" [dim]{chat.created_at:%Y-%m-%d %H:%M}[/dim]"
    return line


def messages_table(messages: MessageList) -> Table:
    table = Table(show_header=True, header_style="bold cyan", title=f"Chat {messages.chat_id}")
    table.add_column("Role", style="yellow", width=9)
    table.add_column("Model", style="dim")
    table.add_column("Content")
    table.add_column("Id", style="dim")
    for message in messages:
        table.add_row(message.role, message.model or "", escape(message.content), message.id)
    return table


class ConsoleStreamCallback(ReconcilerCallback):
    """Prints streamed assistant text to the console as it arrives.

    Each update carries the full text so far; only the new suffix is printed.
    """

    def __init__(self, console: Console):
        self._console = console
        self._printed: dict[int, int] = {}

    def on_message_added(self, messages: MessageList, message: LocalMessage) -> None:
        if message.role == "assistant":
            self._printed[id(message)] = 0
            self._console.print(f"[bold green]{escape(message.model or 'Assistant')}:[/bold green] ", end="")

    def on_content_updated(self, messages: MessageList, message: LocalMessage) -> None:
        printed = self._printed.get(id(message), 0)
        delta = message.content[printed:]
        if delta:
            self._console.print(delta, end="", markup=False, highlight=False)
            self._printed[id(message)] = len(message.content)

    def on_message_settled(self, messages: MessageList, message: LocalMessage) -> None:
        if message.role == "assistant":
            self._console.print()
            self._printed.pop(id(message), None)

    def on_error(self, messages: MessageList, error: Exception) -> None:
        if self._printed:
            self._console.print()
            self._printed.clear()
        self._console.print(f"[red]Error: {escape(str(error))}[/red]")
