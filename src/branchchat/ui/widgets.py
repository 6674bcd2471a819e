"""Custom Textual widgets for the TUI.

Hides widget implementation details:
- Input history management and send target display
- Message rendering while streaming and after settling
- Branch tree rendering and node markers
- Log rendering and level filtering
"""

from datetime import datetime

from rich.text import Text
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import Click
from textual.message import Message
from textual.widgets import Button, Markdown, RichLog, Select, Static, TextArea, Tree

from ..api.models import Chat, TokenUsage
from ..catalog import ModelSelection, models_for, providers
from ..conversation.models import LocalMessage, MessageList, MessageStatus
from ..tree import BranchTree, BranchViewState
from .config import (
    COMPARE_MARKER,
    CURRENT_MARKER,
    INPUT_HISTORY_MAX_SIZE,
    LOG_MAX_MESSAGE_LENGTH,
    LOG_TIMESTAMP_FORMAT,
    SEND_TARGETS,
    TARGET_MAIN,
    TREE_LABEL_MAX_LENGTH,
    LogLevel,
)


class MessageView(Vertical):
    """One chat message. Clicking selects it as the branch origin.

    Pending messages render as plain text so each streamed chunk is a cheap
    update; once settled (or stalled) assistant text is rendered as Markdown.
    """

    class Selected(Message):
        """Posted when the user clicks a message."""

        def __init__(self, view: "MessageView") -> None:
            super().__init__()
            self.view = view

    def __init__(self, message: LocalMessage, *args, **kwargs) -> None:
        super().__init__(*args, classes=self._classes_for(message), **kwargs)
        self.message = message
        self._markdown = False

    @staticmethod
    def _classes_for(message: LocalMessage) -> str:
        classes = ["chat-message", f"{message.role}-message"]
        if message.status == MessageStatus.PENDING:
            classes.append("pending-message")
        elif message.status == MessageStatus.STALLED:
            classes.append("stalled-message")
        return " ".join(classes)

    def _header(self) -> str:
        if self.message.role == "user":
            who = "> You"
        else:
            who = f"< {self.message.model or 'Assistant'}"
        timestamp = self.message.created_at.astimezone().strftime("%H:%M:%S")
        header = f"{who} [{timestamp}]"
        if self.message.status == MessageStatus.PENDING:
            header += " · sending"
        elif self.message.status == MessageStatus.STALLED:
            header += " · not saved"
        return header

    def compose(self):
        yield Static(self._header(), markup=False, classes="message-header")
        if self._wants_markdown():
            self._markdown = True
            yield Markdown(self.message.content, classes="message-content")
        else:
            yield Static(self.message.content, markup=False, classes="message-content")

    def _wants_markdown(self) -> bool:
        return self.message.role == "assistant" and not self.message.is_pending

    def refresh_message(self) -> None:
        """Re-render header, status classes and content from the message."""
        selected = self.has_class("selected-message")
        self.set_classes(self._classes_for(self.message))
        self.set_class(selected, "selected-message")
        self.query_one(".message-header", Static).update(self._header())

        if self._wants_markdown() and not self._markdown:
            self._markdown = True
            self.query_one(".message-content").remove()
            self.mount(Markdown(self.message.content, classes="message-content"))
        elif self._markdown:
            self.query_one(".message-content", Markdown).update(self.message.content)
        else:
            self.query_one(".message-content", Static).update(self.message.content)

    def on_click(self, event: Click) -> None:
        event.stop()
        self.post_message(self.Selected(self))


class ChatHistoryWidget(VerticalScroll):
    """Scrollable view of one MessageList.

    Message widgets are keyed by message identity, since a message keeps
    its object but changes its id when it settles.
    """

    BORDER_TITLE = "Chat"
    BORDER_SUBTITLE = "No chat"
    ALLOW_MAXIMIZE = True
    ALLOW_SELECT = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._messages: MessageList | None = None
        self._views: dict[int, MessageView] = {}
        self._typing: Static | None = None
        self._selected: MessageView | None = None

    @property
    def messages(self) -> MessageList | None:
        return self._messages

    @property
    def selected_message(self) -> LocalMessage | None:
        """Clicked message, if it is still in the list."""
        if self._selected is None or self._messages is None:
            return None
        if self._selected.message not in self._messages:
            return None
        return self._selected.message

    def shows(self, messages: MessageList) -> bool:
        return self._messages is messages

    def show(self, messages: MessageList | None, title: str = "Chat") -> None:
        """Bind the widget to a list and render it from scratch."""
        self._messages = messages
        self._views.clear()
        self._typing = None
        self._selected = None
        self.remove_children()
        self.border_title = title
        if messages is None:
            self.border_subtitle = "No chat"
            return
        for message in messages:
            self._mount_message(message)
        self.set_typing(messages.typing)
        self._update_subtitle()
        self.scroll_end(animate=False)

    def _mount_message(self, message: LocalMessage) -> None:
        view = MessageView(message)
        self._views[id(message)] = view
        if self._typing is not None:
            self.mount(view, before=self._typing)
        else:
            self.mount(view)

    def _update_subtitle(self) -> None:
        if self._messages is not None:
            self.border_subtitle = f"{len(self._messages)} messages"

    def add_message(self, message: LocalMessage) -> None:
        self._mount_message(message)
        self._update_subtitle()

    def update_message(self, message: LocalMessage) -> None:
        view = self._views.get(id(message))
        if view is not None:
            view.refresh_message()

    def remove_message(self, message: LocalMessage) -> None:
        view = self._views.pop(id(message), None)
        if view is not None:
            if view is self._selected:
                self._selected = None
            view.remove()
        self._update_subtitle()

    def refresh_statuses(self) -> None:
        """Re-render every message (status changes are not reported one by one)."""
        for view in self._views.values():
            view.refresh_message()

    def set_typing(self, typing: bool) -> None:
        if typing and self._typing is None:
            self._typing = Static("Assistant is typing…", classes="typing-indicator")
            self.mount(self._typing)
        elif not typing and self._typing is not None:
            self._typing.remove()
            self._typing = None

    def on_message_view_selected(self, event: MessageView.Selected) -> None:
        if self._selected is not None:
            self._selected.remove_class("selected-message")
        self._selected = event.view
        event.view.add_class("selected-message")


class ChatInputBar(Horizontal):
    """Chat input bar with TextArea and Send button.

    The button label shows where the next submit goes (main, compare or both).
    """

    class Submitted(Message):
        """Message sent when user submits input."""

        def __init__(self, value: str, target: str) -> None:
            super().__init__()
            self.value = value
            self.target = target

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._history: list[str] = []
        self._history_index: int = -1
        self._target = TARGET_MAIN

    def compose(self):
        text_area = TextArea(id="chat-input", show_line_numbers=False)
        text_area.cursor_blink = False
        yield text_area
        yield Button("Send: main", id="send-btn", variant="success").with_tooltip(
            "Submit message (Ctrl+J), change target with Ctrl+T"
        )

    def on_mount(self) -> None:
        text_area = self.query_one("#chat-input", TextArea)
        text_area.focus()
        text_area.highlight_cursor_line = False

    @property
    def target(self) -> str:
        return self._target

    @target.setter
    def target(self, value: str) -> None:
        self._target = value
        self.query_one("#send-btn", Button).label = f"Send: {value}"

    def cycle_target(self, available: tuple[str, ...] = SEND_TARGETS) -> str:
        """Move to the next available send target. Returns the new target."""
        if self._target in available:
            index = (available.index(self._target) + 1) % len(available)
        else:
            index = 0
        self.target = available[index]
        return self._target

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send-btn":
            self._submit()

    def on_key(self, event) -> None:
        """Handle keyboard shortcuts.

        ctrl+enter does not reach terminal apps, so ctrl+j submits.
        """
        if event.key == "ctrl+j":
            self._submit()
            event.prevent_default()
            event.stop()
        elif event.key == "up" and self._is_cursor_at_start():
            self._navigate_history(-1)
            event.prevent_default()
            event.stop()
        elif event.key == "down" and self._is_cursor_at_end():
            self._navigate_history(1)
            event.prevent_default()
            event.stop()

    def _is_cursor_at_start(self) -> bool:
        text_area = self.query_one("#chat-input", TextArea)
        return text_area.cursor_location == (0, 0)

    def _is_cursor_at_end(self) -> bool:
        text_area = self.query_one("#chat-input", TextArea)
        lines = text_area.text.split("\n")
        return text_area.cursor_location == (len(lines) - 1, len(lines[-1]))

    def _navigate_history(self, direction: int) -> None:
        if not self._history:
            return
        text_area = self.query_one("#chat-input", TextArea)
        if direction < 0:
            if self._history_index == -1:
                self._history_index = len(self._history) - 1
            elif self._history_index > 0:
                self._history_index -= 1
        else:
            if self._history_index < len(self._history) - 1:
                self._history_index += 1
            else:
                self._history_index = -1
                text_area.text = ""
                return
        text_area.text = self._history[self._history_index]

    def _submit(self) -> None:
        text_area = self.query_one("#chat-input", TextArea)
        value = text_area.text.strip()
        if value:
            if not self._history or self._history[-1] != value:
                self._history.append(value)
                del self._history[:-INPUT_HISTORY_MAX_SIZE]
            self._history_index = -1
            text_area.text = ""
            self.post_message(self.Submitted(value, self._target))

    def focus_input(self) -> None:
        """Focus the text input."""
        self.query_one("#chat-input", TextArea).focus()


class BranchTreePanel(Tree[str]):
    """Branch tree of the current conversation.

    Node data is the chat id. The current chat is marked with ●, the
    compare chat with ◆. Expansion changes are reported to the app, which
    owns the collapse state.
    """

    BORDER_TITLE = "Branches"

    BINDINGS = [
        Binding("c", "compare", "Compare"),
        Binding("plus", "expand_all", "Expand all", show=False),
        Binding("minus", "collapse_all", "Collapse all", show=False),
    ]

    class CompareRequested(Message):
        """Posted when the user picks the highlighted chat for comparison."""

        def __init__(self, chat_id: str) -> None:
            super().__init__()
            self.chat_id = chat_id

    class ExpandAllRequested(Message):
        def __init__(self, expanded: bool) -> None:
            super().__init__()
            self.expanded = expanded

    def __init__(self, *args, **kwargs) -> None:
        super().__init__("No chat", *args, **kwargs)
        self.guide_depth = 3

    @staticmethod
    def _label(chat: Chat | None, chat_id: str, view: BranchViewState) -> Text:
        name = chat.label if chat is not None else f"Chat {chat_id[:8]}"
        if len(name) > TREE_LABEL_MAX_LENGTH:
            name = name[: TREE_LABEL_MAX_LENGTH - 1] + "…"
        label = Text()
        if chat_id == view.current_chat_id:
            label.append(f"{CURRENT_MARKER} ", style="bold")
        elif chat_id == view.compare_chat_id:
            label.append(f"{COMPARE_MARKER} ", style="italic")
        label.append(name)
        return label

    def show_tree(self, tree: BranchTree, root_id: str, view: BranchViewState) -> None:
        """Rebuild the nodes for the conversation rooted at ``root_id``."""
        self.clear()
        self.root.set_label(self._label(tree.get(root_id), root_id, view))
        self.root.data = root_id
        nodes = {root_id: self.root}
        count = 0

        for depth, chat in tree.walk(root_id):
            if depth == 0:
                continue
            parent = nodes.get(chat.branch_of or root_id, self.root)
            nodes[chat.id] = parent.add(
                self._label(chat, chat.id, view),
                data=chat.id,
                expand=view.is_expanded(chat.id),
                allow_expand=tree.has_children(chat.id),
            )
            count += 1

        if view.is_expanded(root_id):
            self.root.expand()
        else:
            self.root.collapse()
        self.border_subtitle = f"{count} branches"

        current = nodes.get(view.current_chat_id or "")
        if current is not None:
            self.move_cursor(current)

    def action_compare(self) -> None:
        node = self.cursor_node
        if node is not None and node.data:
            self.post_message(self.CompareRequested(node.data))

    def action_expand_all(self) -> None:
        self.post_message(self.ExpandAllRequested(True))

    def action_collapse_all(self) -> None:
        self.post_message(self.ExpandAllRequested(False))


class ModelSelector(Horizontal):
    """Provider and model pickers that keep the pair consistent.

    Switching provider resets the model unless the new provider offers it.
    """

    def __init__(self, selection: ModelSelection, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._selection = selection

    @property
    def selection(self) -> ModelSelection:
        return self._selection

    def compose(self):
        yield Select(
            [(p, p) for p in providers()],
            value=self._selection.provider,
            allow_blank=False,
            id="provider-select",
        )
        yield Select(
            [(m, m) for m in models_for(self._selection.provider)],
            value=self._selection.model,
            allow_blank=False,
            id="model-select",
        )

    def on_select_changed(self, event: Select.Changed) -> None:
        event.stop()
        if event.value is Select.BLANK:
            return
        if event.select.id == "provider-select":
            if event.value == self._selection.provider:
                return
            self._selection = self._selection.with_provider(str(event.value))
            model_select = self.query_one("#model-select", Select)
            model_select.set_options([(m, m) for m in models_for(self._selection.provider)])
            model_select.value = self._selection.model
        elif event.select.id == "model-select":
            self._selection = self._selection.with_model(str(event.value))


class StatusBar(Static):
    """One-line summary: model selections, send target and token usage."""

    def update_status(
        self,
        selection: ModelSelection,
        compare_selection: ModelSelection | None,
        target: str,
        usage: TokenUsage | None = None,
    ) -> None:
        text = Text()
        text.append("main ", style="dim")
        text.append(str(selection), style="bold")
        if compare_selection is not None:
            text.append("  compare ", style="dim")
            text.append(str(compare_selection), style="bold")
        text.append("  → ", style="dim")
        text.append(target)
        if usage is not None and usage.token_count is not None:
            text.append(f"  tokens {usage.token_count:,}", style="dim")
            if usage.plan:
                text.append(f" ({usage.plan})", style="dim")
        self.update(text)


class DebugPanel(RichLog):
    """Log panel for real-time tracing with level filtering.

    Shows timestamped log messages from all components.
    Supports standard log levels: DEBUG < INFO < WARNING < ERROR.
    Hidden by default, shown with --log-level flag or toggled with Ctrl+D.
    """

    BORDER_TITLE = "Log"
    BORDER_SUBTITLE = "Trace log"

    COMPONENT_COLORS = {
        "TUI": "cyan",
        "API": "magenta",
        "Stream": "green",
        "Dashboard": "bright_yellow",
    }

    LEVEL_COLORS = {
        LogLevel.DEBUG: "dim white",
        LogLevel.INFO: "cyan",
        LogLevel.WARNING: "yellow",
        LogLevel.ERROR: "red",
    }

    def __init__(self, *args, log_level: int = LogLevel.DEBUG, **kwargs) -> None:
        super().__init__(
            *args,
            markup=True,
            highlight=False,
            auto_scroll=True,
            wrap=False,
            **kwargs
        )
        self._log_level = log_level

    @property
    def log_level(self) -> int:
        """Current log level threshold."""
        return self._log_level

    @log_level.setter
    def log_level(self, level: int) -> None:
        self._log_level = level
        self._update_subtitle()

    def _update_subtitle(self) -> None:
        if self.display:
            self.border_subtitle = f"Level: {LogLevel.name(self._log_level)}"
        else:
            self.border_subtitle = "Hidden"

    def on_mount(self) -> None:
        """Hide by default."""
        self.display = False

    def log(
        self,
        component: str,
        message: str,
        level: int = LogLevel.DEBUG
    ) -> None:
        """Add a log entry if it meets the current level threshold.

        Args:
            component: Component name (TUI, API, Stream, Session, Dashboard)
            message: Log message
            level: Log level (LogLevel.DEBUG, INFO, WARNING, ERROR)
        """
        if level < self._log_level:
            return

        if len(message) > LOG_MAX_MESSAGE_LENGTH:
            message = message[:LOG_MAX_MESSAGE_LENGTH] + "…"

        line = Text()
        line.append(datetime.now().strftime(LOG_TIMESTAMP_FORMAT), style="dim")
        line.append(" ")
        line.append(f"{LogLevel.name(level):<7}", style=self.LEVEL_COLORS.get(level, "white"))
        line.append(f"[{component}]", style=self.COMPONENT_COLORS.get(component, "white"))
        line.append(f" {message}")
        self.write(line)

    def debug(self, component: str, message: str) -> None:
        self.log(component, message, LogLevel.DEBUG)

    def info(self, component: str, message: str) -> None:
        self.log(component, message, LogLevel.INFO)

    def warning(self, component: str, message: str) -> None:
        self.log(component, message, LogLevel.WARNING)

    def error(self, component: str, message: str) -> None:
        self.log(component, message, LogLevel.ERROR)

    def show(self) -> None:
        self.display = True
        self._update_subtitle()

    def hide(self) -> None:
        self.display = False
        self.border_subtitle = "Hidden"

    def toggle(self) -> bool:
        """Toggle visibility. Returns new state."""
        if self.display:
            self.hide()
            return False
        self.show()
        return True
