"""Reconciler integration for the TUI.

Hides how reconciler events reach the chat panes: which pane shows which
message list and how a freshly created branch list takes over the main pane.
"""

from typing import TYPE_CHECKING

from ..conversation import LocalMessage, MessageList, ReconcilerCallback

if TYPE_CHECKING:
    from textual.app import App

    from .widgets import ChatHistoryWidget


class TUICallback(ReconcilerCallback):
    """Routes reconciler events to the pane that shows the affected list.

    Sends run in async workers on the app's event loop, so widgets are
    updated directly. Events for lists no pane shows are dropped; a list
    leaves its pane only when another list is shown there, so a stale
    stream never takes a pane back.
    """

    def __init__(
        self,
        main: "ChatHistoryWidget",
        compare: "ChatHistoryWidget",
        app: "App | None" = None,
    ) -> None:
        self.main = main
        self.compare = compare
        self.app = app

    def _pane_for(self, messages: MessageList) -> "ChatHistoryWidget | None":
        for pane in (self.main, self.compare):
            if pane.shows(messages):
                return pane
        return None

    def on_branch_created(self, source: MessageList, branch: MessageList) -> None:
        # The branch becomes the main chat; its clone and re-send stream into it
        self.main.show(branch, title=f"Chat {branch.chat_id[:8]}")

    def on_message_added(self, messages: MessageList, message: LocalMessage) -> None:
        pane = self._pane_for(messages)
        if pane is not None:
            pane.add_message(message)

    def on_content_updated(self, messages: MessageList, message: LocalMessage) -> None:
        pane = self._pane_for(messages)
        if pane is not None:
            pane.update_message(message)

    def on_message_settled(self, messages: MessageList, message: LocalMessage) -> None:
        pane = self._pane_for(messages)
        if pane is not None:
            pane.update_message(message)

    def on_message_removed(self, messages: MessageList, message: LocalMessage) -> None:
        pane = self._pane_for(messages)
        if pane is not None:
            pane.remove_message(message)

    def on_messages_replaced(self, messages: MessageList) -> None:
        pane = self._pane_for(messages)
        if pane is not None:
            pane.show(messages, title=pane.border_title or "Chat")

    def on_typing_changed(self, messages: MessageList, typing: bool) -> None:
        pane = self._pane_for(messages)
        if pane is None:
            return
        pane.set_typing(typing)
        if not typing:
            # Stalled user messages change status without an event of their own
            pane.refresh_statuses()

    def on_scroll_requested(self, messages: MessageList) -> None:
        pane = self._pane_for(messages)
        if pane is not None:
            pane.scroll_end(animate=False)

    def on_error(self, messages: MessageList, error: Exception) -> None:
        if self.app is not None:
            self.app.notify(f"Chat {messages.chat_id[:8]}: {error}", severity="error", timeout=6)
