"""Callback interface through which the reconciler reports state changes.

Views subclass ReconcilerCallback and override the events they render; every
method defaults to doing nothing.
"""

from .models import LocalMessage, MessageList


class ReconcilerCallback:
    """Receives message-list updates from the StreamingReconciler."""

    def on_message_added(self, messages: MessageList, message: LocalMessage) -> None:
        """A message was appended to ``messages``."""

    def on_content_updated(self, messages: MessageList, message: LocalMessage) -> None:
        """A streaming message received a chunk; ``message.content`` is the full text so far."""

    def on_message_settled(self, messages: MessageList, message: LocalMessage) -> None:
        """A placeholder received its backend id."""

    def on_message_removed(self, messages: MessageList, message: LocalMessage) -> None:
        """A placeholder was dropped after a failed send."""

    def on_messages_replaced(self, messages: MessageList) -> None:
        """The whole list was reloaded."""

    def on_branch_created(self, source: MessageList, branch: MessageList) -> None:
        """A branch list was created from ``source``; its origin clone follows as an addition."""

    def on_typing_changed(self, messages: MessageList, typing: bool) -> None:
        """The typing indicator of ``messages`` was switched on or off."""

    def on_scroll_requested(self, messages: MessageList) -> None:
        """The view should scroll ``messages`` to the bottom."""

    def on_error(self, messages: MessageList, error: Exception) -> None:
        """A send into ``messages`` failed."""
