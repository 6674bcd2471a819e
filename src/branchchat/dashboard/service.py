"""Dashboard operations: chat management, token usage and billing.

Hides which backend calls make up each dashboard action and how the local
chat list is kept in step with them.
"""

from collections.abc import Iterator
from typing import Any

from ..api.base import ChatBackend
from ..api.models import Chat, TokenUsage
from ..tree import BranchTree, BranchViewState


class DashboardService:
    """Chat list and account state shown on the dashboard.

    The dashboard tree starts collapsed; branches of a chat are listed once
    it is toggled open.
    """

    def __init__(self, backend: ChatBackend):
        self._backend = backend
        self._chats: list[Chat] = []
        self._usage: TokenUsage | None = None
        self.view = BranchViewState(default_expanded=False)
        self._debug_callback: Any | None = None

    def set_debug_callback(self, callback: Any) -> None:
        """Set the debug callback for detailed logging.

        Args:
            callback: Callable(level: str, component: str, message: str)
        """
        self._debug_callback = callback

    def _debug(self, level: str, message: str) -> None:
        if self._debug_callback:
            self._debug_callback(level, "Dashboard", message)

    @property
    def chats(self) -> list[Chat]:
        return list(self._chats)

    @property
    def usage(self) -> TokenUsage | None:
        """Token usage from the last refresh, if any."""
        return self._usage

    @property
    def is_ready(self) -> bool:
        return self._backend.is_ready

    async def refresh_chats(self) -> list[Chat]:
        """Reload the chat list. Empty while authentication is not ready."""
        if not self._backend.is_ready:
            self._chats = []
            return []
        self._chats = await self._backend.list_chats()
        self._debug("info", f"Loaded {len(self._chats)} chat(s)")
        return self.chats

    async def refresh_usage(self) -> TokenUsage | None:
        if not self._backend.is_ready:
            return None
        self._usage = await self._backend.token_usage()
        return self._usage

    async def create_chat(self) -> str | None:
        """Create an empty chat.

        Returns:
            The new chat id, or None if authentication is not ready
        """
        if not self._backend.is_ready:
            return None
        chat_id = await self._backend.create_chat()
        self._debug("info", f"Created chat {chat_id}")
        return chat_id

    async def delete_chat(self, chat_id: str) -> bool:
        """Delete a chat and drop it from the local list once the backend confirms.

        Returns:
            False if authentication is not ready

        Raises:
            BackendError: If the backend refuses the deletion (local list unchanged)
        """
        if not self._backend.is_ready:
            return False
        await self._backend.delete_chat(chat_id)
        self._chats = [chat for chat in self._chats if chat.id != chat_id]
        self._debug("info", f"Deleted chat {chat_id}")
        return True

    async def subscribe(self, plan: str) -> str | None:
        """Start a checkout for ``plan``. Returns the URL to open, if any."""
        session = await self._backend.create_checkout_session(plan)
        return session.url

    async def manage_subscription(self) -> str | None:
        """Open the subscription portal. Returns the URL to open, if any."""
        session = await self._backend.create_portal_session()
        return session.url

    def tree(self) -> BranchTree:
        return BranchTree(self._chats)

    def visible_chats(self) -> Iterator[tuple[int, Chat]]:
        """Top-level chats with the branches of expanded chats, in display order."""
        return self.tree().walk_forest(self.view.is_expanded)
