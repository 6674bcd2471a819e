"""Single state store behind every chat view.

Holds the current chat, its message list, the optional compare chat and the
branch tree, and exposes the operations a view needs (open, send, branch).
Views render this state; they never keep their own copies of it. A send
still streaming into a list that the session stops showing is cancelled.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from ..api.base import ChatBackend
from ..api.models import Chat
from ..catalog import ModelSelection
from ..tree import BranchTree, BranchViewState
from .models import BranchResult, DualSendResult, MessageList, SendResult
from .reconciler import StreamingReconciler

T = TypeVar("T")


class ChatSession:
    """State of one chat window: main chat, compare chat and branch tree."""

    def __init__(
        self,
        backend: ChatBackend,
        reconciler: StreamingReconciler,
        chat_id: str,
        selection: ModelSelection | None = None,
        compare_selection: ModelSelection | None = None,
        default_expanded: bool = True,
    ):
        self._backend = backend
        self._reconciler = reconciler
        self.messages = MessageList(chat_id)
        self.compare: MessageList | None = None
        self.selection = selection or ModelSelection()
        self.compare_selection = compare_selection or self.selection
        self.view = BranchViewState(chat_id, default_expanded=default_expanded)
        self.tree = BranchTree([])
        self._sending: dict[asyncio.Task, tuple[MessageList, ...]] = {}

    @property
    def chat_id(self) -> str:
        return self.messages.chat_id

    @property
    def root_id(self) -> str:
        """Root of the conversation tree the current chat belongs to."""
        return self.tree.root_of(self.chat_id)

    @property
    def current_chat(self) -> Chat | None:
        return self.tree.get(self.chat_id)

    async def refresh_chats(self) -> bool:
        """Reload the chat list used for the branch tree.

        Returns:
            False if authentication is not ready (tree untouched)
        """
        if not self._backend.is_ready:
            return False
        self.tree = BranchTree(await self._backend.list_chats())
        return True

    async def open(self, chat_id: str) -> None:
        """Navigate the main view to ``chat_id`` and load its messages."""
        self.view.navigate(chat_id)
        if self.compare is not None and self.compare.chat_id == chat_id:
            self._release(self.compare)
            self.compare = None
        self._release(self.messages)
        self.messages = MessageList(chat_id)
        await self._reconciler.load(self.messages)

    async def open_compare(self, chat_id: str) -> None:
        """Show ``chat_id`` next to the current chat.

        Raises:
            ValueError: If ``chat_id`` is the current chat
        """
        self.view.select_compare(chat_id)
        if self.compare is not None:
            self._release(self.compare)
        self.compare = MessageList(chat_id)
        await self._reconciler.load(self.compare)

    def close_compare(self) -> None:
        self.view.clear_compare()
        if self.compare is not None:
            self._release(self.compare)
        self.compare = None

    async def send(self, text: str) -> SendResult:
        messages = self.messages
        return await self._track(
            (messages,),
            self._reconciler.send_message(
                messages, text, self.selection.provider, self.selection.model
            ),
        )

    async def send_compare(self, text: str) -> SendResult:
        if self.compare is None:
            return SendResult.skipped(self.chat_id, "no compare chat selected")
        compare = self.compare
        return await self._track(
            (compare,),
            self._reconciler.send_message(
                compare, text, self.compare_selection.provider, self.compare_selection.model
            ),
        )

    async def send_both(self, text: str) -> DualSendResult:
        if self.compare is None:
            skipped = SendResult.skipped(self.chat_id, "no compare chat selected")
            return DualSendResult(main=skipped, compare=skipped)
        main, compare = self.messages, self.compare
        return await self._track(
            (main, compare),
            self._reconciler.send_to_both(
                main, compare, text, self.selection, self.compare_selection
            ),
        )

    async def branch(
        self,
        message_id: str,
        selection: ModelSelection | None = None,
        name: str = "",
        tags: str = "",
    ) -> BranchResult:
        """Branch off a message of the main or compare chat and switch to the branch.

        Raises:
            ValueError: If the message is in neither list
        """
        source = self.messages
        if self.messages.get(message_id) is None and self.compare is not None:
            source = self.compare

        result = await self._reconciler.create_branch(
            source, message_id, selection or self.selection, name=name, tags=tags
        )
        if not result.created:
            return result

        self.view.navigate(result.new_chat_id)
        if self.compare is not None and self.compare.chat_id == result.new_chat_id:
            self._release(self.compare)
            self.compare = None
        self._release(self.messages)
        self.messages = result.messages
        if result.send is None:
            # Assistant origin: nothing was sent, show what the backend stored
            await self._reconciler.load(self.messages)
        await self.refresh_chats()
        return result

    async def _track(self, lists: tuple[MessageList, ...], send: Awaitable[T]) -> T:
        """Run ``send`` and remember that the current task streams into ``lists``."""
        task = asyncio.current_task()
        self._sending[task] = lists
        try:
            return await send
        finally:
            self._sending.pop(task, None)

    def _release(self, messages: MessageList) -> None:
        """Cancel sends streaming into a list that is no longer shown.

        The reconciler applies the failure policy when the cancellation lands.
        """
        if not self._sending:
            return
        current = asyncio.current_task()
        for task, lists in list(self._sending.items()):
            if task is not current and any(lst is messages for lst in lists):
                task.cancel()

