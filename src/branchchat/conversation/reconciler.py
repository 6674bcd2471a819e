"""Streaming message reconciliation.

Hides how an optimistic send is folded into a chat's message list:
- when the user message and the assistant placeholder appear
- how streamed chunks update the placeholder (full replace of the buffer)
- how placeholder ids are swapped for the backend's ids afterwards
- what happens to optimistic messages when a send fails
"""

import asyncio
from typing import Any

from ..api.base import ChatBackend
from ..api.errors import BackendError, MalformedPayloadError
from ..api.models import BranchRequest
from ..catalog import ModelSelection
from .callbacks import ReconcilerCallback
from .models import (
    ASSISTANT_PREFIX,
    TEMP_COMPARE_PREFIX,
    TEMP_MAIN_PREFIX,
    USER_PREFIX,
    BranchResult,
    DualSendResult,
    FailurePolicy,
    LocalMessage,
    MessageList,
    MessageStatus,
    SendResult,
    SendStatus,
)

AUTH_NOT_READY = "authentication not ready"
EMPTY_MESSAGE = "empty message"


class StreamingReconciler:
    """Sends messages and keeps message lists in sync with the streamed replies.

    Each message moves through ``pending -> settled`` on success. On failure
    the configured FailurePolicy decides between ``pending -> stalled`` (the
    placeholder stays, flagged) and ``pending -> removed``.

    Example:
        reconciler = StreamingReconciler(backend, callback=view_callback)
        messages = MessageList(chat_id)
        await reconciler.load(messages)
        result = await reconciler.send_message(messages, "Hello", "gemini", "gemini-2.0-flash")
        if not result.ok:
            show_error(result.reason)
    """

    def __init__(
        self,
        backend: ChatBackend,
        callback: ReconcilerCallback | None = None,
        typing_delay: float = 0.5,
        single_failure: FailurePolicy = FailurePolicy.KEEP,
        dual_failure: FailurePolicy = FailurePolicy.REMOVE,
    ):
        """Initialize the reconciler.

        Args:
            backend: Chat backend to send through
            callback: Receiver of list updates (default: no-op)
            typing_delay: Seconds between opening the stream and showing the placeholder
            single_failure: Failure policy for single-chat sends and branch re-sends
            dual_failure: Failure policy for dual-chat sends
        """
        self._backend = backend
        self._callback = callback or ReconcilerCallback()
        self._typing_delay = typing_delay
        self._single_failure = FailurePolicy(single_failure)
        self._dual_failure = FailurePolicy(dual_failure)
        self._debug_callback: Any | None = None

    def set_callback(self, callback: ReconcilerCallback) -> None:
        self._callback = callback

    def set_debug_callback(self, callback: Any) -> None:
        """Set the debug callback for detailed logging.

        Args:
            callback: Callable(level: str, component: str, message: str)
        """
        self._debug_callback = callback

    def _debug(self, level: str, message: str) -> None:
        if self._debug_callback:
            self._debug_callback(level, "Stream", message)

    async def load(self, messages: MessageList) -> bool:
        """Replace a list's contents with the backend's messages.

        Returns:
            False if authentication is not ready (list untouched), True otherwise

        Raises:
            BackendError: If the backend call fails
        """
        if not self._backend.is_ready:
            self._debug("debug", f"Skipping load of {messages.chat_id}: {AUTH_NOT_READY}")
            return False

        fetched = await self._backend.list_messages(messages.chat_id)
        messages.replace(LocalMessage.from_message(m) for m in fetched)
        self._callback.on_messages_replaced(messages)
        self._callback.on_scroll_requested(messages)
        self._debug("info", f"Loaded {len(messages)} message(s) for {messages.chat_id}")
        return True

    def _precheck(self, chat_id: str, text: str) -> SendResult | None:
        if not text.strip():
            return SendResult.skipped(chat_id, EMPTY_MESSAGE)
        if not self._backend.is_ready:
            self._debug("warning", f"Not sending to {chat_id}: {AUTH_NOT_READY}")
            return SendResult.skipped(chat_id, AUTH_NOT_READY)
        return None

    async def send_message(
        self,
        messages: MessageList,
        text: str,
        provider: str,
        model: str,
    ) -> SendResult:
        """Send ``text`` to the chat of ``messages`` and stream the reply into it.

        Blank text and a backend without credentials are no-ops.

        Returns:
            SendResult with the final assistant text, or the error that stopped the send
        """
        skipped = self._precheck(messages.chat_id, text)
        if skipped is not None:
            return skipped

        user = LocalMessage.placeholder("user", text, prefix=USER_PREFIX)
        self._append(messages, user)
        assistant = LocalMessage.placeholder("assistant", "", prefix=ASSISTANT_PREFIX, model=model)
        return await self._send(messages, user, assistant, provider, model, self._single_failure)

    async def send_to_both(
        self,
        main: MessageList,
        compare: MessageList,
        text: str,
        main_selection: ModelSelection,
        compare_selection: ModelSelection,
    ) -> DualSendResult:
        """Send one input to two chats at once.

        The two legs stream independently and concurrently. If either leg
        fails, both legs count as failed and the dual failure policy is applied
        to both assistant messages; user messages are never retracted.

        Raises:
            ValueError: If both lists belong to the same chat
        """
        if main.chat_id == compare.chat_id:
            raise ValueError("Main and compare chat must differ")

        skipped = self._precheck(main.chat_id, text)
        if skipped is not None:
            return DualSendResult(
                main=skipped,
                compare=SendResult.skipped(compare.chat_id, skipped.reason or ""),
            )

        main_user = LocalMessage.placeholder("user", text, prefix=USER_PREFIX)
        compare_user = LocalMessage.placeholder("user", text, prefix=USER_PREFIX)
        main_assistant = LocalMessage.placeholder(
            "assistant", "", prefix=TEMP_MAIN_PREFIX, model=main_selection.model
        )
        compare_assistant = LocalMessage.placeholder(
            "assistant", "", prefix=TEMP_COMPARE_PREFIX, model=compare_selection.model
        )
        self._append(main, main_user)
        self._append(compare, compare_user)

        legs = [
            (main, main_user, main_assistant, main_selection),
            (compare, compare_user, compare_assistant, compare_selection),
        ]
        try:
            outcomes = await asyncio.gather(
                *(
                    self._stream_leg(messages, user, assistant, selection.provider, selection.model)
                    for messages, user, assistant, selection in legs
                ),
                return_exceptions=True,
            )
        except asyncio.CancelledError:
            for messages, user, assistant, _ in legs:
                self._fail(messages, user, assistant, None, self._dual_failure)
            raise

        unexpected = [
            o for o in outcomes if isinstance(o, BaseException) and not isinstance(o, BackendError)
        ]
        if unexpected:
            for messages, user, assistant, _ in legs:
                self._fail(messages, user, assistant, None, self._dual_failure)
            raise unexpected[0]

        errors = [o for o in outcomes if isinstance(o, BackendError)]
        if not errors:
            return DualSendResult(
                main=SendResult(main.chat_id, SendStatus.OK, content=outcomes[0]),
                compare=SendResult(compare.chat_id, SendStatus.OK, content=outcomes[1]),
            )

        results = []
        for (messages, user, assistant, _), outcome in zip(legs, outcomes):
            error = outcome if isinstance(outcome, BackendError) else errors[0]
            self._fail(messages, user, assistant, error, self._dual_failure)
            results.append(SendResult.failed(messages.chat_id, error, content=assistant.content))
        return DualSendResult(main=results[0], compare=results[1])

    async def create_branch(
        self,
        source: MessageList,
        message_id: str,
        selection: ModelSelection,
        name: str = "",
        tags: str = "",
    ) -> BranchResult:
        """Branch a new chat off a message and prepare its message list.

        The new list holds the backend's history for the branch plus a clone
        of the origin message. When the origin is a user message its content is
        re-sent into the new chat with ``selection``; an assistant origin is
        only cloned.

        Raises:
            ValueError: If the message is not in ``source`` or not yet settled
        """
        origin = source.get(message_id)
        if origin is None:
            raise ValueError(f"Message {message_id} is not in chat {source.chat_id}")
        if origin.status != MessageStatus.SETTLED:
            raise ValueError(f"Message {message_id} has not been saved yet")

        if not self._backend.is_ready:
            self._debug("warning", f"Not branching from {message_id}: {AUTH_NOT_READY}")
            return BranchResult(source_chat_id=source.chat_id, skipped_reason=AUTH_NOT_READY)

        try:
            new_chat_id = await self._backend.branch_from(
                source.chat_id, message_id, BranchRequest(name=name, tags=tags)
            )
            history = await self._backend.list_messages(new_chat_id)
        except BackendError as e:
            self._debug("error", f"Branching from {message_id} failed: {e}")
            self._callback.on_error(source, e)
            return BranchResult(source_chat_id=source.chat_id, error=e)

        self._debug("info", f"Created branch {new_chat_id} from message {message_id}")
        clone = LocalMessage.placeholder(
            origin.role,
            origin.content,
            prefix=USER_PREFIX if origin.role == "user" else ASSISTANT_PREFIX,
            model=origin.model,
        )
        branch = MessageList(new_chat_id, (LocalMessage.from_message(m) for m in history))
        self._callback.on_branch_created(source, branch)
        self._append(branch, clone)
        result = BranchResult(source_chat_id=source.chat_id, new_chat_id=new_chat_id, messages=branch)

        if origin.role == "user":
            assistant = LocalMessage.placeholder(
                "assistant", "", prefix=ASSISTANT_PREFIX, model=selection.model
            )
            result.send = await self._send(
                branch, clone, assistant, selection.provider, selection.model, self._single_failure
            )
        return result

    async def _send(
        self,
        messages: MessageList,
        user: LocalMessage,
        assistant: LocalMessage,
        provider: str,
        model: str,
        policy: FailurePolicy,
    ) -> SendResult:
        """Stream one reply into ``messages`` and apply ``policy`` on failure."""
        try:
            content = await self._stream_leg(messages, user, assistant, provider, model)
        except BackendError as e:
            self._fail(messages, user, assistant, e, policy)
            return SendResult.failed(messages.chat_id, e, content=assistant.content)
        except asyncio.CancelledError:
            self._fail(messages, user, assistant, None, policy)
            raise
        return SendResult(messages.chat_id, SendStatus.OK, content=content)

    async def _stream_leg(
        self,
        messages: MessageList,
        user: LocalMessage,
        assistant: LocalMessage,
        provider: str,
        model: str,
    ) -> str:
        """Open the stream, fold chunks into ``assistant`` and settle both ids.

        ``user`` must already be in ``messages``; ``assistant`` is appended
        after the typing delay, before the first chunk is applied.
        """
        self._set_typing(messages, True)
        self._debug("info", f"Sending to {messages.chat_id} via {provider}/{model}")

        async with self._backend.stream_message(
            messages.chat_id, user.content, provider, model
        ) as stream:
            if self._typing_delay > 0:
                await asyncio.sleep(self._typing_delay)
            self._append(messages, assistant)

            buffer = ""
            async for chunk in stream:
                buffer += chunk
                assistant.content = buffer
                self._callback.on_content_updated(messages, assistant)
                self._callback.on_scroll_requested(messages)

        self._debug("debug", f"Stream for {messages.chat_id} done ({stream.chunks_received} chunks)")
        await self._reconcile(messages, user, assistant)
        self._set_typing(messages, False)
        self._callback.on_scroll_requested(messages)
        return assistant.content

    async def _reconcile(
        self,
        messages: MessageList,
        user: LocalMessage,
        assistant: LocalMessage,
    ) -> None:
        """Swap placeholder ids for the ids of the last two saved messages."""
        saved = await self._backend.list_messages(messages.chat_id)
        if len(saved) < 2:
            raise MalformedPayloadError(
                f"expected at least 2 messages in chat {messages.chat_id}, got {len(saved)}"
            )
        saved_user, saved_assistant = saved[-2:]
        for message, saved_id in ((user, saved_user.id), (assistant, saved_assistant.id)):
            if message in messages:
                message.settle(saved_id)
                self._callback.on_message_settled(messages, message)

    def _fail(
        self,
        messages: MessageList,
        user: LocalMessage,
        assistant: LocalMessage,
        error: BackendError | None,
        policy: FailurePolicy,
    ) -> None:
        if policy == FailurePolicy.REMOVE:
            if messages.remove(assistant):
                self._callback.on_message_removed(messages, assistant)
        else:
            assistant.stall()
        user.stall()
        self._set_typing(messages, False)

        if error is not None:
            self._debug("error", f"Send to {messages.chat_id} failed: {error}")
            self._callback.on_error(messages, error)

    def _append(self, messages: MessageList, message: LocalMessage) -> None:
        messages.append(message)
        self._callback.on_message_added(messages, message)
        self._callback.on_scroll_requested(messages)

    def _set_typing(self, messages: MessageList, typing: bool) -> None:
        if messages.typing != typing:
            messages.typing = typing
            self._callback.on_typing_changed(messages, typing)
