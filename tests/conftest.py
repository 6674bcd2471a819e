"""Pytest configuration and shared fixtures."""
import asyncio
from contextlib import asynccontextmanager

import pytest

from branchchat.api import BackendHTTPError, Chat, ChatBackend, Message, MessageStream
from branchchat.api.models import BranchRequest, SessionUrl, TokenUsage
from branchchat.conversation import LocalMessage, MessageList, ReconcilerCallback, StreamingReconciler


class FakeChatBackend(ChatBackend):
    """In-memory backend with scripted replies and failures.

    A successful stream stores the user message and the full reply, the way
    the real backend does once the response body is complete.
    """

    def __init__(self, chats: list[Chat] | None = None, ready: bool = True):
        self.ready = ready
        self.chats: list[Chat] = list(chats or [])
        self.messages: dict[str, list[Message]] = {}
        self.replies: dict[str, list[str]] = {}
        self.default_reply = ["Hel", "lo"]
        self.fail_open: dict[str, Exception] = {}
        self.fail_midstream: dict[str, Exception] = {}
        self.block: dict[str, asyncio.Event] = {}
        self.fail_branch: Exception | None = None
        self.sent: list[tuple[str, str, str, str]] = []
        self.branches: list[tuple[str, str, BranchRequest]] = []
        self.token_count = 1234
        self.plan = "pro"
        self.closed = False
        self._counter = 0

    def _new_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    def add_history(self, chat_id: str, *pairs: tuple[str, str]) -> list[Message]:
        history = self.messages.setdefault(chat_id, [])
        for role, content in pairs:
            history.append(Message(id=self._new_id("m"), role=role, content=content))
        return history

    @property
    def is_ready(self) -> bool:
        return self.ready

    async def list_chats(self) -> list[Chat]:
        return list(self.chats)

    async def create_chat(self) -> str:
        chat_id = self._new_id("chat-")
        self.chats.append(Chat(id=chat_id))
        return chat_id

    async def delete_chat(self, chat_id: str) -> None:
        if not any(chat.id == chat_id for chat in self.chats):
            raise BackendHTTPError(404, "Chat not found")
        self.chats = [chat for chat in self.chats if chat.id != chat_id]

    async def list_messages(self, chat_id: str) -> list[Message]:
        return list(self.messages.get(chat_id, []))

    @asynccontextmanager
    async def stream_message(self, chat_id: str, content: str, provider: str, model: str):
        self.sent.append((chat_id, content, provider, model))
        if chat_id in self.fail_open:
            raise self.fail_open[chat_id]
        chunks = self.replies.get(chat_id, self.default_reply)

        async def _chunks():
            if chat_id in self.block:
                await self.block[chat_id].wait()
            for chunk in chunks:
                yield chunk
            if chat_id in self.fail_midstream:
                raise self.fail_midstream[chat_id]

        yield MessageStream(_chunks())

        history = self.messages.setdefault(chat_id, [])
        history.append(Message(id=self._new_id("m"), role="user", content=content))
        history.append(
            Message(id=self._new_id("m"), role="assistant", content="".join(chunks), model=model)
        )

    async def branch_from(self, chat_id: str, message_id: str, request: BranchRequest) -> str:
        if self.fail_branch is not None:
            raise self.fail_branch
        self.branches.append((chat_id, message_id, request))
        source = next((chat for chat in self.chats if chat.id == chat_id), None)
        root = (source.ancestor_id or source.id) if source is not None else chat_id
        new_id = self._new_id("branch-")
        self.chats.append(
            Chat(id=new_id, ancestor_id=root, branch_of=chat_id, name=request.name or None)
        )

        copied = []
        for message in self.messages.get(chat_id, []):
            if message.id == message_id:
                break
            copied.append(message.model_copy(update={"id": self._new_id("m")}))
        self.messages[new_id] = copied
        return new_id

    async def token_usage(self) -> TokenUsage:
        return TokenUsage(token_count=self.token_count, plan=self.plan)

    async def create_checkout_session(self, plan: str) -> SessionUrl:
        return SessionUrl(url=f"https://billing.example/checkout/{plan}")

    async def create_portal_session(self) -> SessionUrl:
        return SessionUrl(url="https://billing.example/portal")

    async def close(self) -> None:
        self.closed = True


class RecordingCallback(ReconcilerCallback):
    """Records reconciler events as (event, chat_id, detail) tuples.

    Content updates record the text at the time of the event; additions
    record the id the message had when it was appended.
    """

    def __init__(self):
        self.events: list[tuple[str, str, str]] = []
        self.errors: list[Exception] = []

    def only(self, event: str) -> list[tuple[str, str, str]]:
        return [e for e in self.events if e[0] == event]

    def on_message_added(self, messages: MessageList, message: LocalMessage) -> None:
        self.events.append(("added", messages.chat_id, message.id))

    def on_content_updated(self, messages: MessageList, message: LocalMessage) -> None:
        self.events.append(("content", messages.chat_id, message.content))

    def on_message_settled(self, messages: MessageList, message: LocalMessage) -> None:
        self.events.append(("settled", messages.chat_id, message.id))

    def on_message_removed(self, messages: MessageList, message: LocalMessage) -> None:
        self.events.append(("removed", messages.chat_id, message.id))

    def on_messages_replaced(self, messages: MessageList) -> None:
        self.events.append(("replaced", messages.chat_id, str(len(messages))))

    def on_branch_created(self, source: MessageList, branch: MessageList) -> None:
        self.events.append(("branched", branch.chat_id, source.chat_id))

    def on_typing_changed(self, messages: MessageList, typing: bool) -> None:
        self.events.append(("typing", messages.chat_id, str(typing)))

    def on_error(self, messages: MessageList, error: Exception) -> None:
        self.events.append(("error", messages.chat_id, str(error)))
        self.errors.append(error)


@pytest.fixture
def root_chats():
    """A root chat with one branch."""
    return [
        Chat(id="root", ancestor_id=None, branch_of=None, name="Root"),
        Chat(id="b1", ancestor_id="root", branch_of="root", name="First branch"),
    ]


@pytest.fixture
def backend(root_chats):
    """Fake backend holding ``root`` with one question and answer."""
    fake = FakeChatBackend(root_chats)
    fake.add_history("root", ("user", "Hi"), ("assistant", "Hello there"))
    return fake


@pytest.fixture
def callback():
    return RecordingCallback()


@pytest.fixture
def reconciler(backend, callback):
    """Reconciler without typing delay."""
    return StreamingReconciler(backend, callback=callback, typing_delay=0)
