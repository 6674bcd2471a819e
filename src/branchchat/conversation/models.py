"""Data models for client-side conversation state.

These models define how optimistic messages are represented and how a send
reports its outcome, independent of the view that renders them.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

from pydantic import Field

from ..api.models import Message, utcnow

USER_PREFIX = "user"
ASSISTANT_PREFIX = "assistant"
TEMP_MAIN_PREFIX = "temp-main"
TEMP_COMPARE_PREFIX = "temp-compare"


class MessageStatus(str, Enum):
    """Lifecycle of a message in a local list."""

    PENDING = "pending"    # Placeholder id, possibly still streaming
    SETTLED = "settled"    # Authoritative id from the backend
    STALLED = "stalled"    # Send failed, placeholder kept


class FailurePolicy(str, Enum):
    """What a failed send does with its optimistic messages."""

    KEEP = "keep"      # Keep placeholders, marked stalled
    REMOVE = "remove"  # Drop assistant placeholders


class LocalMessage(Message):
    """A message as held in a chat's in-memory list.

    Carries an explicit status instead of encoding it in the id prefix.
    """

    status: MessageStatus = Field(default=MessageStatus.SETTLED)

    @classmethod
    def placeholder(
        cls,
        role: str,
        content: str = "",
        prefix: str | None = None,
        model: str | None = None,
    ) -> "LocalMessage":
        """Create a pending message with a temporary id."""
        return cls(
            id=f"{prefix or role}-{uuid4().hex[:12]}",
            role=role,
            content=content,
            created_at=utcnow(),
            model=model,
            status=MessageStatus.PENDING,
        )

    @classmethod
    def from_message(cls, message: Message) -> "LocalMessage":
        """Wrap a message fetched from the backend."""
        return cls(**message.model_dump(exclude={"status"}), status=MessageStatus.SETTLED)

    @property
    def is_pending(self) -> bool:
        return self.status == MessageStatus.PENDING

    def settle(self, message_id: str) -> None:
        """Replace the temporary id with the backend's id."""
        self.id = message_id
        self.status = MessageStatus.SETTLED

    def stall(self) -> None:
        if self.status == MessageStatus.PENDING:
            self.status = MessageStatus.STALLED


class MessageList:
    """Ordered messages of one chat plus its typing indicator.

    The list exclusively owns its messages; replacing the contents (e.g. on
    navigation) drops the previous ones.
    """

    def __init__(self, chat_id: str, messages: Iterable[LocalMessage] = ()):
        self.chat_id = chat_id
        self._messages: list[LocalMessage] = list(messages)
        self.typing = False

    def __iter__(self) -> Iterator[LocalMessage]:
        return iter(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __getitem__(self, index: int) -> LocalMessage:
        return self._messages[index]

    def __contains__(self, message: object) -> bool:
        return any(m is message for m in self._messages)

    def append(self, message: LocalMessage) -> None:
        self._messages.append(message)

    def replace(self, messages: Iterable[LocalMessage]) -> None:
        self._messages = list(messages)

    def remove(self, message: LocalMessage) -> bool:
        """Remove a message by identity. Returns True if it was present."""
        for index, existing in enumerate(self._messages):
            if existing is message:
                del self._messages[index]
                return True
        return False

    def get(self, message_id: str) -> LocalMessage | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def last(self, role: str | None = None) -> LocalMessage | None:
        """Most recent message, optionally restricted to a role."""
        for message in reversed(self._messages):
            if role is None or message.role == role:
                return message
        return None

    def pending(self) -> list[LocalMessage]:
        return [m for m in self._messages if m.is_pending]


class SendStatus(str, Enum):
    """Outcome of a send."""

    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"  # Nothing was sent (blank text, auth not ready)


@dataclass
class SendResult:
    """Outcome of sending one message to one chat."""

    chat_id: str
    status: SendStatus
    content: str = ""
    error: Exception | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SendStatus.OK

    @classmethod
    def skipped(cls, chat_id: str, reason: str) -> "SendResult":
        return cls(chat_id=chat_id, status=SendStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, chat_id: str, error: Exception, content: str = "") -> "SendResult":
        return cls(chat_id=chat_id, status=SendStatus.FAILED, content=content, error=error, reason=str(error))


@dataclass
class DualSendResult:
    """Outcome of sending one input to two chats."""

    main: SendResult
    compare: SendResult

    @property
    def ok(self) -> bool:
        return self.main.ok and self.compare.ok


@dataclass
class BranchResult:
    """Outcome of branching from a message."""

    source_chat_id: str
    new_chat_id: str | None = None
    messages: MessageList | None = None
    send: SendResult | None = None
    skipped_reason: str | None = None
    error: Exception | None = None

    @property
    def created(self) -> bool:
        return self.new_chat_id is not None
