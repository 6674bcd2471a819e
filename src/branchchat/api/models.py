from collections.abc import AsyncIterator
from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class MessageStream:
    """Async iterator over the decoded text chunks of a streamed reply.

    Keeps the number of chunks seen and the text accumulated so far, so
    callers can inspect the stream after iterating it.

    Usage:
        async with backend.stream_message(chat_id, "Hi", "gemini", "gemini-2.0-flash") as stream:
            async for chunk in stream:
                print(chunk, end="")
        print(stream.text)
    """

    def __init__(self, async_iter: AsyncIterator[str]):
        """Initialize with an async iterator of text chunks.

        Args:
            async_iter: Async iterator yielding decoded text chunks
        """
        self._iter = async_iter
        self._parts: list[str] = []

    @property
    def chunks_received(self) -> int:
        """Number of chunks yielded so far."""
        return len(self._parts)

    @property
    def text(self) -> str:
        """Concatenation of all chunks yielded so far."""
        return "".join(self._parts)

    def __aiter__(self) -> "MessageStream":
        return self

    async def __anext__(self) -> str:
        chunk = await self._iter.__anext__()
        self._parts.append(chunk)
        return chunk


class Chat(BaseModel):
    """A chat record as returned by ``GET /chats``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)

    id: str = Field(description="Chat identifier")
    ancestor_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ancestorId", "ancestor_id"),
        description="Root chat of the tree this chat belongs to (None for roots)"
    )
    branch_of: str | None = Field(default=None, description="Immediate parent chat")
    name: str | None = Field(default=None, description="Display name")
    created_at: datetime | None = Field(default=None, description="Creation time")

    @property
    def is_root(self) -> bool:
        return self.ancestor_id is None

    @property
    def label(self) -> str:
        """Name to display for this chat."""
        return self.name or f"Chat {self.id[:8]}"


class Message(BaseModel):
    """A message as returned by ``GET /chats/{id}/messages``."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str = Field(description="Message identifier")
    content: str = Field(default="", description="Message text")
    role: str = Field(description="Role of the sender: 'user' or 'assistant'")
    created_at: datetime = Field(default_factory=utcnow)
    model: str | None = Field(default=None, description="Model that produced an assistant reply")


class ChatCreated(BaseModel):
    """Response of ``POST /chats``."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    chat_id: str


class BranchCreated(BaseModel):
    """Response of ``POST /chats/{id}/branch-from/{message_id}``."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    new_chat_id: str


class BranchRequest(BaseModel):
    """Body of a branch request."""

    name: str = Field(default="", description="Name of the new branch")
    tags: str = Field(default="", description="Free-form tags")


class TokenUsage(BaseModel):
    """Response of ``GET /user/token_count``."""

    token_count: int | None = Field(default=None, description="Tokens used so far")
    plan: str | None = Field(default=None, description="Active subscription plan")


class SessionUrl(BaseModel):
    """Response of the checkout and portal session endpoints."""

    url: str | None = Field(default=None, description="Hosted page to redirect to")
