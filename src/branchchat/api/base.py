from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any

from .models import BranchRequest, Chat, Message, MessageStream, SessionUrl, TokenUsage


class ChatBackend(ABC):
    """Abstract base class for the remote chat backend.

    This module hides the design decision of how the client talks to the
    backend. Implementations must handle:
    - Transport setup and authentication headers
    - Response shape normalisation (bare arrays vs wrapped payloads)
    - Translating transport failures into BackendError subclasses

    Supports async context manager protocol for proper resource cleanup:
        async with backend:
            chats = await backend.list_chats()
        # Automatically cleaned up
    """

    @property
    @abstractmethod
    def is_ready(self) -> bool:
        """Whether authenticated requests can be issued right now."""

    @abstractmethod
    async def list_chats(self) -> list[Chat]:
        """List all chats of the current user.

        Returns:
            Chats in backend order; an unexpected payload yields an empty list
        """

    @abstractmethod
    async def create_chat(self) -> str:
        """Create an empty chat.

        Returns:
            Identifier of the new chat
        """

    @abstractmethod
    async def delete_chat(self, chat_id: str) -> None:
        """Delete a chat.

        Raises:
            BackendHTTPError: If the backend refuses the deletion
        """

    @abstractmethod
    async def list_messages(self, chat_id: str) -> list[Message]:
        """List the messages of a chat, oldest first."""

    @abstractmethod
    def stream_message(
        self,
        chat_id: str,
        content: str,
        provider: str,
        model: str,
    ) -> AbstractAsyncContextManager[MessageStream]:
        """Send a user message and stream the assistant reply.

        The request is issued when the context is entered; the yielded
        MessageStream produces decoded text chunks in arrival order. Leaving
        the context closes the underlying response.

        Args:
            chat_id: Chat to send to
            content: User message text
            provider: LLM provider name
            model: Model name

        Raises:
            StreamUnavailableError: If the response carries no stream body
            BackendNetworkError: On transport failures, on entry or while reading
        """

    @abstractmethod
    async def branch_from(
        self,
        chat_id: str,
        message_id: str,
        request: BranchRequest,
    ) -> str:
        """Create a new chat branched from a message.

        Returns:
            Identifier of the new chat
        """

    @abstractmethod
    async def token_usage(self) -> TokenUsage:
        """Get token usage and active plan of the current user."""

    @abstractmethod
    async def create_checkout_session(self, plan: str) -> SessionUrl:
        """Start a hosted checkout for a subscription plan."""

    @abstractmethod
    async def create_portal_session(self) -> SessionUrl:
        """Open the hosted subscription management portal."""

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "ChatBackend":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
