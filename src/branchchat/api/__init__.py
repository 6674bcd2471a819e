"""Client for the remote branching-chat backend."""

from .auth import EnvTokenProvider, StaticTokenProvider, TokenProvider
from .base import ChatBackend
from .errors import (
    AuthNotReadyError,
    BackendError,
    BackendHTTPError,
    BackendNetworkError,
    MalformedPayloadError,
    StreamUnavailableError,
)
from .factory import create_chat_backend
from .http import HttpChatBackend
from .models import (
    BranchRequest,
    Chat,
    Message,
    MessageStream,
    SessionUrl,
    TokenUsage,
)

__all__ = [
    "AuthNotReadyError",
    "BackendError",
    "BackendHTTPError",
    "BackendNetworkError",
    "BranchRequest",
    "Chat",
    "ChatBackend",
    "EnvTokenProvider",
    "HttpChatBackend",
    "MalformedPayloadError",
    "Message",
    "MessageStream",
    "SessionUrl",
    "StaticTokenProvider",
    "StreamUnavailableError",
    "TokenProvider",
    "TokenUsage",
    "create_chat_backend",
]
