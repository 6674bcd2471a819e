from typing import Any

from .auth import StaticTokenProvider
from .base import ChatBackend
from .http import HttpChatBackend


def create_chat_backend(backend: str = "http", **config: Any) -> ChatBackend:
    """Create a chat backend instance.

    This factory function hides the instantiation logic for different backends.

    Args:
        backend: Backend type (currently only 'http')
        **config: Backend-specific configuration
            For HTTP:
                - base_url: str (default: 'http://localhost:8000')
                - token: str | None (wrapped in a StaticTokenProvider)
                - token_provider: TokenProvider | None (takes precedence over token)
                - timeout: float (default: 60.0)

    Returns:
        Initialized chat backend instance

    Raises:
        ValueError: If backend type is not supported

    Examples:
        >>> backend = create_chat_backend(
        ...     "http",
        ...     base_url="http://localhost:8000",
        ...     token="eyJ..."
        ... )
    """
    backend_lower = backend.lower()

    if backend_lower == "http":
        token = config.pop("token", None)
        if config.get("token_provider") is None:
            config["token_provider"] = StaticTokenProvider(token)
        return HttpChatBackend(**config)

    raise ValueError(
        f"Unsupported backend: {backend}. "
        f"Supported backends: 'http'"
    )
