"""HTTP implementation of the chat backend.

Uses httpx's AsyncClient for JSON endpoints and for the streamed message
endpoint, whose response body is plain text delivered incrementally.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from .auth import StaticTokenProvider, TokenProvider
from .base import ChatBackend
from .errors import (
    AuthNotReadyError,
    BackendHTTPError,
    BackendNetworkError,
    MalformedPayloadError,
    StreamUnavailableError,
)
from .models import (
    BranchCreated,
    BranchRequest,
    Chat,
    ChatCreated,
    Message,
    MessageStream,
    SessionUrl,
    TokenUsage,
)

# Status codes that can never carry a reply stream
_NO_BODY_STATUSES = (204, 205)

_ERROR_PREVIEW_LENGTH = 200


class HttpChatBackend(ChatBackend):
    """Chat backend reached over HTTP.

    Hidden design decisions:
    - httpx AsyncClient lifecycle and timeouts
    - Bearer header construction from a TokenProvider
    - Accepting both ``[...]`` and ``{"data": [...]}`` for list endpoints
    - Incremental UTF-8 decoding of the reply stream
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token_provider: TokenProvider | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        **client_kwargs: Any
    ):
        """Initialize the HTTP backend.

        Args:
            base_url: Backend base URL
            token_provider: Source of bearer tokens (default: no token)
            timeout: Request timeout in seconds, applied to every read of the stream too
            transport: Optional custom transport (used by tests)
            **client_kwargs: Additional kwargs for httpx.AsyncClient
        """
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider or StaticTokenProvider(None)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            **client_kwargs
        )
        self._debug_callback: Any | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_ready(self) -> bool:
        return self._token_provider.is_ready

    def set_debug_callback(self, callback: Any) -> None:
        """Set the debug callback for request logging.

        Args:
            callback: Callable(level: str, component: str, message: str)
        """
        self._debug_callback = callback

    def _debug(self, level: str, message: str) -> None:
        if self._debug_callback:
            self._debug_callback(level, "API", message)

    async def _headers(self, required: bool = True) -> dict[str, str]:
        token = await self._token_provider.get_token()
        if token is None:
            if required:
                raise AuthNotReadyError()
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        path: str,
        auth_required: bool = True,
        **kwargs: Any
    ) -> httpx.Response:
        headers = await self._headers(required=auth_required)
        self._debug("debug", f"{method} {path}")
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise BackendNetworkError(str(e)) from e

        if response.is_error:
            raise BackendHTTPError(response.status_code, response.text[:_ERROR_PREVIEW_LENGTH])
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedPayloadError(f"invalid JSON from {response.request.url.path}") from e

    def _unwrap_list(self, payload: Any, what: str) -> list[Any]:
        """Accept a bare array or an object wrapping it under ``data``."""
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            return payload["data"]
        self._debug("warning", f"Expected a list of {what}, got {type(payload).__name__}")
        return []

    def _parse_items(self, items: list[Any], model: type[BaseModel], what: str) -> list[Any]:
        parsed = []
        for item in items:
            try:
                parsed.append(model.model_validate(item))
            except ValidationError as e:
                self._debug("warning", f"Skipping malformed {what}: {e.error_count()} error(s)")
        return parsed

    @staticmethod
    def _parse_object(payload: Any, model: type[BaseModel]) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise MalformedPayloadError(str(e)) from e

    async def list_chats(self) -> list[Chat]:
        response = await self._request("GET", "/chats")
        items = self._unwrap_list(self._json(response), "chats")
        return self._parse_items(items, Chat, "chat")

    async def create_chat(self) -> str:
        response = await self._request("POST", "/chats")
        return self._parse_object(self._json(response), ChatCreated).chat_id

    async def delete_chat(self, chat_id: str) -> None:
        await self._request("DELETE", f"/chats/{chat_id}")

    async def list_messages(self, chat_id: str) -> list[Message]:
        response = await self._request("GET", f"/chats/{chat_id}/messages")
        items = self._unwrap_list(self._json(response), "messages")
        return self._parse_items(items, Message, "message")

    @asynccontextmanager
    async def stream_message(
        self,
        chat_id: str,
        content: str,
        provider: str,
        model: str,
    ) -> AsyncIterator[MessageStream]:
        headers = await self._headers()
        request = self._client.build_request(
            "POST",
            f"/chats/{chat_id}/messages",
            params={"provider": provider, "model": model},
            json={"content": content},
            headers=headers,
        )
        self._debug("debug", f"POST {request.url.path} ({provider}/{model}, streaming)")

        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise BackendNetworkError(str(e)) from e

        try:
            if response.is_error:
                await response.aread()
                raise BackendHTTPError(
                    response.status_code, response.text[:_ERROR_PREVIEW_LENGTH]
                )
            if response.status_code in _NO_BODY_STATUSES:
                raise StreamUnavailableError()
            yield MessageStream(self._iter_text(response))
        finally:
            await response.aclose()

    @staticmethod
    async def _iter_text(response: httpx.Response) -> AsyncIterator[str]:
        """Yield decoded chunks, translating transport errors."""
        try:
            async for text in response.aiter_text():
                if text:
                    yield text
        except httpx.HTTPError as e:
            raise BackendNetworkError(str(e)) from e

    async def branch_from(
        self,
        chat_id: str,
        message_id: str,
        request: BranchRequest,
    ) -> str:
        response = await self._request(
            "POST",
            f"/chats/{chat_id}/branch-from/{message_id}",
            json=request.model_dump(),
        )
        return self._parse_object(self._json(response), BranchCreated).new_chat_id

    async def token_usage(self) -> TokenUsage:
        response = await self._request("GET", "/user/token_count")
        payload = self._json(response)
        if not isinstance(payload, dict):
            return TokenUsage()
        return self._parse_object(payload, TokenUsage)

    async def create_checkout_session(self, plan: str) -> SessionUrl:
        response = await self._request(
            "POST",
            "/create-checkout-session",
            auth_required=False,
            json={"plan": plan},
        )
        return self._parse_object(self._json(response), SessionUrl)

    async def create_portal_session(self) -> SessionUrl:
        response = await self._request("POST", "/create-portal-session", auth_required=False)
        return self._parse_object(self._json(response), SessionUrl)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
