"""Unit tests for the HTTP backend client."""
import json

import httpx
import pytest

from branchchat.api import (
    AuthNotReadyError,
    BackendHTTPError,
    BackendNetworkError,
    BranchRequest,
    ChatBackend,
    EnvTokenProvider,
    HttpChatBackend,
    MalformedPayloadError,
    StaticTokenProvider,
    StreamUnavailableError,
    create_chat_backend,
)

TOKEN = "test-token"


def make_backend(handler, token: str | None = TOKEN) -> HttpChatBackend:
    return HttpChatBackend(
        base_url="http://backend.test/",
        token_provider=StaticTokenProvider(token),
        transport=httpx.MockTransport(handler),
    )


def json_handler(payload, status_code: int = 200, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)
    return handler


class TestChatBackend:
    """Tests for ChatBackend interface."""

    def test_chat_backend_is_abstract(self):
        """Test that ChatBackend cannot be instantiated directly."""
        with pytest.raises(TypeError):
            ChatBackend()  # type: ignore


class TestFactory:
    """Tests for create_chat_backend."""

    def test_create_http_backend(self):
        backend = create_chat_backend("HTTP", base_url="http://backend.test/", token="abc")

        assert isinstance(backend, HttpChatBackend)
        assert backend.base_url == "http://backend.test"
        assert backend.is_ready

    def test_missing_token_is_not_ready(self):
        backend = create_chat_backend("http", token=None)
        assert not backend.is_ready

    def test_unknown_backend_fails(self):
        with pytest.raises(ValueError, match="Unsupported backend"):
            create_chat_backend("grpc")


class TestTokenProviders:
    """Tests for bearer token sources."""

    @pytest.mark.asyncio
    async def test_static_empty_token_is_not_ready(self):
        provider = StaticTokenProvider("")

        assert not provider.is_ready
        assert await provider.get_token() is None

    @pytest.mark.asyncio
    async def test_env_token_is_read_on_demand(self, monkeypatch):
        provider = EnvTokenProvider("TEST_BRANCHCHAT_TOKEN")
        monkeypatch.delenv("TEST_BRANCHCHAT_TOKEN", raising=False)
        assert not provider.is_ready

        monkeypatch.setenv("TEST_BRANCHCHAT_TOKEN", "later")
        assert provider.is_ready
        assert await provider.get_token() == "later"


class TestListChats:
    """Tests for GET /chats."""

    @pytest.mark.asyncio
    async def test_bare_array(self):
        seen = []
        payload = [
            {"id": "a", "ancestorId": None, "branch_of": None, "name": "Root"},
            {"id": "b", "ancestorId": "a", "branch_of": "a"},
        ]
        async with make_backend(json_handler(payload, seen=seen)) as backend:
            chats = await backend.list_chats()

        assert [c.id for c in chats] == ["a", "b"]
        assert chats[1].ancestor_id == "a"
        assert chats[1].branch_of == "a"
        assert seen[0].headers["Authorization"] == f"Bearer {TOKEN}"
        assert seen[0].url.path == "/chats"

    @pytest.mark.asyncio
    async def test_wrapped_array(self):
        payload = {"data": [{"id": "a"}, {"id": 7, "ancestor_id": "a", "branch_of": "a"}]}
        async with make_backend(json_handler(payload)) as backend:
            chats = await backend.list_chats()

        assert [c.id for c in chats] == ["a", "7"]
        assert chats[1].ancestor_id == "a"

    @pytest.mark.asyncio
    async def test_unexpected_shape_gives_empty_list(self):
        async with make_backend(json_handler({"chats": "nope"})) as backend:
            assert await backend.list_chats() == []

    @pytest.mark.asyncio
    async def test_malformed_items_are_skipped(self):
        payload = [{"id": "a"}, {"name": "no id"}, "garbage"]
        async with make_backend(json_handler(payload)) as backend:
            chats = await backend.list_chats()

        assert [c.id for c in chats] == ["a"]

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        async with make_backend(handler) as backend:
            with pytest.raises(MalformedPayloadError):
                await backend.list_chats()

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        async with make_backend(json_handler({"detail": "nope"}, status_code=401)) as backend:
            with pytest.raises(BackendHTTPError) as exc_info:
                await backend.list_chats()

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_transport_error_becomes_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_backend(handler) as backend:
            with pytest.raises(BackendNetworkError, match="connection refused"):
                await backend.list_chats()

    @pytest.mark.asyncio
    async def test_without_token_no_request_is_made(self):
        seen = []
        async with make_backend(json_handler([], seen=seen), token=None) as backend:
            with pytest.raises(AuthNotReadyError):
                await backend.list_chats()

        assert seen == []


class TestChatEndpoints:
    """Tests for chat creation, deletion and message listing."""

    @pytest.mark.asyncio
    async def test_create_chat_returns_id(self):
        seen = []
        async with make_backend(json_handler({"chat_id": "new-1"}, seen=seen)) as backend:
            assert await backend.create_chat() == "new-1"

        assert seen[0].method == "POST"

    @pytest.mark.asyncio
    async def test_create_chat_without_id_is_malformed(self):
        async with make_backend(json_handler({})) as backend:
            with pytest.raises(MalformedPayloadError):
                await backend.create_chat()

    @pytest.mark.asyncio
    async def test_delete_chat(self):
        seen = []
        async with make_backend(json_handler({"ok": True}, seen=seen)) as backend:
            await backend.delete_chat("a")

        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/chats/a"

    @pytest.mark.asyncio
    async def test_list_messages(self):
        payload = [
            {"id": "m1", "role": "user", "content": "Hi", "created_at": "2024-05-01T10:00:00Z"},
            {"id": "m2", "role": "assistant", "content": "Hello", "model": "gpt-4o"},
        ]
        async with make_backend(json_handler(payload)) as backend:
            messages = await backend.list_messages("a")

        assert [m.id for m in messages] == ["m1", "m2"]
        assert messages[0].created_at.year == 2024
        assert messages[1].model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_branch_from_posts_name_and_tags(self):
        seen = []
        async with make_backend(json_handler({"new_chat_id": "b1"}, seen=seen)) as backend:
            new_id = await backend.branch_from("a", "m1", BranchRequest(name="alt", tags="x,y"))

        assert new_id == "b1"
        assert seen[0].url.path == "/chats/a/branch-from/m1"
        assert json.loads(seen[0].content) == {"name": "alt", "tags": "x,y"}


class TestStreamMessage:
    """Tests for the streamed message endpoint."""

    @pytest.mark.asyncio
    async def test_chunks_are_yielded_in_order(self):
        seen = []

        async def body():
            yield b"Hel"
            yield b"lo"

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200, headers={"content-type": "text/plain; charset=utf-8"}, content=body()
            )

        async with make_backend(handler) as backend:
            async with backend.stream_message("a", "Hi", "openai", "gpt-4o") as stream:
                chunks = [chunk async for chunk in stream]

        assert "".join(chunks) == "Hello"
        assert stream.text == "Hello"
        assert stream.chunks_received == len(chunks)
        request = seen[0]
        assert request.url.path == "/chats/a/messages"
        assert request.url.params["provider"] == "openai"
        assert request.url.params["model"] == "gpt-4o"
        assert json.loads(request.content) == {"content": "Hi"}

    @pytest.mark.asyncio
    async def test_multibyte_characters_split_across_chunks(self):
        async def body():
            yield "caf".encode() + "é".encode()[:1]
            yield "é".encode()[1:]

        def handler(request):
            return httpx.Response(
                200, headers={"content-type": "text/plain; charset=utf-8"}, content=body()
            )

        async with make_backend(handler) as backend:
            async with backend.stream_message("a", "Hi", "gemini", "gemini-2.0-flash") as stream:
                text = "".join([chunk async for chunk in stream])

        assert text == "café"

    @pytest.mark.asyncio
    async def test_no_content_means_no_stream(self):
        async with make_backend(lambda request: httpx.Response(204)) as backend:
            with pytest.raises(StreamUnavailableError, match="No stream"):
                async with backend.stream_message("a", "Hi", "gemini", "gemini-2.0-flash"):
                    pass

    @pytest.mark.asyncio
    async def test_error_status_raises_before_streaming(self):
        def handler(request):
            return httpx.Response(500, text="model crashed")

        async with make_backend(handler) as backend:
            with pytest.raises(BackendHTTPError, match="model crashed") as exc_info:
                async with backend.stream_message("a", "Hi", "gemini", "gemini-2.0-flash"):
                    pass

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_stream_needs_token(self):
        async with make_backend(lambda request: httpx.Response(200), token=None) as backend:
            with pytest.raises(AuthNotReadyError):
                async with backend.stream_message("a", "Hi", "gemini", "gemini-2.0-flash"):
                    pass


class TestAccountEndpoints:
    """Tests for usage and billing endpoints."""

    @pytest.mark.asyncio
    async def test_token_usage(self):
        payload = {"token_count": 1500, "plan": "pro"}
        async with make_backend(json_handler(payload)) as backend:
            usage = await backend.token_usage()

        assert usage.token_count == 1500
        assert usage.plan == "pro"

    @pytest.mark.asyncio
    async def test_token_usage_non_object_is_empty(self):
        async with make_backend(json_handler([1, 2])) as backend:
            usage = await backend.token_usage()

        assert usage.token_count is None
        assert usage.plan is None

    @pytest.mark.asyncio
    async def test_checkout_works_without_token(self):
        seen = []
        handler = json_handler({"url": "https://pay.test/c/1"}, seen=seen)
        async with make_backend(handler, token=None) as backend:
            session = await backend.create_checkout_session("pro")

        assert session.url == "https://pay.test/c/1"
        assert "Authorization" not in seen[0].headers
        assert json.loads(seen[0].content) == {"plan": "pro"}

    @pytest.mark.asyncio
    async def test_portal_sends_token_when_available(self):
        seen = []
        async with make_backend(json_handler({"url": None}, seen=seen)) as backend:
            session = await backend.create_portal_session()

        assert session.url is None
        assert seen[0].url.path == "/create-portal-session"
        assert seen[0].headers["Authorization"] == f"Bearer {TOKEN}"
