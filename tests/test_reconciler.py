"""Unit tests for the streaming message reconciler."""
import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from branchchat.api import BackendHTTPError, BackendNetworkError, StreamUnavailableError
from branchchat.catalog import ModelSelection
from branchchat.conversation import (
    FailurePolicy,
    LocalMessage,
    MessageList,
    MessageStatus,
    SendStatus,
    StreamingReconciler,
)
from branchchat.conversation.reconciler import AUTH_NOT_READY, EMPTY_MESSAGE
from conftest import FakeChatBackend, RecordingCallback

GEMINI = ModelSelection(provider="gemini")
OPENAI = ModelSelection(provider="openai", model="gpt-4o")


async def _loaded(reconciler: StreamingReconciler, chat_id: str) -> MessageList:
    messages = MessageList(chat_id)
    await reconciler.load(messages)
    return messages


class TestLoad:
    """Tests for loading a chat's messages."""

    @pytest.mark.asyncio
    async def test_load_replaces_list_with_settled_messages(self, reconciler, callback):
        messages = MessageList("root", [LocalMessage.placeholder("user", "stale")])

        assert await reconciler.load(messages) is True

        assert [m.content for m in messages] == ["Hi", "Hello there"]
        assert all(m.status == MessageStatus.SETTLED for m in messages)
        assert callback.only("replaced") == [("replaced", "root", "2")]

    @pytest.mark.asyncio
    async def test_load_without_auth_leaves_list_untouched(self, backend, reconciler):
        backend.ready = False
        messages = MessageList("root")

        assert await reconciler.load(messages) is False
        assert len(messages) == 0


class TestSendMessage:
    """Tests for single-chat sends."""

    @pytest.mark.asyncio
    async def test_chunks_fold_into_assistant_message(self, reconciler, callback):
        """Chunks ["Hel", "lo"] give "Hello" and exactly two content updates."""
        messages = await _loaded(reconciler, "root")

        result = await reconciler.send_message(messages, "How are you?", "gemini", "gemini-2.0-flash")

        assert result.ok
        assert result.content == "Hello"
        assert messages[-1].content == "Hello"
        assert [e[2] for e in callback.only("content")] == ["Hel", "Hello"]

    @pytest.mark.asyncio
    async def test_appends_one_user_and_one_assistant_message(self, reconciler):
        messages = await _loaded(reconciler, "root")
        before = len(messages)

        await reconciler.send_message(messages, "Again", "gemini", "gemini-2.0-flash")

        assert len(messages) == before + 2
        assert [m.role for m in messages][-2:] == ["user", "assistant"]
        assert messages[-2].content == "Again"
        assert messages[-1].model == "gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_placeholder_exists_before_first_chunk(self, reconciler, callback):
        messages = await _loaded(reconciler, "root")

        await reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")

        kinds = [e[0] for e in callback.events]
        added = [i for i, e in enumerate(callback.events) if e[0] == "added"]
        assert len(added) == 2
        assert added[1] < kinds.index("content")
        assert callback.events[added[0]][2].startswith("user-")
        assert callback.events[added[1]][2].startswith("assistant-")

    @pytest.mark.asyncio
    async def test_placeholders_settle_with_backend_ids(self, backend, reconciler):
        messages = await _loaded(reconciler, "root")

        await reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")

        saved = backend.messages["root"]
        assert [m.id for m in messages][-2:] == [saved[-2].id, saved[-1].id]
        assert messages.pending() == []
        assert messages.typing is False

    @pytest.mark.asyncio
    async def test_request_carries_provider_and_model(self, backend, reconciler):
        messages = await _loaded(reconciler, "root")

        await reconciler.send_message(messages, "Hey", "openai", "gpt-4o")

        assert backend.sent == [("root", "Hey", "openai", "gpt-4o")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_text_is_a_no_op(self, backend, reconciler, callback, text):
        messages = await _loaded(reconciler, "root")
        callback.events.clear()

        result = await reconciler.send_message(messages, text, "gemini", "gemini-2.0-flash")

        assert result.status == SendStatus.SKIPPED
        assert result.reason == EMPTY_MESSAGE
        assert len(messages) == 2
        assert backend.sent == []
        assert callback.events == []

    @pytest.mark.asyncio
    async def test_auth_not_ready_is_a_no_op(self, backend, reconciler):
        messages = MessageList("root")
        backend.ready = False

        result = await reconciler.send_message(messages, "Hello", "gemini", "gemini-2.0-flash")

        assert result.status == SendStatus.SKIPPED
        assert result.reason == AUTH_NOT_READY
        assert len(messages) == 0
        assert backend.sent == []


class TestTypingDelay:
    """Tests for when the assistant placeholder appears."""

    @pytest.mark.asyncio
    async def test_placeholder_appears_after_delay_while_stream_is_open(self, backend, callback):
        reconciler = StreamingReconciler(backend, callback=callback, typing_delay=0.05)
        messages = await _loaded(reconciler, "root")
        backend.block["root"] = asyncio.Event()

        task = asyncio.create_task(
            reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")
        )
        for _ in range(5):
            await asyncio.sleep(0)

        # Request is open, delay still running: only the user message so far
        assert backend.sent == [("root", "Hey", "gemini", "gemini-2.0-flash")]
        assert [m.role for m in messages] == ["user", "assistant", "user"]
        assert messages.typing is True

        for _ in range(100):
            if messages[-1].role == "assistant":
                break
            await asyncio.sleep(0.01)

        placeholders = [m for m in messages.pending() if m.role == "assistant"]
        assert len(placeholders) == 1
        assert placeholders[0].content == ""
        assert not task.done()
        assert callback.only("content") == []

        backend.block["root"].set()
        result = await task

        assert result.ok
        kinds = [e[0] for e in callback.events]
        last_added = max(i for i, kind in enumerate(kinds) if kind == "added")
        assert kinds.index("content") > last_added


class TestSendFailures:
    """Tests for what failed sends leave behind."""

    @pytest.mark.asyncio
    async def test_keep_policy_leaves_stalled_placeholder(self, backend, reconciler, callback):
        backend.replies["root"] = ["par"]
        backend.fail_midstream["root"] = BackendNetworkError("connection reset")
        messages = await _loaded(reconciler, "root")

        result = await reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")

        assert result.status == SendStatus.FAILED
        assert isinstance(result.error, BackendNetworkError)
        assert result.content == "par"
        user, assistant = messages[-2], messages[-1]
        assert user.status == MessageStatus.STALLED
        assert assistant.status == MessageStatus.STALLED
        assert assistant.content == "par"
        assert messages.typing is False
        assert callback.errors == [result.error]

    @pytest.mark.asyncio
    async def test_remove_policy_drops_assistant_placeholder(self, backend, callback):
        reconciler = StreamingReconciler(
            backend, callback=callback, typing_delay=0, single_failure=FailurePolicy.REMOVE
        )
        backend.fail_midstream["root"] = BackendNetworkError("timeout")
        messages = await _loaded(reconciler, "root")

        result = await reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")

        assert not result.ok
        assert [m.role for m in messages] == ["user", "assistant", "user"]
        assert messages[-1].status == MessageStatus.STALLED
        assert len(callback.only("removed")) == 1

    @pytest.mark.asyncio
    async def test_error_status_before_stream_keeps_user_message(self, backend, reconciler):
        backend.fail_open["root"] = BackendHTTPError(500, "boom")
        messages = await _loaded(reconciler, "root")

        result = await reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")

        assert result.status == SendStatus.FAILED
        assert result.error.status_code == 500
        assert messages[-1].role == "user"
        assert messages[-1].status == MessageStatus.STALLED

    @pytest.mark.asyncio
    async def test_missing_stream_body_fails_the_send(self, backend, reconciler):
        backend.fail_open["root"] = StreamUnavailableError()
        messages = await _loaded(reconciler, "root")

        result = await reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")

        assert result.status == SendStatus.FAILED
        assert result.reason == "No stream"

    @pytest.mark.asyncio
    async def test_unexpected_saved_history_fails_the_send(self, backend, reconciler):
        """Settling needs the two saved messages; an empty fetch is a failure."""
        messages = MessageList("fresh")

        async def _nothing(chat_id):
            return []

        backend.list_messages = _nothing
        result = await reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")

        assert result.status == SendStatus.FAILED
        assert "Malformed payload" in result.reason

    @pytest.mark.asyncio
    async def test_cancelled_send_applies_policy_and_propagates(self, backend, reconciler):
        backend.block["root"] = asyncio.Event()
        messages = await _loaded(reconciler, "root")

        task = asyncio.create_task(
            reconciler.send_message(messages, "Hey", "gemini", "gemini-2.0-flash")
        )
        for _ in range(10):
            await asyncio.sleep(0)
        assert messages[-1].role == "assistant"

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert messages[-2].status == MessageStatus.STALLED
        assert messages[-1].status == MessageStatus.STALLED
        assert messages.typing is False


class TestSendToBoth:
    """Tests for dual-chat sends."""

    @pytest.mark.asyncio
    async def test_both_legs_stream_and_settle(self, backend, reconciler, callback):
        backend.replies["b1"] = ["Bon", "jour"]
        main = await _loaded(reconciler, "root")
        compare = await _loaded(reconciler, "b1")

        result = await reconciler.send_to_both(main, compare, "Greet me", GEMINI, OPENAI)

        assert result.ok
        assert result.main.content == "Hello"
        assert result.compare.content == "Bonjour"
        assert main[-1].model == GEMINI.model
        assert compare[-1].model == "gpt-4o"
        assert main.pending() == [] and compare.pending() == []
        assert sorted(s[0] for s in backend.sent) == ["b1", "root"]

    @pytest.mark.asyncio
    async def test_each_leg_uses_its_own_placeholder(self, reconciler, callback):
        main = await _loaded(reconciler, "root")
        compare = await _loaded(reconciler, "b1")

        await reconciler.send_to_both(main, compare, "Greet me", GEMINI, OPENAI)

        added = {(e[1], e[2].rsplit("-", 1)[0]) for e in callback.only("added")}
        assert ("root", "temp-main") in added
        assert ("b1", "temp-compare") in added
        assert ("root", "user") in added and ("b1", "user") in added

    @pytest.mark.asyncio
    async def test_failing_leg_removes_both_assistant_messages(self, backend, reconciler):
        backend.fail_midstream["b1"] = BackendHTTPError(502, "bad gateway")
        main = await _loaded(reconciler, "root")
        compare = await _loaded(reconciler, "b1")

        result = await reconciler.send_to_both(main, compare, "Greet me", GEMINI, OPENAI)

        assert not result.ok
        assert result.main.status == SendStatus.FAILED
        assert result.compare.status == SendStatus.FAILED
        assert result.main.error is result.compare.error
        assert main[-1].role == "user" and compare[-1].role == "user"
        assert compare[-1].status == MessageStatus.STALLED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [RuntimeError("decoder bug"), asyncio.CancelledError()], ids=["bug", "cancelled"]
    )
    async def test_unexpected_leg_error_clears_both_lists(self, backend, reconciler, error):
        """Test that a leg ending in a non-backend error leaves nothing pending."""
        backend.fail_midstream["b1"] = error
        main = await _loaded(reconciler, "root")
        compare = await _loaded(reconciler, "b1")

        with pytest.raises(type(error)):
            await reconciler.send_to_both(main, compare, "Greet me", GEMINI, OPENAI)

        assert main.typing is False and compare.typing is False
        assert main.pending() == [] and compare.pending() == []
        assert main[-1].role == "user" and compare[-1].role == "user"
        assert compare[-1].status == MessageStatus.STALLED

    @pytest.mark.asyncio
    async def test_same_chat_is_rejected(self, reconciler):
        with pytest.raises(ValueError):
            await reconciler.send_to_both(
                MessageList("root"), MessageList("root"), "Hi", GEMINI, OPENAI
            )

    @pytest.mark.asyncio
    async def test_blank_text_skips_both_legs(self, backend, reconciler):
        result = await reconciler.send_to_both(
            MessageList("root"), MessageList("b1"), " ", GEMINI, OPENAI
        )

        assert result.main.status == SendStatus.SKIPPED
        assert result.compare.status == SendStatus.SKIPPED
        assert backend.sent == []


class TestCreateBranch:
    """Tests for branching from a message."""

    @pytest.mark.asyncio
    async def test_branch_from_user_message_resends_it(self, backend, reconciler):
        source = await _loaded(reconciler, "root")
        origin = source[0]

        result = await reconciler.create_branch(source, origin.id, OPENAI, name="alt", tags="x")

        assert result.created
        assert backend.branches[0][0:2] == ("root", origin.id)
        assert backend.branches[0][2].name == "alt"
        assert backend.sent == [(result.new_chat_id, "Hi", "openai", "gpt-4o")]
        assert result.send is not None and result.send.ok
        assert [(m.role, m.content) for m in result.messages] == [
            ("user", "Hi"),
            ("assistant", "Hello"),
        ]
        assert result.messages.pending() == []

    @pytest.mark.asyncio
    async def test_branch_from_assistant_message_only_clones(self, backend, reconciler):
        source = await _loaded(reconciler, "root")
        origin = source[1]

        result = await reconciler.create_branch(source, origin.id, GEMINI)

        assert result.created
        assert result.send is None
        assert backend.sent == []
        clone = result.messages[-1]
        assert clone.role == "assistant"
        assert clone.content == "Hello there"
        assert clone is not origin
        assert [m.content for m in result.messages] == ["Hi", "Hello there"]

    @pytest.mark.asyncio
    async def test_branch_uses_the_source_chat(self, backend, reconciler):
        backend.add_history("b1", ("user", "Branch question"), ("assistant", "Branch answer"))
        source = await _loaded(reconciler, "b1")

        result = await reconciler.create_branch(source, source[0].id, GEMINI)

        assert backend.branches[0][0] == "b1"
        assert result.source_chat_id == "b1"

    @pytest.mark.asyncio
    async def test_branch_list_is_announced_before_its_clone(self, reconciler, callback):
        source = await _loaded(reconciler, "root")

        result = await reconciler.create_branch(source, source[0].id, GEMINI)

        branch_events = [e for e in callback.events if e[1] == result.new_chat_id]
        assert branch_events[0] == ("branched", result.new_chat_id, "root")
        assert branch_events[1][0] == "added"
        assert len(callback.only("branched")) == 1

    @pytest.mark.asyncio
    async def test_unknown_message_is_rejected(self, reconciler):
        source = await _loaded(reconciler, "root")

        with pytest.raises(ValueError):
            await reconciler.create_branch(source, "missing", GEMINI)

    @pytest.mark.asyncio
    async def test_pending_message_is_rejected(self, reconciler):
        placeholder = LocalMessage.placeholder("user", "unsaved")
        source = MessageList("root", [placeholder])

        with pytest.raises(ValueError):
            await reconciler.create_branch(source, placeholder.id, GEMINI)

    @pytest.mark.asyncio
    async def test_backend_failure_is_reported(self, backend, reconciler, callback):
        backend.fail_branch = BackendHTTPError(403, "forbidden")
        source = await _loaded(reconciler, "root")

        result = await reconciler.create_branch(source, source[0].id, GEMINI)

        assert not result.created
        assert result.error is backend.fail_branch
        assert callback.errors == [backend.fail_branch]

    @pytest.mark.asyncio
    async def test_auth_not_ready_skips_branch(self, backend, reconciler):
        source = await _loaded(reconciler, "root")
        backend.ready = False

        result = await reconciler.create_branch(source, source[0].id, GEMINI)

        assert not result.created
        assert result.skipped_reason == AUTH_NOT_READY
        assert backend.branches == []


class TestReconcilerProperties:
    """Property tests over arbitrary streams."""

    @given(st.lists(st.text(min_size=1, max_size=5), min_size=1, max_size=8))
    def test_final_content_is_concatenation_of_chunks(self, chunks: list[str]):
        async def run():
            backend = FakeChatBackend()
            backend.replies["c"] = chunks
            callback = RecordingCallback()
            reconciler = StreamingReconciler(backend, callback=callback, typing_delay=0)
            messages = MessageList("c")

            result = await reconciler.send_message(messages, "q", "gemini", "gemini-2.0-flash")

            assert result.ok
            assert messages[-1].content == "".join(chunks)
            assert len(callback.only("content")) == len(chunks)
            assert messages[-1].id == backend.messages["c"][-1].id

        asyncio.run(run())

    @settings(max_examples=20)
    @given(st.sampled_from(["main", "compare", "both"]))
    def test_dual_failure_leaves_no_assistant_placeholder(self, failing: str):
        async def run():
            backend = FakeChatBackend()
            if failing in ("main", "both"):
                backend.fail_midstream["a"] = BackendNetworkError("reset")
            if failing in ("compare", "both"):
                backend.fail_open["b"] = BackendHTTPError(500)
            reconciler = StreamingReconciler(backend, typing_delay=0)
            main, compare = MessageList("a"), MessageList("b")

            result = await reconciler.send_to_both(main, compare, "q", GEMINI, OPENAI)

            assert not result.ok
            assert [m.role for m in main] == ["user"]
            assert [m.role for m in compare] == ["user"]

        asyncio.run(run())
