"""Main Textual TUI application.

Orchestrates the UI components around one ChatSession: the branch tree, the
main and compare panes, the input bar and the dialogs.
"""

import asyncio

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, Tree

from ..api.base import ChatBackend
from ..api.errors import BackendError
from ..api.models import TokenUsage
from ..catalog import ModelSelection
from ..config import Settings
from ..conversation import ChatSession, MessageStatus, SendResult, SendStatus, StreamingReconciler
from ..conversation.models import LocalMessage
from ..dashboard import DashboardService
from ..tree import BranchTreeError
from .callbacks import TUICallback
from .config import SEND_TARGETS, TARGET_BOTH, TARGET_COMPARE, TARGET_MAIN, LogLevel
from .screens import BranchFormScreen, BranchOptions, ConfirmationScreen, ModelSelectScreen
from .styles import APP_CSS
from .themes import DEFAULT_THEME, THEMES
from .widgets import (
    BranchTreePanel,
    ChatHistoryWidget,
    ChatInputBar,
    DebugPanel,
    MessageView,
    StatusBar,
)


class BranchChatApp(App):
    """Textual TUI for branching chats."""

    CSS = APP_CSS
    TITLE = "branchchat"

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit"),
        Binding("ctrl+n", "new_chat", "New Chat"),
        Binding("ctrl+b", "branch", "Branch"),
        Binding("ctrl+t", "cycle_target", "Target"),
        Binding("f2", "pick_model", "Model"),
        Binding("f3", "pick_compare_model", "Compare Model"),
        Binding("ctrl+x", "close_compare", "Close Compare"),
        Binding("ctrl+r", "refresh", "Refresh"),
        Binding("ctrl+k", "delete_chat", "Delete Chat"),
        Binding("ctrl+y", "copy_selected", "Copy", show=False),
        Binding("ctrl+d", "toggle_debug", "Debug"),
    ]

    def __init__(
        self,
        backend: ChatBackend,
        settings: Settings,
        chat_id: str | None = None,
        log_level: str | None = None,
    ) -> None:
        super().__init__()
        self._backend = backend
        self._settings = settings
        self._initial_chat_id = chat_id
        self._log_level = log_level
        self._dashboard = DashboardService(backend)
        self._usage: TokenUsage | None = None
        self._last_selected: LocalMessage | None = None
        self._session: ChatSession | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        with Horizontal(id="workspace"):
            yield BranchTreePanel(id="branch-tree")
            yield ChatHistoryWidget(id="chat-history")
            yield ChatHistoryWidget(id="compare-history")

        with Vertical(id="bottom-bar"):
            yield StatusBar(id="status-bar")
            yield ChatInputBar(id="chat-input-bar")

        yield DebugPanel(id="debug-panel")
        yield Footer()

    def on_mount(self) -> None:
        """Called when app is mounted."""
        for theme in THEMES:
            self.register_theme(theme)
        self.theme = DEFAULT_THEME

        log_panel = self.query_one("#debug-panel", DebugPanel)
        if self._log_level is not None:
            log_panel.log_level = LogLevel.from_string(self._log_level)
            log_panel.show()
            log_panel.info("TUI", f"Log panel enabled with level: {self._log_level.upper()}")

        self.query_one("#compare-history", ChatHistoryWidget).display = False

        callback = TUICallback(
            self.query_one("#chat-history", ChatHistoryWidget),
            self.query_one("#compare-history", ChatHistoryWidget),
            app=self,
        )
        reconciler = StreamingReconciler(
            self._backend,
            callback=callback,
            typing_delay=self._settings.typing_delay,
            single_failure=self._settings.single_failure,
            dual_failure=self._settings.dual_failure,
        )
        reconciler.set_debug_callback(self._route_debug)
        self._dashboard.set_debug_callback(self._route_debug)
        if hasattr(self._backend, "set_debug_callback"):
            self._backend.set_debug_callback(self._route_debug)

        selection = ModelSelection(provider=self._settings.provider, model=self._settings.model)
        self._session = ChatSession(
            self._backend,
            reconciler,
            chat_id=self._initial_chat_id or "",
            selection=selection,
        )
        self.sub_title = self._settings.api_url
        self._update_status()
        self.query_one("#chat-input-bar", ChatInputBar).focus_input()
        self._bootstrap()

    def _route_debug(self, level: str, component: str, message: str) -> None:
        """Route debug messages to the log panel."""
        log_panel = self.query_one("#debug-panel", DebugPanel)
        log_panel.log(component, message, LogLevel.from_string(level))

    @property
    def session(self) -> ChatSession:
        if self._session is None:
            raise RuntimeError("session is created on mount")
        return self._session

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _chat_title(self, chat_id: str) -> str:
        chat = self.session.tree.get(chat_id)
        return chat.label if chat is not None else f"Chat {chat_id[:8]}"

    def _render_all(self) -> None:
        session = self.session
        main = self.query_one("#chat-history", ChatHistoryWidget)
        main.show(session.messages, title=self._chat_title(session.chat_id))

        compare = self.query_one("#compare-history", ChatHistoryWidget)
        if session.compare is not None:
            compare.display = True
            compare.show(session.compare, title=f"Compare · {self._chat_title(session.compare.chat_id)}")
        else:
            compare.display = False
            compare.show(None)
            input_bar = self.query_one("#chat-input-bar", ChatInputBar)
            if input_bar.target != TARGET_MAIN:
                input_bar.target = TARGET_MAIN

        self._render_tree()
        self._update_status()

    def _render_tree(self) -> None:
        session = self.session
        panel = self.query_one("#branch-tree", BranchTreePanel)
        try:
            panel.show_tree(session.tree, session.root_id, session.view)
        except BranchTreeError as e:
            self._route_debug("error", "TUI", str(e))
            self.notify(f"Cannot draw branch tree: {e}", severity="error", timeout=5)

    def _update_status(self) -> None:
        session = self.session
        self.query_one("#status-bar", StatusBar).update_status(
            session.selection,
            session.compare_selection if session.compare is not None else None,
            self.query_one("#chat-input-bar", ChatInputBar).target,
            self._usage,
        )

    def _is_typing(self) -> bool:
        session = self.session
        return session.messages.typing or (session.compare is not None and session.compare.typing)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    @work(exclusive=True, group="load")
    async def _bootstrap(self) -> None:
        """Load the chat list and open the initial chat."""
        session = self.session
        if not self._backend.is_ready:
            self.notify("Not signed in: set BRANCHCHAT_TOKEN", severity="warning", timeout=6)
            self._route_debug("warning", "TUI", "Authentication not ready, nothing loaded")
            return

        try:
            await session.refresh_chats()
            chat_id = self._initial_chat_id
            if not chat_id:
                roots = session.tree.roots()
                if roots:
                    chat_id = roots[0].id
                else:
                    chat_id = await self._dashboard.create_chat()
                    await session.refresh_chats()
            if chat_id:
                await session.open(chat_id)
            self._usage = await self._dashboard.refresh_usage()
        except BackendError as e:
            self._route_debug("error", "TUI", f"Startup failed: {e}")
            self.notify(f"Error: {e}", severity="error", timeout=6)
        self._render_all()

    @work(exclusive=True, group="load")
    async def _open_chat(self, chat_id: str) -> None:
        try:
            await self.session.open(chat_id)
        except BackendError as e:
            self.notify(f"Cannot open chat: {e}", severity="error", timeout=5)
        self._render_all()

    @work(exclusive=True, group="load")
    async def _open_compare(self, chat_id: str) -> None:
        try:
            await self.session.open_compare(chat_id)
        except ValueError as e:
            self.notify(str(e), severity="warning", timeout=3)
            return
        except BackendError as e:
            self.notify(f"Cannot open compare chat: {e}", severity="error", timeout=5)
            self.session.close_compare()
        self._render_all()

    @work(exclusive=True, group="load")
    async def _reload(self) -> None:
        session = self.session
        try:
            await session.refresh_chats()
            if session.chat_id:
                await session.open(session.chat_id)
            if session.compare is not None:
                await session.open_compare(session.compare.chat_id)
            self._usage = await self._dashboard.refresh_usage()
        except BackendError as e:
            self.notify(f"Refresh failed: {e}", severity="error", timeout=5)
        self._render_all()
        self.notify("Refreshed", timeout=2)

    @work(group="send")
    async def _send(self, text: str, target: str) -> None:
        """Send input to the main chat, the compare chat or both."""
        session = self.session
        self._route_debug("info", "TUI", f"Sending to {target}: '{text[:50]}'")
        if target == TARGET_BOTH:
            dual = await session.send_both(text)
            results = [dual.main, dual.compare]
        elif target == TARGET_COMPARE:
            results = [await session.send_compare(text)]
        else:
            results = [await session.send(text)]

        self._report(results)
        if any(result.ok for result in results):
            try:
                self._usage = await self._dashboard.refresh_usage()
            except BackendError as e:
                self._route_debug("warning", "TUI", f"Token usage unavailable: {e}")
            self._update_status()

    def _report(self, results: list[SendResult]) -> None:
        reasons = {r.reason for r in results if r.status == SendStatus.SKIPPED and r.reason}
        for reason in reasons:
            self.notify(f"Not sent: {reason}", severity="warning", timeout=3)

    @work(exclusive=True, group="branch")
    async def _branch(self, message_id: str, options: BranchOptions) -> None:
        session = self.session
        try:
            result = await session.branch(
                message_id, options.selection, name=options.name, tags=options.tags
            )
        except (BackendError, ValueError) as e:
            self.notify(f"Branch failed: {e}", severity="error", timeout=5)
            return

        if result.created:
            self._render_all()
            self.notify(f"Switched to branch {self._chat_title(session.chat_id)}", timeout=3)
        elif result.skipped_reason:
            self.notify(f"Not branched: {result.skipped_reason}", severity="warning", timeout=3)

    @work(exclusive=True, group="load")
    async def _create_chat(self) -> None:
        session = self.session
        try:
            chat_id = await self._dashboard.create_chat()
            if chat_id is None:
                self.notify("Not signed in", severity="warning", timeout=3)
                return
            await session.refresh_chats()
            await session.open(chat_id)
        except BackendError as e:
            self.notify(f"Cannot create chat: {e}", severity="error", timeout=5)
        self._render_all()

    @work(exclusive=True, group="load")
    async def _delete_current(self) -> None:
        session = self.session
        deleted = session.chat_id
        parent = session.current_chat.branch_of if session.current_chat else None
        try:
            if not await self._dashboard.delete_chat(deleted):
                self.notify("Not signed in", severity="warning", timeout=3)
                return
            await session.refresh_chats()
            if session.compare is not None and session.compare.chat_id == deleted:
                session.close_compare()

            if parent and parent in session.tree:
                next_id = parent
            else:
                roots = session.tree.roots()
                next_id = roots[0].id if roots else await self._dashboard.create_chat()
                if not roots:
                    await session.refresh_chats()
            if next_id:
                await session.open(next_id)
        except BackendError as e:
            self.notify(f"Delete failed: {e}", severity="error", timeout=5)
            return
        finally:
            self._render_all()
        self.notify("Chat deleted", timeout=2)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_chat_input_bar_submitted(self, event: ChatInputBar.Submitted) -> None:
        """Handle user input submission."""
        if not self.session.chat_id:
            self.notify("No chat open", severity="warning", timeout=3)
            return
        if self._is_typing():
            self.notify("Wait for the current reply", severity="warning", timeout=2)
            return
        self._send(event.value, event.target)

    def on_message_view_selected(self, event: MessageView.Selected) -> None:
        self._last_selected = event.view.message

    def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        chat_id = event.node.data
        if chat_id and chat_id != self.session.chat_id:
            self._open_chat(chat_id)

    def on_tree_node_expanded(self, event: Tree.NodeExpanded) -> None:
        chat_id = event.node.data
        if chat_id and not self.session.view.is_expanded(chat_id):
            self.session.view.toggle(chat_id)

    def on_tree_node_collapsed(self, event: Tree.NodeCollapsed) -> None:
        chat_id = event.node.data
        if chat_id and self.session.view.is_expanded(chat_id):
            self.session.view.toggle(chat_id)

    def on_branch_tree_panel_compare_requested(self, event: BranchTreePanel.CompareRequested) -> None:
        if event.chat_id == self.session.chat_id:
            self.notify("That chat is already open", severity="warning", timeout=2)
            return
        self._open_compare(event.chat_id)

    def on_branch_tree_panel_expand_all_requested(
        self, event: BranchTreePanel.ExpandAllRequested
    ) -> None:
        session = self.session
        try:
            chat_ids = [chat.id for _, chat in session.tree.walk(session.root_id)]
        except BranchTreeError as e:
            self.notify(str(e), severity="error", timeout=5)
            return
        chat_ids.append(session.root_id)
        if event.expanded:
            session.view.expand_all(chat_ids)
        else:
            session.view.collapse_all(chat_ids)
        self._render_tree()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _branch_origin(self) -> LocalMessage | None:
        session = self.session
        lists = [session.messages] + ([session.compare] if session.compare is not None else [])
        if self._last_selected is not None and any(self._last_selected in lst for lst in lists):
            return self._last_selected
        return session.messages.last()

    def action_branch(self) -> None:
        """Branch from the selected message (or the last one)."""
        origin = self._branch_origin()
        if origin is None:
            self.notify("No message to branch from", severity="warning", timeout=2)
            return
        if origin.status != MessageStatus.SETTLED:
            self.notify("Message is not saved yet", severity="warning", timeout=2)
            return

        message_id = origin.id
        preview = origin.content if len(origin.content) <= 160 else origin.content[:159] + "…"

        def on_options(options: BranchOptions | None) -> None:
            if options is not None:
                self._branch(message_id, options)

        self.push_screen(BranchFormScreen(preview, self.session.selection), on_options)

    def action_cycle_target(self) -> None:
        available = SEND_TARGETS if self.session.compare is not None else (TARGET_MAIN,)
        target = self.query_one("#chat-input-bar", ChatInputBar).cycle_target(available)
        if len(available) == 1:
            self.notify("Open a compare chat first (press c in the branch tree)", timeout=3)
        self._route_debug("debug", "TUI", f"Send target: {target}")
        self._update_status()

    def action_pick_model(self) -> None:
        def on_pick(selection: ModelSelection | None) -> None:
            if selection is not None:
                self.session.selection = selection
                self._update_status()

        self.push_screen(ModelSelectScreen("Model for main chat", self.session.selection), on_pick)

    def action_pick_compare_model(self) -> None:
        def on_pick(selection: ModelSelection | None) -> None:
            if selection is not None:
                self.session.compare_selection = selection
                self._update_status()

        self.push_screen(
            ModelSelectScreen("Model for compare chat", self.session.compare_selection), on_pick
        )

    def action_close_compare(self) -> None:
        if self.session.compare is None:
            return
        self.session.close_compare()
        self._render_all()

    def action_new_chat(self) -> None:
        self._create_chat()

    def action_refresh(self) -> None:
        self._reload()

    def action_delete_chat(self) -> None:
        session = self.session
        if not session.chat_id:
            return

        def on_confirm(confirmed: bool | None) -> None:
            if confirmed:
                self._delete_current()

        prompt = f"Delete '{self._chat_title(session.chat_id)}'? This cannot be undone."
        self.push_screen(ConfirmationScreen("Delete chat", prompt), on_confirm)

    def action_copy_selected(self) -> None:
        """Copy the selected (or last) message to the clipboard."""
        message = self._branch_origin()
        if message is None or not message.content:
            self.notify("Nothing to copy", severity="warning", timeout=2)
            return
        self.copy_to_clipboard(message.content)
        self.notify("Message copied", timeout=2)

    def action_toggle_debug(self) -> None:
        """Toggle the log panel visibility."""
        log_panel = self.query_one("#debug-panel", DebugPanel)
        is_visible = log_panel.toggle()
        self.notify(f"Log panel {'shown' if is_visible else 'hidden'}", timeout=2)


async def run_textual_tui(
    backend: ChatBackend,
    settings: Settings,
    chat_id: str | None = None,
    log_level: str | None = None,
) -> None:
    """Run the Textual TUI.

    Args:
        backend: Chat backend (closed by the caller)
        settings: Client settings
        chat_id: Chat to open first (default: first chat, or a new one)
        log_level: Log level for panel (debug/info/warning/error), None to hide
    """
    app = BranchChatApp(backend=backend, settings=settings, chat_id=chat_id, log_level=log_level)
    try:
        await app.run_async()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
