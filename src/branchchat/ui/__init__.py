"""Terminal UI module for branchchat.

Provides a Textual-based TUI over a ChatSession.

Module structure (each module hides a design decision):
- config.py: Constants (log levels, markers, send targets)
- widgets.py: Custom widgets (message rendering, branch tree, input history, log)
- styles.py: CSS styling (layout decisions)
- themes.py: Color palette and theme configuration
- screens.py: Modal dialogs (delete confirmation, branch form, model picker)
- callbacks.py: Reconciler integration (how panes receive updates)
- app.py: Application orchestration (user interaction flow)
"""

from .app import BranchChatApp, run_textual_tui
from .callbacks import TUICallback
from .config import LogLevel
from .widgets import BranchTreePanel, ChatHistoryWidget, ChatInputBar, DebugPanel

__all__ = [
    "BranchChatApp",
    "BranchTreePanel",
    "ChatHistoryWidget",
    "ChatInputBar",
    "DebugPanel",
    "LogLevel",
    "TUICallback",
    "run_textual_tui",
]
