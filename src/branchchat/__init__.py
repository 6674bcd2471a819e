"""
branchchat: a client for branching, multi-provider chats.

Each module hides one design decision: the wire protocol (api), how the
branch tree is rebuilt from flat chat records (tree), how streamed replies
are folded into optimistic message lists (conversation) and how views
present them (ui, cli).
"""

__version__ = "0.1.0"

from .api import ChatBackend, create_chat_backend
from .catalog import PROVIDER_MODELS, ModelSelection
from .config import Settings, load_settings
from .conversation import ChatSession, FailurePolicy, MessageList, StreamingReconciler
from .dashboard import DashboardService
from .tree import BranchTree, BranchViewState

__all__ = [
    "PROVIDER_MODELS",
    "BranchTree",
    "BranchViewState",
    "ChatBackend",
    "ChatSession",
    "DashboardService",
    "FailurePolicy",
    "MessageList",
    "ModelSelection",
    "Settings",
    "StreamingReconciler",
    "create_chat_backend",
    "load_settings",
]
