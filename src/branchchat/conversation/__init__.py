"""Client-side conversation state and streaming reconciliation."""

from .callbacks import ReconcilerCallback
from .models import (
    BranchResult,
    DualSendResult,
    FailurePolicy,
    LocalMessage,
    MessageList,
    MessageStatus,
    SendResult,
    SendStatus,
)
from .reconciler import StreamingReconciler
from .session import ChatSession

__all__ = [
    "BranchResult",
    "ChatSession",
    "DualSendResult",
    "FailurePolicy",
    "LocalMessage",
    "MessageList",
    "MessageStatus",
    "ReconcilerCallback",
    "SendResult",
    "SendStatus",
    "StreamingReconciler",
]
