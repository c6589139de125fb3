"""Transcript window and action ledger."""

from .buffers import (
    ActionLedger,
    ActionRecord,
    ConversationState,
    SlidingWindowStore,
    TranscriptWindow,
    action_key,
)

__all__ = [
    "ActionLedger",
    "ActionRecord",
    "ConversationState",
    "SlidingWindowStore",
    "TranscriptWindow",
    "action_key",
]
