"""
Conversation package.

Holds the transcript data model; the state machine driving a turn lives in
``state_manager`` and is imported from there directly.
"""

from .models import Message, MessageStatus, Metrics, TurnResult, TurnState

__all__ = [
    "Message",
    "MessageStatus",
    "Metrics",
    "TurnResult",
    "TurnState",
]
