from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, Dict, Any


class TurnState(str, Enum):
    """Lifecycle of a single user turn."""
    IDLE = "idle"
    USER_SUBMITTED = "user_submitted"
    AWAITING_FIRST_BYTE = "awaiting_first_byte"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (TurnState.USER_SUBMITTED, TurnState.AWAITING_FIRST_BYTE, TurnState.STREAMING)

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.FINALIZED, TurnState.CANCELLED, TurnState.FAILED)


class MessageStatus(str, Enum):
    COMPLETE = "complete"
    STREAMING = "streaming"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class Metrics:
    """
    Throughput and cost figures attached to an assistant message.

    Live values are revised on every delta; the final set is computed once
    the stream completes. ``response_time`` is in milliseconds, ``cost`` in USD.
    """
    tokens_per_second: Optional[float] = None
    total_tokens: Optional[int] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cost: Optional[float] = None
    response_time: Optional[int] = None
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True)
class Message:
    """
    One transcript entry.

    ``synthetic`` marks text produced by the client itself (cancellation
    notice, failure fallback); such messages are shown but never sent back to
    the model as context.
    """
    id: str
    role: str
    content: str
    metrics: Optional[Metrics] = None
    thinking: str = ""
    status: MessageStatus = MessageStatus.COMPLETE
    synthetic: bool = False

    def to_context(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class TurnResult:
    """Outcome of a finished turn as seen by the caller."""
    turn_id: str
    state: TurnState
    message: Optional[Message] = None
    error: Optional[str] = None
