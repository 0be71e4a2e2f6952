from dataclasses import dataclass
from numbers import Real
from typing import Optional, Dict, Any


def _token_count(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, Real) or value < 0:
        return None
    return int(value)


@dataclass(frozen=True)
class Usage:
    """
    Authoritative token counts reported by the model API.

    Each category is optional: a usage payload may carry only some of them,
    and missing categories are never inferred from the present ones.
    """
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Usage"]:
        if not isinstance(data, dict):
            return None
        usage = cls(
            prompt_tokens=_token_count(data.get("prompt_tokens")),
            completion_tokens=_token_count(data.get("completion_tokens")),
            total_tokens=_token_count(data.get("total_tokens")),
        )
        if usage.is_empty:
            return None
        return usage

    @property
    def is_empty(self) -> bool:
        return self.prompt_tokens is None and self.completion_tokens is None and self.total_tokens is None

    def merge(self, newer: "Usage") -> "Usage":
        """Overlay the categories present in ``newer`` onto this usage."""
        return Usage(
            prompt_tokens=newer.prompt_tokens if newer.prompt_tokens is not None else self.prompt_tokens,
            completion_tokens=newer.completion_tokens if newer.completion_tokens is not None else self.completion_tokens,
            total_tokens=newer.total_tokens if newer.total_tokens is not None else self.total_tokens,
        )


@dataclass(frozen=True)
class StreamEvent:
    """
    One decoded record of a chat stream.

    Attributes:
        delta_content: Incremental text fragment to append
        full_content: Complete text replacing everything accumulated so far
        usage: Authoritative token counts, if the payload carried them
        is_done: True for the terminating ``[DONE]`` sentinel
        error: Error message when the payload is an error event
        data: The parsed JSON payload
    """
    delta_content: Optional[str] = None
    full_content: Optional[str] = None
    usage: Optional[Usage] = None
    is_done: bool = False
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls(is_done=True)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "StreamEvent":
        """
        Build an event from a parsed ``data:`` payload or a complete
        (non-streaming) chat response object.
        """
        error = data.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or error.get("code") or "Unknown upstream error"
            else:
                message = str(error)
            return cls(error=str(message), data=data)

        delta_content = None
        full_content = None

        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            choice = choices[0]
            delta = choice.get("delta")
            if isinstance(delta, dict) and isinstance(delta.get("content"), str):
                delta_content = delta["content"]
            message = choice.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                full_content = message["content"]

        return cls(
            delta_content=delta_content,
            full_content=full_content,
            usage=Usage.from_dict(data.get("usage")),
            data=data,
        )

    @property
    def has_content(self) -> bool:
        return bool(self.delta_content) or self.full_content is not None
