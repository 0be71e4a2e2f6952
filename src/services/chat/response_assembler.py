"""
Incremental Response Assembler

Consumes decoded StreamEvents for one assistant message, accumulates the
text, keeps live throughput/cost figures, and publishes a fresh immutable
message snapshot after every event.

Token counts are tracked per category (input, output, total). A category
switches from the character heuristic to the authoritative figure as soon as
any usage event reports it, and never switches back.
"""

import dataclasses
import time
from typing import AsyncIterable, AsyncIterator, Callable, Optional

from .parsed_event import StreamEvent, Usage
from .thinking import split_thinking
from ..conversation.models import Message, MessageStatus, Metrics
from ...core.exceptions import UpstreamStreamError
from ...core.logging import logger
from ...utils.metrics_calculator import MetricsCalculator, CHARS_PER_TOKEN

EMPTY_RESPONSE_FALLBACK = "Sorry, I couldn't generate a response."

SnapshotCallback = Callable[[Message], None]


class ResponseAssembler:
    """
    Single-writer accumulator for one streaming response.

    Attributes:
        target: The placeholder assistant message being filled in
        text: Raw accumulated response text (think blocks included)
        usage: Authoritative usage merged from all usage events so far
        latest: Most recent snapshot published
        finalized: True once ``finalize()`` has run
    """

    def __init__(
        self,
        target: Message,
        conversation_text_length: int = 0,
        input_price: Optional[float] = None,
        output_price: Optional[float] = None,
        model_id: Optional[str] = None,
        on_update: Optional[SnapshotCallback] = None,
        separate_thinking: bool = True,
        clock: Callable[[], float] = time.monotonic,
        request_id: str = "unknown",
    ):
        self.target = target
        self.conversation_text_length = conversation_text_length
        self.input_price = input_price
        self.output_price = output_price
        self.model_id = model_id
        self.on_update = on_update
        self.separate_thinking = separate_thinking
        self.clock = clock
        self.request_id = request_id

        self.start_time = clock()
        self.text = ""
        self.usage: Optional[Usage] = None
        self.events_applied = 0
        self.latest = target
        self.finalized = False

    def apply(self, event: StreamEvent) -> Message:
        """
        Fold one event into the running message and publish the snapshot.

        Delta fragments are appended; a full-content fragment replaces the
        accumulated text outright. Events arriving after finalization are
        ignored.
        """
        if self.finalized:
            return self.latest

        if event.usage is not None:
            self.usage = event.usage if self.usage is None else self.usage.merge(event.usage)

        if event.delta_content:
            self.text += event.delta_content
        elif event.full_content is not None:
            self.text = event.full_content

        self.events_applied += 1
        return self._publish(self._build(MessageStatus.STREAMING))

    def finalize(self) -> Message:
        """
        Compute the final metrics and publish the completed message.

        Calling it again returns the same snapshot without recomputing or
        republishing anything.
        """
        if self.finalized:
            return self.latest

        self.finalized = True
        message = self._build(MessageStatus.COMPLETE)
        if not message.content and not message.thinking:
            message = dataclasses.replace(message, content=EMPTY_RESPONSE_FALLBACK, synthetic=True)

        logger.info(
            "Response assembled",
            request_id=self.request_id,
            message_id=self.target.id,
            model_id=self.model_id,
            content_length=len(self.text),
            events_applied=self.events_applied,
            metrics=message.metrics.to_dict() if message.metrics else None,
            authoritative_usage=self.usage is not None
        )
        return self._publish(message)

    async def assemble(self, events: AsyncIterable[StreamEvent]) -> AsyncIterator[Message]:
        """
        Drive the assembler from an event stream, yielding every snapshot.

        Stops at the done sentinel or when the stream ends, yielding the
        finalized message last. An error event raises UpstreamStreamError.
        """
        async for event in events:
            if event.error:
                raise UpstreamStreamError(event.error)
            if event.is_done:
                break
            yield self.apply(event)
        yield self.finalize()

    def elapsed(self) -> float:
        return max(self.clock() - self.start_time, 0.0)

    def output_tokens(self) -> int:
        if self.usage is not None and self.usage.completion_tokens is not None:
            return self.usage.completion_tokens
        return MetricsCalculator.estimate_tokens(self.text)

    def input_tokens(self) -> int:
        if self.usage is not None and self.usage.prompt_tokens is not None:
            return self.usage.prompt_tokens
        return -(-self.conversation_text_length // CHARS_PER_TOKEN)

    def current_metrics(self) -> Metrics:
        elapsed = self.elapsed()
        input_tokens = self.input_tokens()
        output_tokens = self.output_tokens()

        if self.usage is not None and self.usage.total_tokens is not None:
            total_tokens = self.usage.total_tokens
        else:
            total_tokens = input_tokens + output_tokens

        cost = MetricsCalculator.compute_cost(input_tokens, output_tokens, self.input_price, self.output_price)

        return Metrics(
            tokens_per_second=round(MetricsCalculator.tokens_per_second(output_tokens, elapsed), 1),
            total_tokens=total_tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=round(cost, 4) if cost is not None else None,
            response_time=int(elapsed * 1000),
            model=self.model_id,
        )

    def _build(self, status: MessageStatus) -> Message:
        if self.separate_thinking:
            thinking, content = split_thinking(self.text)
        else:
            thinking, content = "", self.text

        return dataclasses.replace(
            self.target,
            content=content,
            thinking=thinking,
            metrics=self.current_metrics(),
            status=status,
        )

    def _publish(self, message: Message) -> Message:
        self.latest = message
        if self.on_update is not None:
            self.on_update(message)
        return message
