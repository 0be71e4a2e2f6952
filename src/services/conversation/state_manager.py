"""
Conversation State Manager

Owns the transcript of one conversation and drives each user turn through
its lifecycle:

    IDLE -> USER_SUBMITTED -> AWAITING_FIRST_BYTE -> STREAMING -> FINALIZED
                                     |                   |
                                     +--> CANCELLED / FAILED <--+

The transcript is an immutable tuple replaced wholesale on every change, so a
reader holding a snapshot never observes a half-applied update. Only this
class writes it, and only through ``_append`` / ``_replace``.
"""

import asyncio
import dataclasses
import time
from contextlib import aclosing
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .models import Message, MessageStatus, TurnResult, TurnState
from ..chat.request_builder import build_chat_request, build_image_request
from ..chat.response_assembler import ResponseAssembler
from ..model_catalog import ModelCatalog
from ...core.exceptions import ConversationBusyError, RequestCancelledError, TransportError
from ...core.logging import logger
from ...core.settings import AppSettings
from ...transport.cancellation import ActiveRequestHandle
from ...utils.generate_id import generate_message_id, generate_request_id
from ...utils.metrics_calculator import MetricsCalculator

FAILURE_FALLBACK = "Failed to send message. Please try again."
CANCELLED_NOTICE = "Response cancelled."

Notifier = Callable[[str, str], None]
ChangeCallback = Callable[[Tuple[Message, ...], TurnState], None]

_ALLOWED_TRANSITIONS = {
    TurnState.IDLE: {TurnState.USER_SUBMITTED},
    TurnState.USER_SUBMITTED: {TurnState.AWAITING_FIRST_BYTE, TurnState.CANCELLED, TurnState.FAILED},
    TurnState.AWAITING_FIRST_BYTE: {
        TurnState.STREAMING, TurnState.FINALIZED, TurnState.CANCELLED, TurnState.FAILED
    },
    TurnState.STREAMING: {TurnState.FINALIZED, TurnState.CANCELLED, TurnState.FAILED},
    TurnState.FINALIZED: {TurnState.USER_SUBMITTED, TurnState.IDLE},
    TurnState.CANCELLED: {TurnState.USER_SUBMITTED, TurnState.IDLE},
    TurnState.FAILED: {TurnState.USER_SUBMITTED, TurnState.IDLE},
}


def _log_notification(title: str, text: str):
    logger.warning(f"{title}: {text}")


@dataclasses.dataclass
class _Turn:
    turn_id: str
    handle: ActiveRequestHandle
    assembler: Optional[ResponseAssembler] = None
    placeholder_id: Optional[str] = None
    result: Optional[TurnResult] = None

    @property
    def finished(self) -> bool:
        return self.result is not None


class ConversationStateManager:
    """
    Single owner of a conversation's transcript and its in-flight request.

    Args:
        transport: Object with ``stream_chat(body, token=, request_id=)`` and
            ``generate_image(body, token=, request_id=)``, normally a ProxyClient
        settings: Current settings; replace via ``update_settings``
        catalog: Model catalog used for pricing lookups
        notifier: Out-of-band user notification, called as ``notifier(title, text)``
        clock: Monotonic time source handed to the assembler
        id_factory: Message id generator
        separate_thinking: Split ``<think>`` blocks out of visible content
    """

    def __init__(
        self,
        transport: Any,
        settings: Optional[AppSettings] = None,
        catalog: Optional[ModelCatalog] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = generate_message_id,
        separate_thinking: bool = True,
    ):
        self.transport = transport
        self.settings = settings or AppSettings()
        self.catalog = catalog or ModelCatalog()
        self.notifier = notifier or _log_notification
        self.clock = clock
        self.id_factory = id_factory
        self.separate_thinking = separate_thinking

        self._messages: Tuple[Message, ...] = ()
        self._state = TurnState.IDLE
        self._turn: Optional[_Turn] = None
        self._subscribers: List[ChangeCallback] = []

    # Observation

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self._messages

    @property
    def is_busy(self) -> bool:
        return self._state.is_active

    @property
    def active_handle(self) -> Optional[ActiveRequestHandle]:
        if self._turn is None or self._turn.finished:
            return None
        return self._turn.handle

    def get_message(self, message_id: str) -> Optional[Message]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def context_messages(self) -> List[Dict[str, str]]:
        """Transcript as sent to the model: client-generated notices are left out."""
        return [
            message.to_context()
            for message in self._messages
            if not message.synthetic and message.content
        ]

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register for ``(messages, state)`` after every change; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # Injected data

    def update_settings(self, settings: AppSettings):
        self.settings = settings

    def update_catalog(self, catalog: ModelCatalog):
        self.catalog = catalog

    # Turn control

    async def submit(self, text: str) -> Optional[ActiveRequestHandle]:
        """
        Start a new turn and return its handle without waiting for the answer.

        A turn still in flight is cancelled, and its task awaited, before the
        new request is dispatched. Blank input is ignored.
        """
        text = (text or "").strip()
        if not text:
            return None

        while self._turn is not None and not self._turn.finished:
            await self._turn.handle.cancel_and_wait("superseded")

        turn_id = generate_request_id()
        turn = _Turn(turn_id=turn_id, handle=ActiveRequestHandle(turn_id))
        self._turn = turn

        self._append(Message(id=self.id_factory(), role="user", content=text))
        self._transition(TurnState.USER_SUBMITTED, turn)

        context = self.context_messages()
        task = asyncio.create_task(self._run_turn(turn, context))
        turn.handle.attach(task)
        task.add_done_callback(lambda finished_task: self._on_task_done(turn, finished_task))
        return turn.handle

    async def send(self, text: str) -> Optional[TurnResult]:
        """Submit a turn and wait for its outcome."""
        handle = await self.submit(text)
        if handle is None:
            return None
        return await self._wait_for(self._turn)

    async def wait(self) -> Optional[TurnResult]:
        """Wait for the current turn, if any, and return its outcome."""
        if self._turn is None:
            return None
        if self._turn.finished:
            return self._turn.result
        return await self._wait_for(self._turn)

    async def cancel(self, reason: str = "user") -> bool:
        """Cancel the in-flight turn; returns False if nothing was running."""
        turn = self._turn
        if turn is None or turn.finished:
            return False
        await turn.handle.cancel_and_wait(reason)
        return True

    async def _wait_for(self, turn: _Turn) -> TurnResult:
        try:
            return await turn.handle.wait()
        except asyncio.CancelledError:
            # Superseded before its first step: the done callback recorded the outcome
            task = turn.handle.task
            if task is not None and task.cancelled() and turn.finished:
                return turn.result
            raise

    def clear(self):
        """Drop the whole transcript. Not allowed while a turn is in flight."""
        if self._state.is_active:
            raise ConversationBusyError("Cannot clear the conversation while a response is streaming",
                                        state=self._state.value)
        self._turn = None
        self._messages = ()
        if self._state is TurnState.IDLE:
            self._notify()
        else:
            self._transition(TurnState.IDLE)
        logger.info("Conversation cleared")

    async def generate_image(self, prompt: str) -> List[str]:
        """
        Generate images for ``prompt`` with the image settings.

        Failures are reported through the notifier and yield an empty list.
        """
        prompt = (prompt or "").strip()
        if not prompt:
            return []

        body = build_image_request(self.settings, prompt)
        if not body["model"]:
            image_models = self.catalog.image_models()
            if not image_models:
                self.notifier("Error", "No image model available.")
                return []
            body["model"] = image_models[0]["id"]

        request_id = generate_request_id()
        try:
            return await self.transport.generate_image(body, request_id=request_id)
        except TransportError as e:
            logger.warning(f"Image generation failed: {e}", request_id=request_id, model_id=body["model"])
            self.notifier("Error", "Failed to generate image. Please try again.")
            return []

    # Turn execution

    async def _run_turn(self, turn: _Turn, context: Iterable[Dict[str, str]]) -> TurnResult:
        context = list(context)
        try:
            self._transition(TurnState.AWAITING_FIRST_BYTE, turn)

            model_id = self.settings.model
            input_price, output_price = MetricsCalculator.resolve_model_pricing(self.catalog.find(model_id))
            placeholder = Message(id=self.id_factory(), role="assistant", content="", status=MessageStatus.STREAMING)
            turn.assembler = ResponseAssembler(
                placeholder,
                conversation_text_length=sum(len(message["content"]) for message in context),
                input_price=input_price,
                output_price=output_price,
                model_id=model_id,
                separate_thinking=self.separate_thinking,
                clock=self.clock,
                request_id=turn.turn_id,
            )

            request_body = build_chat_request(self.settings, context)
            events = self.transport.stream_chat(request_body, token=turn.handle.token, request_id=turn.turn_id)
            async with aclosing(events), aclosing(turn.assembler.assemble(events)) as snapshots:
                async for snapshot in snapshots:
                    turn.handle.token.raise_if_cancelled()
                    self._publish_snapshot(turn, snapshot)

            return self._complete_turn(turn)

        except (asyncio.CancelledError, RequestCancelledError):
            if turn.assembler is not None and turn.assembler.finalized:
                result = self._complete_turn(turn)
            else:
                result = self._cancel_turn(turn)
            if not turn.handle.is_cancelled:
                # Cancelled from outside (loop shutdown), not through the handle
                raise
            return result
        except TransportError as e:
            return self._fail_turn(turn, e)
        except Exception as e:
            logger.error(f"Unexpected error while streaming response: {e}", request_id=turn.turn_id)
            return self._fail_turn(turn, e)

    def _publish_snapshot(self, turn: _Turn, snapshot: Message):
        if turn.placeholder_id is None:
            turn.placeholder_id = snapshot.id
            self._append(snapshot)
            self._transition(TurnState.STREAMING, turn)
        else:
            self._replace(snapshot)

    def _complete_turn(self, turn: _Turn) -> TurnResult:
        if turn.finished:
            return turn.result
        final = turn.assembler.finalize()
        if turn.placeholder_id is None:
            turn.placeholder_id = final.id
            self._append(final)
        else:
            self._replace(final)
        self._transition(TurnState.FINALIZED, turn)
        turn.result = TurnResult(turn_id=turn.turn_id, state=TurnState.FINALIZED, message=final)
        return turn.result

    def _cancel_turn(self, turn: _Turn) -> TurnResult:
        if turn.finished:
            return turn.result

        if turn.placeholder_id is not None:
            partial = self.get_message(turn.placeholder_id)
            if partial.content or partial.thinking:
                message = dataclasses.replace(partial, status=MessageStatus.CANCELLED)
            else:
                message = dataclasses.replace(
                    partial, content=CANCELLED_NOTICE, status=MessageStatus.CANCELLED, synthetic=True
                )
            self._replace(message)
        else:
            message = Message(
                id=self.id_factory(),
                role="assistant",
                content=CANCELLED_NOTICE,
                status=MessageStatus.CANCELLED,
                synthetic=True,
            )
            turn.placeholder_id = message.id
            self._append(message)

        self._transition(TurnState.CANCELLED, turn)
        logger.info(
            "Response cancelled",
            request_id=turn.turn_id,
            reason=turn.handle.token.reason,
            partial_length=len(message.content) if not message.synthetic else 0
        )
        turn.result = TurnResult(turn_id=turn.turn_id, state=TurnState.CANCELLED, message=message)
        return turn.result

    def _fail_turn(self, turn: _Turn, error: Exception) -> TurnResult:
        if turn.finished:
            return turn.result

        message = None
        if turn.placeholder_id is not None:
            message = dataclasses.replace(
                self.get_message(turn.placeholder_id),
                content=FAILURE_FALLBACK,
                thinking="",
                status=MessageStatus.FAILED,
                synthetic=True,
            )
            self._replace(message)

        self._transition(TurnState.FAILED, turn)
        logger.warning(
            f"Response failed: {error}",
            request_id=turn.turn_id,
            error_type=type(error).__name__,
            placeholder_inserted=message is not None
        )
        self.notifier("Error", FAILURE_FALLBACK)
        turn.result = TurnResult(turn_id=turn.turn_id, state=TurnState.FAILED, message=message, error=str(error))
        return turn.result

    def _on_task_done(self, turn: _Turn, task: asyncio.Task):
        # A task cancelled before its first step never runs its own handlers
        if task.cancelled():
            if not turn.finished and self._turn is turn:
                self._cancel_turn(turn)
        elif task.exception() is not None:
            logger.error("Turn task ended with an unhandled exception", exc_info=False,
                         request_id=turn.turn_id, error=repr(task.exception()))

    # Transcript writes

    def _append(self, message: Message):
        self._messages = self._messages + (message,)
        self._notify()

    def _replace(self, message: Message):
        for index, current in enumerate(self._messages):
            if current.id == message.id:
                self._messages = self._messages[:index] + (message,) + self._messages[index + 1:]
                self._notify()
                return
        raise KeyError(f"Message {message.id} is not in the transcript")

    def _transition(self, new_state: TurnState, turn: Optional[_Turn] = None):
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            raise RuntimeError(f"Invalid turn transition {self._state.value} -> {new_state.value}")
        logger.debug(
            "Turn state changed",
            request_id=turn.turn_id if turn else None,
            from_state=self._state.value,
            to_state=new_state.value
        )
        self._state = new_state
        self._notify()

    def _notify(self):
        for callback in list(self._subscribers):
            try:
                callback(self._messages, self._state)
            except Exception as e:
                logger.error(f"Conversation subscriber failed: {e}")
