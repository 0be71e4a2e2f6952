"""
Cancellation primitives for in-flight chat requests.
"""

import asyncio
from typing import Callable, List, Optional

from ..core.exceptions import RequestCancelledError
from ..core.logging import logger


class CancellationToken:
    """
    One-shot cancellation flag with callbacks.

    Callbacks registered after cancellation run immediately.
    """

    def __init__(self):
        self._cancelled = False
        self._reason: Optional[str] = None
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def add_callback(self, callback: Callable[[], None]):
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel once; returns False if the token was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True

    def raise_if_cancelled(self):
        if self._cancelled:
            raise RequestCancelledError(self._reason or "cancelled")


class ActiveRequestHandle:
    """
    The one in-flight network operation of a conversation.

    Cancelling the token cancels the task running the request, which aborts
    the pending network read at its next suspension point.
    """

    def __init__(self, turn_id: str, token: Optional[CancellationToken] = None):
        self.turn_id = turn_id
        self.token = token or CancellationToken()
        self.task: Optional[asyncio.Task] = None

    def attach(self, task: asyncio.Task):
        self.task = task
        self.token.add_callback(self._cancel_task)

    def _cancel_task(self):
        if self.task is not None and not self.task.done():
            self.task.cancel()

    @property
    def is_cancelled(self) -> bool:
        return self.token.is_cancelled

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    def cancel(self, reason: str = "cancelled") -> bool:
        if self.token.cancel(reason):
            logger.info("Request cancellation requested", turn_id=self.turn_id, reason=reason)
            return True
        return False

    async def wait(self):
        """Wait for the request task and return its result."""
        if self.task is None:
            return None
        return await asyncio.shield(self.task)

    async def cancel_and_wait(self, reason: str = "cancelled"):
        """Cancel and wait until the request task acknowledges by finishing."""
        self.cancel(reason)
        if self.task is None:
            return None
        try:
            return await asyncio.shield(self.task)
        except asyncio.CancelledError:
            if not self.task.done():
                raise
            return None
