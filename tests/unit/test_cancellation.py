"""
Tests for CancellationToken and ActiveRequestHandle.
"""
import asyncio
import pytest

from src.core.exceptions import RequestCancelledError
from src.transport.cancellation import ActiveRequestHandle, CancellationToken


class TestCancellationToken:
    def test_cancel_once(self):
        token = CancellationToken()
        assert not token.is_cancelled
        assert token.cancel("user")
        assert not token.cancel("again")
        assert token.is_cancelled
        assert token.reason == "user"

    def test_callbacks_run_on_cancel(self):
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append("first"))
        token.cancel()
        token.add_callback(lambda: calls.append("late"))
        assert calls == ["first", "late"]

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("superseded")
        with pytest.raises(RequestCancelledError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "superseded"


class TestActiveRequestHandle:
    @pytest.mark.asyncio
    async def test_cancel_aborts_pending_read(self):
        """Cancelling the handle interrupts a task blocked on a read."""
        started = asyncio.Event()
        reached_end = []

        async def request():
            started.set()
            await asyncio.sleep(3600)
            reached_end.append(True)

        handle = ActiveRequestHandle("turn-1")
        handle.attach(asyncio.create_task(request()))
        await started.wait()

        assert not handle.done
        assert await handle.cancel_and_wait("user") is None
        assert handle.done
        assert handle.is_cancelled
        assert reached_end == []

    @pytest.mark.asyncio
    async def test_cancel_and_wait_returns_task_result(self):
        """A task that handles its own cancellation hands back its result."""
        started = asyncio.Event()

        async def request():
            try:
                started.set()
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                return "cleaned up"

        handle = ActiveRequestHandle("turn-2")
        handle.attach(asyncio.create_task(request()))
        await started.wait()
        assert await handle.cancel_and_wait() == "cleaned up"

    @pytest.mark.asyncio
    async def test_wait_returns_result(self):
        async def request():
            return 42

        handle = ActiveRequestHandle("turn-3")
        handle.attach(asyncio.create_task(request()))
        assert await handle.wait() == 42
        assert handle.done

    @pytest.mark.asyncio
    async def test_handle_without_task(self):
        handle = ActiveRequestHandle("turn-4")
        assert await handle.wait() is None
        assert await handle.cancel_and_wait() is None
        assert not handle.done
