"""
Tests for abort-signal helpers.
"""
import asyncio

import pytest

from fetch_orchestrator import CallCancelledError, await_or_abort, raise_if_aborted


async def value_after(seconds, value="value"):
    await asyncio.sleep(seconds)
    return value


class TestRaiseIfAborted:
    """Tests for raise_if_aborted."""

    def test_no_signal(self):
        """Should do nothing without a signal."""
        raise_if_aborted(None, "request")

    @pytest.mark.asyncio
    async def test_unset_and_set(self):
        """Should raise only once the signal is set."""
        abort = asyncio.Event()
        raise_if_aborted(abort, "request")

        abort.set()
        with pytest.raises(CallCancelledError, match="during request"):
            raise_if_aborted(abort, "request")


class TestAwaitOrAbort:
    """Tests for await_or_abort."""

    @pytest.mark.asyncio
    async def test_without_signal(self):
        """Should simply await."""
        assert await await_or_abort(value_after(0), None, "request") == "value"

    @pytest.mark.asyncio
    async def test_completes_before_abort(self):
        """Should return the result when the work wins."""
        abort = asyncio.Event()

        assert await await_or_abort(value_after(0), abort, "request") == "value"

    @pytest.mark.asyncio
    async def test_propagates_work_errors(self):
        """Should re-raise the awaitable's own error."""
        async def failing():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await await_or_abort(failing(), asyncio.Event(), "request")

    @pytest.mark.asyncio
    async def test_abort_cancels_work(self):
        """Should cancel the pending work and raise CallCancelledError."""
        abort = asyncio.Event()
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        asyncio.get_running_loop().call_later(0.01, abort.set)

        with pytest.raises(CallCancelledError) as exc_info:
            await await_or_abort(slow(), abort, "hook")

        assert exc_info.value.stage == "hook"
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_already_set(self):
        """Should not start the work at all."""
        abort = asyncio.Event()
        abort.set()
        started = False

        async def work():
            nonlocal started
            started = True

        with pytest.raises(CallCancelledError):
            await await_or_abort(work(), abort, "delay")

        assert started is False
