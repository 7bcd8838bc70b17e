"""
Abort-signal helpers.

A logical call may carry an ``asyncio.Event``; once it is set, every
suspension point of the call (transport, recovery handler, backoff) settles
with CallCancelledError instead of running to completion.
"""
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from .errors import CallCancelledError


T = TypeVar("T")

logger = logging.getLogger(__name__)


def raise_if_aborted(abort_signal: Optional[asyncio.Event], stage: str) -> None:
    """Raise CallCancelledError if the signal is already set."""
    if abort_signal is not None and abort_signal.is_set():
        raise CallCancelledError(stage)


async def _await_cancelled(task: "asyncio.Future[object]") -> None:
    try:
        await task
    except asyncio.CancelledError:
        return
    except Exception as error:
        # The abort takes precedence over a late failure
        logger.debug(f"Task failed while being aborted: {error!r}")


async def await_or_abort(
    awaitable: Awaitable[T],
    abort_signal: Optional[asyncio.Event],
    stage: str,
) -> T:
    """
    Await ``awaitable`` unless ``abort_signal`` fires first.

    Args:
        awaitable: Coroutine or future to wait for
        abort_signal: Optional event; None means "not cancellable"
        stage: Name reported in CallCancelledError

    Returns:
        The awaitable's result

    Raises:
        CallCancelledError: if the signal was set before completion
    """
    if abort_signal is None:
        return await awaitable

    if abort_signal.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise CallCancelledError(stage)

    value_task = asyncio.ensure_future(awaitable)
    abort_task = asyncio.ensure_future(abort_signal.wait())
    try:
        done, _ = await asyncio.wait(
            {value_task, abort_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        value_task.cancel()
        abort_task.cancel()
        raise
    finally:
        if not abort_task.done():
            abort_task.cancel()

    if value_task in done:
        return value_task.result()

    value_task.cancel()
    await _await_cancelled(value_task)
    raise CallCancelledError(stage)
