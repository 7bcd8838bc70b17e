"""
Small helpers shared across fetch_orchestrator modules.
"""
import inspect
from typing import Any


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable; user callbacks may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value
