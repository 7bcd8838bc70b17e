"""
Retry scheduling: backoff computation and cancellable suspension.

All delays are milliseconds.
"""
import asyncio
import logging
import math
import random
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional

import httpx

from .cancellation import await_or_abort
from .config import DEFAULT_BASE_DELAY_MS, DEFAULT_MAX_DELAY_MS, DEFAULT_MAX_RETRIES
from .types import DelayStrategy, HookSettings


logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """
    Parse Retry-After header value.

    The Retry-After header can contain either:
    - A number of seconds to wait
    - An HTTP-date (or ISO-8601 timestamp) indicating when to retry

    Args:
        value: Retry-After header value

    Returns:
        Wait time in milliseconds, or None if the value is not a usable hint
    """
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None

    # Try parsing as seconds
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if math.isfinite(seconds) and seconds >= 0:
            return int(seconds * 1000)
        return None

    # Try parsing as HTTP-date, then ISO-8601
    deadline: Optional[datetime] = None
    try:
        deadline = parsedate_to_datetime(value)
    except (ValueError, TypeError, IndexError):
        try:
            deadline = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None

    if deadline is None:
        return None
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    return max(0, int((deadline.timestamp() - time.time()) * 1000))


def get_retry_after_ms(response: Any) -> Optional[int]:
    """Read the Retry-After hint from a failing response, if any."""
    if response is None:
        return None
    if isinstance(response, Mapping):
        raw_headers = response.get("headers")
    else:
        raw_headers = getattr(response, "headers", None)
    if not raw_headers:
        return None
    try:
        headers = raw_headers if isinstance(raw_headers, httpx.Headers) else httpx.Headers(raw_headers)
    except (TypeError, ValueError):
        return None
    return parse_retry_after(headers.get("retry-after"))


class ExponentialBackoffStrategy:
    """
    Default delay strategy.

    A server Retry-After hint wins and is used as is. Otherwise "Full Jitter":
    delay = random(0, base * 2^(attempt - 1)), attempt counting from 1.
    """

    def __init__(self, base_delay_ms: float = DEFAULT_BASE_DELAY_MS):
        self.base_delay_ms = base_delay_ms

    def calculate(self, attempt: int, response: Any = None) -> float:
        retry_after = get_retry_after_ms(response)
        if retry_after is not None:
            return retry_after

        exponential_delay = self.base_delay_ms * (2 ** (max(attempt, 1) - 1))
        return int(random.random() * exponential_delay)


async def async_sleep(seconds: float, abort_signal: Optional[asyncio.Event] = None) -> None:
    """
    Sleep for a specified duration, waking early with CallCancelledError
    when ``abort_signal`` is set. A zero delay still yields to the loop.
    """
    await await_or_abort(asyncio.sleep(seconds), abort_signal, "delay")


class RetryScheduler:
    """
    Owns retry defaults and turns a computed delay into a suspension.
    """

    def __init__(
        self,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
        default_max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
        default_delay_strategy: Optional[DelayStrategy] = None,
    ):
        self._default_max_retries = default_max_retries
        self._default_max_delay_ms = default_max_delay_ms
        self._default_delay_strategy = default_delay_strategy or ExponentialBackoffStrategy()

    @property
    def default_delay_strategy(self) -> DelayStrategy:
        return self._default_delay_strategy

    def get_default_max_retries(self) -> int:
        """Get the default maximum number of retries."""
        return self._default_max_retries

    def set_default_max_retries(self, max_retries: int) -> None:
        """Set the default maximum number of retries."""
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self._default_max_retries = max_retries

    def get_default_max_delay(self) -> float:
        """Get the default maximum delay (milliseconds)."""
        return self._default_max_delay_ms

    def set_default_max_delay(self, max_delay_ms: float) -> None:
        """Set the default maximum delay between retries (milliseconds)."""
        if max_delay_ms < 0:
            raise ValueError(f"max_delay_ms must be >= 0, got {max_delay_ms}")
        self._default_max_delay_ms = max_delay_ms

    def resolve_max_retries(self, hook: Optional[HookSettings]) -> int:
        if hook is not None and hook.max_retries is not None:
            return hook.max_retries
        return self._default_max_retries

    def calculate_delay(self, attempt: int, response: Any = None, hook: Optional[HookSettings] = None) -> float:
        """
        Calculate the delay before the next attempt.

        Args:
            attempt: Retry number for the classifier (1 for the first retry)
            response: The failing response, consulted for Retry-After
            hook: Hook whose delay_strategy / max_delay_ms override defaults

        Returns:
            Delay in milliseconds, within [0, effective max delay]
        """
        strategy = (hook.delay_strategy if hook else None) or self._default_delay_strategy
        max_delay = hook.max_delay_ms if hook is not None and hook.max_delay_ms is not None else self._default_max_delay_ms

        calculated = strategy.calculate(attempt, response)
        return max(0, min(calculated, max_delay))

    async def calculate_and_delay(
        self,
        attempt: int,
        response: Any = None,
        hook: Optional[HookSettings] = None,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> float:
        """
        Calculate and wait for the appropriate delay before a retry.

        Returns:
            The delay that was applied (milliseconds)
        """
        delay_ms = self.calculate_delay(attempt, response, hook)
        logger.info(f"Waiting for {delay_ms / 1000:.3f} seconds before retrying (attempt {attempt})")
        await self.delay(delay_ms, abort_signal)
        return delay_ms

    async def delay(self, delay_ms: float, abort_signal: Optional[asyncio.Event] = None) -> None:
        """Suspend for an already computed delay (milliseconds)."""
        await async_sleep(delay_ms / 1000, abort_signal)
