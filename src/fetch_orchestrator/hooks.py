"""
Recovery hook registry.

Maps a classifier (status code) to HookSettings and runs recovery handlers.
Hooks with ``prevent_concurrent_calls`` share one in-flight execution per
(account, classifier): when several calls hit an expired credential at once,
only one refresh runs and every caller waits for it.
"""
import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

from .config import DEFAULT_ACCOUNT_ID, normalize_status
from .types import HookSettings, StatusCode
from .utils import maybe_await


logger = logging.getLogger(__name__)


class HookRegistry:
    """
    HookRegistry - classifier -> HookSettings, with in-flight deduplication.

    Example:
        registry = HookRegistry()
        registry.set_hooks({429: HookSettings(handler=noop, max_retries=3)})

        if registry.should_retry(error.status):
            patch = await registry.process_hook(account_id, error.status, error)
    """

    def __init__(self, hooks: Optional[Mapping[StatusCode, HookSettings]] = None) -> None:
        self._hooks: Dict[StatusCode, HookSettings] = {}
        self._in_flight: Dict[str, "asyncio.Task[Dict[str, Any]]"] = {}
        if hooks:
            self.set_hooks(hooks)

    def set_hooks(self, hooks: Mapping[StatusCode, HookSettings]) -> None:
        """Merge hooks into the registry; later entries replace earlier ones."""
        for status, hook in hooks.items():
            if not isinstance(hook, HookSettings):
                raise ValueError(
                    f"Hook for status {status!r} must be HookSettings, got {type(hook).__name__}"
                )
            self._hooks[normalize_status(status)] = hook

    def get_hook(self, status: Optional[StatusCode]) -> Optional[HookSettings]:
        """Get the hook for a specific status code."""
        if status is None:
            return None
        return self._hooks.get(normalize_status(status))

    def has_hook(self, status: Optional[StatusCode]) -> bool:
        return self.get_hook(status) is not None

    def remove_hook(self, status: StatusCode) -> bool:
        """Remove a hook. Returns whether one was registered."""
        return self._hooks.pop(normalize_status(status), None) is not None

    def should_retry(self, status: Optional[StatusCode]) -> bool:
        """Check if a hook exists and wants a retry for the given status."""
        hook = self.get_hook(status)
        return hook is not None and bool(hook.should_retry)

    @staticmethod
    def hook_key(account_id: Optional[str], status: StatusCode) -> str:
        return f"{account_id or DEFAULT_ACCOUNT_ID}-{normalize_status(status)}"

    def is_in_flight(self, account_id: Optional[str], status: StatusCode) -> bool:
        """Check if a shared handler execution is running for this key."""
        return self.hook_key(account_id, status) in self._in_flight

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def process_hook(
        self,
        account_id: str,
        status: StatusCode,
        error: BaseException,
    ) -> Dict[str, Any]:
        """
        Run the recovery handler for a status.

        Args:
            account_id: Account the failing call belongs to
            status: Classifier of the failure
            error: The failing attempt's error; its ``response`` goes to the handler

        Returns:
            Patch to merge into the next attempt ({} when there is nothing to merge)

        Raises:
            Whatever the handler raised, after on_handler_error has run
        """
        hook = self.get_hook(status)
        if hook is None:
            return {}

        response = getattr(error, "response", None)

        if not hook.prevent_concurrent_calls:
            return await self._run_handler(hook, account_id, status, response)

        key = self.hook_key(account_id, status)
        task = self._in_flight.get(key)
        if task is None:
            logger.debug(f"Starting shared recovery handler for {key}")
            task = asyncio.ensure_future(self._run_handler(hook, account_id, status, response))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._settle(key, done))
        else:
            logger.debug(f"Joining in-flight recovery handler for {key}")

        # Shielded: one waiter being cancelled must not cancel the shared handler
        return await asyncio.shield(task)

    def _settle(self, key: str, task: "asyncio.Task[Dict[str, Any]]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it through the shield
            task.exception()

    async def _run_handler(
        self,
        hook: HookSettings,
        account_id: str,
        status: StatusCode,
        response: Any,
    ) -> Dict[str, Any]:
        try:
            result = await maybe_await(hook.handler(account_id, response))
        except Exception as hook_error:
            logger.error(f"Hook handler failed for status {status}: {hook_error!r}")
            if hook.on_handler_error is not None:
                await self._run_callback(hook.on_handler_error, account_id, hook_error, "on_handler_error")
            raise
        if result is None:
            return {}
        if not isinstance(result, Mapping):
            raise TypeError(
                f"Hook handler for status {status} must return a mapping or None, "
                f"got {type(result).__name__}"
            )
        return dict(result)

    async def handle_retry_failure(
        self,
        account_id: str,
        status: StatusCode,
        error: BaseException,
    ) -> None:
        """Notify the hook that its retry budget is spent."""
        hook = self.get_hook(status)
        if hook is not None and hook.on_max_retries_exceeded is not None:
            await self._run_callback(hook.on_max_retries_exceeded, account_id, error, "on_max_retries_exceeded")

    @staticmethod
    async def _run_callback(callback: Any, account_id: str, error: BaseException, name: str) -> None:
        # Best effort: never replaces the error being propagated
        try:
            await maybe_await(callback(account_id, error))
        except Exception:
            logger.exception(f"Hook callback {name} failed for account {account_id}")

    def clear(self) -> None:
        """Remove all hooks. In-flight handlers keep running."""
        self._hooks.clear()
