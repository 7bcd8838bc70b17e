"""
ApiService - drives one logical call through cache, auth, attempts,
recovery hooks and backoff.

State machine per call:

    CacheCheck -> Attempting -> Success
                            -> Recovering -> Attempting
                            -> Exhausted | Fatal
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from .accounts import AccountStore
from .auth import AuthProvider, TokenAuthProvider
from .cache import ResponseCache
from .cancellation import await_or_abort, raise_if_aborted
from .config import (
    DEFAULT_ACCOUNT_ID,
    DEFAULT_MAX_ATTEMPTS,
    UNAUTHORIZED,
    ServiceConfig,
    resolve_config,
)
from .errors import (
    CredentialsNotFoundError,
    MaxAttemptsExceededError,
    mark_retries_exhausted,
)
from .hooks import HookRegistry
from .scheduler import RetryScheduler
from .transport import HttpxTransport, Transport, build_url
from .types import (
    AccountData,
    ApiCallParams,
    HookSettings,
    ServiceEvent,
    ServiceEventListener,
    StatusCode,
)


logger = logging.getLogger(__name__)


class ApiService:
    """
    Client-side request orchestration.

    Provides:
    - Response caching per call identity
    - Pluggable authentication
    - Status-code recovery hooks (e.g. token refresh on 401)
    - Retry/backoff scheduling with per-classifier budgets
    - A global attempts ceiling per logical call

    Example:
        service = ApiService()
        service.setup(provider="github", token_service=tokens, base_url="https://api.github.com")
        repos = await service.make_api_call(method="GET", route="/user/repos", account_id="acct-1")
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        cache: Optional[ResponseCache] = None,
        accounts: Optional[AccountStore] = None,
        scheduler: Optional[RetryScheduler] = None,
        hooks: Optional[HookRegistry] = None,
    ):
        self.provider = ""
        self._transport: Transport = transport or HttpxTransport()
        self._cache = cache or ResponseCache()
        self._accounts = accounts or AccountStore()
        self._scheduler = scheduler or RetryScheduler()
        self._hooks = hooks or HookRegistry()
        self._auth_provider: Optional[AuthProvider] = None
        self._base_url: Optional[str] = None
        self._max_attempts = DEFAULT_MAX_ATTEMPTS
        self._listeners: List[ServiceEventListener] = []
        self._default_refresh_hook: Optional[HookSettings] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def setup(self, config: Optional[ServiceConfig] = None, **options: Any) -> ServiceConfig:
        """
        Configure the service.

        Args:
            config: Full configuration object
            **options: ServiceConfig fields (provider, auth_provider,
                token_service, hooks, cache_time_ms, base_url, max_attempts,
                default_max_retries, default_max_delay_ms)

        Returns:
            The resolved configuration

        A default 401 hook (token refresh) is installed when the auth
        provider can refresh and ``hooks`` does not mention 401. Pass
        ``hooks={401: None}`` to disable it.
        """
        resolved = resolve_config(config, **options)

        self.provider = resolved.provider
        self._base_url = resolved.base_url
        self._max_attempts = resolved.max_attempts
        self._scheduler.set_default_max_retries(resolved.default_max_retries)
        self._scheduler.set_default_max_delay(resolved.default_max_delay_ms)

        if resolved.auth_provider is not None:
            self._auth_provider = resolved.auth_provider
        elif resolved.token_service is not None:
            self._auth_provider = TokenAuthProvider(resolved.token_service)

        final_hooks: Dict[StatusCode, HookSettings] = {}
        current_401 = self._hooks.get_hook(UNAUTHORIZED)
        caller_owns_401 = current_401 is not None and current_401 is not self._default_refresh_hook
        if UNAUTHORIZED not in resolved.hooks and not caller_owns_401:
            if self._auth_provider is not None and self._auth_provider.supports_refresh:
                self._default_refresh_hook = self._create_default_token_refresh_hook()
                final_hooks[UNAUTHORIZED] = self._default_refresh_hook
            elif current_401 is not None:
                # Installed by an earlier setup() whose provider could refresh
                self._hooks.remove_hook(UNAUTHORIZED)
                self._default_refresh_hook = None

        for status, hook in resolved.hooks.items():
            if hook is None:
                self._hooks.remove_hook(status)
            else:
                final_hooks[status] = hook

        if final_hooks:
            self._hooks.set_hooks(final_hooks)

        if resolved.cache_time_ms is not None:
            self._cache.set_cache_time(resolved.cache_time_ms)

        logger.debug(
            f"ApiService.setup: provider={self.provider}, base_url={self._base_url}, "
            f"hooks={sorted(map(str, final_hooks))}, max_attempts={self._max_attempts}"
        )
        return resolved

    def _create_default_token_refresh_hook(self) -> HookSettings:
        """Default handler for 401 (Unauthorized): refresh, then retry once."""

        async def handler(account_id: str, response: Any) -> Dict[str, Any]:
            provider = self._auth_provider
            logger.info(f"Using default token refresh handler for {self.provider} account {account_id}")
            refresh_token = await provider.get_refresh_token(account_id)
            await provider.refresh(refresh_token, account_id)
            # Next attempt re-resolves auth headers and picks up the new token
            return {}

        def on_max_retries_exceeded(account_id: str, error: BaseException) -> None:
            logger.error(f"Authentication failed after refresh attempt for {self.provider} account {account_id}: {error}")

        return HookSettings(
            handler=handler,
            should_retry=True,
            use_retry_delay=True,
            prevent_concurrent_calls=True,
            max_retries=1,
            on_max_retries_exceeded=on_max_retries_exceeded,
        )

    @property
    def auth_provider(self) -> Optional[AuthProvider]:
        return self._auth_provider

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    @property
    def scheduler(self) -> RetryScheduler:
        return self._scheduler

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def accounts(self) -> AccountStore:
        return self._accounts

    def set_max_attempts(self, attempts: int) -> None:
        """Set the global maximum number of attempts per logical call."""
        if attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {attempts}")
        self._max_attempts = attempts

    def set_cache_time(self, milliseconds: float) -> None:
        """Set the cache time in milliseconds."""
        self._cache.set_cache_time(milliseconds)

    def clear_cache(self) -> None:
        self._cache.clear()

    def update_account_data(self, account_id: str, **fields: Any) -> AccountData:
        return self._accounts.update_account_data(account_id, **fields)

    def get_account_data(self, account_id: Optional[str] = None) -> AccountData:
        return self._accounts.get_account_data(account_id)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, listener: ServiceEventListener) -> Callable[[], None]:
        """
        Add an event listener.

        Returns:
            Function to remove the listener
        """
        self._listeners.append(listener)
        return lambda: self.off(listener)

    def off(self, listener: ServiceEventListener) -> None:
        """Remove an event listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: ServiceEvent) -> None:
        """Emit an event to all listeners."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning(f"Event listener failed for {event.type}", exc_info=True)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def make_api_call(self, params: Optional[ApiCallParams] = None, **fields: Any) -> Any:
        """
        Main API call method.

        Args:
            params: Call parameters; alternatively pass ApiCallParams fields
                as keyword arguments (method, route, account_id, ...)

        Returns:
            The response data (parsed JSON, text, or None)

        Raises:
            FetchError: unrecoverable HTTP failure. Errors re-raised after a
                hook's retry budget ran out carry ``retries_exhausted``
            NetworkError, CredentialsNotFoundError, MaxAttemptsExceededError,
            CallCancelledError, or whatever a recovery handler raised
        """
        if params is None:
            params = ApiCallParams(**fields)
        elif fields:
            params = params.with_patch(fields)
        if not params.account_id:
            params = params.with_patch({"account_id": DEFAULT_ACCOUNT_ID})

        account_id = params.account_id
        base = params.base or self._base_url
        logger.debug(f"make_api_call: provider={self.provider}, account={account_id}, {params.method} {params.route}")
        self._emit(ServiceEvent(type="call:start", account_id=account_id, data={"route": params.route}))

        # Check cache first
        cached = self._cache.get(params, base)
        if cached is not None:
            self._emit(ServiceEvent(type="cache:hit", account_id=account_id, data={"route": params.route}))
            return cached.value

        # Make the API call with retry capability
        try:
            result = await self._make_request_with_retry(params)
        except Exception as error:
            self._mark_outcome(account_id, failed=True)
            self._emit(ServiceEvent(type="call:fail", account_id=account_id, data={"error": repr(error)}))
            raise

        self._mark_outcome(account_id, failed=False)
        self._cache.put(params, result, base)
        self._emit(ServiceEvent(type="call:success", account_id=account_id))
        return result

    def _mark_outcome(self, account_id: str, failed: bool) -> None:
        self._accounts.update_account_data(account_id, last_failed=failed, last_request_time=time.time())

    async def _make_request_with_retry(self, params: ApiCallParams) -> Any:
        account_id = params.account_id
        abort_signal = params.abort_signal
        status_retries: Dict[StatusCode, int] = {}
        current = params
        attempts = 0

        while True:
            attempts += 1
            raise_if_aborted(abort_signal, "request")
            self._emit(ServiceEvent(type="attempt:start", account_id=account_id, attempt=attempts))

            try:
                result = await self._attempt(current)
            except Exception as error:
                status = getattr(error, "status", None)
                will_retry = status is not None and self._hooks.should_retry(status)
                self._emit(ServiceEvent(
                    type="attempt:fail",
                    account_id=account_id,
                    attempt=attempts,
                    data={"status": status, "error": repr(error), "will_retry": will_retry},
                ))

                # No hook for this error, or the hook does not retry
                if not will_retry:
                    raise

                status_retries[status] = status_retries.get(status, 0) + 1
                retry_number = status_retries[status]
                hook = self._hooks.get_hook(status)
                max_retries = self._scheduler.resolve_max_retries(hook)

                if retry_number > max_retries:
                    logger.error(
                        f"{self.provider} retries exhausted for status {status} "
                        f"on account {account_id} ({max_retries} retries)"
                    )
                    self._emit(ServiceEvent(
                        type="hook:exhausted",
                        account_id=account_id,
                        attempt=attempts,
                        data={"status": status, "max_retries": max_retries},
                    ))
                    await self._hooks.handle_retry_failure(account_id, status, error)
                    mark_retries_exhausted(error, max_retries)
                    raise

                # No attempt left to use whatever the recovery would produce
                if attempts >= self._max_attempts:
                    logger.error(
                        f"{self.provider} call on account {account_id} reached "
                        f"{self._max_attempts} attempts (last status {status})"
                    )
                    raise MaxAttemptsExceededError(self._max_attempts, account_id) from error

                logger.warning(
                    f"{self.provider} call failed with status {status} on account {account_id}; "
                    f"recovering (retry {retry_number}/{max_retries})"
                )
                raise_if_aborted(abort_signal, "hook")
                self._emit(ServiceEvent(type="hook:start", account_id=account_id, attempt=attempts, data={"status": status}))
                patch = await await_or_abort(
                    self._hooks.process_hook(account_id, status, error),
                    abort_signal,
                    "hook",
                )
                current = current.with_patch(patch)

                if hook is not None and hook.use_retry_delay:
                    delay_ms = self._scheduler.calculate_delay(retry_number, getattr(error, "response", None), hook)
                    logger.info(f"Waiting for {delay_ms / 1000:.3f} seconds before retrying {self.provider} call (attempt {attempts})")
                    self._emit(ServiceEvent(
                        type="retry:wait",
                        account_id=account_id,
                        attempt=attempts,
                        data={"status": status, "delay_ms": delay_ms},
                    ))
                    await self._scheduler.delay(delay_ms, abort_signal)
            else:
                self._emit(ServiceEvent(type="attempt:success", account_id=account_id, attempt=attempts))
                return result

    async def _resolve_auth(self, params: ApiCallParams) -> Tuple[Dict[str, str], Dict[str, str]]:
        """Auth headers and auth query parameters for one attempt."""
        if not params.use_auth:
            return {}, {}
        if params.access_token:
            return {"Authorization": f"Bearer {params.access_token}"}, {}

        headers: Dict[str, str] = {}
        query: Dict[str, str] = {}
        if self._auth_provider is not None:
            headers = await self._auth_provider.get_auth_headers(params.account_id)
            query = self._auth_provider.get_auth_query_params(params.account_id)

        # Verify we have authentication if required
        if not headers and not query:
            raise CredentialsNotFoundError(self.provider, params.account_id)
        return dict(headers), dict(query)

    async def _attempt(self, params: ApiCallParams) -> Any:
        """One physical attempt."""
        auth_headers, auth_query = await self._resolve_auth(params)

        headers: Dict[str, str] = dict(auth_headers)
        if params.body is not None and params.content_type:
            headers["content-type"] = params.content_type
        headers.update(params.headers or {})

        query = dict(params.query_params or {})
        query.update(auth_query)

        url = build_url(params.base or self._base_url, params.route, query)
        response = await await_or_abort(
            self._transport.send(params.method, url, headers, params.body, params.abort_signal),
            params.abort_signal,
            "request",
        )
        return response["data"]

    async def close(self) -> None:
        """Close the underlying transport, if it can be closed."""
        close = getattr(self._transport, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "ApiService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
