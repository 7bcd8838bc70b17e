"""
Client-side request orchestration: caching, pluggable auth, status-code
recovery hooks and retry/backoff around an HTTP transport.
"""
from .types import (
    StatusCode,
    HttpMethod,
    FetchResponse,
    Token,
    OAuthToken,
    TokenService,
    DelayStrategy,
    HookHandler,
    HookCallback,
    HookSettings,
    ApiCallParams,
    AccountData,
    EventType,
    ServiceEvent,
    ServiceEventListener,
)
from .errors import (
    DEFAULT_ERROR_MESSAGE,
    ERROR_MESSAGE_LOCATIONS,
    get_error_message,
    ApiServiceError,
    FetchError,
    mark_retries_exhausted,
    NetworkError,
    CredentialsNotFoundError,
    MaxAttemptsExceededError,
    CallCancelledError,
    AuthProviderError,
)
from .config import (
    DEFAULT_ACCOUNT_ID,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_CACHE_TIME_MS,
    UNAUTHORIZED,
    TimeoutConfig,
    ServiceConfig,
    normalize_status,
    normalize_hooks,
    validate_config,
    resolve_config,
)
from .scheduler import (
    parse_retry_after,
    get_retry_after_ms,
    ExponentialBackoffStrategy,
    RetryScheduler,
    async_sleep,
)
from .hooks import HookRegistry
from .auth import (
    AuthProvider,
    AuthType,
    TokenAuthProvider,
    ApiKeyAuthProvider,
    BasicAuthProvider,
    CustomAuthProvider,
    create_auth_provider,
)
from .cache import CacheEntry, ResponseCache, get_request_key
from .accounts import AccountStore
from .cancellation import await_or_abort, raise_if_aborted
from .transport import Transport, HttpxTransport, build_url, build_body
from .service import ApiService


__all__ = [
    # Types
    "StatusCode",
    "HttpMethod",
    "FetchResponse",
    "Token",
    "OAuthToken",
    "TokenService",
    "DelayStrategy",
    "HookHandler",
    "HookCallback",
    "HookSettings",
    "ApiCallParams",
    "AccountData",
    "EventType",
    "ServiceEvent",
    "ServiceEventListener",
    # Errors
    "DEFAULT_ERROR_MESSAGE",
    "ERROR_MESSAGE_LOCATIONS",
    "get_error_message",
    "ApiServiceError",
    "FetchError",
    "mark_retries_exhausted",
    "NetworkError",
    "CredentialsNotFoundError",
    "MaxAttemptsExceededError",
    "CallCancelledError",
    "AuthProviderError",
    # Config
    "DEFAULT_ACCOUNT_ID",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_MAX_DELAY_MS",
    "DEFAULT_BASE_DELAY_MS",
    "DEFAULT_CACHE_TIME_MS",
    "UNAUTHORIZED",
    "TimeoutConfig",
    "ServiceConfig",
    "normalize_status",
    "normalize_hooks",
    "validate_config",
    "resolve_config",
    # Scheduler
    "parse_retry_after",
    "get_retry_after_ms",
    "ExponentialBackoffStrategy",
    "RetryScheduler",
    "async_sleep",
    # Hooks
    "HookRegistry",
    # Auth
    "AuthProvider",
    "AuthType",
    "TokenAuthProvider",
    "ApiKeyAuthProvider",
    "BasicAuthProvider",
    "CustomAuthProvider",
    "create_auth_provider",
    # Cache / accounts
    "CacheEntry",
    "ResponseCache",
    "get_request_key",
    "AccountStore",
    # Cancellation
    "await_or_abort",
    "raise_if_aborted",
    # Transport
    "Transport",
    "HttpxTransport",
    "build_url",
    "build_body",
    # Service
    "ApiService",
]


__version__ = "1.0.0"
