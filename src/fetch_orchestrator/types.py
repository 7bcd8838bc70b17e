"""
Type definitions for fetch_orchestrator
"""
import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Literal,
    Optional,
    Protocol,
    Tuple,
    TypedDict,
    Union,
)


logger = logging.getLogger(__name__)


# Classifier key used to select a recovery hook (typically an HTTP status code)
StatusCode = Union[int, str]

# HTTP methods
HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class FetchResponse(TypedDict):
    """Response returned by a transport."""

    status: int
    status_text: str
    headers: Dict[str, str]
    data: Any
    ok: bool


class Token(TypedDict, total=False):
    """Stored credential for an account."""

    access_token: str
    refresh_token: str
    account_id: str
    provider: str
    enabled: bool
    updated_at: str
    primary: bool


class OAuthToken(TypedDict, total=False):
    """Token payload returned by an OAuth refresh."""

    access_token: str
    refresh_token: str
    expires_in: int
    id_token: str
    scope: str
    token_type: str


class TokenService(Protocol):
    """
    External credential store used by TokenAuthProvider.

    ``refresh`` is optional; services without it cannot recover from 401s.
    """

    async def get(self, account_id: Optional[str] = None) -> Optional[Token]:
        ...

    async def set(self, token: Token, account_id: Optional[str] = None) -> None:
        ...


class DelayStrategy(Protocol):
    """Computes the backoff (milliseconds) before a retry."""

    def calculate(self, attempt: int, response: Any = None) -> float:
        ...


# handler(account_id, response) -> patch merged into the next attempt
HookHandler = Callable[[str, Any], Union[Awaitable[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]]]

# callback(account_id, error)
HookCallback = Callable[[str, BaseException], Union[Awaitable[None], None]]


@dataclass
class HookSettings:
    """Recovery descriptor for one classifier."""

    handler: HookHandler
    """Performs recovery and may return fields to merge into the next attempt"""

    should_retry: bool = True
    """If False the classifier is informational only and errors propagate"""

    use_retry_delay: bool = True
    """Whether to wait (backoff) before the next attempt"""

    max_retries: Optional[int] = None
    """Retry ceiling for this classifier. Default: scheduler default (4)"""

    prevent_concurrent_calls: bool = False
    """Share one in-flight handler execution per (account, classifier)"""

    on_max_retries_exceeded: Optional[HookCallback] = None
    """Called once when the retry budget is spent"""

    on_handler_error: Optional[HookCallback] = None
    """Called when the handler itself raises"""

    delay_strategy: Optional[DelayStrategy] = None
    """Overrides the default exponential backoff"""

    max_delay_ms: Optional[float] = None
    """Overrides the service-wide maximum delay (milliseconds)"""

    def __post_init__(self) -> None:
        if not callable(self.handler):
            raise ValueError("HookSettings.handler must be callable")
        for name in ("on_max_retries_exceeded", "on_handler_error"):
            callback = getattr(self, name)
            if callback is not None and not callable(callback):
                raise ValueError(f"HookSettings.{name} must be callable")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.max_delay_ms is not None and self.max_delay_ms < 0:
            raise ValueError(f"max_delay_ms must be >= 0, got {self.max_delay_ms}")
        if self.delay_strategy is not None and not callable(
            getattr(self.delay_strategy, "calculate", None)
        ):
            raise ValueError("delay_strategy must provide a calculate(attempt, response) method")


@dataclass(frozen=True)
class ApiCallParams:
    """Parameters of one logical call."""

    method: HttpMethod
    route: str
    account_id: str = "default"
    base: Optional[str] = None
    body: Any = None
    headers: Optional[Dict[str, str]] = None
    query_params: Optional[Dict[str, Any]] = None
    use_auth: bool = True
    access_token: Optional[str] = None
    """Bypasses the auth provider with ``Authorization: Bearer <token>``"""
    cache_time_ms: Optional[float] = None
    content_type: str = "application/json"
    abort_signal: Optional[asyncio.Event] = field(default=None, compare=False)

    def cache_key_fields(self, base: Optional[str] = None) -> Tuple[Any, ...]:
        """Identity of the call for caching. Headers never take part."""
        return (
            self.account_id,
            self.method,
            self.route,
            base if base is not None else self.base,
            self.query_params,
            self.body,
        )

    def with_patch(self, patch: Optional[Dict[str, Any]]) -> "ApiCallParams":
        """Return a copy with the recognised fields of a hook patch applied."""
        if not patch:
            return self
        known = {f.name for f in dataclasses.fields(self)}
        updates = {k: v for k, v in patch.items() if k in known}
        ignored = sorted(set(patch) - known)
        if ignored:
            logger.warning(f"Ignoring unknown fields in hook patch: {ignored}")
        if not updates:
            return self
        return dataclasses.replace(self, **updates)


@dataclass
class AccountData:
    """Per-account bookkeeping."""

    last_failed: bool = False
    last_request_time: Optional[float] = None
    token: Optional[Token] = None


# Event types
EventType = Literal[
    "call:start",
    "cache:hit",
    "attempt:start",
    "attempt:success",
    "attempt:fail",
    "hook:start",
    "hook:exhausted",
    "retry:wait",
    "call:success",
    "call:fail",
]


@dataclass
class ServiceEvent:
    """Event emitted by ApiService"""

    type: EventType
    """Event type"""

    account_id: str
    """Account the call belongs to"""

    attempt: int = 0
    """Physical attempt number (1-based, 0 when not applicable)"""

    data: Dict[str, Any] = field(default_factory=dict)
    """Event-specific data"""


# Event listener type
ServiceEventListener = Callable[[ServiceEvent], None]
