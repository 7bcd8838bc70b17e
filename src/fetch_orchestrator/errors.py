"""
Error types for fetch_orchestrator.

Only errors carrying a ``status`` can be matched against a recovery hook;
everything else is fatal for the logical call.
"""
import logging
from typing import Any, Mapping, Optional, Sequence


logger = logging.getLogger(__name__)


DEFAULT_ERROR_MESSAGE = "An unspecified error occurred"

# Conventional places an API puts a human readable error, in priority order
ERROR_MESSAGE_LOCATIONS = (
    "error.errors.0.message",
    "error.message",
    "message",
    "error_description",
    "detail",
    "error",
)


def get_error_message(data: Any, locations: Sequence[str] = ERROR_MESSAGE_LOCATIONS) -> Optional[str]:
    """
    Return the first non-empty string found at one of the dotted locations.

    Numeric path segments index into lists.
    """
    for location in locations:
        value = data
        for part in location.split("."):
            if isinstance(value, Mapping):
                value = value.get(part)
            elif isinstance(value, (list, tuple)) and part.isdigit():
                index = int(part)
                value = value[index] if index < len(value) else None
            else:
                value = None
            if value is None:
                break
        if isinstance(value, str) and value.strip():
            return value
    return None


class ApiServiceError(Exception):
    """Base class for all fetch_orchestrator errors."""


class FetchError(ApiServiceError):
    """A physical attempt failed with an HTTP status."""

    def __init__(
        self,
        status: int,
        response: Optional[Mapping[str, Any]] = None,
        data: Any = None,
        message: Optional[str] = None,
        code: str = "FETCH_ERROR",
    ):
        self.status = status
        self.response = response
        self.data = data
        self.code = code
        self.retries_exhausted: Optional[int] = None
        self.status_text = response.get("status_text", "") if isinstance(response, Mapping) else ""
        self.message = message or self.status_text or DEFAULT_ERROR_MESSAGE
        super().__init__(self.message)

    @classmethod
    def from_response(cls, response: Mapping[str, Any], code: str = "FETCH_ERROR") -> "FetchError":
        """Build an error from a transport response, extracting its message."""
        data = response.get("data")
        return cls(
            status=response.get("status", 0),
            response=response,
            data=data,
            message=get_error_message(data),
            code=code,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status!r}, message={self.message!r}, code={self.code!r})"


def mark_retries_exhausted(error: BaseException, retries: int) -> None:
    """
    Flag an error whose recovery hook ran out of retries.

    The error itself is re-raised unchanged; ``retries_exhausted`` holds the
    retry ceiling that was spent.
    """
    try:
        error.retries_exhausted = retries  # type: ignore[attr-defined]
    except AttributeError:
        logger.debug(f"Cannot mark {type(error).__name__} as retries exhausted")


class NetworkError(ApiServiceError):
    """The transport failed before any HTTP status was received."""

    code = "NETWORK_ERROR"


class CredentialsNotFoundError(ApiServiceError):
    """Authentication was required but resolved to nothing."""

    def __init__(self, provider: str, account_id: str):
        self.provider = provider
        self.account_id = account_id
        super().__init__(f"{provider or 'api'} credentials not found for account ID {account_id}")


class MaxAttemptsExceededError(ApiServiceError):
    """The global attempts ceiling for one logical call was hit."""

    def __init__(self, max_attempts: int, account_id: str):
        self.max_attempts = max_attempts
        self.account_id = account_id
        super().__init__(f"Exceeded maximum attempts ({max_attempts}) for API call to {account_id}")


class CallCancelledError(ApiServiceError):
    """The call's abort signal was set."""

    def __init__(self, stage: str = "request"):
        self.stage = stage
        super().__init__(f"API call cancelled during {stage}")


class AuthProviderError(ApiServiceError):
    """An auth provider could not perform the requested operation."""
