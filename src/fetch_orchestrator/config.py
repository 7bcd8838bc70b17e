"""
Configuration for fetch_orchestrator.
"""
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union
from urllib.parse import urlparse

from .types import HookSettings, StatusCode, TokenService

if TYPE_CHECKING:
    from .auth import AuthProvider


# Defaults
DEFAULT_ACCOUNT_ID = "default"
DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_MAX_RETRIES = 4
DEFAULT_MAX_DELAY_MS = 60000
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_CACHE_TIME_MS = 20000

UNAUTHORIZED = 401


@dataclass
class TimeoutConfig:
    """Timeout configuration in seconds."""

    connect: float = 5.0
    read: float = 30.0
    write: float = 10.0


DEFAULT_TIMEOUT = TimeoutConfig()


def normalize_timeout(timeout: Union[TimeoutConfig, float, None]) -> TimeoutConfig:
    """Normalize timeout config."""
    if timeout is None:
        return DEFAULT_TIMEOUT
    if isinstance(timeout, (int, float)):
        return TimeoutConfig(connect=timeout, read=timeout, write=timeout)
    return timeout


def is_ssl_verify_disabled_by_env() -> bool:
    """
    Check if SSL verification is disabled via environment variables.

    Returns True if any of these are set:
    - NODE_TLS_REJECT_UNAUTHORIZED=0
    - SSL_CERT_VERIFY=0
    """
    node_tls = os.environ.get("NODE_TLS_REJECT_UNAUTHORIZED", "")
    ssl_cert_verify = os.environ.get("SSL_CERT_VERIFY", "")
    return node_tls == "0" or ssl_cert_verify == "0"


@dataclass
class ServiceConfig:
    """Setup-time configuration of an ApiService."""

    provider: str = ""
    """Name of the upstream API, used in logs and error messages"""

    auth_provider: Optional["AuthProvider"] = None
    """Supplies auth headers per attempt"""

    token_service: Optional[TokenService] = None
    """Shortcut: wrapped in a TokenAuthProvider when auth_provider is not given"""

    hooks: Dict[StatusCode, Optional[HookSettings]] = field(default_factory=dict)
    """Recovery hooks per classifier; None disables a default hook"""

    cache_time_ms: Optional[float] = None
    """Response cache TTL. Default: 20000"""

    base_url: Optional[str] = None
    """Base URL used when a call does not give its own"""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    """Global ceiling of physical attempts per logical call. Default: 10"""

    default_max_retries: int = DEFAULT_MAX_RETRIES
    """Per-classifier retry ceiling when a hook does not set one. Default: 4"""

    default_max_delay_ms: float = DEFAULT_MAX_DELAY_MS
    """Maximum backoff when a hook does not set one. Default: 60000"""


def normalize_status(status: Any) -> Any:
    """Normalize a classifier key so "401" and 401 are the same hook."""
    if isinstance(status, str) and status.strip().isdigit():
        return int(status.strip())
    return status


def normalize_hooks(
    hooks: Optional[Mapping[StatusCode, Optional[HookSettings]]],
) -> Dict[StatusCode, Optional[HookSettings]]:
    """Normalize classifier keys, keeping explicit None entries."""
    if not hooks:
        return {}
    return {normalize_status(status): hook for status, hook in hooks.items()}


def validate_config(config: ServiceConfig) -> None:
    """Validate service configuration."""
    if not isinstance(config.provider, str):
        raise ValueError(f"provider must be a string, got {type(config.provider).__name__}")

    if config.base_url:
        parsed = urlparse(config.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid base_url: {config.base_url}")

    if config.cache_time_ms is not None and config.cache_time_ms < 0:
        raise ValueError(f"cache_time_ms must be >= 0, got {config.cache_time_ms}")

    if config.max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {config.max_attempts}")

    if config.default_max_retries < 0:
        raise ValueError(f"default_max_retries must be >= 0, got {config.default_max_retries}")

    if config.default_max_delay_ms < 0:
        raise ValueError(f"default_max_delay_ms must be >= 0, got {config.default_max_delay_ms}")

    if config.auth_provider is not None and config.token_service is not None:
        raise ValueError("Configure either auth_provider or token_service, not both")

    for status, hook in (config.hooks or {}).items():
        if hook is not None and not isinstance(hook, HookSettings):
            raise ValueError(
                f"Hook for status {status!r} must be HookSettings or None, "
                f"got {type(hook).__name__}"
            )


def resolve_config(config: Optional[ServiceConfig] = None, **options: Any) -> ServiceConfig:
    """
    Build a validated ServiceConfig.

    Args:
        config: Base configuration
        **options: Field overrides applied on top of ``config``

    Returns:
        Validated configuration with normalized hook keys
    """
    base = config or ServiceConfig()
    values = {name: getattr(base, name) for name in base.__dataclass_fields__}
    unknown = sorted(set(options) - set(values))
    if unknown:
        raise ValueError(f"Unknown setup options: {unknown}")
    values.update(options)
    values["hooks"] = normalize_hooks(values.get("hooks"))

    resolved = ServiceConfig(**values)
    validate_config(resolved)
    return resolved
