"""
Auth providers for fetch_orchestrator.
"""
import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Literal, Optional

from ..errors import AuthProviderError
from ..types import OAuthToken, TokenService
from ..utils import maybe_await

logger = logging.getLogger(__name__)

AuthType = Literal["token", "api_key", "basic", "custom"]

DEFAULT_API_KEY_HEADER = "X-API-Key"


def _mask_value(val: Optional[str]) -> str:
    """Mask sensitive value for logging, showing first 10 chars."""
    if not val:
        return "<empty>"
    if len(val) <= 10:
        return "*" * len(val)
    return val[:10] + "*" * (len(val) - 10)


def _base64_encode(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("utf-8")


class AuthProvider(ABC):
    """
    Auth provider interface.

    Providers without refresh capability leave ``supports_refresh`` False;
    ApiService only installs its default 401 recovery hook for providers
    that can refresh.
    """

    @abstractmethod
    async def get_auth_headers(self, account_id: Optional[str] = None) -> Dict[str, str]:
        """Get auth headers for a request (may be empty)."""
        ...

    def get_auth_query_params(self, account_id: Optional[str] = None) -> Dict[str, str]:
        """Query parameters carrying credentials (API keys sent in the URL)."""
        return {}

    @property
    def supports_refresh(self) -> bool:
        return False

    async def get_refresh_token(self, account_id: Optional[str] = None) -> Optional[str]:
        """Refresh token to hand to ``refresh``, if the provider tracks one."""
        return None

    async def refresh(self, refresh_token: Optional[str], account_id: Optional[str] = None) -> Any:
        """Refresh credentials."""
        raise AuthProviderError(f"{type(self).__name__} does not support refresh")


class TokenAuthProvider(AuthProvider):
    """Bearer token auth backed by an external token service."""

    def __init__(self, token_service: TokenService):
        self._token_service = token_service

    @property
    def token_service(self) -> TokenService:
        return self._token_service

    async def get_auth_headers(self, account_id: Optional[str] = None) -> Dict[str, str]:
        """Get bearer auth header; empty when no token is stored."""
        token = await self._token_service.get(account_id)
        access_token = (token or {}).get("access_token")
        if not access_token:
            logger.debug(f"TokenAuthProvider.get_auth_headers: no access token for account {account_id}")
            return {}
        logger.debug(
            f"TokenAuthProvider.get_auth_headers: account={account_id}, "
            f"access_token={_mask_value(access_token)}"
        )
        return {"Authorization": f"Bearer {access_token}"}

    @property
    def supports_refresh(self) -> bool:
        return callable(getattr(self._token_service, "refresh", None))

    async def get_refresh_token(self, account_id: Optional[str] = None) -> Optional[str]:
        token = await self._token_service.get(account_id)
        return (token or {}).get("refresh_token") or None

    async def refresh(self, refresh_token: Optional[str], account_id: Optional[str] = None) -> OAuthToken:
        """
        Exchange a refresh token for a new access token and store it.

        Raises:
            AuthProviderError: refresh unsupported, no refresh token, or the
                service returned no access token
        """
        if not self.supports_refresh:
            raise AuthProviderError("Refresh not supported")
        if not refresh_token:
            raise AuthProviderError(f"No refresh token available for account {account_id}")

        logger.info(f"Refreshing access token for account {account_id}")
        new_token = await self._token_service.refresh(refresh_token, account_id)  # type: ignore[attr-defined]
        if not new_token or not new_token.get("access_token"):
            raise AuthProviderError("Token refresh returned invalid data")

        await self._token_service.set(
            {
                "access_token": new_token["access_token"],
                "refresh_token": new_token.get("refresh_token") or refresh_token,
            },
            account_id,
        )
        logger.debug(
            f"TokenAuthProvider.refresh: stored access_token={_mask_value(new_token['access_token'])} "
            f"for account {account_id}"
        )
        return new_token


class ApiKeyAuthProvider(AuthProvider):
    """
    Static API key, sent either in a header or as a query parameter.

    The two placements are mutually exclusive; with neither option the key
    goes into the X-API-Key header.
    """

    def __init__(
        self,
        api_key: str,
        header_name: Optional[str] = None,
        query_param_name: Optional[str] = None,
    ):
        if not api_key:
            raise ValueError("api_key is required for ApiKeyAuthProvider")
        if header_name and query_param_name:
            raise ValueError("Configure either header_name or query_param_name, not both")
        self._api_key = api_key
        self._query_param_name = query_param_name
        self._header_name = None if query_param_name else (header_name or DEFAULT_API_KEY_HEADER)

    async def get_auth_headers(self, account_id: Optional[str] = None) -> Dict[str, str]:
        """Get api key header; empty in query-parameter mode."""
        if not self._header_name:
            return {}
        logger.debug(
            f"ApiKeyAuthProvider.get_auth_headers: header_name={self._header_name}, "
            f"api_key={_mask_value(self._api_key)}"
        )
        return {self._header_name: self._api_key}

    def get_auth_query_params(self, account_id: Optional[str] = None) -> Dict[str, str]:
        if not self._query_param_name:
            return {}
        return {self._query_param_name: self._api_key}


class BasicAuthProvider(AuthProvider):
    """HTTP Basic auth."""

    def __init__(self, username: str, password: str):
        if not username or password is None:
            raise ValueError("Basic auth requires username and password")
        self._username = username
        self._password = password

    async def get_auth_headers(self, account_id: Optional[str] = None) -> Dict[str, str]:
        encoded = _base64_encode(f"{self._username}:{self._password}")
        return {"Authorization": f"Basic {encoded}"}


class CustomAuthProvider(AuthProvider):
    """Auth provider built from callables (sync or async)."""

    def __init__(
        self,
        get_headers: Callable[[Optional[str]], Any],
        refresh: Optional[Callable[[Optional[str], Optional[str]], Any]] = None,
        get_refresh_token: Optional[Callable[[Optional[str]], Any]] = None,
        get_query_params: Optional[Callable[[Optional[str]], Dict[str, str]]] = None,
    ):
        if not callable(get_headers):
            raise ValueError("get_headers must be callable")
        self._get_headers = get_headers
        self._refresh = refresh
        self._get_refresh_token = get_refresh_token
        self._get_query_params = get_query_params

    async def get_auth_headers(self, account_id: Optional[str] = None) -> Dict[str, str]:
        headers = await maybe_await(self._get_headers(account_id))
        return dict(headers or {})

    def get_auth_query_params(self, account_id: Optional[str] = None) -> Dict[str, str]:
        if self._get_query_params is None:
            return {}
        return dict(self._get_query_params(account_id) or {})

    @property
    def supports_refresh(self) -> bool:
        return self._refresh is not None

    async def get_refresh_token(self, account_id: Optional[str] = None) -> Optional[str]:
        if self._get_refresh_token is None:
            return None
        return await maybe_await(self._get_refresh_token(account_id))

    async def refresh(self, refresh_token: Optional[str], account_id: Optional[str] = None) -> Any:
        if self._refresh is None:
            raise AuthProviderError("Refresh not supported")
        return await maybe_await(self._refresh(refresh_token, account_id))


def create_auth_provider(auth_type: AuthType, **options: Any) -> AuthProvider:
    """
    Create an auth provider by type.

    Example:
        create_auth_provider("api_key", api_key="k", query_param_name="key")
        create_auth_provider("token", token_service=store)
    """
    logger.debug(f"create_auth_provider: type={auth_type}, options={sorted(options)}")

    if auth_type == "token":
        return TokenAuthProvider(options["token_service"])
    elif auth_type == "api_key":
        return ApiKeyAuthProvider(
            options["api_key"],
            header_name=options.get("header_name"),
            query_param_name=options.get("query_param_name"),
        )
    elif auth_type == "basic":
        return BasicAuthProvider(options["username"], options["password"])
    elif auth_type == "custom":
        return CustomAuthProvider(
            options["get_headers"],
            refresh=options.get("refresh"),
            get_refresh_token=options.get("get_refresh_token"),
            get_query_params=options.get("get_query_params"),
        )
    raise ValueError(f"Unsupported auth type: {auth_type}")
