"""
HTTP transport using httpx.

The transport performs exactly one physical attempt; retry policy lives in
ApiService.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol, Union
from urllib.parse import urlencode, urlparse

import httpx

from .cancellation import await_or_abort
from .config import TimeoutConfig, is_ssl_verify_disabled_by_env, normalize_timeout
from .errors import FetchError, NetworkError
from .types import FetchResponse, HttpMethod


logger = logging.getLogger(__name__)

# Methods whose body is sent on the wire
BODY_METHODS = ("POST", "PUT", "PATCH")


class Transport(Protocol):
    """One physical attempt: returns a response or raises."""

    async def send(
        self,
        method: HttpMethod,
        url: str,
        headers: Dict[str, str],
        body: Any = None,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> FetchResponse:
        ...


def _query_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return str(value)


def build_url(
    base: Optional[str],
    route: str = "",
    query: Optional[Dict[str, Any]] = None,
) -> str:
    """Build full URL from base, route and query parameters."""
    if base:
        if route and urlparse(route).scheme:
            url = route
        elif route:
            url = f"{base.rstrip('/')}/{route.lstrip('/')}"
        else:
            url = base
    else:
        url = route

    if not urlparse(url).scheme:
        raise ValueError(f"Cannot build an absolute URL from base={base!r} and route={route!r}")

    if query:
        query_str = urlencode(
            {k: _query_value(v) for k, v in query.items() if v is not None},
            doseq=True,
        )
        if query_str:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{query_str}"

    return url


def build_body(method: str, body: Any) -> Optional[Union[str, bytes]]:
    """Serialize the request body; only POST/PUT/PATCH carry one."""
    if body is None or method.upper() not in BODY_METHODS:
        return None
    if isinstance(body, (str, bytes)):
        return body
    return json.dumps(body)


def _parse_body(response: httpx.Response) -> Any:
    text = response.text
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class HttpxTransport:
    """Transport implementation backed by httpx.AsyncClient."""

    def __init__(
        self,
        httpx_client: Optional[httpx.AsyncClient] = None,
        timeout: Union[TimeoutConfig, float, None] = None,
    ):
        if httpx_client is not None:
            self._client = httpx_client
            self._owns_client = False
        else:
            timeout_config = normalize_timeout(timeout)
            # NODE_TLS_REJECT_UNAUTHORIZED=0 or SSL_CERT_VERIFY=0 will disable SSL verification
            verify_ssl = not is_ssl_verify_disabled_by_env()
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=timeout_config.connect,
                    read=timeout_config.read,
                    write=timeout_config.write,
                    pool=timeout_config.connect,
                ),
                verify=verify_ssl,
            )
            self._owns_client = True
        self._closed = False

    async def send(
        self,
        method: HttpMethod,
        url: str,
        headers: Dict[str, str],
        body: Any = None,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> FetchResponse:
        """
        Issue one HTTP request.

        Raises:
            FetchError: non-2xx response
            NetworkError: no response was received
            CallCancelledError: abort_signal was set
        """
        if self._closed:
            raise RuntimeError("Transport has been closed")

        logger.debug(f"HttpxTransport.send: method={method}, url={url}")

        try:
            response = await await_or_abort(
                self._client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    content=build_body(method, body),
                ),
                abort_signal,
                "request",
            )
        except httpx.RequestError as error:
            logger.warning(f"HttpxTransport.send: {method} {url} failed: {error!r}")
            raise NetworkError(f"Network error calling {method} {url}: {error}") from error

        result = FetchResponse(
            status=response.status_code,
            status_text=response.reason_phrase or "",
            headers=dict(response.headers),
            data=_parse_body(response),
            ok=200 <= response.status_code < 300,
        )

        logger.debug(f"HttpxTransport.send: {method} {url} -> {result['status']} {result['status_text']}")

        if not result["ok"]:
            raise FetchError.from_response(result)
        return result

    async def close(self) -> None:
        """Close the transport (and the httpx client if it created it)."""
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
