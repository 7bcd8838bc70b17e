"""
Shared fixtures for fetch_orchestrator tests.
"""
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, patch

import pytest

from fetch_orchestrator import FetchError, FetchResponse


def ok_response(data: Any = None, status: int = 200, headers: Optional[Dict[str, str]] = None) -> FetchResponse:
    """Successful transport response."""
    return FetchResponse(
        status=status,
        status_text="OK",
        headers=headers or {},
        data=data,
        ok=True,
    )


def error_response(
    status: int,
    data: Any = None,
    headers: Optional[Dict[str, str]] = None,
    status_text: str = "Error",
) -> FetchError:
    """FetchError as raised by a transport for a non-2xx response."""
    return FetchError.from_response(
        FetchResponse(
            status=status,
            status_text=status_text,
            headers=headers or {},
            data=data,
            ok=False,
        )
    )


class FakeTransport:
    """
    Scripted transport.

    Each send() consumes the next scripted result; the last one repeats once
    the script runs out. Exceptions in the script are raised.
    """

    def __init__(self, results: Optional[List[Any]] = None):
        self.results = list(results or [ok_response({"ok": True})])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_call(self) -> Dict[str, Any]:
        return self.calls[-1]

    async def send(self, method, url, headers, body=None, abort_signal=None):
        self.calls.append({"method": method, "url": url, "headers": dict(headers), "body": body})
        index = min(len(self.calls) - 1, len(self.results) - 1)
        result = self.results[index]
        if isinstance(result, BaseException):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


class FakeTokenService:
    """In-memory token store with a refresh capability."""

    def __init__(self, tokens: Optional[Dict[str, Dict[str, str]]] = None, refreshed_token: str = "new-access"):
        self.tokens = dict(tokens or {})
        self.refreshed_token = refreshed_token
        self.refresh_calls: List[Any] = []
        self.set_calls: List[Any] = []

    async def get(self, account_id=None):
        return self.tokens.get(account_id or "default")

    async def set(self, token, account_id=None):
        self.set_calls.append((token, account_id))
        self.tokens[account_id or "default"] = dict(token)

    async def refresh(self, refresh_token, account_id=None):
        self.refresh_calls.append((refresh_token, account_id))
        return {"access_token": self.refreshed_token}


class StaticTokenService:
    """Token store without refresh support."""

    def __init__(self, tokens: Optional[Dict[str, Dict[str, str]]] = None):
        self.tokens = dict(tokens or {})

    async def get(self, account_id=None):
        return self.tokens.get(account_id or "default")

    async def set(self, token, account_id=None):
        self.tokens[account_id or "default"] = dict(token)


@pytest.fixture
def transport():
    """Scripted transport answering 200 {"ok": True} by default."""
    return FakeTransport()


@pytest.fixture
def token_service():
    """Token service holding one token for account acct-1."""
    return FakeTokenService({"acct-1": {"access_token": "old-access", "refresh_token": "refresh-1"}})


@pytest.fixture
def no_sleep():
    """Patch out backoff suspension; the mock records requested seconds."""
    with patch("fetch_orchestrator.scheduler.async_sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep
