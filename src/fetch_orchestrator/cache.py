"""
In-memory response cache keyed by logical-call identity.
"""
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .config import DEFAULT_CACHE_TIME_MS
from .types import ApiCallParams


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached value and when it was stored (clock seconds)."""

    value: Any
    stored_at: float


def get_request_key(params: ApiCallParams, base: Optional[str] = None) -> str:
    """
    SHA-256 of the call identity: account, method, route, base, query, body.

    Keys are sorted so mapping order never changes the key.
    """
    account_id, method, route, call_base, query_params, body = params.cache_key_fields(base)
    payload = json.dumps(
        {
            "account_id": account_id,
            "method": str(method).upper(),
            "route": route,
            "base": call_base,
            "query_params": query_params,
            "body": body,
        },
        sort_keys=True,
        default=str,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode()).hexdigest()


class ResponseCache:
    """
    TTL memoizer for successful call results.

    An entry is live while ``now - stored_at < ttl``; the TTL is the call's
    ``cache_time_ms`` when set, else the cache default.
    """

    def __init__(
        self,
        cache_time_ms: float = DEFAULT_CACHE_TIME_MS,
        clock: Callable[[], float] = time.time,
        max_entries: int = 1000,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._cache: Dict[str, CacheEntry] = {}
        self._cache_time_ms = cache_time_ms
        self._clock = clock
        self._max_entries = max_entries

    @property
    def cache_time_ms(self) -> float:
        return self._cache_time_ms

    def set_cache_time(self, milliseconds: float) -> None:
        """Set the default cache time in milliseconds."""
        if milliseconds < 0:
            raise ValueError(f"cache time must be >= 0, got {milliseconds}")
        self._cache_time_ms = milliseconds

    def get(self, params: ApiCallParams, base: Optional[str] = None) -> Optional[CacheEntry]:
        """Get a live entry for the call, or None."""
        key = get_request_key(params, base)
        entry = self._cache.get(key)
        if entry is None:
            return None

        ttl_ms = params.cache_time_ms if params.cache_time_ms is not None else self._cache_time_ms
        if (self._clock() - entry.stored_at) * 1000 >= ttl_ms:
            del self._cache[key]
            return None
        return entry

    def put(self, params: ApiCallParams, value: Any, base: Optional[str] = None) -> None:
        """Store a call result."""
        key = get_request_key(params, base)
        self._cache.pop(key, None)
        while len(self._cache) >= self._max_entries:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]
        self._cache[key] = CacheEntry(value=value, stored_at=self._clock())

    def delete(self, params: ApiCallParams, base: Optional[str] = None) -> bool:
        return self._cache.pop(get_request_key(params, base), None) is not None

    def size(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        """Clear the entire cache."""
        self._cache.clear()
