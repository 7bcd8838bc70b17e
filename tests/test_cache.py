"""
Tests for ResponseCache.
"""
import pytest

from fetch_orchestrator import ApiCallParams, ResponseCache, get_request_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_params(**overrides) -> ApiCallParams:
    fields = {"method": "GET", "route": "/repos", "account_id": "acct-1"}
    fields.update(overrides)
    return ApiCallParams(**fields)


class TestGetRequestKey:
    """Tests for call identity."""

    def test_same_identity_same_key(self):
        """Should produce the same key for identical calls."""
        assert get_request_key(make_params()) == get_request_key(make_params())

    def test_query_order_does_not_matter(self):
        """Should ignore mapping order."""
        first = make_params(query_params={"a": 1, "b": 2})
        second = make_params(query_params={"b": 2, "a": 1})
        assert get_request_key(first) == get_request_key(second)

    def test_method_case_does_not_matter(self):
        """Should normalize the method."""
        assert get_request_key(make_params(method="get")) == get_request_key(make_params(method="GET"))

    @pytest.mark.parametrize("field,value", [
        ("account_id", "acct-2"),
        ("method", "POST"),
        ("route", "/other"),
        ("base", "https://other.example.com"),
        ("query_params", {"page": 2}),
        ("body", {"name": "x"}),
    ])
    def test_each_identity_field_changes_key(self, field, value):
        """Should change the key when any identity field changes."""
        assert get_request_key(make_params(**{field: value})) != get_request_key(make_params())

    def test_headers_are_not_identity(self):
        """Should ignore headers and per-call options."""
        plain = make_params()
        decorated = make_params(headers={"X-Trace": "1"}, access_token="t", cache_time_ms=5)
        assert get_request_key(plain) == get_request_key(decorated)

    def test_resolved_base_overrides_params_base(self):
        """Should key on the base actually used for the call."""
        params = make_params()
        assert get_request_key(params, "https://a.example.com") != get_request_key(params, "https://b.example.com")


class TestResponseCache:
    """Tests for TTL behaviour."""

    def test_round_trip_within_ttl(self):
        """Should return the stored value while the entry is live."""
        clock = FakeClock()
        cache = ResponseCache(cache_time_ms=20000, clock=clock)
        params = make_params()

        cache.put(params, {"repos": [1, 2]})
        clock.advance(19.9)

        entry = cache.get(params)
        assert entry is not None
        assert entry.value == {"repos": [1, 2]}

    def test_expires_at_ttl(self):
        """Should evict the entry once the ttl elapsed."""
        clock = FakeClock()
        cache = ResponseCache(cache_time_ms=20000, clock=clock)
        params = make_params()

        cache.put(params, "value")
        clock.advance(20)

        assert cache.get(params) is None
        assert cache.size() == 0

    def test_per_call_ttl(self):
        """Should prefer the call's own cache_time_ms."""
        clock = FakeClock()
        cache = ResponseCache(cache_time_ms=20000, clock=clock)
        params = make_params(cache_time_ms=500)

        cache.put(params, "value")
        clock.advance(0.6)

        assert cache.get(params) is None

    def test_zero_ttl_never_hits(self):
        """Should treat a zero ttl as caching disabled."""
        cache = ResponseCache(cache_time_ms=0, clock=FakeClock())
        params = make_params()

        cache.put(params, "value")

        assert cache.get(params) is None

    def test_falsy_values_are_cached(self):
        """Should return an entry for cached None and empty values."""
        cache = ResponseCache(clock=FakeClock())
        params = make_params()

        cache.put(params, None)

        entry = cache.get(params)
        assert entry is not None
        assert entry.value is None

    def test_max_entries_evicts_oldest(self):
        """Should drop the oldest entry when full."""
        cache = ResponseCache(clock=FakeClock(), max_entries=2)
        first, second, third = (make_params(route=f"/r{i}") for i in range(3))

        cache.put(first, 1)
        cache.put(second, 2)
        cache.put(third, 3)

        assert cache.get(first) is None
        assert cache.get(second).value == 2
        assert cache.get(third).value == 3

    def test_set_cache_time(self):
        """Should update the default ttl and reject negatives."""
        cache = ResponseCache()
        cache.set_cache_time(500)
        assert cache.cache_time_ms == 500

        with pytest.raises(ValueError):
            cache.set_cache_time(-1)

    def test_delete_and_clear(self):
        """Should remove single entries and everything."""
        cache = ResponseCache(clock=FakeClock())
        first, second = make_params(route="/a"), make_params(route="/b")
        cache.put(first, 1)
        cache.put(second, 2)

        assert cache.delete(first) is True
        assert cache.delete(first) is False
        assert cache.size() == 1

        cache.clear()
        assert cache.size() == 0
