"""
Tests for error types and message extraction.
"""
import pytest

from fetch_orchestrator import (
    DEFAULT_ERROR_MESSAGE,
    ApiServiceError,
    CallCancelledError,
    CredentialsNotFoundError,
    FetchError,
    MaxAttemptsExceededError,
    NetworkError,
    get_error_message,
    mark_retries_exhausted,
)

from conftest import error_response


class TestGetErrorMessage:
    """Tests for get_error_message."""

    @pytest.mark.parametrize("data,expected", [
        ({"error": {"errors": [{"message": "nested"}], "message": "outer"}}, "nested"),
        ({"error": {"message": "outer"}, "message": "top"}, "outer"),
        ({"message": "top"}, "top"),
        ({"error_description": "invalid_grant"}, "invalid_grant"),
        ({"detail": "Not found"}, "Not found"),
        ({"error": "unauthorized"}, "unauthorized"),
    ])
    def test_priority_order(self, data, expected):
        """Should pick the first location that holds a message."""
        assert get_error_message(data) == expected

    def test_skips_empty_strings(self):
        """Should ignore blank messages."""
        assert get_error_message({"error": {"message": "  "}, "message": "real"}) == "real"

    def test_non_mapping_data(self):
        """Should return None for bodies without a message."""
        assert get_error_message("plain text") is None
        assert get_error_message(None) is None
        assert get_error_message({"error": {"errors": []}}) is None

    def test_custom_locations(self):
        """Should accept caller-provided locations."""
        assert get_error_message({"a": {"b": "c"}}, ["a.b"]) == "c"


class TestFetchError:
    """Tests for FetchError."""

    def test_from_response_extracts_message(self):
        """Should use the body message first."""
        error = error_response(422, data={"message": "invalid field"})

        assert error.status == 422
        assert error.message == "invalid field"
        assert str(error) == "invalid field"
        assert error.code == "FETCH_ERROR"

    def test_falls_back_to_status_text(self):
        """Should fall back to the response status text."""
        error = error_response(503, data="<html>", status_text="Service Unavailable")

        assert error.message == "Service Unavailable"
        assert error.status_text == "Service Unavailable"

    def test_falls_back_to_default(self):
        """Should fall back to a generic message."""
        error = FetchError(500)

        assert error.message == DEFAULT_ERROR_MESSAGE

    def test_repr(self):
        """Should include status and message."""
        assert "status=404" in repr(FetchError(404, message="gone"))


class TestMarkRetriesExhausted:
    """Tests for mark_retries_exhausted."""

    def test_fetch_error_defaults_to_unmarked(self):
        """Should start without an exhausted retry count."""
        assert FetchError(500).retries_exhausted is None

    def test_marks_fetch_error_in_place(self):
        """Should keep the original error's shape and record the retry count."""
        original = error_response(429, data={"message": "slow down"})

        mark_retries_exhausted(original, 3)

        assert original.retries_exhausted == 3
        assert original.status == 429
        assert original.message == "slow down"

    def test_marks_foreign_error(self):
        """Should mark errors that do not derive from ApiServiceError."""
        original = RuntimeError("boom")

        mark_retries_exhausted(original, 1)

        assert original.retries_exhausted == 1

    def test_ignores_unmarkable_error(self):
        """Should leave objects without an instance dict untouched."""

        class Frozen:
            __slots__ = ("status",)

        frozen = Frozen()
        mark_retries_exhausted(frozen, 2)

        assert not hasattr(frozen, "retries_exhausted")


class TestOtherErrors:
    """Tests for the remaining error types."""

    def test_hierarchy(self):
        """Should derive every error from ApiServiceError."""
        for error in (
            FetchError(500),
            NetworkError("down"),
            CredentialsNotFoundError("github", "acct-1"),
            MaxAttemptsExceededError(10, "acct-1"),
            CallCancelledError("delay"),
        ):
            assert isinstance(error, ApiServiceError)

    def test_messages(self):
        """Should describe the failure."""
        assert str(CredentialsNotFoundError("", "acct-1")) == "api credentials not found for account ID acct-1"
        assert "(10)" in str(MaxAttemptsExceededError(10, "acct-1"))
        assert str(CallCancelledError("hook")) == "API call cancelled during hook"

    def test_network_error_has_no_status(self):
        """Should never carry a classifier."""
        assert getattr(NetworkError("down"), "status", None) is None
