"""
Tests for AccountStore.
"""
import pytest

from fetch_orchestrator import AccountData, AccountStore


class TestAccountStore:
    """Tests for per-account bookkeeping."""

    def test_unknown_account_has_defaults(self):
        """Should return default data for accounts never seen."""
        store = AccountStore()

        assert store.get_account_data("acct-1") == AccountData()
        assert store.did_last_request_fail("acct-1") is False

    def test_update_merges_fields(self):
        """Should update only the given fields."""
        store = AccountStore()
        store.update_account_data("acct-1", last_failed=True)
        store.update_account_data("acct-1", last_request_time=123.0)

        data = store.get_account_data("acct-1")
        assert data.last_failed is True
        assert data.last_request_time == 123.0

    def test_unknown_fields_rejected(self):
        """Should reject fields AccountData does not have."""
        store = AccountStore()
        with pytest.raises(ValueError):
            store.update_account_data("acct-1", favourite_colour="blue")

    def test_account_id_defaults(self):
        """Should file a missing account id under "default"."""
        store = AccountStore()
        store.set_last_request_failed(None)

        assert store.did_last_request_fail("default") is True
        assert list(store.accounts()) == ["default"]

    def test_get_returns_copy(self):
        """Should not let callers mutate stored state."""
        store = AccountStore()
        store.update_account_data("acct-1", last_failed=True)

        data = store.get_account_data("acct-1")
        data.last_failed = False

        assert store.did_last_request_fail("acct-1") is True

    def test_update_last_request_time(self):
        """Should stamp now by default and accept explicit times."""
        store = AccountStore()
        store.update_last_request_time("acct-1")
        assert store.get_account_data("acct-1").last_request_time is not None

        store.update_last_request_time("acct-1", 42.0)
        assert store.get_account_data("acct-1").last_request_time == 42.0

    def test_accounts_are_independent(self):
        """Should keep separate state per account."""
        store = AccountStore()
        store.set_last_request_failed("acct-1")
        store.set_last_request_failed("acct-2", failed=False)

        assert store.did_last_request_fail("acct-1") is True
        assert store.did_last_request_fail("acct-2") is False

        store.clear()
        assert store.accounts() == {}
