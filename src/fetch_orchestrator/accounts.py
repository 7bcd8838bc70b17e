"""
Per-account state (last failure flag, last request time).
"""
import dataclasses
import time
from typing import Any, Dict, Optional

from .config import DEFAULT_ACCOUNT_ID
from .types import AccountData


class AccountStore:
    """Account bookkeeping keyed by account id. Lives for the process."""

    def __init__(self) -> None:
        self._accounts: Dict[str, AccountData] = {}

    def update_account_data(self, account_id: Optional[str] = None, **fields: Any) -> AccountData:
        """Update account data for a specific account."""
        account_id = account_id or DEFAULT_ACCOUNT_ID
        known = {f.name for f in dataclasses.fields(AccountData)}
        unknown = sorted(set(fields) - known)
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown}")

        current = self._accounts.get(account_id, AccountData())
        updated = dataclasses.replace(current, **fields)
        self._accounts[account_id] = updated
        return updated

    def get_account_data(self, account_id: Optional[str] = None) -> AccountData:
        """Get a copy of the account data (defaults when unknown)."""
        data = self._accounts.get(account_id or DEFAULT_ACCOUNT_ID)
        return dataclasses.replace(data) if data else AccountData()

    def did_last_request_fail(self, account_id: Optional[str] = None) -> bool:
        data = self._accounts.get(account_id or DEFAULT_ACCOUNT_ID)
        return bool(data and data.last_failed)

    def set_last_request_failed(self, account_id: Optional[str] = None, failed: bool = True) -> None:
        self.update_account_data(account_id, last_failed=failed)

    def update_last_request_time(self, account_id: Optional[str] = None, timestamp: Optional[float] = None) -> None:
        self.update_account_data(
            account_id,
            last_request_time=timestamp if timestamp is not None else time.time(),
        )

    def accounts(self) -> Dict[str, AccountData]:
        return dict(self._accounts)

    def clear(self) -> None:
        self._accounts.clear()
