"""
In-Memory Storage Implementation

Implements the account, ledger and audit interfaces with plain Python
containers. Used by the test suite and by `storage_backend=memory`
for local runs without a spreadsheet.

Account inserts and updates are pushed to every active
`watch_accounts()` subscriber.
"""

import asyncio
from decimal import Decimal
from typing import AsyncIterator, Optional

from ledgerbot.models.audit import AuditEvent
from ledgerbot.models.ledger import Account, AccountChange, LedgerEntry
from ledgerbot.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryStorage(
    AccountStorageInterface,
    LedgerStorageInterface,
    AuditStorageInterface,
):
    """Process-local store. Not shared between processes."""

    def __init__(self, accounts: Optional[list[Account]] = None):
        self._accounts: dict[str, Account] = {}
        self._entries: dict[int, LedgerEntry] = {}
        self._next_entry_id = 1
        self._subscribers: list[asyncio.Queue] = []
        self.audit_events: list[AuditEvent] = []

        for account in accounts or []:
            self._accounts[account.id] = account

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def _publish(self, old: Optional[Account], new: Optional[Account]) -> None:
        change = AccountChange(old=old, new=new)
        for queue in self._subscribers:
            queue.put_nowait(change)

    async def save_account(self, account: Account) -> None:
        """Insert or replace an account (stands in for the external signup flow)."""
        old = self._accounts.get(account.id)
        self._accounts[account.id] = account
        self._publish(old, account)

    async def set_auth_code(self, account_id: str, code: Optional[str]) -> None:
        """Stands in for the external login flow issuing a one-time code."""
        old = self._accounts.get(account_id)
        if old is None:
            raise NotFoundError(f"Account not found: {account_id}")
        await self.save_account(old.model_copy(update={"auth_code": code}))

    async def list_accounts(self) -> list[Account]:
        return list(self._accounts.values())

    async def get_account(self, account_id: str) -> Optional[Account]:
        return self._accounts.get(account_id)

    async def get_account_by_channel_address(
        self,
        address: str,
    ) -> Optional[Account]:
        for account in self._accounts.values():
            if account.channel_address == address:
                return account
        return None

    async def _update_account(self, account_id: str, **fields) -> bool:
        old = self._accounts.get(account_id)
        if old is None:
            return False
        new = old.model_copy(update=fields)
        self._accounts[account_id] = new
        self._publish(old, new)
        return True

    async def bind_channel_address(self, account_id: str, address: str) -> bool:
        return await self._update_account(account_id, channel_address=address)

    async def update_account_name(self, account_id: str, name: str) -> bool:
        return await self._update_account(account_id, name=name)

    async def watch_accounts(self) -> AsyncIterator[AccountChange]:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(queue)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    async def insert_entry(self, entry: LedgerEntry) -> int:
        entry_id = self._next_entry_id
        self._next_entry_id += 1
        self._entries[entry_id] = entry.model_copy(update={"id": entry_id})
        return entry_id

    async def get_entry(self, entry_id: int) -> Optional[LedgerEntry]:
        return self._entries.get(entry_id)

    async def find_latest_entry_id_by_amount(
        self,
        account_id: str,
        amount: Decimal,
    ) -> Optional[int]:
        matches = [
            entry
            for entry in self._entries.values()
            if entry.account_id == account_id and entry.amount == amount
        ]
        if not matches:
            return None
        latest = max(matches, key=lambda e: (e.created_at, e.id))
        return latest.id

    async def update_entry(
        self,
        entry_id: int,
        account_id: str,
        changes: dict,
    ) -> bool:
        entry = self._entries.get(entry_id)
        if entry is None or entry.account_id != account_id:
            return False
        self._entries[entry_id] = LedgerEntry.model_validate(
            {**entry.model_dump(), **changes}
        )
        return True

    async def list_entries(self, account_id: str) -> list[LedgerEntry]:
        entries = [e for e in self._entries.values() if e.account_id == account_id]
        return sorted(entries, key=lambda e: e.id)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def append_event(self, event: AuditEvent) -> bool:
        self.audit_events.append(event)
        return True
