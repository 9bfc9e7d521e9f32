"""
Abstract Storage Interface

The ledger store is consumed as row-level operations only:
fetch rows by predicate, fetch one row, insert returning the generated
id, update by predicate, and subscribe to account changes.

OWNERSHIP: every ledger read or write that targets existing entries
takes the owning account id as part of its predicate. Implementations
must apply it inside the query, never as a check on the result.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import AsyncIterator, Optional

from ledgerbot.models.audit import AuditEvent
from ledgerbot.models.ledger import Account, AccountChange, LedgerEntry


class AccountStorageInterface(ABC):
    """
    Abstract interface for account storage operations.

    Accounts are created externally; this system reads them, binds
    a chat address, renames them, and watches them for changes.
    """

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """Return every account."""
        pass

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        """Return the account with this id, or None."""
        pass

    @abstractmethod
    async def get_account_by_channel_address(
        self,
        address: str,
    ) -> Optional[Account]:
        """
        Return the first account whose bound chat address equals `address`.
        """
        pass

    @abstractmethod
    async def bind_channel_address(self, account_id: str, address: str) -> bool:
        """
        Persist `address` as the account's chat address.

        Returns:
            True if a row was updated

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_account_name(self, account_id: str, name: str) -> bool:
        """Change the display name. Returns True if a row was updated."""
        pass

    @abstractmethod
    def watch_accounts(self) -> AsyncIterator[AccountChange]:
        """
        Subscribe to account changes.

        Yields one AccountChange per inserted or updated row, forever.
        Cancel the consuming task to unsubscribe.
        """
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger entry storage.
    """

    @abstractmethod
    async def insert_entry(self, entry: LedgerEntry) -> int:
        """
        Insert a new entry.

        Returns:
            The store-generated entry id

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def find_latest_entry_id_by_amount(
        self,
        account_id: str,
        amount: Decimal,
    ) -> Optional[int]:
        """
        Among the account's entries with exactly `amount`, return the id of
        the most recently created one (later insert wins on equal timestamps).
        """
        pass

    @abstractmethod
    async def update_entry(
        self,
        entry_id: int,
        account_id: str,
        changes: dict,
    ) -> bool:
        """
        Apply `changes` to the entry matching BOTH `entry_id` and `account_id`.

        Returns:
            True if a row matched and was updated, False if none matched

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_entries(self, account_id: str) -> list[LedgerEntry]:
        """All entries owned by the account, oldest first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
