"""
Google Sheets Storage Implementation

Accounts, ledger entries and audit events live in three worksheets of
one spreadsheet, one record per row.

TRADEOFFS:
- No server-side predicates: rows are filtered in Python, but every
  ledger predicate still includes the owning account id.
- No transactions or sequences: ledger ids are max(id) + 1, which is
  only safe with a single writer process.
- No push notifications: account changes are detected by polling the
  accounts sheet and diffing successive snapshots.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, Optional

import gspread
from gspread.utils import rowcol_to_a1
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledgerbot.config import GoogleSheetsSettings, get_settings
from ledgerbot.models.audit import AuditEvent
from ledgerbot.models.ledger import Account, AccountChange, EntryKind, LedgerEntry
from ledgerbot.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)

logger = structlog.get_logger(__name__)


# Column mappings for Accounts sheet
ACCOUNT_COLUMNS = [
    "id",
    "name",
    "phone",
    "channel_address",
    "auth_code",
]

# Column mappings for Ledger sheet
LEDGER_COLUMNS = [
    "id",
    "account_id",
    "kind",
    "amount",
    "description",
    "category",
    "transaction_date",
    "channel_phone",
    "created_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Patch field -> 1-based column in the Ledger sheet
_LEDGER_FIELD_COLUMNS = {
    "kind": LEDGER_COLUMNS.index("kind") + 1,
    "amount": LEDGER_COLUMNS.index("amount") + 1,
    "description": LEDGER_COLUMNS.index("description") + 1,
    "category": LEDGER_COLUMNS.index("category") + 1,
    "transaction_date": LEDGER_COLUMNS.index("transaction_date") + 1,
}

_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _cell_value(value) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, EntryKind):
        return value.value
    return str(value)


def _write_cells(sheet, row: int, cells: dict) -> None:
    """Write {column: value} cells of one row in a single RAW request."""
    sheet.batch_update(
        [
            {"range": rowcol_to_a1(row, col), "values": [[value]]}
            for col, value in cells.items()
        ],
        value_input_option="RAW",
    )


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet bootstrap.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @_read_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_accounts_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.accounts_sheet_name, ACCOUNT_COLUMNS, rows=500
        )

    def get_ledger_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.ledger_sheet_name, LEDGER_COLUMNS, rows=2000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsAccountStorage(AccountStorageInterface):
    """
    Google Sheets implementation of account storage.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_account(self, row: list) -> Account:
        return Account(
            id=_safe_get(row, 0),
            name=_safe_get(row, 1) or None,
            phone=_safe_get(row, 2) or None,
            channel_address=_safe_get(row, 3) or None,
            auth_code=_safe_get(row, 4) or None,
        )

    @_read_retry
    async def list_accounts(self) -> list[Account]:
        try:
            rows = self._client.get_accounts_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list accounts: {e}")

        accounts = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                accounts.append(self._row_to_account(row))
            except ValueError:
                logger.warning("malformed_account_row", account_id=row[0])
        return accounts

    async def get_account(self, account_id: str) -> Optional[Account]:
        for account in await self.list_accounts():
            if account.id == account_id:
                return account
        return None

    async def get_account_by_channel_address(
        self,
        address: str,
    ) -> Optional[Account]:
        for account in await self.list_accounts():
            if account.channel_address == address:
                return account
        return None

    async def _update_account_cell(
        self,
        account_id: str,
        column: str,
        value: str,
    ) -> bool:
        try:
            sheet = self._client.get_accounts_sheet()
            all_rows = sheet.get_all_values()
            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == account_id:
                    _write_cells(sheet, idx, {ACCOUNT_COLUMNS.index(column) + 1: value})
                    return True
            return False
        except Exception as e:
            raise StorageError(f"Failed to update account {account_id}: {e}")

    async def bind_channel_address(self, account_id: str, address: str) -> bool:
        return await self._update_account_cell(account_id, "channel_address", address)

    async def update_account_name(self, account_id: str, name: str) -> bool:
        return await self._update_account_cell(account_id, "name", name)

    async def watch_accounts(self) -> AsyncIterator[AccountChange]:
        """
        Poll the accounts sheet and yield a change for every row that
        appeared or differs from the previous snapshot.

        The first successful read only establishes the baseline.
        """
        interval = self._client.settings.poll_interval_seconds
        previous: Optional[dict[str, Account]] = None

        while True:
            try:
                current = {a.id: a for a in await self.list_accounts()}
            except StorageError as e:
                logger.warning("account_poll_failed", error=str(e))
                await asyncio.sleep(interval)
                continue

            if previous is not None:
                for account_id, account in current.items():
                    old = previous.get(account_id)
                    if old != account:
                        yield AccountChange(old=old, new=account)
            previous = current
            await asyncio.sleep(interval)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Entries are stored one per row; ids are sequential integers.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _entry_to_row(self, entry: LedgerEntry) -> list:
        return [
            str(entry.id),
            entry.account_id,
            entry.kind.value,
            str(entry.amount),
            entry.description,
            entry.category,
            entry.transaction_date.isoformat(),
            entry.channel_phone or "",
            entry.created_at.isoformat(),
        ]

    def _row_to_entry(self, row: list) -> LedgerEntry:
        return LedgerEntry(
            id=int(_safe_get(row, 0)),
            account_id=_safe_get(row, 1),
            kind=EntryKind(_safe_get(row, 2)),
            amount=Decimal(_safe_get(row, 3)),
            description=_safe_get(row, 4),
            category=_safe_get(row, 5),
            transaction_date=date.fromisoformat(_safe_get(row, 6)),
            channel_phone=_safe_get(row, 7) or None,
            created_at=datetime.fromisoformat(_safe_get(row, 8)),
        )

    @_read_retry
    async def _read_rows(self) -> list[list]:
        try:
            return self._client.get_ledger_sheet().get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read ledger: {e}")

    async def insert_entry(self, entry: LedgerEntry) -> int:
        all_rows = await self._read_rows()
        ids = [int(row[0]) for row in all_rows[1:] if row and row[0].isdigit()]
        entry_id = max(ids, default=0) + 1

        try:
            sheet = self._client.get_ledger_sheet()
            row = self._entry_to_row(entry.model_copy(update={"id": entry_id}))
            sheet.append_row(row, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save entry: {e}")
        return entry_id

    async def find_latest_entry_id_by_amount(
        self,
        account_id: str,
        amount: Decimal,
    ) -> Optional[int]:
        all_rows = await self._read_rows()

        latest: Optional[tuple[datetime, int, int]] = None
        for position, row in enumerate(all_rows[1:]):
            if len(row) < len(LEDGER_COLUMNS) or row[1] != account_id:
                continue
            try:
                if Decimal(row[3]) != amount:
                    continue
                key = (datetime.fromisoformat(row[8]), position, int(row[0]))
            except (ArithmeticError, ValueError):
                continue
            if latest is None or key > latest:
                latest = key

        return latest[2] if latest else None

    async def update_entry(
        self,
        entry_id: int,
        account_id: str,
        changes: dict,
    ) -> bool:
        all_rows = await self._read_rows()
        try:
            sheet = self._client.get_ledger_sheet()
            for idx, row in enumerate(all_rows[1:], start=2):
                if len(row) > 1 and row[0] == str(entry_id) and row[1] == account_id:
                    if changes:
                        _write_cells(sheet, idx, {
                            _LEDGER_FIELD_COLUMNS[field]: _cell_value(value)
                            for field, value in changes.items()
                        })
                    return True
            return False
        except Exception as e:
            raise StorageError(f"Failed to update entry {entry_id}: {e}")

    async def list_entries(self, account_id: str) -> list[LedgerEntry]:
        entries = []
        for row in (await self._read_rows())[1:]:
            if len(row) > 1 and row[1] == account_id:
                try:
                    entries.append(self._row_to_entry(row))
                except ValueError:
                    continue  # Skip malformed rows
        return sorted(entries, key=lambda e: e.id)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            logger.warning("audit_event_write_failed", error=str(e))
            return False
