"""Tests for the Google Sheets store against mocked worksheets."""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from ledgerbot.models.audit import AuditEvent, AuditEventType
from ledgerbot.models.ledger import EntryKind, LedgerEntry
from ledgerbot.services.storage import (
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerStorage,
    StorageError,
)
from ledgerbot.services.storage.google_sheets import ACCOUNT_COLUMNS, LEDGER_COLUMNS

ACCOUNT_ROWS = [
    ACCOUNT_COLUMNS,
    ["acc-alice", "Alice", "(79) 99988-7766", "", ""],
    ["", "", "", "", ""],
    ["acc-bob", "Bob", "11987654321", "5511987654321@c.us", ""],
]

LEDGER_ROWS = [
    LEDGER_COLUMNS,
    ["1", "acc-alice", "expense", "50.00", "old", "Food", "2024-03-01", "", "2024-03-01T10:00:00+00:00"],
    ["2", "acc-alice", "expense", "50.00", "new", "Food", "2024-03-02", "", "2024-03-02T10:00:00+00:00"],
    ["3", "acc-bob", "expense", "50.00", "bob", "Food", "2024-03-03", "", "2024-03-03T10:00:00+00:00"],
    ["4", "acc-alice", "income", "900.00", "salary", "Salary", "2024-03-04", "", "2024-03-04T10:00:00+00:00"],
]


@pytest.fixture
def accounts_sheet():
    sheet = MagicMock()
    sheet.get_all_values.return_value = [list(r) for r in ACCOUNT_ROWS]
    return sheet


@pytest.fixture
def ledger_sheet():
    sheet = MagicMock()
    sheet.get_all_values.return_value = [list(r) for r in LEDGER_ROWS]
    return sheet


@pytest.fixture
def sheets_client(accounts_sheet, ledger_sheet):
    client = MagicMock()
    client.get_accounts_sheet.return_value = accounts_sheet
    client.get_ledger_sheet.return_value = ledger_sheet
    client.settings.poll_interval_seconds = 0
    return client


class TestAccountStorage:

    def test_list_skips_blank_rows(self, sheets_client):
        accounts = asyncio.run(GoogleSheetsAccountStorage(sheets_client).list_accounts())

        assert [a.id for a in accounts] == ["acc-alice", "acc-bob"]
        assert accounts[0].channel_address is None
        assert accounts[1].channel_address == "5511987654321@c.us"

    def test_lookup_by_channel_address(self, sheets_client):
        storage = GoogleSheetsAccountStorage(sheets_client)
        account = asyncio.run(storage.get_account_by_channel_address("5511987654321@c.us"))
        assert account.id == "acc-bob"

    def test_bind_updates_one_cell(self, sheets_client, accounts_sheet):
        storage = GoogleSheetsAccountStorage(sheets_client)

        assert asyncio.run(storage.bind_channel_address("acc-alice", "5579999887766@c.us"))

        accounts_sheet.batch_update.assert_called_once_with(
            [{"range": "D2", "values": [["5579999887766@c.us"]]}],
            value_input_option="RAW",
        )

    def test_rename_unknown_account(self, sheets_client, accounts_sheet):
        storage = GoogleSheetsAccountStorage(sheets_client)

        assert not asyncio.run(storage.update_account_name("acc-nobody", "X"))
        accounts_sheet.batch_update.assert_not_called()

    def test_watch_yields_changes_after_baseline(self, sheets_client, accounts_sheet):
        changed = [list(r) for r in ACCOUNT_ROWS]
        changed[1][4] = "482913"
        accounts_sheet.get_all_values.side_effect = [
            [list(r) for r in ACCOUNT_ROWS],
            changed,
        ]
        storage = GoogleSheetsAccountStorage(sheets_client)

        async def first_change():
            stream = storage.watch_accounts()
            try:
                return await stream.__anext__()
            finally:
                await stream.aclose()

        change = asyncio.run(first_change())

        assert change.old.auth_code is None
        assert change.new.id == "acc-alice"
        assert change.new.auth_code == "482913"
        assert change.introduces_auth_code


class TestLedgerStorage:

    def test_insert_assigns_next_id(self, sheets_client, ledger_sheet):
        storage = GoogleSheetsLedgerStorage(sheets_client)
        entry = LedgerEntry(
            account_id="acc-alice",
            kind=EntryKind.EXPENSE,
            amount=Decimal("12.30"),
            description="coffee",
            category="food",
            transaction_date=date(2024, 3, 5),
            channel_phone="5579999887766@c.us",
        )

        entry_id = asyncio.run(storage.insert_entry(entry))

        assert entry_id == 5
        row = ledger_sheet.append_row.call_args.args[0]
        assert row[:8] == [
            "5", "acc-alice", "expense", "12.30", "coffee", "Food", "2024-03-05", "5579999887766@c.us",
        ]

    def test_latest_by_amount_is_owner_scoped(self, sheets_client):
        storage = GoogleSheetsLedgerStorage(sheets_client)

        assert asyncio.run(storage.find_latest_entry_id_by_amount("acc-alice", Decimal("50"))) == 2
        assert asyncio.run(storage.find_latest_entry_id_by_amount("acc-bob", Decimal("50"))) == 3
        assert asyncio.run(storage.find_latest_entry_id_by_amount("acc-alice", Decimal("7"))) is None

    def test_update_writes_changed_cells_in_one_raw_request(self, sheets_client, ledger_sheet):
        storage = GoogleSheetsLedgerStorage(sheets_client)

        updated = asyncio.run(storage.update_entry(
            2, "acc-alice", {"amount": Decimal("55.00"), "category": "Market"}
        ))

        assert updated
        ledger_sheet.batch_update.assert_called_once_with(
            [
                {"range": "D3", "values": [["55.00"]]},
                {"range": "F3", "values": [["Market"]]},
            ],
            value_input_option="RAW",
        )
        ledger_sheet.update_cell.assert_not_called()

    def test_failed_write_raises_storage_error(self, sheets_client, ledger_sheet):
        ledger_sheet.batch_update.side_effect = RuntimeError("quota")
        storage = GoogleSheetsLedgerStorage(sheets_client)

        with pytest.raises(StorageError):
            asyncio.run(storage.update_entry(2, "acc-alice", {"amount": Decimal("1")}))

    def test_update_requires_owner_match(self, sheets_client, ledger_sheet):
        storage = GoogleSheetsLedgerStorage(sheets_client)

        assert not asyncio.run(storage.update_entry(3, "acc-alice", {"amount": Decimal("1")}))
        ledger_sheet.batch_update.assert_not_called()

    def test_list_entries(self, sheets_client):
        entries = asyncio.run(GoogleSheetsLedgerStorage(sheets_client).list_entries("acc-alice"))
        assert [e.id for e in entries] == [1, 2, 4]
        assert entries[2].kind == EntryKind.INCOME


class TestAuditStorage:

    def test_append_writes_sheets_row(self):
        client = MagicMock()
        event = AuditEvent(event_type=AuditEventType.MESSAGE_RECEIVED, description="hi")

        assert asyncio.run(GoogleSheetsAuditStorage(client).append_event(event))
        client.get_audit_sheet.return_value.append_row.assert_called_once_with(
            event.to_sheets_row(), value_input_option="RAW"
        )

    def test_write_failure_returns_false(self):
        client = MagicMock()
        client.get_audit_sheet.side_effect = RuntimeError("quota")
        event = AuditEvent(event_type=AuditEventType.MESSAGE_RECEIVED, description="hi")

        assert not asyncio.run(GoogleSheetsAuditStorage(client).append_event(event))
