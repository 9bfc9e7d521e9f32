"""
Storage Services Package

Abstract interfaces plus two implementations: Google Sheets for
deployment and an in-memory store for tests and local runs.
"""

from ledgerbot.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from ledgerbot.services.storage.memory import InMemoryStorage
from ledgerbot.services.storage.google_sheets import (
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryStorage",
]
