"""Services package."""

from ledgerbot.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from ledgerbot.services.transport import (
    Contact,
    NumberStatus,
    TransportError,
    TransportInterface,
    WPPConnectTransport,
)

__all__ = [
    # Storage services
    "AccountStorageInterface",
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
    # Transport services
    "Contact",
    "NumberStatus",
    "TransportError",
    "TransportInterface",
    "WPPConnectTransport",
]
