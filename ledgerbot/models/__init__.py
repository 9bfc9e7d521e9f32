"""
Data Models Package

This package contains all Pydantic models used by the ledger assistant.
All data crossing the transport, oracle and store boundaries must
conform to these schemas.
"""

from ledgerbot.models.ledger import (
    Account,
    AccountChange,
    EntryKind,
    EntryPatch,
    ExtractionResult,
    ExtractionStatus,
    IdentityState,
    InboundMessage,
    IntentAction,
    LedgerEntry,
    ReconcileOutcome,
    ReconcileStatus,
    Resolution,
    TransactionIntent,
)
from ledgerbot.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountChange",
    "EntryKind",
    "EntryPatch",
    "ExtractionResult",
    "ExtractionStatus",
    "IdentityState",
    "InboundMessage",
    "IntentAction",
    "LedgerEntry",
    "ReconcileOutcome",
    "ReconcileStatus",
    "Resolution",
    "TransactionIntent",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
