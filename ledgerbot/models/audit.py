"""
Audit Models for the Ledger Assistant

Every significant step of a chat turn produces one audit event:
identity resolution, extraction, each ledger mutation, and each
one-time code delivery. Events sharing a correlation id belong to
the same inbound message.

Audit logs are append-only.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Inbound
    MESSAGE_RECEIVED = "message_received"

    # Identity
    IDENTITY_RESOLVED = "identity_resolved"
    ACCOUNT_LINKED = "account_linked"
    IDENTITY_UNRESOLVED = "identity_unresolved"
    ACCOUNT_RENAMED = "account_renamed"

    # Extraction
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"
    ORACLE_RATE_LIMITED = "oracle_rate_limited"

    # Persistence
    ENTRY_CREATED = "entry_created"
    ENTRY_UPDATED = "entry_updated"
    EDIT_TARGET_NOT_FOUND = "edit_target_not_found"
    SAVE_FAILED = "save_failed"

    # Auth relay
    AUTH_CODE_SENT = "auth_code_sent"
    AUTH_CODE_DELIVERY_FAILED = "auth_code_delivery_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """How loudly an audit event is logged."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Immutable once written; the audit trail is append-only.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Primary key of the audit row"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC time the event was built"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Which step produced the event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Log level the event is emitted at"
    )

    # Subject of the event
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'entry', 'message')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Account id, entry id or message id"
    )

    # Correlation - all events of one chat turn
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by every event of one inbound message"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="One-line summary for humans reading the log"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Step-specific payload"
    )

    # Set only for failures
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user message?"
    )

    def to_log_dict(self) -> dict:
        """
        Flat dict for structlog keyword arguments.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        One AuditLog worksheet row.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    One static constructor per audited step of a chat turn.

    Usage:
        event = AuditEventBuilder.message_received(address, correlation_id)
        event = AuditEventBuilder.entry_created(entry_id, account_id, ...)
    """

    @staticmethod
    def message_received(
        address: str,
        message_id: Optional[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_RECEIVED,
            entity_type="message",
            entity_id=message_id,
            correlation_id=correlation_id,
            description=f"Message received from {address}",
            details={"address": address},
            is_user_action=True,
        )

    @staticmethod
    def identity_resolved(
        account_id: str,
        state: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IDENTITY_RESOLVED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Address resolved to account ({state})",
            details={"state": state},
        )

    @staticmethod
    def account_linked(
        account_id: str,
        address: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_LINKED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Address {address} bound to account",
            details={"address": address},
        )

    @staticmethod
    def identity_unresolved(
        address: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IDENTITY_UNRESOLVED,
            severity=AuditSeverity.WARNING,
            entity_type="message",
            correlation_id=correlation_id,
            description=f"No account matches {address}",
            details={"address": address},
        )

    @staticmethod
    def account_renamed(
        account_id: str,
        name: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_RENAMED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Account display name changed",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def extraction_completed(
        intent_count: int,
        dropped: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extraction produced {intent_count} intents",
            details={"intent_count": intent_count, "dropped": dropped},
        )

    @staticmethod
    def extraction_failed(
        status: str,
        correlation_id: UUID
    ) -> AuditEvent:
        rate_limited = status == "rate_limited"
        return AuditEvent(
            event_type=(
                AuditEventType.ORACLE_RATE_LIMITED
                if rate_limited
                else AuditEventType.EXTRACTION_FAILED
            ),
            severity=AuditSeverity.WARNING,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=(
                "Oracle quota exhausted"
                if rate_limited
                else "Oracle output could not be parsed"
            ),
            details={"status": status},
        )

    @staticmethod
    def entry_created(
        entry_id: int,
        account_id: str,
        amount: str,
        category: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_CREATED,
            entity_type="entry",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"Entry created: {category} - {amount}",
            details={
                "account_id": account_id,
                "amount": amount,
                "category": category,
            },
        )

    @staticmethod
    def entry_updated(
        entry_id: int,
        account_id: str,
        fields: list[str],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED,
            entity_type="entry",
            entity_id=str(entry_id),
            correlation_id=correlation_id,
            description=f"Entry updated: {', '.join(fields) or 'no fields'}",
            details={"account_id": account_id, "fields": fields},
        )

    @staticmethod
    def edit_target_not_found(
        account_id: str,
        target_id: Optional[int],
        search_amount: Optional[str],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EDIT_TARGET_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Edit target could not be resolved",
            details={"target_id": target_id, "search_amount": search_amount},
        )

    @staticmethod
    def save_failed(
        account_id: str,
        action: str,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Store rejected {action}",
            error_message=error_message,
            details={"action": action},
        )

    @staticmethod
    def auth_code_sent(
        account_id: str,
        address: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_CODE_SENT,
            entity_type="account",
            entity_id=account_id,
            description="One-time code delivered",
            details={"address": address},
        )

    @staticmethod
    def auth_code_delivery_failed(
        account_id: str,
        error_message: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_CODE_DELIVERY_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            description="One-time code delivery failed",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
