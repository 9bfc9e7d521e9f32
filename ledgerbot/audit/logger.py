"""
Audit Logger

Every significant step of a chat turn is logged:
- locally through structlog (always)
- to the audit store, when one is configured

Storage failures are logged and swallowed; auditing never breaks a turn.
Correlation ids tie together every event of one inbound message.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgerbot.models.audit import AuditEvent, AuditEventBuilder
from ledgerbot.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(debug: bool = False) -> None:
    """Route structlog output through stdlib logging at the right level."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )


class AuditLogger:
    """
    Central audit logging service.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledgerbot.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_message_received(
        self,
        address: str,
        message_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.message_received(
            address=address,
            message_id=message_id,
            correlation_id=correlation_id,
        ))

    async def log_identity_resolved(
        self,
        account_id: str,
        state: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.identity_resolved(
            account_id=account_id,
            state=state,
            correlation_id=correlation_id,
        ))

    async def log_account_linked(
        self,
        account_id: str,
        address: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.account_linked(
            account_id=account_id,
            address=address,
            correlation_id=correlation_id,
        ))

    async def log_identity_unresolved(
        self,
        address: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.identity_unresolved(
            address=address,
            correlation_id=correlation_id,
        ))

    async def log_account_renamed(
        self,
        account_id: str,
        name: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.account_renamed(
            account_id=account_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_extraction_completed(
        self,
        intent_count: int,
        dropped: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            intent_count=intent_count,
            dropped=dropped,
            correlation_id=correlation_id,
        ))

    async def log_extraction_failed(
        self,
        status: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_failed(
            status=status,
            correlation_id=correlation_id,
        ))

    async def log_entry_created(
        self,
        entry_id: int,
        account_id: str,
        amount: Decimal,
        category: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.entry_created(
            entry_id=entry_id,
            account_id=account_id,
            amount=str(amount),
            category=category,
            correlation_id=correlation_id,
        ))

    async def log_entry_updated(
        self,
        entry_id: int,
        account_id: str,
        fields: list[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.entry_updated(
            entry_id=entry_id,
            account_id=account_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_edit_target_not_found(
        self,
        account_id: str,
        target_id: Optional[int],
        search_amount: Optional[Decimal],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.edit_target_not_found(
            account_id=account_id,
            target_id=target_id,
            search_amount=str(search_amount) if search_amount is not None else None,
            correlation_id=correlation_id,
        ))

    async def log_save_failed(
        self,
        account_id: str,
        action: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            account_id=account_id,
            action=action,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_auth_code_sent(self, account_id: str, address: str) -> None:
        await self.log(AuditEventBuilder.auth_code_sent(
            account_id=account_id,
            address=address,
        ))

    async def log_auth_code_delivery_failed(
        self,
        account_id: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.auth_code_delivery_failed(
            account_id=account_id,
            error_message=error_message,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for one inbound message.

    Pass it through all subsequent operations of that turn.
    """
    return uuid4()
