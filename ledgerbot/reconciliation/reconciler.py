"""
Reconciler

Applies extracted intents to the ledger store, strictly in order, each
one independently: a failed intent never rolls back or blocks its
siblings.

- create: insert a new entry owned by the account.
- edit:   resolve the target (explicit id, else the account's latest
          entry with the search amount) and patch only the provided
          fields. The update predicate always includes the account id.

Categories are normalized before they are written.
"""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from ledgerbot.audit import AuditLogger
from ledgerbot.models.ledger import (
    Account,
    EntryPatch,
    IntentAction,
    LedgerEntry,
    ReconcileOutcome,
    ReconcileStatus,
    TransactionIntent,
)
from ledgerbot.normalization import normalize_category
from ledgerbot.services.storage import LedgerStorageInterface, StorageError

logger = structlog.get_logger(__name__)


class Reconciler:
    """Owner-scoped create/edit of ledger entries."""

    def __init__(
        self,
        ledger: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._audit_logger = audit_logger

    async def reconcile(
        self,
        account: Account,
        intents: list[TransactionIntent],
        channel_phone: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[ReconcileOutcome]:
        """
        Apply every intent and return one outcome per intent, in order.

        Args:
            account: The resolved owner
            intents: Intents from the extraction contract
            channel_phone: Address recorded on created entries;
                           defaults to the account's bound address
            correlation_id: Correlation id of the current turn
        """
        channel_phone = channel_phone or account.channel_address or account.phone
        outcomes = []

        for intent in intents:
            if intent.action == IntentAction.CREATE:
                outcome = await self._create(account, intent, channel_phone, correlation_id)
            else:
                outcome = await self._edit(account, intent, correlation_id)
            outcomes.append(outcome)

        return outcomes

    async def _create(
        self,
        account: Account,
        intent: TransactionIntent,
        channel_phone: Optional[str],
        correlation_id: Optional[UUID],
    ) -> ReconcileOutcome:
        fields = intent.patch.model_copy(
            update={"category": normalize_category(intent.patch.category)}
        )

        try:
            entry = LedgerEntry(
                account_id=account.id,
                kind=fields.kind,
                amount=fields.amount,
                description=fields.description or "",
                category=fields.category,
                transaction_date=fields.transaction_date or date.today(),
                channel_phone=channel_phone,
            )
            entry_id = await self._ledger.insert_entry(entry)
        except (StorageError, ValidationError) as e:
            return await self._failed(account, IntentAction.CREATE, fields, str(e), correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_entry_created(
                entry_id=entry_id,
                account_id=account.id,
                amount=entry.amount,
                category=entry.category,
                correlation_id=correlation_id,
            )

        return ReconcileOutcome(
            action=IntentAction.CREATE,
            status=ReconcileStatus.CREATED,
            entry_id=entry_id,
            fields=fields,
        )

    async def _edit(
        self,
        account: Account,
        intent: TransactionIntent,
        correlation_id: Optional[UUID],
    ) -> ReconcileOutcome:
        fields = intent.patch
        if fields.category is not None:
            fields = fields.model_copy(
                update={"category": normalize_category(fields.category)}
            )

        try:
            target_id = await self._resolve_target(account, intent)
        except StorageError as e:
            return await self._failed(account, IntentAction.EDIT, fields, str(e), correlation_id)

        if target_id is None:
            return await self._not_found(account, intent, fields, correlation_id)

        changes = fields.changes()
        if not changes:
            return ReconcileOutcome(
                action=IntentAction.EDIT,
                status=ReconcileStatus.NOTHING_TO_UPDATE,
                entry_id=target_id,
            )

        try:
            updated = await self._ledger.update_entry(target_id, account.id, changes)
        except StorageError as e:
            outcome = await self._failed(account, IntentAction.EDIT, fields, str(e), correlation_id)
            return outcome.model_copy(update={"entry_id": target_id})

        if not updated:
            # Id does not exist or belongs to another account
            return await self._not_found(
                account,
                intent.model_copy(update={"target_id": target_id}),
                fields,
                correlation_id,
            )

        if self._audit_logger:
            await self._audit_logger.log_entry_updated(
                entry_id=target_id,
                account_id=account.id,
                fields=sorted(changes),
                correlation_id=correlation_id,
            )

        return ReconcileOutcome(
            action=IntentAction.EDIT,
            status=ReconcileStatus.UPDATED,
            entry_id=target_id,
            fields=fields,
        )

    async def _resolve_target(
        self,
        account: Account,
        intent: TransactionIntent,
    ) -> Optional[int]:
        if intent.target_id is not None:
            return intent.target_id
        if intent.search_amount is not None:
            return await self._ledger.find_latest_entry_id_by_amount(
                account.id, intent.search_amount
            )
        return None

    async def _not_found(
        self,
        account: Account,
        intent: TransactionIntent,
        fields: EntryPatch,
        correlation_id: Optional[UUID],
    ) -> ReconcileOutcome:
        if self._audit_logger:
            await self._audit_logger.log_edit_target_not_found(
                account_id=account.id,
                target_id=intent.target_id,
                search_amount=intent.search_amount,
                correlation_id=correlation_id,
            )
        return ReconcileOutcome(
            action=IntentAction.EDIT,
            status=ReconcileStatus.TARGET_NOT_FOUND,
            entry_id=intent.target_id,
            search_amount=intent.search_amount,
            fields=fields,
        )

    async def _failed(
        self,
        account: Account,
        action: IntentAction,
        fields: EntryPatch,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> ReconcileOutcome:
        logger.error(
            "ledger_write_failed",
            account_id=account.id,
            action=action.value,
            error=error_message,
        )
        if self._audit_logger:
            await self._audit_logger.log_save_failed(
                account_id=account.id,
                action=action.value,
                error_message=error_message,
                correlation_id=correlation_id,
            )
        return ReconcileOutcome(
            action=action,
            status=ReconcileStatus.PERSISTENCE_FAILED,
            fields=fields,
            error_message=error_message,
        )
