"""
Main Orchestrator for the Ledger Assistant

Defines the end-to-end flow of one inbound chat message:

    identity resolution
      -> (auto-link confirmation | command | extraction -> reconciliation)
      -> one outbound reply

Steps run strictly in sequence within a message. Messages are queued
and consumed by a bounded pool of workers (one by default); a failure
while handling one message is logged and never stops the worker.

The auth relay runs beside the workers as its own long-lived task.
"""

import asyncio
from datetime import date, datetime
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog

from ledgerbot import replies
from ledgerbot.agents import ExtractionAgent
from ledgerbot.audit import AuditLogger, create_correlation_id
from ledgerbot.config import AppSettings, Settings, get_settings
from ledgerbot.identity import IdentityResolver
from ledgerbot.models.ledger import (
    Account,
    ExtractionStatus,
    InboundMessage,
)
from ledgerbot.reconciliation import Reconciler
from ledgerbot.relay import AuthRelay
from ledgerbot.services.storage import (
    AccountStorageInterface,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryStorage,
    StorageError,
)
from ledgerbot.services.transport import (
    TransportError,
    TransportInterface,
    WPPConnectTransport,
)

logger = structlog.get_logger(__name__)

RENAME_COMMAND = "!name"


class MessageFlow:
    """
    Orchestrates the handling of one inbound message.

    BOUNDARIES:
    - Unknown senders never reach extraction
    - An auto-link turn ends with the link confirmation
    - Every turn that reaches extraction ends with exactly one reply
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        agent: ExtractionAgent,
        reconciler: Reconciler,
        accounts: AccountStorageInterface,
        transport: TransportInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._resolver = resolver
        self._agent = agent
        self._reconciler = reconciler
        self._accounts = accounts
        self._transport = transport
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    def reference_date(self) -> date:
        return datetime.now(ZoneInfo(self._settings.timezone)).date()

    async def handle(self, message: InboundMessage) -> Optional[str]:
        """
        Handle one message.

        Returns:
            The reply text sent, or None if nothing was sent
        """
        if message.should_ignore:
            return None

        correlation_id = create_correlation_id()
        await self._audit_logger.log_message_received(
            address=message.from_address,
            message_id=message.message_id,
            correlation_id=correlation_id,
        )

        # Step 1: Who is this?
        resolution = await self._resolver.resolve(
            message.from_address,
            message.author,
            message.body,
        )

        if not resolution.resolved:
            await self._audit_logger.log_identity_unresolved(
                address=message.from_address,
                correlation_id=correlation_id,
            )
            if self._settings.send_onboarding_prompt:
                return await self._reply(message, replies.ONBOARDING, correlation_id)
            return None

        account = resolution.account
        if resolution.linked:
            await self._audit_logger.log_account_linked(
                account_id=account.id,
                address=message.from_address,
                correlation_id=correlation_id,
            )
            text = replies.LINKED.format(name=account.name or "there")
            return await self._reply(message, text, correlation_id)

        await self._audit_logger.log_identity_resolved(
            account_id=account.id,
            state=resolution.state.value,
            correlation_id=correlation_id,
        )

        # Step 2: Commands bypass extraction
        body = message.body.strip()
        lowered = body.lower()
        if lowered == RENAME_COMMAND or lowered.startswith(RENAME_COMMAND + " "):
            new_name = body[len(RENAME_COMMAND):].strip()
            return await self._rename(message, account, new_name, correlation_id)

        # Step 3: Extract
        result = await self._agent.extract(body, self.reference_date())

        if result.status != ExtractionStatus.INTENTS:
            await self._audit_logger.log_extraction_failed(
                status=result.status.value,
                correlation_id=correlation_id,
            )
            text = (
                replies.RATE_LIMITED
                if result.status == ExtractionStatus.RATE_LIMITED
                else replies.NOT_UNDERSTOOD
            )
            return await self._reply(message, text, correlation_id)

        await self._audit_logger.log_extraction_completed(
            intent_count=len(result.intents),
            dropped=result.dropped,
            correlation_id=correlation_id,
        )

        if not result.intents:
            return await self._reply(message, replies.NOTHING_UNDERSTOOD, correlation_id)

        # Step 4: Reconcile
        outcomes = await self._reconciler.reconcile(
            account,
            result.intents,
            channel_phone=message.from_address,
            correlation_id=correlation_id,
        )

        summary = replies.format_outcomes(outcomes, self._settings.currency_symbol)
        return await self._reply(message, summary, correlation_id)

    async def _rename(
        self,
        message: InboundMessage,
        account: Account,
        new_name: str,
        correlation_id: UUID,
    ) -> Optional[str]:
        if not new_name:
            return await self._reply(message, replies.RENAME_USAGE, correlation_id)

        try:
            await self._accounts.update_account_name(account.id, new_name)
        except StorageError as e:
            await self._audit_logger.log_external_service_error(
                service="store",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return await self._reply(message, replies.RENAME_FAILED, correlation_id)

        await self._audit_logger.log_account_renamed(
            account_id=account.id,
            name=new_name,
            correlation_id=correlation_id,
        )
        return await self._reply(message, replies.RENAMED.format(name=new_name), correlation_id)

    async def _reply(
        self,
        message: InboundMessage,
        text: str,
        correlation_id: UUID,
    ) -> Optional[str]:
        try:
            await self._transport.send_text(message.from_address, text)
        except TransportError as e:
            await self._audit_logger.log_external_service_error(
                service="transport",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None
        return text


class MessageWorkerPool:
    """
    Bounded queue of inbound messages consumed by worker tasks.
    """

    def __init__(
        self,
        flow: MessageFlow,
        worker_count: int = 1,
        queue_size: int = 100,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._flow = flow
        self._audit_logger = audit_logger
        self._worker_count = worker_count
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._work(n), name=f"message-worker-{n}")
            for n in range(self._worker_count)
        ]
        logger.info("message_workers_started", count=self._worker_count)

    async def submit(self, message: InboundMessage) -> None:
        """Enqueue a message, waiting while the queue is full."""
        await self._queue.put(message)

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def _work(self, n: int) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._flow.handle(message)
            except Exception as e:
                logger.exception(
                    "message_handling_failed",
                    worker=n,
                    address=message.from_address,
                )
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"address": message.from_address},
                    )
            finally:
                self._queue.task_done()


class AppComponents:
    """Everything the HTTP surface needs to run the bot."""

    def __init__(
        self,
        flow: MessageFlow,
        pool: MessageWorkerPool,
        relay: AuthRelay,
        transport: TransportInterface,
    ):
        self.flow = flow
        self.pool = pool
        self.relay = relay
        self.transport = transport


def create_app_components(
    settings: Optional[Settings] = None,
    transport: Optional[TransportInterface] = None,
    agent: Optional[ExtractionAgent] = None,
) -> AppComponents:
    """
    Factory function wiring every component from configuration.

    `storage_backend=memory` keeps all data in process; otherwise the
    configured spreadsheet is used for accounts, ledger and audit.
    """
    settings = settings or get_settings()
    app_settings = settings.app

    if app_settings.storage_backend == "memory":
        memory = InMemoryStorage()
        accounts = ledger = audit_storage = memory
    else:
        sheets_client = GoogleSheetsClient(settings.google_sheets)
        accounts = GoogleSheetsAccountStorage(sheets_client)
        ledger = GoogleSheetsLedgerStorage(sheets_client)
        audit_storage = GoogleSheetsAuditStorage(sheets_client)

    audit_logger = AuditLogger(audit_storage)
    transport = transport or WPPConnectTransport(settings.wppconnect)
    agent = agent or ExtractionAgent(settings=settings.gemini)

    flow = MessageFlow(
        resolver=IdentityResolver(accounts, transport),
        agent=agent,
        reconciler=Reconciler(ledger, audit_logger),
        accounts=accounts,
        transport=transport,
        audit_logger=audit_logger,
        settings=app_settings,
    )
    pool = MessageWorkerPool(
        flow,
        worker_count=app_settings.worker_count,
        queue_size=app_settings.queue_size,
        audit_logger=audit_logger,
    )
    relay = AuthRelay(accounts, transport, audit_logger, app_settings)

    return AppComponents(flow=flow, pool=pool, relay=relay, transport=transport)
