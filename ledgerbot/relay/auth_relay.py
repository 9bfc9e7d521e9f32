"""
Auth Relay

Consumes the account change stream and pushes one-time login codes
to the account's chat. Delivery is best-effort: a failed send is
logged and dropped, never retried, and never reported back to the
flow that issued the code.
"""

from typing import Optional

import structlog

from ledgerbot.audit import AuditLogger
from ledgerbot.config import AppSettings, get_settings
from ledgerbot.models.ledger import Account, AccountChange
from ledgerbot.replies import AUTH_CODE
from ledgerbot.services.storage import AccountStorageInterface
from ledgerbot.services.transport import TransportInterface, address_from_phone
from ledgerbot.services.transport.addresses import address_user

logger = structlog.get_logger(__name__)


class AuthRelay:
    """Delivers one-time codes for account change events."""

    def __init__(
        self,
        accounts: AccountStorageInterface,
        transport: TransportInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._accounts = accounts
        self._transport = transport
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    async def run(self) -> None:
        """Consume account changes until cancelled."""
        logger.info("auth_relay_started")
        async for change in self._accounts.watch_accounts():
            await self.handle_change(change)

    async def handle_change(self, change: AccountChange) -> bool:
        """
        Send the code if this change introduced one.

        Returns True if a message was handed to the transport.
        """
        if not change.introduces_auth_code:
            return False

        account = change.new
        try:
            address = await self._delivery_address(account)
            if address is None:
                logger.warning("auth_code_no_chat", account_id=account.id)
                return False
            await self._transport.send_text(address, AUTH_CODE.format(code=account.auth_code))
        except Exception as e:
            logger.warning("auth_code_delivery_failed", account_id=account.id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_auth_code_delivery_failed(
                    account_id=account.id,
                    error_message=str(e),
                )
            return False

        if self._audit_logger:
            await self._audit_logger.log_auth_code_sent(account.id, address)
        return True

    async def _delivery_address(self, account: Account) -> Optional[str]:
        """
        The bound chat address if any, otherwise the address derived from
        the stored phone, confirmed with the transport.
        """
        if account.channel_address:
            return account.channel_address

        derived = address_from_phone(
            account.phone,
            country_code=self._settings.country_code,
            national_number_length=self._settings.national_number_length,
        )
        status = await self._transport.check_number_status(address_user(derived))
        if not status.number_exists:
            return None
        return status.id or derived
