"""
Identity Resolver

Maps an inbound chat address to an account.

ORDER (first success wins):
1. An account already bound to the address.
2. Phone candidates, tried in order until one matches an account's
   normalized phone:
   a. the message author, when present and not anonymized
   b. for an anonymized address, the phone the transport reports for it;
      for a phone-backed address, the address's own number
   c. the message text, when its digits look like a phone (manual linking)
3. Nothing matched: unresolvable.

A match in step 2 binds the address to the account (auto-link) before
returning. Accounts already bound to another address are never rebound.
Resolution for one address is serialized so two overlapping messages
cannot both run the scan-and-bind sequence.
"""

import asyncio
from typing import Optional

import structlog

from ledgerbot.models.ledger import Account, IdentityState, Resolution
from ledgerbot.normalization import digits_only, normalize_phone
from ledgerbot.services.storage import AccountStorageInterface
from ledgerbot.services.transport import (
    TransportError,
    TransportInterface,
    is_anonymized,
    is_phone_shaped,
    phone_from_address,
)
from ledgerbot.services.transport.addresses import address_user

logger = structlog.get_logger(__name__)


class IdentityResolver:
    """
    Resolves chat addresses to accounts, auto-linking on first contact.

    This component never creates accounts.
    """

    def __init__(
        self,
        accounts: AccountStorageInterface,
        transport: TransportInterface,
    ):
        self._accounts = accounts
        self._transport = transport
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def resolve(
        self,
        inbound_address: str,
        inbound_author: Optional[str] = None,
        raw_text: str = "",
    ) -> Resolution:
        # Lock entries live only while some task holds or awaits them.
        lock = self._locks.setdefault(inbound_address, asyncio.Lock())
        self._lock_users[inbound_address] = self._lock_users.get(inbound_address, 0) + 1
        try:
            async with lock:
                return await self._resolve_serialized(
                    inbound_address, inbound_author, raw_text
                )
        finally:
            self._lock_users[inbound_address] -= 1
            if not self._lock_users[inbound_address]:
                del self._lock_users[inbound_address]
                del self._locks[inbound_address]

    async def _resolve_serialized(
        self,
        inbound_address: str,
        inbound_author: Optional[str],
        raw_text: str,
    ) -> Resolution:
        bound = await self._accounts.get_account_by_channel_address(inbound_address)
        if bound is not None:
            return Resolution(
                state=IdentityState.RESOLVED_BY_ADDRESS,
                account=bound,
            )

        candidates = await self._phone_candidates(
            inbound_address, inbound_author, raw_text
        )
        if not candidates:
            return Resolution(state=IdentityState.UNRESOLVABLE)

        match = await self._match_phone(candidates, inbound_address)
        if match is None:
            return Resolution(state=IdentityState.UNRESOLVABLE)

        await self._accounts.bind_channel_address(match.id, inbound_address)
        logger.info(
            "account_auto_linked",
            account_id=match.id,
            address=inbound_address,
        )
        return Resolution(
            state=IdentityState.RESOLVED_BY_AUTO_LINK,
            account=match.model_copy(update={"channel_address": inbound_address}),
        )

    async def _phone_candidates(
        self,
        address: str,
        author: Optional[str],
        raw_text: str,
    ) -> list[str]:
        candidates = []

        if author and not is_anonymized(author):
            candidates.append(author)

        if is_anonymized(address):
            contact_phone = await self._phone_from_contact(address)
            if contact_phone:
                candidates.append(contact_phone)
        else:
            own_phone = phone_from_address(address)
            if own_phone:
                candidates.append(own_phone)

        text_digits = digits_only(raw_text)
        if is_phone_shaped(text_digits):
            candidates.append(text_digits)

        return candidates

    async def _phone_from_contact(self, address: str) -> Optional[str]:
        try:
            contact = await self._transport.get_contact(address)
        except TransportError as e:
            logger.warning("contact_lookup_failed", address=address, error=str(e))
            return None

        for value in (contact.phone_number, contact.id, contact.user):
            if value and not is_anonymized(value) and is_phone_shaped(address_user(value)):
                return address_user(value)
        return None

    async def _match_phone(
        self,
        candidates: list[str],
        address: str,
    ) -> Optional[Account]:
        accounts = await self._accounts.list_accounts()
        keyed = [
            (normalize_phone(account.phone), account)
            for account in accounts
            if account.phone
        ]

        for candidate in candidates:
            key = normalize_phone(candidate)
            if not key:
                continue
            for account_key, account in keyed:
                if account_key != key:
                    continue
                if account.channel_address and account.channel_address != address:
                    logger.warning(
                        "auto_link_refused_already_bound",
                        account_id=account.id,
                        address=address,
                    )
                    continue
                return account
        return None
