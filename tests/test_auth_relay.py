"""Tests for one-time code delivery."""

import asyncio

import pytest

from ledgerbot.config import AppSettings
from ledgerbot.models.audit import AuditEventType
from ledgerbot.models.ledger import Account, AccountChange
from ledgerbot.relay import AuthRelay
from ledgerbot.services.transport import NumberStatus


@pytest.fixture
def relay(storage, transport, audit_logger):
    return AuthRelay(storage, transport, audit_logger, AppSettings())


def code_change(old: Account, code: str = "482913") -> AccountChange:
    return AccountChange(old=old, new=old.model_copy(update={"auth_code": code}))


class TestHandleChange:

    def test_bound_address_receives_code(self, relay, transport, alice):
        bound = alice.model_copy(update={"channel_address": "140212345678901@lid"})

        delivered = asyncio.run(relay.handle_change(code_change(bound)))

        assert delivered
        assert transport.sent == [("140212345678901@lid", "🔐 Code: *482913*")]

    def test_unbound_account_uses_verified_phone_address(self, relay, transport, alice):
        transport.numbers["5579999887766"] = NumberStatus(
            number_exists=True,
            id="557999887766@c.us",
        )

        delivered = asyncio.run(relay.handle_change(code_change(alice)))

        assert delivered
        assert transport.sent == [("557999887766@c.us", "🔐 Code: *482913*")]

    def test_unregistered_number_is_skipped(self, relay, transport, alice):
        delivered = asyncio.run(relay.handle_change(code_change(alice)))

        assert not delivered
        assert transport.sent == []

    def test_change_without_new_code_is_ignored(self, relay, transport, alice):
        renamed = AccountChange(old=alice, new=alice.model_copy(update={"name": "Al"}))

        assert not asyncio.run(relay.handle_change(renamed))
        assert transport.sent == []

    def test_send_failure_is_logged_not_raised(self, relay, transport, storage, alice):
        transport.fail_sends = True
        bound = alice.model_copy(update={"channel_address": "5579999887766@c.us"})

        delivered = asyncio.run(relay.handle_change(code_change(bound)))

        assert not delivered
        assert storage.audit_events[-1].event_type == AuditEventType.AUTH_CODE_DELIVERY_FAILED


class TestRun:

    def test_run_consumes_store_changes(self, relay, transport, storage):
        async def scenario():
            task = asyncio.create_task(relay.run())
            await asyncio.sleep(0)
            await storage.bind_channel_address("acc-alice", "5579999887766@c.us")
            await storage.set_auth_code("acc-alice", "111222")
            for _ in range(10):
                if transport.sent:
                    break
                await asyncio.sleep(0)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        asyncio.run(scenario())

        assert transport.sent == [("5579999887766@c.us", "🔐 Code: *111222*")]
