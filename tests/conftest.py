"""
Shared fixtures.

No test talks to a real transport, oracle or spreadsheet: the transport
and the oracle are in-process fakes, storage is InMemoryStorage.
"""

import json

import pytest

from ledgerbot.audit import AuditLogger
from ledgerbot.models.ledger import Account
from ledgerbot.services.storage import InMemoryStorage
from ledgerbot.services.transport import (
    Contact,
    NumberStatus,
    TransportError,
    TransportInterface,
)


class FakeTransport(TransportInterface):
    """Records sends; answers lookups from dicts."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.contacts: dict[str, Contact] = {}
        self.numbers: dict[str, NumberStatus] = {}
        self.contact_lookups: list[str] = []
        self.fail_sends = False

    async def send_text(self, address: str, text: str) -> None:
        if self.fail_sends:
            raise TransportError("session disconnected")
        self.sent.append((address, text))

    async def check_number_status(self, phone: str) -> NumberStatus:
        return self.numbers.get(phone, NumberStatus(number_exists=False))

    async def get_contact(self, address: str) -> Contact:
        self.contact_lookups.append(address)
        if address not in self.contacts:
            raise TransportError(f"unknown contact {address}")
        return self.contacts[address]

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.sent]


class FakeResponse:
    def __init__(self, text: str):
        self.text = text


class FakeModel:
    """Stands in for a Gemini GenerativeModel."""

    def __init__(self, reply=None, error: Exception = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    def reply_with(self, *intents, **envelope) -> None:
        payload = {"schema_version": 1, "intents": list(intents)}
        payload.update(envelope)
        self.reply = json.dumps(payload)

    async def generate_content_async(self, prompt: str) -> FakeResponse:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.reply)


@pytest.fixture
def alice() -> Account:
    return Account(id="acc-alice", name="Alice", phone="(79) 99988-7766")


@pytest.fixture
def bob() -> Account:
    return Account(id="acc-bob", name="Bob", phone="+55 11 98765-4321")


@pytest.fixture
def storage(alice, bob) -> InMemoryStorage:
    return InMemoryStorage([alice, bob])


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def model() -> FakeModel:
    return FakeModel()


@pytest.fixture
def audit_logger(storage) -> AuditLogger:
    return AuditLogger(storage)
