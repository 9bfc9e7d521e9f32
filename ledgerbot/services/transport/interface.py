"""
Abstract Chat Transport Interface

The messaging session (pairing, reconnection) is owned by an external
server. This system only sends text and asks for address metadata;
inbound messages arrive through the webhook in `ledgerbot.api`.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel


class NumberStatus(BaseModel):
    """Whether a phone is registered on the transport, and its canonical id."""

    number_exists: bool
    id: Optional[str] = None


class Contact(BaseModel):
    """Metadata the transport knows about an address."""

    id: str
    phone_number: Optional[str] = None
    user: Optional[str] = None


class TransportInterface(ABC):
    """Outbound operations consumed from the chat transport."""

    @abstractmethod
    async def send_text(self, address: str, text: str) -> None:
        """
        Send a text message.

        Raises:
            TransportError: If the transport rejects the send
        """
        pass

    @abstractmethod
    async def check_number_status(self, phone: str) -> NumberStatus:
        """Resolve a phone to the transport's canonical address."""
        pass

    @abstractmethod
    async def get_contact(self, address: str) -> Contact:
        """Resolve metadata for an (often anonymized) address."""
        pass


class TransportError(Exception):
    """Base exception for transport operations."""
    pass
