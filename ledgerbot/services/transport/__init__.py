"""Chat transport package."""

from ledgerbot.services.transport.addresses import (
    ANONYMIZED_SUFFIX,
    PHONE_SUFFIX,
    address_from_phone,
    is_anonymized,
    is_phone_shaped,
    phone_from_address,
)
from ledgerbot.services.transport.interface import (
    Contact,
    NumberStatus,
    TransportError,
    TransportInterface,
)
from ledgerbot.services.transport.wppconnect import WPPConnectTransport, parse_webhook_message

__all__ = [
    "ANONYMIZED_SUFFIX",
    "PHONE_SUFFIX",
    "Contact",
    "NumberStatus",
    "TransportError",
    "TransportInterface",
    "WPPConnectTransport",
    "address_from_phone",
    "is_anonymized",
    "is_phone_shaped",
    "parse_webhook_message",
    "phone_from_address",
]
