"""
WPPConnect Transport

Talks to a WPPConnect server over its REST API. The server owns the
messaging session (QR pairing, reconnection); we only send text and
look up address metadata. Reads are retried on network errors;
sends are never retried.
"""

from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledgerbot.config import WPPConnectSettings, get_settings
from ledgerbot.models.ledger import InboundMessage
from ledgerbot.services.transport.addresses import address_user, is_anonymized
from ledgerbot.services.transport.interface import (
    Contact,
    NumberStatus,
    TransportError,
    TransportInterface,
)

logger = structlog.get_logger(__name__)


def _serialized_id(raw: Any) -> Optional[str]:
    """WPPConnect ids are either strings or {"_serialized": ..., "user": ...}."""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        return raw.get("_serialized")
    return None


class WPPConnectTransport(TransportInterface):
    """
    Transport client for a WPPConnect server session.
    """

    def __init__(
        self,
        settings: Optional[WPPConnectSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().wppconnect
        self._client = client or httpx.AsyncClient(
            base_url=f"{self._settings.base_url}/api/{self._settings.session}",
            headers={"Authorization": f"Bearer {self._settings.token}"},
            timeout=self._settings.request_timeout_seconds,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _unwrap(self, response: httpx.Response) -> Any:
        try:
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise TransportError(f"Transport request failed: {e}")
        if payload.get("status") not in ("success", "Success", None):
            raise TransportError(f"Transport returned {payload.get('status')}")
        return payload.get("response")

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _get(self, path: str) -> httpx.Response:
        return await self._client.get(path)

    async def send_text(self, address: str, text: str) -> None:
        body = {
            "phone": address_user(address),
            "isGroup": False,
            "isLid": is_anonymized(address),
            "message": text,
        }
        try:
            response = await self._client.post("/send-message", json=body)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to send message: {e}")
        self._unwrap(response)

    async def check_number_status(self, phone: str) -> NumberStatus:
        try:
            response = await self._get(f"/check-number-status/{quote(phone)}")
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to check number: {e}")
        data = self._unwrap(response) or {}
        return NumberStatus(
            number_exists=bool(data.get("numberExists")),
            id=_serialized_id(data.get("id")),
        )

    async def get_contact(self, address: str) -> Contact:
        try:
            response = await self._get(f"/contact/{quote(address)}")
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to fetch contact: {e}")
        data = self._unwrap(response) or {}

        raw_id = data.get("id")
        user = raw_id.get("user") if isinstance(raw_id, dict) else None
        return Contact(
            id=_serialized_id(raw_id) or address,
            phone_number=data.get("phoneNumber") or data.get("number"),
            user=user,
        )


def parse_webhook_message(payload: dict) -> Optional[InboundMessage]:
    """
    Convert a WPPConnect webhook callback into an InboundMessage.

    Only `onmessage` events carry chat messages; anything else returns
    None. Non-text messages keep an empty body so the flow ignores them.
    """
    if payload.get("event") != "onmessage":
        return None

    data = payload.get("data")
    message = data if isinstance(data, dict) else payload

    from_address = _serialized_id(message.get("from"))
    if not from_address:
        return None

    body = message.get("body") if message.get("type", "chat") == "chat" else ""
    return InboundMessage(
        message_id=_serialized_id(message.get("id")),
        from_address=from_address,
        author=_serialized_id(message.get("author")),
        body=body or "",
        is_group=bool(message.get("isGroupMsg")),
        is_status=bool(message.get("isStatusV3") or message.get("isStatus")),
        from_me=bool(message.get("fromMe")),
    )
