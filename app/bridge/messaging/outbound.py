"""Manual sends -- text, media, location, contact.

These go straight to the transport and do not pass through the
conversation queue, so they carry no status reactions and no ordering
relative to auto-replies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..media.classify import classify
from ..util.result import SendResult

if TYPE_CHECKING:
    from ..transport.connection import ConnectionManager

logger = logging.getLogger(__name__)

_USER_SUFFIX = "@s.whatsapp.net"


@dataclass(frozen=True)
class Contact:
    display_name: str
    phone_number: str
    organization: str = ""

    def to_vcard(self) -> str:
        lines = [
            "BEGIN:VCARD",
            "VERSION:3.0",
            f"FN:{self.display_name}",
            f"TEL;type=CELL;type=VOICE;waid={self.phone_number}:+{self.phone_number}",
        ]
        if self.organization:
            lines.append(f"ORG:{self.organization}")
        lines.append("END:VCARD")
        return "\n".join(lines)


def jid_for(phone_number: str) -> str:
    return f"{phone_number}{_USER_SUFFIX}"


def media_payload(data: bytes, mimetype: str, filename: str, caption: str = "") -> tuple[str, dict[str, Any]]:
    """Return ``(kind, payload)`` for an attachment."""
    kind = classify(mimetype)
    payload: dict[str, Any]
    if kind == "audio":
        payload = {"audio": data, "mimetype": mimetype}
    elif kind == "document":
        payload = {"document": data, "fileName": filename, "mimetype": mimetype}
    else:
        payload = {kind: data}
    if caption and kind != "audio":
        payload["caption"] = caption
    return kind, payload


class OutboundSender:
    def __init__(self, connection: ConnectionManager) -> None:
        self._connection = connection

    async def send_text(self, phone_number: str, text: str) -> SendResult:
        return await self._send(phone_number, {"text": text}, "message")

    async def send_media(
        self,
        phone_number: str,
        data: bytes,
        mimetype: str,
        filename: str,
        caption: str = "",
    ) -> SendResult:
        kind, payload = media_payload(data, mimetype, filename, caption)
        return await self._send(phone_number, payload, "media", media_type=kind)

    async def send_location(
        self,
        phone_number: str,
        latitude: float,
        longitude: float,
        name: str = "",
        address: str = "",
    ) -> SendResult:
        location: dict[str, Any] = {"degreesLatitude": latitude, "degreesLongitude": longitude}
        if name:
            location["name"] = name
        if address:
            location["address"] = address
        return await self._send(phone_number, {"location": location}, "location")

    async def send_contact(self, phone_number: str, contact: Contact) -> SendResult:
        payload = {
            "contacts": {
                "displayName": contact.display_name,
                "contacts": [{"vcard": contact.to_vcard()}],
            },
        }
        return await self._send(phone_number, payload, "contact")

    async def _send(
        self,
        phone_number: str,
        payload: dict[str, Any],
        what: str,
        *,
        media_type: str | None = None,
    ) -> SendResult:
        destination = jid_for(phone_number)
        try:
            transport = await self._connection.get_transport()
            receipt = await transport.send_message(destination, payload)
        except Exception as exc:
            logger.error("[send] Error sending %s to %s: %s", what, destination, exc)
            return SendResult.failed(str(exc) or f"Failed to send {what}")
        if receipt is None:
            return SendResult.failed(f"Failed to send {what}, no response from transport")
        logger.info("[send] %s sent to %s (id=%s)", what.capitalize(), destination, receipt.key.id)
        return SendResult.sent(what, receipt.key.id, media_type=media_type)
