"""Manual send API routes -- /api/messages/*."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from ...media.classify import guess_mime
from ...messaging.outbound import Contact, OutboundSender
from ...util.result import SendResult

logger = logging.getLogger(__name__)


class MessageRoutes:
    """Validates send requests and forwards them to the transport."""

    def __init__(self, sender: OutboundSender) -> None:
        self._sender = sender

    def register(self, router: web.UrlDispatcher) -> None:
        router.add_post("/api/messages/text", self.send_text)
        router.add_post("/api/messages/media", self.send_media)
        router.add_post("/api/messages/location", self.send_location)
        router.add_post("/api/messages/contact", self.send_contact)

    async def send_text(self, req: web.Request) -> web.Response:
        body = await _json_body(req)
        phone, text = body.get("phoneNumber"), body.get("text")
        if not phone or not text:
            return _bad_request("Phone number and text are required")
        return _respond(await self._sender.send_text(str(phone), str(text)))

    async def send_media(self, req: web.Request) -> web.Response:
        try:
            form = await req.post()
        except ValueError as exc:
            return _bad_request(f"Invalid form data: {exc}")
        phone = form.get("phoneNumber")
        files = [f for f in form.getall("attachments", []) if isinstance(f, web.FileField)]
        if not phone or not files:
            return _bad_request("Phone number and at least one file are required")

        upload = files[0]
        data = upload.file.read()
        mimetype = guess_mime(upload.filename, upload.content_type)
        caption = form.get("caption") or ""
        result = await self._sender.send_media(
            str(phone), data, mimetype, upload.filename, caption=str(caption),
        )
        return _respond(result)

    async def send_location(self, req: web.Request) -> web.Response:
        body = await _json_body(req)
        phone = body.get("phoneNumber")
        lat, lng = body.get("latitude"), body.get("longitude")
        if not phone or lat is None or lng is None:
            return _bad_request("Phone number, latitude, and longitude are required")
        try:
            lat, lng = float(lat), float(lng)
        except (TypeError, ValueError):
            return _bad_request("Latitude and longitude must be numbers")
        result = await self._sender.send_location(
            str(phone), lat, lng, name=body.get("name") or "", address=body.get("address") or "",
        )
        return _respond(result)

    async def send_contact(self, req: web.Request) -> web.Response:
        body = await _json_body(req)
        phone = body.get("phoneNumber")
        contact = body.get("contact")
        if (
            not phone
            or not isinstance(contact, dict)
            or not contact.get("displayName")
            or not contact.get("phoneNumber")
        ):
            return _bad_request("Phone number, contact name and contact phone number are required")
        result = await self._sender.send_contact(
            str(phone),
            Contact(
                display_name=str(contact["displayName"]),
                phone_number=str(contact["phoneNumber"]),
                organization=str(contact.get("organization") or ""),
            ),
        )
        return _respond(result)


async def _json_body(req: web.Request) -> dict[str, Any]:
    try:
        body = await req.json()
    except ValueError:
        # malformed JSON or a body that is not UTF-8
        return {}
    return body if isinstance(body, dict) else {}


def _bad_request(message: str) -> web.Response:
    return web.json_response({"error": message}, status=400)


def _respond(result: SendResult) -> web.Response:
    return web.json_response(result.to_json(), status=200 if result else 500)
