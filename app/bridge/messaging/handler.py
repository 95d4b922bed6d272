"""Inbound auto-reply path -- transport messages to the queue and back."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ..errors import BackendFailure
from ..transport.base import MESSAGES_UPSERT, InboundMessage, MessagesUpsert, Transport
from .queue import ConversationQueue
from .status import StatusKind, StatusReporter

if TYPE_CHECKING:
    from ..transport.connection import ConnectionManager

logger = logging.getLogger(__name__)

APOLOGY_TEXT = "I'm sorry, I couldn't process your message at the moment."
_USER_SUFFIX = "@s.whatsapp.net"


def conversation_key(msg: InboundMessage) -> str:
    """Sender identity: the participant in groups, the chat JID otherwise."""
    return msg.key.participant or msg.key.remote_jid or ""


def conversation_id_for(key: str) -> str:
    return f"whatsapp_{key.replace(_USER_SUFFIX, '')}"


class InboundHandler:
    """Subscribes to ``messages.upsert`` on every handle the manager opens."""

    def __init__(
        self,
        connection: ConnectionManager,
        queue: ConversationQueue,
        reporter: StatusReporter,
    ) -> None:
        self._connection = connection
        self._queue = queue
        self._reporter = reporter
        self._tasks: set[asyncio.Task[None]] = set()

    def attach(self) -> None:
        self._connection.add_open_listener(self._subscribe)

    def _subscribe(self, transport: Transport) -> None:
        transport.on(MESSAGES_UPSERT, self.on_upsert)
        logger.info("[inbound] Listening for messages")

    def on_upsert(self, upsert: MessagesUpsert) -> None:
        if upsert.type != "notify":
            return
        for msg in upsert.messages:
            if msg.key.from_me or not msg.text:
                continue
            task = asyncio.create_task(self.handle_message(msg))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def handle_message(self, msg: InboundMessage) -> None:
        key = conversation_key(msg)
        destination = msg.key.remote_jid or None
        logger.info("[inbound] New message from %s: %s", key, msg.text[:20])

        try:
            reply = await self._queue.enqueue(
                key,
                msg.text,
                conversation_id_for(key),
                message_ref=msg.key,
                destination=destination,
            )
        except Exception as exc:
            logger.error("[inbound] Error processing message: %s", exc)
            if destination:
                if not isinstance(exc, BackendFailure):
                    # failures the queue processed were already signalled
                    await self._reporter.emit(StatusKind.ERROR, destination, msg.key)
                await self._reply(destination, APOLOGY_TEXT, msg)
            return

        if destination:
            await self._reply(destination, reply, msg)

    async def _reply(self, destination: str, text: str, quoted: InboundMessage) -> None:
        try:
            transport = await self._connection.get_transport()
            await transport.send_message(destination, {"text": text}, {"quoted": quoted})
        except Exception as exc:
            logger.error("[inbound] Failed to send reply to %s: %s", destination, exc)

    async def drain(self) -> None:
        """Wait for in-flight message tasks (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
