"""Transport capability consumed by the bridge.

The wire protocol (session handshake, encoding, pairing) lives outside this
package.  An adapter only needs to satisfy :class:`Transport` and emit the
three events below; :class:`EventEmitter` covers the event half.

Events:

``connection.update``
    :class:`ConnectionUpdate` -- handshake progress, pairing payloads, closure.
``creds.update``
    ``dict`` -- session credentials that must be persisted.
``messages.upsert``
    :class:`MessagesUpsert` -- a batch of inbound messages.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"
MESSAGES_UPSERT = "messages.upsert"

# Closure status code for an explicit sign-out.  Every other code is
# reconnect-eligible.
LOGGED_OUT = 401

Handler = Callable[[Any], Any]


@dataclass(frozen=True)
class MessageKey:
    remote_jid: str | None
    id: str = ""
    from_me: bool = False
    participant: str | None = None


@dataclass(frozen=True)
class InboundMessage:
    key: MessageKey
    text: str = ""
    raw: Any = field(default=None, repr=False, compare=False)

    @classmethod
    def from_raw(cls, key: MessageKey, message: dict[str, Any] | None) -> InboundMessage:
        """Build from a raw body: plain ``conversation`` text or extended text."""
        body = message or {}
        text = body.get("conversation") or (body.get("extendedTextMessage") or {}).get("text") or ""
        return cls(key=key, text=text, raw=message)


@dataclass(frozen=True)
class MessagesUpsert:
    type: str
    messages: list[InboundMessage] = field(default_factory=list)


@dataclass(frozen=True)
class ConnectionUpdate:
    connection: str | None = None  # "connecting" | "open" | "close"
    status_code: int | None = None
    error: BaseException | None = None
    qr: str | None = None

    @property
    def reconnect_eligible(self) -> bool:
        return self.status_code != LOGGED_OUT


@dataclass(frozen=True)
class SendReceipt:
    key: MessageKey


@runtime_checkable
class Transport(Protocol):
    async def send_message(
        self,
        destination: str,
        payload: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> SendReceipt | None: ...

    def on(self, event: str, handler: Handler) -> None: ...

    def off(self, event: str, handler: Handler) -> None: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[dict[str, Any]], Awaitable[Transport]]


class EventEmitter:
    """In-process ``on``/``off``/``emit`` for transport adapters.

    Coroutine handlers are scheduled as tasks so ``emit`` never blocks the
    adapter's read loop.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler) -> None:
        try:
            self._handlers[event].remove(handler)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async handler failed", exc_info=task.exception())


def load_transport_factory(path: str) -> TransportFactory:
    """Resolve a ``module:callable`` string to a transport factory."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Transport factory must look like 'module:callable', got {path!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"{path!r} is not callable")
    return factory
