"""Connection lifecycle -- one lazily-created transport handle per process.

State machine::

    idle --get_transport()--> connecting --open--> open
      ^                           |                  |
      +------ reconnect-eligible close --------------+
                                  |                  |
                                  +--- sign-out ---> failed (terminal)

Concurrent ``get_transport()`` calls while a handshake is in flight share
the same pending future.  A reconnect-eligible close drops the cached
handle and wakes the reconnect loop, which starts exactly one new attempt
after a back-off delay.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from ..errors import ConnectionAborted, ConnectionTerminated
from ..state.auth_store import AuthStore
from .base import CONNECTION_UPDATE, CREDS_UPDATE, ConnectionUpdate, Transport, TransportFactory
from .pairing import print_pairing_code

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    FAILED = "failed"


def _consume_exception(fut: asyncio.Future[Any]) -> None:
    # Attempts started by the reconnect loop may have no awaiting caller.
    if not fut.cancelled():
        fut.exception()


class ConnectionManager:
    """Owns the transport handle; consumers fetch it per operation."""

    def __init__(
        self,
        factory: TransportFactory,
        auth_store: AuthStore | None = None,
        *,
        on_pairing: Callable[[str], None] | None = print_pairing_code,
        reconnect_delay: float = 1.0,
        reconnect_max_delay: float = 60.0,
    ) -> None:
        self._factory = factory
        self._auth_store = auth_store
        self._on_pairing = on_pairing
        self._base_delay = reconnect_delay
        self._max_delay = max(reconnect_max_delay, reconnect_delay)
        self._delay = reconnect_delay

        self._state = ConnectionState.IDLE
        self._transport: Transport | None = None
        self._connecting: Transport | None = None
        self._pending: asyncio.Future[Transport] | None = None
        self._terminal: ConnectionTerminated | None = None
        self._update_handlers: dict[int, Callable[[ConnectionUpdate], None]] = {}
        self._open_listeners: list[Callable[[Transport], Any]] = []

        self._reconnect_needed = asyncio.Event()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._forget_task: asyncio.Task[None] | None = None
        self.attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    def add_open_listener(self, callback: Callable[[Transport], Any]) -> None:
        """Call *callback* with every handle that opens, including the current one."""
        self._open_listeners.append(callback)
        if self._transport is not None:
            self._notify_open(self._transport, [callback])

    async def get_transport(self) -> Transport:
        if self._terminal is not None:
            raise ConnectionTerminated(str(self._terminal))
        if self._transport is not None:
            return self._transport
        fut = self._pending if self._pending is not None else self._start_attempt()
        # shield: a cancelled caller must not cancel the shared attempt
        return await asyncio.shield(fut)

    async def close(self) -> None:
        """Stop reconnecting and close the live handle."""
        if self._terminal is None:
            self._terminal = ConnectionTerminated("Connection manager closed")
        self._state = ConnectionState.FAILED
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reconnect_task
            self._reconnect_task = None
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(ConnectionTerminated(str(self._terminal)))
        self._pending = None
        for transport in (self._transport, self._connecting):
            if transport is None:
                continue
            self._detach(transport)
            try:
                await transport.close()
            except Exception as exc:
                logger.warning("[connection] Error closing transport: %s", exc)
        self._transport = None
        self._connecting = None
        if self._forget_task is not None:
            await self._forget_task

    # -- attempts ----------------------------------------------------------

    def _start_attempt(self) -> asyncio.Future[Transport]:
        self._ensure_reconnect_loop()
        fut: asyncio.Future[Transport] = asyncio.get_running_loop().create_future()
        fut.add_done_callback(_consume_exception)
        self._pending = fut
        self._state = ConnectionState.CONNECTING
        self.attempts += 1
        logger.info("[connection] Initializing transport connection (attempt %d) ...", self.attempts)
        task = asyncio.create_task(self._open(fut))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return fut

    async def _open(self, fut: asyncio.Future[Transport]) -> None:
        try:
            creds = await self._auth_store.aload() if self._auth_store else {}
            if not creds:
                logger.info("[connection] No stored session, pairing required")
            transport = await self._factory(creds)
        except Exception as exc:
            logger.error("[connection] Transport factory failed: %s", exc, exc_info=True)
            self._abort(fut, ConnectionAborted(f"Transport could not be created: {exc}"))
            return

        if fut.done():
            # Manager closed while the factory was running.
            await transport.close()
            return

        self._connecting = transport
        handler = functools.partial(self._on_connection_update, transport, fut)
        self._update_handlers[id(transport)] = handler
        transport.on(CREDS_UPDATE, self._persist_credentials)
        transport.on(CONNECTION_UPDATE, handler)

    def _on_connection_update(
        self,
        transport: Transport,
        fut: asyncio.Future[Transport],
        update: ConnectionUpdate,
    ) -> None:
        if update.qr:
            self._show_pairing(update.qr)
        if update.connection == "open":
            self._handle_open(transport, fut)
        elif update.connection == "close":
            self._handle_close(transport, fut, update)

    def _handle_open(self, transport: Transport, fut: asyncio.Future[Transport]) -> None:
        if fut.done() or self._terminal is not None:
            return
        self._connecting = None
        self._transport = transport
        self._pending = None
        self._state = ConnectionState.OPEN
        self._delay = self._base_delay
        logger.info("[connection] Connection opened")
        fut.set_result(transport)
        self._notify_open(transport, self._open_listeners)

    def _handle_close(
        self,
        transport: Transport,
        fut: asyncio.Future[Transport],
        update: ConnectionUpdate,
    ) -> None:
        self._detach(transport)
        if transport is self._transport:
            self._transport = None
        elif transport is self._connecting:
            self._connecting = None
        else:
            return  # stale handle, already replaced
        if self._pending is fut:
            self._pending = None

        eligible = update.reconnect_eligible
        logger.warning(
            "[connection] Connection closed (status=%s, error=%s), reconnecting: %s",
            update.status_code, update.error, eligible,
        )
        if not eligible:
            self._fail(ConnectionTerminated("Logged out"), fut)
            self._forget_session()
            return
        if self._terminal is not None:
            return
        self._state = ConnectionState.IDLE
        if not fut.done():
            fut.set_exception(ConnectionAborted("Connection closed, please try again"))
        self._request_reconnect()

    def _abort(self, fut: asyncio.Future[Transport], exc: ConnectionAborted) -> None:
        if self._pending is fut:
            self._pending = None
        if not fut.done():
            fut.set_exception(exc)
        if self._terminal is None:
            self._state = ConnectionState.IDLE
            self._request_reconnect()

    def _fail(self, exc: ConnectionTerminated, fut: asyncio.Future[Transport]) -> None:
        self._terminal = exc
        self._state = ConnectionState.FAILED
        if not fut.done():
            fut.set_exception(ConnectionTerminated(str(exc)))
        # let the reconnect loop observe the terminal state and exit
        self._reconnect_needed.set()

    def _detach(self, transport: Transport) -> None:
        handler = self._update_handlers.pop(id(transport), None)
        if handler is not None:
            transport.off(CONNECTION_UPDATE, handler)
        transport.off(CREDS_UPDATE, self._persist_credentials)

    # -- reconnect loop ----------------------------------------------------

    def _ensure_reconnect_loop(self) -> None:
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    def _request_reconnect(self) -> None:
        self._ensure_reconnect_loop()
        self._reconnect_needed.set()

    async def _reconnect_loop(self) -> None:
        while True:
            await self._reconnect_needed.wait()
            self._reconnect_needed.clear()
            if self._terminal is not None:
                return
            delay = self._delay
            self._delay = min(self._delay * 2, self._max_delay)
            if delay > 0:
                logger.info("[connection] Reconnecting in %.1fs ...", delay)
                await asyncio.sleep(delay)
            if self._terminal is not None:
                return
            if self._transport is None and self._pending is None:
                self._start_attempt()

    # -- hooks -------------------------------------------------------------

    async def _persist_credentials(self, creds: dict[str, Any]) -> None:
        if self._auth_store is None:
            return
        try:
            await self._auth_store.asave(creds)
        except Exception as exc:
            logger.error("[connection] Failed to persist session credentials: %s", exc)

    def _forget_session(self) -> None:
        """Drop stored credentials; a signed-out session cannot be resumed."""
        if self._auth_store is None:
            return
        self._forget_task = asyncio.create_task(self._clear_credentials())

    async def _clear_credentials(self) -> None:
        try:
            await self._auth_store.aclear()
        except Exception as exc:
            logger.error("[connection] Failed to clear session credentials: %s", exc)
        else:
            logger.info("[connection] Stored session cleared after sign-out")

    def _show_pairing(self, payload: str) -> None:
        logger.info("[connection] Pairing required")
        if self._on_pairing is None:
            return
        try:
            self._on_pairing(payload)
        except Exception as exc:
            logger.warning("[connection] Pairing display failed: %s", exc)

    def _notify_open(self, transport: Transport, listeners: list[Callable[[Transport], Any]]) -> None:
        for callback in listeners:
            try:
                callback(transport)
            except Exception:
                logger.exception("[connection] Open listener failed")
