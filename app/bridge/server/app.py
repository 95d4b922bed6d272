"""Bridge server -- app factory and entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from aiohttp import web
from aiohttp.abc import AbstractAccessLogger

from .. import __version__
from ..config.settings import cfg
from ..errors import TransportError
from ..messaging.handler import InboundHandler
from ..messaging.outbound import OutboundSender
from ..messaging.queue import ConversationQueue
from ..messaging.status import StatusReporter
from ..services.backend import BackendClient
from ..state.auth_store import AuthStore
from ..transport.base import TransportFactory, load_transport_factory
from ..transport.connection import ConnectionManager
from .routes.message_routes import MessageRoutes

logger = logging.getLogger(__name__)

_QUIET_PATHS = frozenset({"/health"})
_PUBLIC_PATHS = frozenset({"/", "/health"})


# ---------------------------------------------------------------------------
# Access logger
# ---------------------------------------------------------------------------


class QuietAccessLogger(AbstractAccessLogger):
    """Demotes health-check log entries to DEBUG."""

    def log(self, request: web.BaseRequest, response: web.StreamResponse, time: float) -> None:
        level = logging.DEBUG if request.path in _QUIET_PATHS else logging.INFO
        self.logger.log(
            level,
            "%s %s %s %s %.3fs",
            request.remote,
            request.method,
            request.path,
            response.status,
            time,
        )


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


@web.middleware
async def auth_middleware(request: web.Request, handler):  # type: ignore[type-arg]
    secret = cfg.admin_secret
    if not secret or request.path in _PUBLIC_PATHS:
        return await handler(request)
    if request.headers.get("Authorization", "") == f"Bearer {secret}":
        return await handler(request)
    return web.json_response(
        {"status": "unauthorized", "message": "Invalid or missing admin secret"},
        status=401,
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


async def create_app(transport_factory: TransportFactory | None = None) -> web.Application:
    factory = AppFactory(transport_factory)
    return await factory.build()


class AppFactory:
    """Builds the aiohttp application with all dependencies wired."""

    def __init__(self, transport_factory: TransportFactory | None = None) -> None:
        self._transport_factory = transport_factory

    async def build(self) -> web.Application:
        cfg.ensure_dirs()
        self._init_core()

        app = web.Application(middlewares=[auth_middleware])
        app["connection"] = self.connection
        app["queue"] = self.queue

        self._register_routes(app)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app

    def _resolve_transport_factory(self) -> TransportFactory:
        if self._transport_factory is not None:
            return self._transport_factory
        if not cfg.transport_factory:
            raise RuntimeError(
                "No transport configured. Set TRANSPORT_FACTORY to 'module:callable'."
            )
        return load_transport_factory(cfg.transport_factory)

    def _init_core(self) -> None:
        self.auth_store = AuthStore()
        self.connection = ConnectionManager(
            self._resolve_transport_factory(),
            self.auth_store,
            reconnect_delay=cfg.reconnect_delay,
            reconnect_max_delay=cfg.reconnect_max_delay,
        )
        self.backend = BackendClient(
            cfg.ai_api_url,
            platform=cfg.backend_platform,
            timeout=cfg.backend_timeout or None,
        )
        self.reporter = StatusReporter(
            self.connection,
            enabled=cfg.reactions_enabled,
            markers=cfg.reactions,
        )
        self.queue = ConversationQueue(
            self.backend, self.reporter, inter_item_delay=cfg.queue_item_delay,
        )
        self.inbound = InboundHandler(self.connection, self.queue, self.reporter)
        self.sender = OutboundSender(self.connection)
        logger.info(
            "[init] backend=%s reactions=%s item_delay=%.2fs",
            self.backend.url, "on" if cfg.reactions_enabled else "off", cfg.queue_item_delay,
        )

    def _register_routes(self, app: web.Application) -> None:
        router = app.router
        MessageRoutes(self.sender).register(router)
        router.add_get("/health", self._health)
        router.add_get("/", _index)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _on_startup(self, app: web.Application) -> None:
        self.inbound.attach()
        app["connect_task"] = asyncio.create_task(self._connect())

    async def _connect(self) -> None:
        try:
            await self.connection.get_transport()
            logger.info("Transport client initialized successfully")
        except TransportError as exc:
            # reconnect-eligible failures are retried by the connection manager
            logger.error("Error starting transport client: %s", exc)

    async def _on_cleanup(self, app: web.Application) -> None:
        task = app.get("connect_task")
        if task and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.queue.close()
        await self.inbound.drain()
        await self.backend.close()
        await self.connection.close()

    async def _health(self, _req: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "version": __version__,
            "connection": self.connection.state.value,
            "paired": self.auth_store.is_paired,
            "queue": self.queue.stats(),
        })


async def _index(_req: web.Request) -> web.Response:
    return web.Response(text="Chat bridge API is running.")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(name)s  %(levelname)s  %(message)s",
    )
    cfg.reload()
    port = cfg.api_port
    logger.info("Starting bridge API server on port %d ...", port)
    web.run_app(create_app(), host="0.0.0.0", port=port, access_log_class=QuietAccessLogger)


if __name__ == "__main__":
    main()
