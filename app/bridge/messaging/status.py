"""Best-effort status reactions on the originating inbound message."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..config.settings import StatusMarkers
from ..errors import SignalEmissionFailure

if TYPE_CHECKING:
    from ..transport.connection import ConnectionManager

logger = logging.getLogger(__name__)


class StatusKind(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class StatusReporter:
    """Sends a reaction marker for each lifecycle step of a queued message.

    Failures are logged and swallowed; ``emit`` never raises.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        *,
        enabled: bool = False,
        markers: StatusMarkers | None = None,
    ) -> None:
        self._connection = connection
        self.enabled = enabled
        self.markers = markers or StatusMarkers()

    def marker(self, kind: StatusKind) -> str:
        return getattr(self.markers, kind.value)

    async def emit(self, kind: StatusKind, destination: str | None, message_ref: Any) -> bool:
        """Return ``True`` when the signal was handed to the transport."""
        if not self.enabled or not destination:
            return False
        try:
            await self._send(kind, destination, message_ref)
        except SignalEmissionFailure as exc:
            logger.warning("Error sending %s reaction: %s", kind.value, exc)
            return False
        return True

    async def _send(self, kind: StatusKind, destination: str, message_ref: Any) -> None:
        try:
            transport = await self._connection.get_transport()
            await transport.send_message(
                destination,
                {"react": {"text": self.marker(kind), "key": message_ref}},
            )
        except Exception as exc:
            raise SignalEmissionFailure(f"{kind.value} -> {destination}: {exc}") from exc
