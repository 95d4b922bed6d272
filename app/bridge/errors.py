"""Error taxonomy shared by the connection manager, queue, and backend."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class TransportError(BridgeError):
    """The transport handle could not be obtained."""


class ConnectionAborted(TransportError):
    """The connection attempt closed for a reconnect-eligible reason.

    Recoverable: calling ``get_transport()`` again awaits the next attempt.
    """


class ConnectionTerminated(TransportError):
    """The session ended for good (explicit sign-out or shutdown)."""


class BackendFailure(BridgeError):
    """Processing of a single work item failed downstream."""

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class SignalEmissionFailure(BridgeError):
    """A status signal could not be delivered. Always logged, never raised to callers."""
