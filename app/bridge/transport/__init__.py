"""Transport capability and connection lifecycle."""

from .base import (
    LOGGED_OUT,
    ConnectionUpdate,
    EventEmitter,
    InboundMessage,
    MessageKey,
    MessagesUpsert,
    SendReceipt,
    Transport,
    TransportFactory,
    load_transport_factory,
)
from .connection import ConnectionManager, ConnectionState

__all__ = [
    "LOGGED_OUT",
    "ConnectionManager",
    "ConnectionState",
    "ConnectionUpdate",
    "EventEmitter",
    "InboundMessage",
    "MessageKey",
    "MessagesUpsert",
    "SendReceipt",
    "Transport",
    "TransportFactory",
    "load_transport_factory",
]
