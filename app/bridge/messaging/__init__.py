"""Messaging pipeline -- conversation queue, status reactions, inbound and manual sends."""

from .handler import InboundHandler
from .outbound import OutboundSender
from .queue import ConversationQueue, WorkItem
from .status import StatusKind, StatusReporter

__all__ = [
    "ConversationQueue",
    "InboundHandler",
    "OutboundSender",
    "StatusKind",
    "StatusReporter",
    "WorkItem",
]
