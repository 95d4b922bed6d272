"""Server route handlers."""

from __future__ import annotations

from .message_routes import MessageRoutes

__all__ = ["MessageRoutes"]
