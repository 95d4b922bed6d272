"""Outbound service clients."""

from .backend import Backend, BackendClient

__all__ = ["Backend", "BackendClient"]
