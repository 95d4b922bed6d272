"""Media helpers for the manual send surface."""

from .classify import EXTENSION_TO_MIME, classify, guess_mime

__all__ = ["EXTENSION_TO_MIME", "classify", "guess_mime"]
