"""Shared utilities."""

from .env_file import EnvFile
from .result import SendResult

__all__ = ["EnvFile", "SendResult"]
