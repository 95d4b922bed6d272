"""Session credential store -- ``auth_info/creds.json``."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from pathlib import Path
from typing import Any

from ..config.settings import cfg

logger = logging.getLogger(__name__)


class AuthStore:
    """Persists transport session credentials between restarts.

    ``save`` merges partial updates into what is already stored, the way
    transports report credential changes incrementally.  The ``a*`` variants
    run the file I/O in the default executor; writes are serialized so two
    quick updates cannot interleave on disk.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or cfg.creds_path
        self._creds: dict[str, Any] = {}
        self._write_lock = asyncio.Lock()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_paired(self) -> bool:
        return bool(self._creds)

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            self._creds = json.loads(self._path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load session credentials: %s", exc)

    def load(self) -> dict[str, Any]:
        return dict(self._creds)

    def save(self, update: dict[str, Any]) -> None:
        self._creds.update(update)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._creds, indent=2))

    def clear(self) -> None:
        self._creds = {}
        if self._path.exists():
            self._path.unlink()

    # -- async wrappers ----------------------------------------------------

    async def aload(self) -> dict[str, Any]:
        return await self._in_executor(self.load)

    async def asave(self, update: dict[str, Any]) -> None:
        async with self._write_lock:
            await self._in_executor(self.save, update)

    async def aclear(self) -> None:
        async with self._write_lock:
            await self._in_executor(self.clear)

    @staticmethod
    async def _in_executor(fn, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))
