"""Application settings -- reads from environment and ``.env`` file.

All configuration is consolidated here.  Keys are read from the ``.env``
file first and fall back to the process environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from ..util.env_file import EnvFile

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class StatusMarkers:
    """Reaction text sent for each status kind."""

    queued: str = "⏳"
    processing: str = "⚙️"
    completed: str = "✅"
    error: str = "❌"


class Settings:
    """Runtime configuration sourced from environment variables and ``.env``."""

    _DATA_DIR_ENV: ClassVar[str] = "BRIDGE_DATA_DIR"

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Re-resolve the ``.env`` location and reload every key in place.

        Modules hold a reference to ``cfg``; resetting in place keeps them in
        sync when the environment changes (tests point it at a temp dir).
        """
        # Resolve .env path: explicit DOTENV_PATH > data_dir/.env > CWD/.env
        dotenv = os.getenv("DOTENV_PATH")
        if not dotenv:
            data_dir = os.getenv(self._DATA_DIR_ENV)
            dotenv = str(Path(data_dir) / ".env") if data_dir else ".env"
        self.env = EnvFile(dotenv)
        self.reload()

    def reload(self) -> None:
        """Re-read the ``.env`` file and environment variables."""
        e = self._read

        self.ai_api_url: str = (e("AI_API_URL") or "http://localhost:40000").rstrip("/")
        self.backend_platform: str = e("BACKEND_PLATFORM") or "whatsapp"
        self.backend_timeout: float = float(e("BACKEND_TIMEOUT") or "0")

        self.api_port: int = int(e("API_PORT") or "40001")
        self.admin_secret: str = e("ADMIN_SECRET")

        self.reactions_enabled: bool = e("REACTIONS_ENABLED").lower() in _TRUTHY
        defaults = StatusMarkers()
        self.reactions: StatusMarkers = StatusMarkers(
            queued=e("REACTION_QUEUED") or defaults.queued,
            processing=e("REACTION_PROCESSING") or defaults.processing,
            completed=e("REACTION_COMPLETED") or defaults.completed,
            error=e("REACTION_ERROR") or defaults.error,
        )

        self.queue_item_delay: float = float(e("QUEUE_ITEM_DELAY") or "0.5")
        self.reconnect_delay: float = float(e("RECONNECT_DELAY") or "1")
        self.reconnect_max_delay: float = float(e("RECONNECT_MAX_DELAY") or "60")

        self.transport_factory: str = e("TRANSPORT_FACTORY")

    # -- derived paths -----------------------------------------------------

    @property
    def data_dir(self) -> Path:
        return Path(os.getenv(self._DATA_DIR_ENV, str(Path.home() / ".chatbridge")))

    @property
    def auth_dir(self) -> Path:
        return self.data_dir / "auth_info"

    @property
    def creds_path(self) -> Path:
        return self.auth_dir / "creds.json"

    # -- helpers -----------------------------------------------------------

    def _read(self, key: str) -> str:
        return self.env.read(key) or os.getenv(key, "")

    def ensure_dirs(self) -> None:
        for d in (self.data_dir, self.auth_dir):
            d.mkdir(parents=True, exist_ok=True)


# Module-level singleton
cfg = Settings()

