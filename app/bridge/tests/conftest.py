"""Shared pytest fixtures for app.bridge tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from app.bridge.transport.base import (
    CONNECTION_UPDATE,
    ConnectionUpdate,
    EventEmitter,
    MessageKey,
    SendReceipt,
)


class FakeTransport(EventEmitter):
    """In-memory transport: records sends, lets tests drive lifecycle events."""

    def __init__(self, creds: dict[str, Any] | None = None) -> None:
        super().__init__()
        self.creds = creds or {}
        self.sent: list[tuple[str, dict[str, Any], dict[str, Any] | None]] = []
        self.closed = False
        self.fail_sends = False
        self._ids = 0

    async def send_message(
        self,
        destination: str,
        payload: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> SendReceipt | None:
        if self.fail_sends:
            raise RuntimeError("socket closed")
        self.sent.append((destination, payload, options))
        self._ids += 1
        return SendReceipt(key=MessageKey(remote_jid=destination, id=f"MSG{self._ids}", from_me=True))

    async def close(self) -> None:
        self.closed = True

    def open(self) -> None:
        self.emit(CONNECTION_UPDATE, ConnectionUpdate(connection="open"))

    def close_with(self, status_code: int | None) -> None:
        self.emit(CONNECTION_UPDATE, ConnectionUpdate(connection="close", status_code=status_code))

    def reactions(self) -> list[str]:
        return [p["react"]["text"] for _, p, _ in self.sent if "react" in p]

    def texts(self) -> list[str]:
        return [p["text"] for _, p, _ in self.sent if "text" in p]


class FakeFactory:
    """Transport factory that hands out a new FakeTransport per attempt.

    With ``auto_open`` the transport reports ``open`` on the next loop tick.
    """

    def __init__(self, *, auto_open: bool = True) -> None:
        self.auto_open = auto_open
        self.created: list[FakeTransport] = []
        self.fail_next = 0

    async def __call__(self, creds: dict[str, Any]) -> FakeTransport:
        if self.fail_next:
            self.fail_next -= 1
            raise OSError("network unreachable")
        transport = FakeTransport(creds)
        self.created.append(transport)
        if self.auto_open:
            asyncio.get_running_loop().call_soon(transport.open)
        return transport

    @property
    def calls(self) -> int:
        return len(self.created)


async def settle(rounds: int = 10) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def _isolate_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    monkeypatch.setenv("BRIDGE_DATA_DIR", str(data_dir))
    monkeypatch.setenv("DOTENV_PATH", str(tmp_path / ".env"))
    return data_dir


@pytest.fixture(autouse=True)
def _reset_cfg(_isolate_data_dir: Path):
    from app.bridge.config.settings import cfg

    cfg.reset()
    yield
    cfg.reset()


@pytest.fixture()
def data_dir(_isolate_data_dir: Path) -> Path:
    return _isolate_data_dir


@pytest.fixture()
def factory() -> FakeFactory:
    return FakeFactory()
