"""Tests for the ConnectionManager lifecycle."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from app.bridge.errors import ConnectionAborted, ConnectionTerminated
from app.bridge.state.auth_store import AuthStore
from app.bridge.tests.conftest import FakeFactory, settle
from app.bridge.transport.base import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    LOGGED_OUT,
    ConnectionUpdate,
)
from app.bridge.transport.connection import ConnectionManager, ConnectionState


def _manager(factory: FakeFactory, **kwargs) -> ConnectionManager:
    kwargs.setdefault("on_pairing", None)
    kwargs.setdefault("reconnect_delay", 0)
    return ConnectionManager(factory, **kwargs)


class TestCoalescing:
    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_attempt(self, factory: FakeFactory) -> None:
        mgr = _manager(factory)
        t1, t2 = await asyncio.gather(mgr.get_transport(), mgr.get_transport())
        assert factory.calls == 1
        assert t1 is t2 is factory.created[0]
        assert mgr.state is ConnectionState.OPEN
        await mgr.close()

    @pytest.mark.asyncio
    async def test_calls_during_connecting_get_same_result(self) -> None:
        factory = FakeFactory(auto_open=False)
        mgr = _manager(factory)
        waiters = [asyncio.create_task(mgr.get_transport()) for _ in range(3)]
        await settle()
        assert mgr.state is ConnectionState.CONNECTING
        assert factory.calls == 1
        factory.created[0].open()
        results = await asyncio.gather(*waiters)
        assert all(r is factory.created[0] for r in results)
        await mgr.close()

    @pytest.mark.asyncio
    async def test_open_handle_returned_without_new_attempt(self, factory: FakeFactory) -> None:
        mgr = _manager(factory)
        first = await mgr.get_transport()
        second = await mgr.get_transport()
        assert first is second
        assert factory.calls == 1
        assert mgr.attempts == 1
        await mgr.close()

    @pytest.mark.asyncio
    async def test_initial_state_is_idle(self, factory: FakeFactory) -> None:
        mgr = _manager(factory)
        assert mgr.state is ConnectionState.IDLE
        assert factory.calls == 0


class TestReconnect:
    @pytest.mark.asyncio
    async def test_eligible_close_triggers_exactly_one_new_attempt(self, factory: FakeFactory) -> None:
        mgr = _manager(factory)
        old = await mgr.get_transport()
        old.close_with(500)
        assert mgr.state in (ConnectionState.IDLE, ConnectionState.CONNECTING)

        new = await mgr.get_transport()
        await settle()
        assert new is not old
        assert new is factory.created[1]
        assert factory.calls == 2
        assert mgr.state is ConnectionState.OPEN
        await mgr.close()

    @pytest.mark.asyncio
    async def test_reconnects_without_any_caller(self, factory: FakeFactory) -> None:
        mgr = _manager(factory)
        old = await mgr.get_transport()
        old.close_with(None)
        await settle(20)
        assert factory.calls == 2
        assert mgr.state is ConnectionState.OPEN
        await mgr.close()

    @pytest.mark.asyncio
    async def test_close_while_connecting_aborts_waiters(self) -> None:
        factory = FakeFactory(auto_open=False)
        mgr = _manager(factory)
        waiter = asyncio.create_task(mgr.get_transport())
        await settle()
        factory.created[0].close_with(428)

        with pytest.raises(ConnectionAborted):
            await waiter

        await settle()
        assert factory.calls == 2
        factory.created[1].open()
        assert await mgr.get_transport() is factory.created[1]
        await mgr.close()

    @pytest.mark.asyncio
    async def test_factory_error_is_retried(self, factory: FakeFactory) -> None:
        factory.fail_next = 1
        mgr = _manager(factory)
        with pytest.raises(ConnectionAborted):
            await mgr.get_transport()
        transport = await mgr.get_transport()
        assert transport is factory.created[0]
        assert mgr.attempts == 2
        await mgr.close()

    @pytest.mark.asyncio
    async def test_backoff_keeps_retrying_until_open(self, factory: FakeFactory) -> None:
        factory.fail_next = 3
        mgr = _manager(factory, reconnect_delay=0.01, reconnect_max_delay=0.02)
        with pytest.raises(ConnectionAborted):
            await mgr.get_transport()
        await asyncio.sleep(0.3)
        assert mgr.state is ConnectionState.OPEN
        assert mgr.attempts == 4
        await mgr.close()

    @pytest.mark.asyncio
    async def test_stale_handle_close_is_ignored(self, factory: FakeFactory) -> None:
        mgr = _manager(factory)
        old = await mgr.get_transport()
        old.close_with(500)
        new = await mgr.get_transport()
        # the old handle is detached; a late event from it must not disturb the new one
        old.emit(CONNECTION_UPDATE, ConnectionUpdate(connection="close", status_code=500))
        await settle()
        assert await mgr.get_transport() is new
        assert factory.calls == 2
        await mgr.close()


class TestTerminal:
    @pytest.mark.asyncio
    async def test_logged_out_fails_all_later_calls(self, factory: FakeFactory) -> None:
        mgr = _manager(factory)
        transport = await mgr.get_transport()
        transport.close_with(LOGGED_OUT)
        assert mgr.state is ConnectionState.FAILED

        for _ in range(2):
            with pytest.raises(ConnectionTerminated):
                await mgr.get_transport()
        await settle()
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_logged_out_during_handshake(self) -> None:
        factory = FakeFactory(auto_open=False)
        mgr = _manager(factory)
        waiter = asyncio.create_task(mgr.get_transport())
        await settle()
        factory.created[0].close_with(LOGGED_OUT)
        with pytest.raises(ConnectionTerminated):
            await waiter
        await settle()
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_close_shuts_down(self, factory: FakeFactory) -> None:
        mgr = _manager(factory)
        transport = await mgr.get_transport()
        await mgr.close()
        assert transport.closed
        with pytest.raises(ConnectionTerminated):
            await mgr.get_transport()

    def test_reconnect_eligibility(self) -> None:
        assert ConnectionUpdate(connection="close", status_code=500).reconnect_eligible
        assert ConnectionUpdate(connection="close").reconnect_eligible
        assert not ConnectionUpdate(connection="close", status_code=LOGGED_OUT).reconnect_eligible


class TestHooks:
    @pytest.mark.asyncio
    async def test_factory_receives_stored_credentials(self, factory: FakeFactory, tmp_path: Path) -> None:
        store = AuthStore(path=tmp_path / "creds.json")
        store.save({"me": {"id": "4915"}})
        mgr = _manager(factory, auth_store=store)
        transport = await mgr.get_transport()
        assert transport.creds == {"me": {"id": "4915"}}
        await mgr.close()

    @pytest.mark.asyncio
    async def test_credential_updates_are_persisted(self, factory: FakeFactory, tmp_path: Path) -> None:
        path = tmp_path / "creds.json"
        mgr = _manager(factory, auth_store=AuthStore(path=path))
        transport = await mgr.get_transport()
        transport.emit(CREDS_UPDATE, {"noiseKey": "abc"})
        for _ in range(100):
            if path.exists():
                break
            await asyncio.sleep(0.01)
        assert AuthStore(path=path).load() == {"noiseKey": "abc"}
        await mgr.close()

    @pytest.mark.asyncio
    async def test_sign_out_forgets_stored_session(self, factory: FakeFactory, tmp_path: Path) -> None:
        path = tmp_path / "creds.json"
        store = AuthStore(path=path)
        store.save({"me": {"id": "4915"}})
        mgr = _manager(factory, auth_store=store)
        transport = await mgr.get_transport()
        transport.close_with(LOGGED_OUT)
        await mgr.close()
        assert not path.exists()
        assert not store.is_paired

    @pytest.mark.asyncio
    async def test_reconnectable_close_keeps_session(self, factory: FakeFactory, tmp_path: Path) -> None:
        path = tmp_path / "creds.json"
        store = AuthStore(path=path)
        store.save({"me": {"id": "4915"}})
        mgr = _manager(factory, auth_store=store)
        (await mgr.get_transport()).close_with(500)
        second = await mgr.get_transport()
        assert second.creds == {"me": {"id": "4915"}}
        await mgr.close()
        assert path.exists()

    @pytest.mark.asyncio
    async def test_pairing_payload_is_displayed(self) -> None:
        shown: list[str] = []
        factory = FakeFactory(auto_open=False)
        mgr = _manager(factory, on_pairing=shown.append)
        waiter = asyncio.create_task(mgr.get_transport())
        await settle()
        factory.created[0].emit(CONNECTION_UPDATE, ConnectionUpdate(qr="2@pairing-ref"))
        assert shown == ["2@pairing-ref"]
        factory.created[0].open()
        await waiter
        await mgr.close()

    @pytest.mark.asyncio
    async def test_failing_pairing_hook_does_not_break_handshake(self) -> None:
        def boom(_payload: str) -> None:
            raise RuntimeError("no terminal")

        factory = FakeFactory(auto_open=False)
        mgr = _manager(factory, on_pairing=boom)
        waiter = asyncio.create_task(mgr.get_transport())
        await settle()
        factory.created[0].emit(CONNECTION_UPDATE, ConnectionUpdate(qr="x"))
        factory.created[0].open()
        assert await waiter is factory.created[0]
        await mgr.close()

    @pytest.mark.asyncio
    async def test_open_listener_sees_every_handle(self, factory: FakeFactory) -> None:
        seen: list[object] = []
        mgr = _manager(factory)
        mgr.add_open_listener(seen.append)
        first = await mgr.get_transport()
        first.close_with(500)
        second = await mgr.get_transport()
        assert seen == [first, second]
        await mgr.close()

    @pytest.mark.asyncio
    async def test_open_listener_added_late_gets_current_handle(self, factory: FakeFactory) -> None:
        seen: list[object] = []
        mgr = _manager(factory)
        transport = await mgr.get_transport()
        mgr.add_open_listener(seen.append)
        assert seen == [transport]
        await mgr.close()
