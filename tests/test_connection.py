"""Connection manager state machine"""

import asyncio

import pytest

from conftest import settle

from neptun_smart.device.connection import ConnectionManager, ConnectionState


async def test_connect_success_notifies_once(clock, factory):
    notified = []

    async def on_connected():
        notified.append(manager.session)

    manager = ConnectionManager("10.0.0.5", on_connected=on_connected,
                                session_factory=factory, sleep=clock.sleep)

    assert await manager.connect() is True
    assert manager.state is ConnectionState.CONNECTED
    assert manager.is_connected
    assert notified == [factory.session]
    assert factory.calls == 1

    await manager.disconnect()


async def test_connect_passes_device_parameters(clock):
    seen = []

    async def session_factory(host, port, unit_id, timeout):
        seen.append((host, port, unit_id, timeout))
        raise OSError("unreachable")

    manager = ConnectionManager("10.0.0.5", session_factory=session_factory,
                                sleep=clock.sleep)
    await manager.connect()

    assert seen == [("10.0.0.5", 503, 240, 5.0)]
    await manager.disconnect()


async def test_failed_connect_retries_after_cooldown(connection, clock, factory):
    factory.failures = 1

    assert await connection.connect() is False
    assert connection.state is ConnectionState.DISCONNECTED
    assert connection.session is None
    assert connection.throttler.pending

    await clock.advance(9)
    assert factory.calls == 1

    await clock.advance(1)
    assert factory.calls == 2
    assert connection.is_connected
    assert connection.stats["connect_failures"] == 1
    assert connection.stats["connections"] == 1


async def test_repeated_failures_keep_retrying(connection, clock, factory):
    factory.failures = 3

    await connection.connect()
    for _ in range(3):
        await clock.advance(10)

    assert factory.calls == 4
    assert connection.is_connected


async def test_connect_while_connecting_is_noop(connection, factory):
    factory.gate = asyncio.Event()

    first = asyncio.create_task(connection.connect())
    await settle()
    assert connection.state is ConnectionState.CONNECTING

    assert await connection.connect() is False

    factory.gate.set()
    assert await first is True
    assert factory.calls == 1


async def test_reconnect_closes_stale_session(connection, factory):
    await connection.connect()
    stale = factory.session

    await connection.reconnect()

    assert stale.closed
    assert connection.session is factory.session
    assert connection.session is not stale
    assert connection.stats["reconnects"] == 1


async def test_callback_sees_new_session(clock, factory):
    sessions = []

    def on_connected():
        sessions.append(manager.session)

    manager = ConnectionManager("10.0.0.5", on_connected=on_connected,
                                session_factory=factory, sleep=clock.sleep)
    await manager.connect()
    await manager.reconnect()

    assert sessions == factory.sessions
    await manager.disconnect()


async def test_callback_error_does_not_break_connect(clock, factory):
    def on_connected():
        raise RuntimeError("boom")

    manager = ConnectionManager("10.0.0.5", on_connected=on_connected,
                                session_factory=factory, sleep=clock.sleep)

    assert await manager.connect() is True
    assert manager.is_connected
    await manager.disconnect()


async def test_disconnect_cancels_pending_reconnect(connection, clock, factory):
    factory.failures = 1
    await connection.connect()

    await connection.disconnect()
    await clock.advance(10)

    assert factory.calls == 1
    assert connection.state is ConnectionState.DISCONNECTED


async def test_stats(connection):
    await connection.connect()
    stats = connection.get_stats()

    assert stats["state"] == "connected"
    assert stats["host"] == "10.0.0.5"
    assert stats["port"] == 503
    assert stats["unit_id"] == 240
    assert stats["reconnect_pending"] is False


async def test_connect_while_connected_replaces_session(connection, factory):
    await connection.connect()
    first = factory.session

    assert await connection.connect() is True
    assert first.closed
    assert connection.session is not first


async def test_disconnect_during_connect_discards_session(connection, factory):
    factory.gate = asyncio.Event()

    pending = asyncio.create_task(connection.connect())
    await settle()
    await connection.disconnect()
    factory.gate.set()

    assert await pending is False
    assert connection.state is ConnectionState.DISCONNECTED
    assert connection.session is None
    assert factory.session.closed
    assert not connection.throttler.pending


async def test_disconnect_during_failing_connect_schedules_nothing(connection, clock, factory):
    factory.gate = asyncio.Event()
    factory.failures = 100

    pending = asyncio.create_task(connection.connect())
    await settle()
    await connection.disconnect()
    factory.gate.set()

    assert await pending is False
    for _ in range(3):
        await clock.advance(10)

    assert factory.calls == 1
    assert connection.stats["connect_failures"] == 0
    assert connection.state is ConnectionState.DISCONNECTED


async def test_disconnect_stops_running_reconnect(connection, clock, factory):
    factory.failures = 1
    await connection.connect()

    factory.gate = asyncio.Event()
    await clock.advance(10)
    assert factory.calls == 2
    assert connection.state is ConnectionState.CONNECTING

    await connection.disconnect()
    factory.gate.set()
    await clock.advance(30)

    assert factory.calls == 2
    assert factory.sessions == []
    assert connection.state is ConnectionState.DISCONNECTED


async def test_cancelled_connect_resets_state(connection, factory):
    factory.gate = asyncio.Event()

    pending = asyncio.create_task(connection.connect())
    await settle()
    pending.cancel()

    with pytest.raises(asyncio.CancelledError):
        await pending
    assert connection.state is ConnectionState.DISCONNECTED

    factory.gate = None
    assert await connection.connect() is True


async def test_unexpected_factory_error_schedules_retry(clock, factory):
    async def session_factory(host, port, unit_id, timeout):
        if factory.calls == 0:
            factory.calls += 1
            raise ValueError("bad address")
        return await factory(host, port, unit_id, timeout)

    manager = ConnectionManager("10.0.0.5", session_factory=session_factory,
                                sleep=clock.sleep)

    assert await manager.connect() is False
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.throttler.pending

    await clock.advance(10)
    assert manager.is_connected
    await manager.disconnect()
