"""Tests for RemoteSessionManager — connect/backoff, commands, state stream."""

import asyncio

import pytest

from playdeck.errors import NotConnected, TransportFailure
from playdeck.models import PlayerState
from playdeck.remote.session import ConnectionState, RemoteSessionManager, RemoteTransport

from tests.conftest import FakeTransport, RecordingSleep, eventually


STATE = PlayerState(track_id="t1", is_playing=True, position_ms=1000, duration_ms=200_000)


def test_fake_transport_satisfies_protocol(transport):
    assert isinstance(transport, RemoteTransport)


# =========================================================================
# CONNECT
# =========================================================================


async def test_connect_opens_once(session, transport):
    await session.connect()
    await session.connect()
    assert transport.open_calls == 1
    assert session.state is ConnectionState.CONNECTED
    assert session.is_connected


async def test_connect_failure_wraps_cause(session, transport):
    transport.open_failures = 1
    with pytest.raises(TransportFailure) as exc_info:
        await session.connect()
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert session.state is ConnectionState.DISCONNECTED


async def test_concurrent_connects_share_one_open(session, transport):
    await asyncio.gather(session.connect(), session.connect(), session.connect())
    assert transport.open_calls == 1


async def test_connect_with_retry_backs_off_exponentially():
    transport = FakeTransport(open_failures=2)
    sleep = RecordingSleep()
    session = RemoteSessionManager(transport, sleep=sleep)

    await session.connect_with_retry(max_attempts=3, initial_delay=2.0)

    assert transport.open_calls == 3
    assert sleep.delays == [2.0, 4.0]
    assert sum(sleep.delays) >= 6.0
    assert session.is_connected


async def test_connect_with_retry_raises_last_failure():
    transport = FakeTransport(open_failures=10)
    sleep = RecordingSleep()
    session = RemoteSessionManager(transport, sleep=sleep)

    with pytest.raises(TransportFailure):
        await session.connect_with_retry()

    assert transport.open_calls == 3
    assert sleep.delays == [2.0, 4.0]
    assert session.state is ConnectionState.DISCONNECTED


async def test_backoff_delay_is_capped():
    transport = FakeTransport(open_failures=10)
    sleep = RecordingSleep()
    session = RemoteSessionManager(transport, sleep=sleep)

    with pytest.raises(TransportFailure):
        await session.connect_with_retry(max_attempts=5, initial_delay=2.0, max_delay=5.0)
    assert sleep.delays == [2.0, 4.0, 5.0, 5.0]


async def test_cancel_during_backoff_stops_retrying():
    transport = FakeTransport(open_failures=10)
    sleeping = asyncio.Event()

    async def blocking_sleep(delay):
        sleeping.set()
        await asyncio.Event().wait()

    session = RemoteSessionManager(transport, sleep=blocking_sleep)
    task = asyncio.create_task(session.connect_with_retry())
    await asyncio.wait_for(sleeping.wait(), timeout=1.0)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert transport.open_calls == 1
    assert session.state is ConnectionState.DISCONNECTED


async def test_disconnect_is_idempotent(session, transport):
    await session.connect()
    await session.disconnect()
    await session.disconnect()
    assert session.state is ConnectionState.DISCONNECTED
    assert transport.close_calls == 2


# =========================================================================
# COMMANDS
# =========================================================================


async def test_play_while_disconnected_never_touches_transport(session, transport):
    with pytest.raises(NotConnected):
        await session.play("spotify:track:t1")
    with pytest.raises(NotConnected):
        await session.pause()
    assert transport.commands == []
    assert transport.open_calls == 0


async def test_commands_reach_transport(session, transport):
    await session.connect()
    await session.play("spotify:track:t1")
    await session.pause()
    await session.resume()
    assert transport.commands == [("play", "spotify:track:t1"), ("pause",), ("resume",)]


async def test_command_failure_drops_session(session, transport):
    await session.connect()
    transport.fail_commands.add("play")

    with pytest.raises(TransportFailure):
        await session.play("spotify:track:t1")
    assert session.state is ConnectionState.DISCONNECTED
    # At most once: no retry on commands
    assert transport.commands == []


# =========================================================================
# PLAYER STATE STREAM
# =========================================================================


async def test_stream_yields_states_and_unsubscribes_on_close(session, transport):
    await session.connect()
    stream = session.player_state_stream()

    pending = asyncio.ensure_future(stream.__anext__())
    await eventually(lambda: len(transport.subscriptions) == 1)
    transport.emit(STATE)

    item = await asyncio.wait_for(pending, timeout=1.0)
    assert item.ok
    assert item.state == STATE

    await stream.aclose()
    assert transport.subscriptions[0].cancelled


async def test_stream_error_ends_with_failure_item(session, transport):
    await session.connect()
    items = []

    async def consume():
        async for item in session.player_state_stream():
            items.append(item)

    task = asyncio.create_task(consume())
    await eventually(lambda: len(transport.subscriptions) == 1)
    transport.emit(STATE)
    transport.fail(ConnectionError("socket closed"))
    await asyncio.wait_for(task, timeout=1.0)

    assert [i.ok for i in items] == [True, False]
    assert isinstance(items[-1].error, TransportFailure)
    assert session.state is ConnectionState.DISCONNECTED
    assert transport.subscriptions[0].cancelled


async def test_cancelling_consumer_unsubscribes(session, transport):
    await session.connect()

    async def consume():
        async for _ in session.player_state_stream():
            pass

    task = asyncio.create_task(consume())
    await eventually(lambda: len(transport.subscriptions) == 1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    sub = transport.subscriptions[0]
    assert sub.cancelled
    # Late callbacks after cancel are dropped silently
    sub.on_state(STATE)
