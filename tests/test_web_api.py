"""Tests for WebApiTransport against a stub player API."""

import pytest
from aiohttp import web

from playdeck.errors import TransportFailure
from playdeck.remote.web_api import WebApiTransport, parse_player_state

from tests.conftest import eventually


PLAYER_BODY = {
    "is_playing": True,
    "progress_ms": 42_000,
    "item": {
        "id": "t7",
        "name": "Song 7",
        "uri": "spotify:track:t7",
        "duration_ms": 210_000,
        "artists": [{"name": "A"}, {"name": "B"}],
        "album": {"name": "Record"},
    },
}


def player_app(state: dict) -> web.Application:
    """Stub of the player endpoints; `state` controls responses and records calls."""
    state.setdefault("calls", [])

    async def get_player(request):
        if state.get("status", 200) != 200:
            return web.Response(status=state["status"], text="nope")
        if state.get("body") is None:
            return web.Response(status=204)
        return web.json_response(state["body"])

    async def put_play(request):
        body = await request.json() if request.can_read_body else None
        state["calls"].append(("play", body, request.headers.get("Authorization")))
        return web.Response(status=204)

    async def put_pause(request):
        state["calls"].append(("pause", None, request.headers.get("Authorization")))
        return web.Response(status=204)

    app = web.Application()
    app.router.add_get("/me/player", get_player)
    app.router.add_put("/me/player/play", put_play)
    app.router.add_put("/me/player/pause", put_pause)
    return app


@pytest.fixture
async def player(aiohttp_server):
    state = {"body": PLAYER_BODY}
    server = await aiohttp_server(player_app(state))
    transport = WebApiTransport(str(server.make_url("/")), "tok", poll_interval=0.01)
    yield state, transport
    await transport.close()


def test_parse_player_state():
    state = parse_player_state(PLAYER_BODY)
    assert state.track_id == "t7"
    assert state.is_playing is True
    assert state.position_ms == 42_000
    assert state.duration_ms == 210_000
    assert state.artist == "A, B"
    assert state.album == "Record"
    assert state.before_halfway
    assert parse_player_state(None) is None


async def test_commands_hit_player_endpoints(player):
    state, transport = player
    await transport.open()

    await transport.play("spotify:track:t1")
    await transport.pause()
    await transport.resume()

    assert state["calls"] == [
        ("play", {"uris": ["spotify:track:t1"]}, "Bearer tok"),
        ("pause", None, "Bearer tok"),
        ("play", None, "Bearer tok"),
    ]


async def test_nothing_playing_is_none(player):
    state, transport = player
    state["body"] = None
    await transport.open()
    assert await transport.fetch_state() is None


async def test_open_failure_raises_transport_failure(player):
    state, transport = player
    state["status"] = 401
    with pytest.raises(TransportFailure):
        await transport.open()


async def test_commands_before_open_fail():
    transport = WebApiTransport("http://127.0.0.1:1", "tok")
    with pytest.raises(TransportFailure):
        await transport.pause()


async def test_subscription_polls_until_cancelled(player):
    state, transport = player
    await transport.open()
    seen, errors = [], []

    sub = transport.subscribe(seen.append, errors.append)
    await eventually(lambda: len(seen) >= 2)
    sub.cancel()
    await eventually(lambda: not sub.active)

    assert seen[0].track_id == "t7"
    assert errors == []


async def test_subscription_reports_error_and_stops(player):
    state, transport = player
    await transport.open()
    state["status"] = 500
    seen, errors = [], []

    sub = transport.subscribe(seen.append, errors.append)
    await eventually(lambda: not sub.active)

    assert len(errors) == 1
    assert isinstance(errors[0], TransportFailure)


async def test_close_stops_running_subscriptions(player):
    state, transport = player
    await transport.open()
    seen = []

    sub = transport.subscribe(seen.append, lambda e: None)
    await eventually(lambda: len(seen) >= 1)
    await transport.close()

    await eventually(lambda: not sub.active)
