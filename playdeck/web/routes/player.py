"""
Player routes — POST /api/player/{action}, GET /api/player/state,
GET /api/player/events (SSE)
"""

import asyncio
import json

from aiohttp import web

from playdeck.models import player_state_to_dict, track_to_dict
from playdeck.web.responses import intent_response

routes = web.RouteTableDef()

ACTIONS = ("play", "pause", "resume", "next", "previous")


@routes.post("/api/player/{action}")
async def player_action(request: web.Request) -> web.Response:
    """Run one of the player intents."""
    action = request.match_info["action"]
    if action not in ACTIONS:
        raise web.HTTPNotFound(text=f"Unknown player action: {action}")

    orchestrator = request.app["orchestrator"]
    result = await getattr(orchestrator, action)()
    return intent_response(result)


@routes.get("/api/player/state")
async def player_state(request: web.Request) -> web.Response:
    orchestrator = request.app["orchestrator"]
    return web.json_response(await _state_payload(orchestrator))


@routes.get("/api/player/events")
async def player_events(request: web.Request) -> web.StreamResponse:
    """SSE endpoint: sends the current state then streams live updates."""
    orchestrator = request.app["orchestrator"]

    response = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
    await response.prepare(request)

    # Subscribe before the initial snapshot so no change slips between them
    queue = orchestrator.subscribe()
    try:
        state = await _state_payload(orchestrator)
        await response.write(f"event: state\ndata: {json.dumps(state)}\n\n".encode())

        while True:
            try:
                msg = await asyncio.wait_for(queue.get(), timeout=15)
            except asyncio.TimeoutError:
                await response.write(b": keepalive\n\n")
                continue

            if msg.get("type") == "player_state":
                await response.write(
                    f"event: player_state\ndata: {json.dumps(msg['state'])}\n\n".encode()
                )
            else:
                await response.write(
                    f"event: {msg.get('type', 'update')}\ndata: {json.dumps(msg)}\n\n".encode()
                )
    except (ConnectionResetError, ConnectionError, asyncio.CancelledError):
        pass
    finally:
        orchestrator.unsubscribe(queue)

    return response


async def _state_payload(orchestrator) -> dict:
    track = await orchestrator.current_track()
    last = orchestrator.last_player_state
    return {
        "connected": orchestrator.is_connected(),
        "current_track": track_to_dict(track) if track else None,
        "player": player_state_to_dict(last) if last else None,
    }
