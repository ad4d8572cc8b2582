"""
Queue routes — GET /api/queue, POST /api/queue/shuffle, POST /api/queue/jump

View the queue window and move around in it.
"""

import json
import logging

from aiohttp import web

from playdeck.web.responses import intent_response

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()


@routes.get("/api/queue")
async def get_queue(request: web.Request) -> web.Response:
    """Return the queue window joined with play counts."""
    orchestrator = request.app["orchestrator"]
    entries = await orchestrator.snapshot()
    queue = [
        {
            "position": e.position,
            "id": e.track.id,
            "title": e.track.title,
            "artist": e.track.artist,
            "album": e.track.album,
            "image_url": e.track.image_url,
            "play_count": e.play_count,
        }
        for e in entries
    ]
    return web.json_response({"queue": queue, "count": len(queue)})


@routes.post("/api/queue/shuffle")
async def shuffle_queue(request: web.Request) -> web.Response:
    """Regenerate the upcoming part of the queue."""
    result = await request.app["orchestrator"].shuffle_upcoming()
    return intent_response(result)


@routes.post("/api/queue/jump")
async def jump_to_position(request: web.Request) -> web.Response:
    """Play the track at a queue position.

    Body: {"position": N}
    """
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise web.HTTPBadRequest(text="Invalid JSON")

    position = body.get("position") if isinstance(body, dict) else None
    # bool is an int subclass; true must not mean position 1
    if not isinstance(position, int) or isinstance(position, bool):
        raise web.HTTPBadRequest(text="'position' integer field is required")

    result = await request.app["orchestrator"].jump_to(position)
    return intent_response(result)
