"""
Library routes — GET/DELETE /api/history, GET /api/tracks/{track_id},
POST /api/catalog/sync
"""

from aiohttp import web

from playdeck.models import track_to_dict
from playdeck.web.responses import intent_response

routes = web.RouteTableDef()


@routes.get("/api/history")
async def get_history(request: web.Request) -> web.Response:
    """Recent plays and skips, newest first."""
    try:
        limit = int(request.query["limit"]) if "limit" in request.query else None
    except ValueError:
        raise web.HTTPBadRequest(text="limit must be an integer")

    entries = await request.app["orchestrator"].recent_history(limit)
    history = [
        {
            "track_id": e.track_id,
            "played_at": e.played_at,
            "was_skipped": e.was_skipped,
            "playback_position_ms": e.playback_position_ms,
        }
        for e in entries
    ]
    return web.json_response({"history": history, "count": len(history)})


@routes.delete("/api/history")
async def clear_history(request: web.Request) -> web.Response:
    result = await request.app["orchestrator"].clear_history()
    return intent_response(result)


@routes.get("/api/tracks/{track_id}")
async def get_track(request: web.Request) -> web.Response:
    """A catalog track with its play count and last activity."""
    track_id = request.match_info["track_id"]
    found = await request.app["orchestrator"].track_statistics(track_id)
    if found is None:
        raise web.HTTPNotFound(text=f"Track {track_id} is not in the catalog")

    track, stats = found
    return web.json_response({
        "track": track_to_dict(track),
        "play_count": stats.play_count,
        "last_activity_at": stats.last_activity_at,
    })


@routes.post("/api/catalog/sync")
async def sync_catalog(request: web.Request) -> web.Response:
    result = await request.app["orchestrator"].refresh_catalog()
    return intent_response(result)
