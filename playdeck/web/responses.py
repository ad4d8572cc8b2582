"""Shared JSON response helpers for the control API."""

from aiohttp import web

from playdeck.models import IntentResult

# IntentResult.status -> HTTP status
STATUS_CODES = {
    "ok": 200,
    "not_connected": 409,
    "queue_changed": 409,
    "no_such_position": 404,
    "track_not_found": 404,
    "transport_failure": 502,
    "catalog_unavailable": 502,
    "empty_catalog": 422,
}


def intent_response(result: IntentResult) -> web.Response:
    """Render an intent outcome with the matching HTTP status."""
    code = STATUS_CODES.get(result.status, 200 if result.ok else 500)
    return web.json_response(result.to_dict(), status=code)
