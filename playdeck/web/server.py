"""
PlayDeck Web Server

aiohttp-based HTTP control API for the orchestrator: queue, player
commands, history, catalog sync and a live SSE feed.
"""

import logging
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from playdeck.playback.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)


class WebServer:
    """HTTP control API for PlayDeck."""

    def __init__(
        self,
        orchestrator: "SessionOrchestrator",
        host: str = "0.0.0.0",
        port: int = 49990,
    ):
        self.orchestrator = orchestrator
        self.host = host
        self.port = port
        self.app = create_app(orchestrator)
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start the web server."""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"Control API started at http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the web server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Control API stopped")


def create_app(orchestrator: "SessionOrchestrator") -> web.Application:
    """Build the aiohttp application with all routes registered."""
    from playdeck.web.routes.library import routes as library_routes
    from playdeck.web.routes.player import routes as player_routes
    from playdeck.web.routes.queue import routes as queue_routes

    app = web.Application()
    # Store references in app for route handlers
    app["orchestrator"] = orchestrator

    app.router.add_routes(queue_routes)
    app.router.add_routes(player_routes)
    app.router.add_routes(library_routes)
    return app
