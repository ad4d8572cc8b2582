#!/usr/bin/env python3
"""
PlayDeck Service

Main entry point: opens the library store, syncs the catalog, connects
the remote player and serves the control API until interrupted.
"""

import asyncio
import logging
import signal
from pathlib import Path

from playdeck.booth import booth
from playdeck.catalog import CatalogSync, SavedTracksSource
from playdeck.config import Config
from playdeck.errors import CatalogError
from playdeck.playback.ledger import StatisticsLedger
from playdeck.playback.orchestrator import SessionOrchestrator
from playdeck.playback.queue_engine import QueueEngine
from playdeck.playback.shuffle import ShuffleSelector
from playdeck.remote.session import RemoteSessionManager
from playdeck.remote.web_api import WebApiTransport
from playdeck.store import LibraryStore
from playdeck.web.server import WebServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("playdeck")


async def main() -> None:
    """Main application entry point."""
    logger.info("=" * 50)
    logger.info("PlayDeck starting...")
    logger.info("=" * 50)

    project_root = Path(__file__).parent.parent

    # Configure booth log (DJ event log)
    booth.configure(log_file=project_root / "logs" / "booth.log", console=True)

    config = Config.load()
    booth.start("PlayDeck")

    if not config.remote.access_token:
        logger.warning("PLAYDECK_ACCESS_TOKEN not set - catalog sync and playback will fail")

    db_path = Path(config.store.db_path)
    if not db_path.is_absolute():
        db_path = project_root / db_path
    store = LibraryStore(db_path)
    await store.open()

    ledger = StatisticsLedger(store, history_size=config.queue.history_log_size)
    engine = QueueEngine(
        store,
        ledger,
        ShuffleSelector(ledger),
        history_size=config.queue.history_size,
        upcoming_size=config.queue.upcoming_size,
    )

    source = SavedTracksSource(
        api_base=config.remote.api_base,
        access_token=config.remote.access_token,
        page_size=config.catalog.page_size,
    )
    catalog_sync = CatalogSync(source, store, ledger, page_delay=config.catalog.page_delay)

    transport = WebApiTransport(
        api_base=config.remote.api_base,
        access_token=config.remote.access_token,
        poll_interval=config.remote.poll_interval,
    )
    session = RemoteSessionManager(
        transport,
        max_attempts=config.remote.max_attempts,
        initial_delay=config.remote.initial_delay,
        max_delay=config.remote.max_delay,
    )

    orchestrator = SessionOrchestrator(
        store,
        ledger,
        engine,
        session,
        catalog_sync=catalog_sync,
        resubscribe_delay=config.remote.resubscribe_delay,
        command_grace=config.remote.command_grace,
    )
    web_server = WebServer(orchestrator, host=config.web.host, port=config.web.port)

    # Set up graceful shutdown
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, initiating shutdown...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_shutdown, sig)

    try:
        await source.start()

        if config.catalog.sync_on_start:
            try:
                await catalog_sync.sync()
            except CatalogError as e:
                logger.warning(f"Catalog sync failed, using cached catalog: {e}")
        if await store.track_count() == 0:
            logger.warning("Library is empty; play requests fail until a catalog sync succeeds")

        await orchestrator.start()
        await web_server.start()

        logger.info("")
        logger.info("🎧 PlayDeck is running!")
        logger.info(f"   Catalog:     {len(orchestrator.catalog)} tracks")
        logger.info(f"   Control API: http://{config.web.host}:{config.web.port}")
        logger.info("")
        logger.info("Press Ctrl+C to stop")

        await shutdown_event.wait()

    except Exception as e:
        logger.exception(f"Error running PlayDeck: {e}")
    finally:
        async def _cleanup() -> None:
            """Shut down all services in reverse order."""
            await web_server.stop()
            await orchestrator.stop()
            await source.stop()
            await store.close()

        try:
            await asyncio.wait_for(_cleanup(), timeout=8.0)
        except asyncio.TimeoutError:
            logger.warning("Cleanup timed out after 8s, exiting anyway")
        except Exception:
            logger.exception("Error during cleanup")

        booth.stop("PlayDeck")
        logger.info("PlayDeck stopped.")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
