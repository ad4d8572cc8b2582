"""
PlayDeck Session Orchestrator

Turns user intents into queue moves, remote commands and ledger updates,
and keeps the queue in step with track changes made on the player itself.

Intent flow (serialized by the intent lock):
  1. connect_with_retry()
  2. Queue Engine plans the new window
  3. skip accounting is computed from the last known player state
  4. play(uri) is sent to the remote session
  5. only on success: commit the window, apply skips, record the play

Any failure before step 5 leaves the window as it was and is reported as
an IntentResult with a stable status code.

Skip accounting for a forward move 0 → N:
  current stopped before halfway   +1  (partial play)
  each track at 1..N-1             +2  (full skip)
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from playdeck.booth import booth
from playdeck.errors import NoSuchQueuePosition, PlaybackError, TrackNotFound
from playdeck.models import (
    HistoryEntry,
    IntentResult,
    PlayerState,
    SnapshotEntry,
    Statistics,
    Track,
    player_state_to_dict,
)
from playdeck.playback.ledger import PARTIAL_PLAY_WEIGHT, SKIP_WEIGHT, StatisticsLedger
from playdeck.playback.queue_engine import PendingMove, QueueEngine
from playdeck.remote.session import RemoteSessionManager
from playdeck.store import LibraryStore

if TYPE_CHECKING:
    from playdeck.catalog import CatalogSync

logger = logging.getLogger(__name__)

RESUBSCRIBE_DELAY = 5.0
COMMAND_GRACE = 5.0  # seconds a late poll of the previous track is ignored


class SessionOrchestrator:
    """
    Entry point for every playback intent.

    Usage:
        orchestrator = SessionOrchestrator(store, ledger, engine, session)
        await orchestrator.start()

        result = await orchestrator.next()
        if not result.ok:
            print(result.status, result.message)

        await orchestrator.stop()
    """

    def __init__(
        self,
        store: LibraryStore,
        ledger: StatisticsLedger,
        engine: QueueEngine,
        session: RemoteSessionManager,
        catalog_sync: "CatalogSync | None" = None,
        resubscribe_delay: float = RESUBSCRIBE_DELAY,
        command_grace: float = COMMAND_GRACE,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._ledger = ledger
        self._engine = engine
        self._session = session
        self._catalog_sync = catalog_sync
        self.resubscribe_delay = resubscribe_delay
        self.command_grace = command_grace
        self._sleep = sleep
        self._clock = clock

        self._catalog: list[Track] = []
        self._by_id: dict[str, Track] = {}
        self._intent_lock = asyncio.Lock()

        self.last_player_state: PlayerState | None = None
        self._last_reported_id: str | None = None
        # Last play command not yet confirmed by the player
        self._commanded_id: str | None = None
        self._commanded_at = 0.0

        self._running = False
        self._watch_task: asyncio.Task | None = None
        self._subscribers: list[asyncio.Queue] = []

    # =====================================================================
    # LIFECYCLE
    # =====================================================================

    async def start(self, watch: bool = True) -> None:
        """Load catalog and queue window, then start the player watcher."""
        await self.load_catalog()
        await self._engine.load()
        if watch:
            self._running = True
            self._watch_task = asyncio.create_task(self._watch_loop())
        logger.info(f"Orchestrator started ({len(self._catalog)} tracks in catalog)")
        booth.start("Orchestrator")

    async def stop(self) -> None:
        """Stop the watcher and release the remote session."""
        self._running = False
        if self._watch_task:
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass
            self._watch_task = None
        await self._session.disconnect()
        logger.info("Orchestrator stopped")
        booth.stop("Orchestrator")

    # =====================================================================
    # CATALOG
    # =====================================================================

    @property
    def catalog(self) -> list[Track]:
        return self._catalog

    async def load_catalog(self) -> list[Track]:
        """Reload the in-memory catalog from the store."""
        self._catalog = await self._store.get_tracks()
        self._by_id = {t.id: t for t in self._catalog}
        return self._catalog

    async def refresh_catalog(self) -> IntentResult:
        """Sync the catalog from its source (if configured) and reload it."""
        async def action() -> IntentResult:
            synced = None
            if self._catalog_sync is not None:
                synced = await self._catalog_sync.sync()
            await self.load_catalog()
            self._publish({"type": "catalog_changed", "count": len(self._catalog)})
            if synced is None:
                return IntentResult(True, "ok", f"{len(self._catalog)} tracks in catalog")
            return IntentResult(True, "ok", f"{synced} tracks synced")

        return await self._run_intent("refresh_catalog", action)

    # =====================================================================
    # INTENTS
    # =====================================================================

    async def play(self) -> IntentResult:
        """Play the current track, initializing the queue if needed."""
        return await self._run_intent("play", self._play_current)

    async def pause(self) -> IntentResult:
        async def action() -> IntentResult:
            await self._session.connect_with_retry()
            await self._session.pause()
            booth.paused()
            return IntentResult(True, "ok", "Paused")

        return await self._run_intent("pause", action)

    async def resume(self) -> IntentResult:
        async def action() -> IntentResult:
            await self._session.connect_with_retry()
            await self._session.resume()
            booth.resumed()
            return IntentResult(True, "ok", "Resumed")

        return await self._run_intent("resume", action)

    async def next(self) -> IntentResult:
        return await self._run_intent("next", lambda: self._move(1))

    async def previous(self) -> IntentResult:
        return await self._run_intent("previous", lambda: self._move(-1))

    async def jump_to(self, position: int) -> IntentResult:
        return await self._run_intent("jump", lambda: self._move(position))

    async def shuffle_upcoming(self) -> IntentResult:
        async def action() -> IntentResult:
            await self._engine.ensure_initialized(self._catalog)
            await self._engine.shuffle_upcoming(self._catalog)
            upcoming = sum(1 for s in self._engine.window if s.position > 0)
            booth.shuffled(upcoming)
            self._publish({"type": "queue_changed"})
            return IntentResult(True, "ok", f"Shuffled {upcoming} upcoming tracks")

        return await self._run_intent("shuffle", action)

    async def _run_intent(self, name: str, action: Callable[[], Awaitable[IntentResult]]) -> IntentResult:
        async with self._intent_lock:
            try:
                return await action()
            except PlaybackError as e:
                logger.warning(f"Intent '{name}' failed ({e.status}): {e}")
                return IntentResult(False, e.status, str(e))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Intent '{name}' failed unexpectedly")
                booth.error(f"{name}: {e}")
                return IntentResult(False, "error", f"Unexpected error: {e}")

    async def _play_current(self) -> IntentResult:
        await self._session.connect_with_retry()
        await self._engine.ensure_initialized(self._catalog)
        track_id = self._engine.current_track_id
        track = self._by_id.get(track_id) if track_id else None
        if track is None:
            raise TrackNotFound(f"Current track {track_id} is not in the catalog")

        await self._session.play(track.uri)
        self._mark_commanded(track.id)

        try:
            await self._ledger.record_play(track.id)
        except Exception:
            logger.exception(f"Failed to record play for {track.id}")

        booth.track_change(track.artist, track.title)
        self._publish({"type": "queue_changed"})
        return IntentResult(True, "ok", f"Playing {track.artist} - {track.title}", track)

    async def _move(self, target_pos: int) -> IntentResult:
        await self._session.connect_with_retry()
        await self._engine.ensure_initialized(self._catalog)

        pending = await self._engine.plan_move(target_pos, self._catalog)
        if pending is None:
            raise NoSuchQueuePosition(f"No track at queue position {target_pos}")

        partial = self._stopped_before_halfway(pending)
        position_ms = self.last_player_state.position_ms if partial else None

        await self._session.play(pending.track.uri)
        self._mark_commanded(pending.track.id)

        if not await self._engine.commit(pending):
            return IntentResult(False, "queue_changed", "Queue changed while the command was in flight")

        await self._apply_accounting(pending, partial, position_ms)

        track = pending.track
        booth.track_change(track.artist, track.title)
        self._publish({"type": "queue_changed"})
        return IntentResult(True, "ok", f"Playing {track.artist} - {track.title}", track)

    def _mark_commanded(self, track_id: str) -> None:
        self._last_reported_id = track_id
        self._commanded_id = track_id
        self._commanded_at = self._clock()

    def _stopped_before_halfway(self, pending: PendingMove) -> bool:
        """Whether the outgoing track counts as a partial play."""
        if pending.target_position <= 0 or pending.previous_track_id is None:
            return False
        state = self.last_player_state
        if state is None or state.track_id != pending.previous_track_id:
            return False
        duration = state.duration_ms
        if not duration:
            previous = self._by_id.get(pending.previous_track_id)
            duration = previous.duration_ms if previous else None
        if not duration:
            return False
        return state.position_ms < duration / 2

    async def _apply_accounting(self, pending: PendingMove, partial: bool, position_ms: int | None) -> None:
        now = time.time()
        try:
            if partial:
                await self._ledger.increment_by(pending.previous_track_id, PARTIAL_PLAY_WEIGHT, now)
                await self._ledger.add_history(
                    pending.previous_track_id, now, was_skipped=True, playback_position_ms=position_ms,
                )
            if pending.passed_over_ids:
                await self._ledger.increment_by(pending.passed_over_ids, SKIP_WEIGHT, now)
                await self._ledger.add_skipped_history(pending.passed_over_ids, now)
            await self._ledger.record_play(pending.track.id, now)
        except Exception:
            logger.exception(f"Failed to update statistics for move to {pending.track.id}")
            return

        if partial or pending.passed_over_ids:
            booth.skipped(len(pending.passed_over_ids), partial=partial)

    # =====================================================================
    # READ ACCESS
    # =====================================================================

    async def snapshot(self) -> list[SnapshotEntry]:
        return await self._engine.snapshot()

    async def current_track(self) -> Track | None:
        return await self._engine.current_track()

    def is_connected(self) -> bool:
        return self._session.is_connected

    async def recent_history(self, limit: int | None = None) -> list[HistoryEntry]:
        return await self._ledger.recent_history(limit)

    async def track_statistics(self, track_id: str) -> tuple[Track, Statistics] | None:
        """Catalog track with its ledger row, or None if it is not in the catalog."""
        track = self._by_id.get(track_id)
        if track is None:
            return None
        stats = await self._ledger.statistics(track_id)
        return track, stats or Statistics(track_id)

    async def clear_history(self) -> IntentResult:
        async def action() -> IntentResult:
            await self._ledger.clear_history()
            self._publish({"type": "history_cleared"})
            return IntentResult(True, "ok", "History cleared")

        return await self._run_intent("clear_history", action)

    # =====================================================================
    # PLAYER WATCHER
    # =====================================================================

    async def _watch_loop(self) -> None:
        """Consume the player-state stream, resubscribing after it ends."""
        while self._running:
            try:
                await self._session.connect_with_retry()
            except PlaybackError as e:
                logger.warning(f"Player watcher could not connect: {e}")
            else:
                stream = self._session.player_state_stream()
                try:
                    async for item in stream:
                        if not item.ok:
                            booth.remote_error(str(item.error))
                            break
                        try:
                            await self._on_player_state(item.state)
                        except Exception:
                            logger.exception("Error handling player state")
                finally:
                    await stream.aclose()

            if not self._running:
                break
            await self._sleep(self.resubscribe_delay)

    async def _on_player_state(self, state: PlayerState) -> None:
        """Remember the state and follow track changes made on the player.

        Until the player confirms the last play command, reports of any other
        track are late polls and are dropped for `command_grace` seconds.
        """
        track_id = state.track_id
        if self._commanded_id is not None:
            if track_id == self._commanded_id:
                self._commanded_id = None
            elif self._clock() - self._commanded_at < self.command_grace:
                logger.debug(f"Ignoring late player state for {track_id}, waiting for {self._commanded_id}")
                return
            else:
                logger.info(f"Player never confirmed {self._commanded_id}, following it to {track_id}")
                self._commanded_id = None

        self.last_player_state = state
        self._publish({"type": "player_state", "state": player_state_to_dict(state)})

        if not track_id or track_id == self._last_reported_id:
            return
        self._last_reported_id = track_id

        async with self._intent_lock:
            # an intent may have issued a new play while we waited
            if self._commanded_id is not None and track_id != self._commanded_id:
                return
            if track_id == self._engine.current_track_id:
                return
            position = self._engine.find_position(track_id)
            if position is None:
                logger.info(f"Player switched to {track_id}, which is not in the queue window")
                return
            try:
                track = await self._engine.move_to_position(position, self._catalog)
            except PlaybackError as e:
                logger.warning(f"Could not follow player to {track_id}: {e}")
                return

        if track is not None:
            logger.info(f"Queue followed player to position {position}: {track.id}")
            booth.track_sync(track.artist, track.title)
            self._publish({"type": "queue_changed"})

    # =====================================================================
    # EVENT SUBSCRIBERS (SSE)
    # =====================================================================

    def subscribe(self) -> asyncio.Queue:
        """Return a queue that receives player and queue change messages."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=256)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        """Remove a subscriber queue."""
        try:
            self._subscribers.remove(queue)
        except ValueError:
            pass

    def _publish(self, message: dict) -> None:
        """Push a message to all subscriber queues (non-blocking)."""
        for queue in self._subscribers:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                # Drop oldest message to prevent backpressure blocking
                try:
                    queue.get_nowait()
                    queue.put_nowait(message)
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    pass
