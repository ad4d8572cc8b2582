"""
PlayDeck Queue Engine

Owns the queue window: up to 20 history slots, the current slot and up to
30 upcoming slots, all keyed by position relative to the current track.

Architecture:
  The window is an immutable tuple of QueueSlot, replaced as a whole on
  every mutation. Writers serialize on an asyncio.Lock, persist the new
  window through LibraryStore.replace_queue() (one transaction) and only
  then swap the reference, so readers never see a partial window.

  Moves are split into plan_move() and commit() so the orchestrator can
  compute the next window, dispatch the play command, and commit only if
  the command succeeded.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Sequence

from playdeck.errors import EmptyCatalog, TrackNotFound
from playdeck.models import QueueSlot, SnapshotEntry, Track
from playdeck.playback.ledger import StatisticsLedger
from playdeck.playback.shuffle import ShuffleSelector
from playdeck.store import LibraryStore

logger = logging.getLogger(__name__)

HISTORY_SIZE = 20
UPCOMING_SIZE = 30

Window = tuple[QueueSlot, ...]


@dataclass(frozen=True)
class PendingMove:
    """A computed but not yet committed queue move."""
    base: Window
    window: Window
    track: Track
    target_position: int
    previous_track_id: str | None
    # Tracks strictly between the old current slot and a forward target
    passed_over_ids: tuple[str, ...] = ()


class QueueEngine:
    """
    Position-indexed queue window over the catalog.

    Usage:
        engine = QueueEngine(store, ledger, ShuffleSelector(ledger))
        await engine.load()
        await engine.ensure_initialized(catalog)
        track = await engine.move_to_next(catalog)
    """

    def __init__(
        self,
        store: LibraryStore,
        ledger: StatisticsLedger,
        selector: ShuffleSelector,
        history_size: int = HISTORY_SIZE,
        upcoming_size: int = UPCOMING_SIZE,
    ):
        self._store = store
        self._ledger = ledger
        self._selector = selector
        self.history_size = history_size
        self.upcoming_size = upcoming_size

        self._window: Window = ()
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        """Restore the persisted window."""
        slots = await self._store.load_queue()
        self._window = tuple(sorted(slots, key=lambda s: s.position))
        logger.info(f"Queue window loaded: {len(self._window)} slot(s)")

    # =====================================================================
    # READ ACCESS
    # =====================================================================

    @property
    def window(self) -> Window:
        """The current window (immutable)."""
        return self._window

    @property
    def is_empty(self) -> bool:
        return not self._window

    def slot_at(self, position: int) -> QueueSlot | None:
        for slot in self._window:
            if slot.position == position:
                return slot
        return None

    @property
    def current_track_id(self) -> str | None:
        slot = self.slot_at(0)
        return slot.track_id if slot else None

    def find_position(self, track_id: str) -> int | None:
        """Position of a track in the window, if present."""
        for slot in self._window:
            if slot.track_id == track_id:
                return slot.position
        return None

    async def current_track(self) -> Track | None:
        track_id = self.current_track_id
        if track_id is None:
            return None
        return await self._store.get_track(track_id)

    async def snapshot(self) -> list[SnapshotEntry]:
        """Join the window against the catalog and the ledger as of now."""
        window = self._window
        ids = [s.track_id for s in window]
        tracks = await self._store.get_tracks_by_ids(ids)
        counts = await self._ledger.play_counts(ids)
        entries = []
        for slot in window:
            track = tracks.get(slot.track_id)
            if track is None:
                continue
            entries.append(SnapshotEntry(slot.position, track, counts.get(slot.track_id, 0)))
        return entries

    # =====================================================================
    # INITIALIZATION
    # =====================================================================

    async def initialize(self, catalog: Sequence[Track]) -> None:
        """Reset the window: catalog[0] current, upcoming from the selector."""
        async with self._lock:
            await self._initialize_unlocked(catalog)

    async def ensure_initialized(self, catalog: Sequence[Track]) -> bool:
        """Initialize only if the window is empty. Returns True if it did."""
        async with self._lock:
            if self._window:
                return False
            await self._initialize_unlocked(catalog)
            return True

    async def _initialize_unlocked(self, catalog: Sequence[Track]) -> None:
        if not catalog:
            raise EmptyCatalog()
        now = time.time()
        current = catalog[0]
        upcoming = await self._selector.select(
            self.upcoming_size, {current.id}, catalog, anchor_index=0,
        )
        window = [QueueSlot(0, current.id, now)]
        window.extend(QueueSlot(i + 1, t.id, now) for i, t in enumerate(upcoming))
        await self._replace_unlocked(tuple(window))
        logger.info(f"Queue initialized: {current.artist} - {current.title} + {len(upcoming)} upcoming")

    # =====================================================================
    # MOVES
    # =====================================================================

    async def plan_move(self, target_pos: int, catalog: Sequence[Track]) -> PendingMove | None:
        """Compute the window in which `target_pos` becomes current.

        Returns None if no slot has that position. Nothing is committed.
        """
        base = self._window
        target = next((s for s in base if s.position == target_pos), None)
        if target is None:
            return None

        track = next((t for t in catalog if t.id == target.track_id), None)
        if track is None:
            raise TrackNotFound(f"Queued track {target.track_id} is not in the catalog")

        before = sorted((s for s in base if s.position < target_pos), key=lambda s: s.position)
        after = sorted((s for s in base if s.position > target_pos), key=lambda s: s.position)
        now = time.time()

        # Nearest history first: -1 is the slot just before the target
        history = list(reversed(before[-self.history_size:])) if self.history_size > 0 else []
        slots = [QueueSlot(-(i + 1), s.track_id, now) for i, s in enumerate(history)]
        slots.append(QueueSlot(0, target.track_id, now))

        # Everything after the target stays, in order
        upcoming_ids = [s.track_id for s in after[: self.upcoming_size]]
        fill_needed = self.upcoming_size - len(upcoming_ids)
        if fill_needed > 0:
            exclude = {s.track_id for s in slots} | set(upcoming_ids)
            fill = await self._selector.select(
                fill_needed, exclude, catalog, anchor_index=_catalog_index(catalog, target.track_id),
            )
            upcoming_ids.extend(t.id for t in fill)
        slots.extend(QueueSlot(i + 1, tid, now) for i, tid in enumerate(upcoming_ids))

        previous = next((s for s in base if s.position == 0), None)
        passed_over = ()
        if previous is not None and target_pos > 0:
            passed_over = tuple(s.track_id for s in before if 0 < s.position < target_pos)

        return PendingMove(
            base=base,
            window=tuple(slots),
            track=track,
            target_position=target_pos,
            previous_track_id=previous.track_id if previous else None,
            passed_over_ids=passed_over,
        )

    async def commit(self, pending: PendingMove) -> bool:
        """Apply a planned move unless the window changed since it was planned."""
        async with self._lock:
            return await self._commit_unlocked(pending)

    async def _commit_unlocked(self, pending: PendingMove) -> bool:
        if self._window is not pending.base:
            logger.warning(
                f"Discarding stale queue move to position {pending.target_position}"
            )
            return False
        await self._replace_unlocked(pending.window)
        return True

    async def move_to_position(self, target_pos: int, catalog: Sequence[Track]) -> Track | None:
        """Make the slot at `target_pos` current. None if there is no such slot."""
        async with self._lock:
            pending = await self.plan_move(target_pos, catalog)
            if pending is None:
                return None
            await self._commit_unlocked(pending)
            return pending.track

    async def move_to_next(self, catalog: Sequence[Track]) -> Track | None:
        return await self.move_to_position(1, catalog)

    async def move_to_previous(self, catalog: Sequence[Track]) -> Track | None:
        return await self.move_to_position(-1, catalog)

    async def jump_to(self, position: int, catalog: Sequence[Track]) -> Track | None:
        return await self.move_to_position(position, catalog)

    # =====================================================================
    # SHUFFLE
    # =====================================================================

    async def shuffle_upcoming(self, catalog: Sequence[Track]) -> bool:
        """Regenerate the upcoming slots, keeping history and current."""
        async with self._lock:
            if not self._window:
                return False
            kept = [s for s in self._window if s.position <= 0]
            exclude = {s.track_id for s in kept}
            current_id = self.current_track_id
            anchor = _catalog_index(catalog, current_id) if current_id else 0
            upcoming = await self._selector.select(self.upcoming_size, exclude, catalog, anchor)
            now = time.time()
            window = kept + [QueueSlot(i + 1, t.id, now) for i, t in enumerate(upcoming)]
            await self._replace_unlocked(tuple(window))
            logger.info(f"Upcoming queue reshuffled ({len(upcoming)} tracks)")
            return True

    async def _replace_unlocked(self, window: Window) -> None:
        """Persist then publish a new window (caller must hold the lock)."""
        ordered = tuple(sorted(window, key=lambda s: s.position))
        await self._store.replace_queue(ordered)
        self._window = ordered


def _catalog_index(catalog: Sequence[Track], track_id: str) -> int:
    for i, track in enumerate(catalog):
        if track.id == track_id:
            return i
    return 0
