"""
PlayDeck Statistics Ledger

Per-track play counts and last-activity timestamps, plus the capped audit
history of plays and skips.

Weighting:
  play          +1
  full skip     +2  (twice an ordinary play, so skipped tracks resurface later)
  partial play  +1  on top of the play already recorded when it started

Unknown track ids are ignored. Nothing here ever raises for bookkeeping
reasons other than a negative delta.
"""

import logging
import time
from typing import Iterable

from playdeck.models import HistoryEntry, Statistics
from playdeck.store import LibraryStore

logger = logging.getLogger(__name__)

PLAY_WEIGHT = 1
SKIP_WEIGHT = 2
PARTIAL_PLAY_WEIGHT = 1
DEFAULT_HISTORY_SIZE = 20


class StatisticsLedger:
    """Play-count bookkeeping backed by the library store."""

    def __init__(self, store: LibraryStore, history_size: int = DEFAULT_HISTORY_SIZE):
        self._store = store
        self.history_size = history_size

    async def ensure_tracked(self, track_ids: Iterable[str]) -> int:
        """Create zeroed records for tracks seen for the first time."""
        created = await self._store.ensure_statistics(track_ids)
        if created:
            logger.info(f"Initialized statistics for {created} new track(s)")
        return created

    async def record_play(self, track_id: str, now: float | None = None) -> None:
        """Count a play and append it to the audit history."""
        now = now if now is not None else time.time()
        await self._store.increment_play_count([track_id], PLAY_WEIGHT, now)
        await self.add_history(track_id, now, was_skipped=False)

    async def record_skip(self, track_id: str, now: float | None = None) -> None:
        await self.record_skips([track_id], now)

    async def record_skips(self, track_ids: Iterable[str], now: float | None = None) -> None:
        """Apply the full skip penalty to each track."""
        await self.increment_by(list(track_ids), SKIP_WEIGHT, now)

    async def increment_by(
        self,
        track_ids: str | Iterable[str],
        delta: int,
        now: float | None = None,
    ) -> int:
        """Add `delta` to one or more tracks' play counts.

        Returns the number of statistics rows updated.
        """
        if delta < 0:
            raise ValueError(f"play count delta must be non-negative, got {delta}")
        if isinstance(track_ids, str):
            track_ids = [track_ids]
        ids = list(track_ids)
        if not ids or delta == 0:
            return 0
        now = now if now is not None else time.time()
        updated = await self._store.increment_play_count(ids, delta, now)
        if updated < len(set(ids)):
            logger.debug(f"increment_by: {len(set(ids)) - updated} unknown track id(s) ignored")
        return updated

    async def least_played(self, limit: int, exclude_ids: Iterable[str] = ()) -> list[str]:
        return await self._store.least_played(limit, exclude_ids)

    async def play_counts(self, track_ids: Iterable[str]) -> dict[str, int]:
        return await self._store.get_play_counts(track_ids)

    async def play_count(self, track_id: str) -> int:
        stats = await self._store.get_statistics(track_id)
        return stats.play_count if stats else 0

    async def statistics(self, track_id: str) -> Statistics | None:
        return await self._store.get_statistics(track_id)

    # =====================================================================
    # AUDIT HISTORY
    # =====================================================================

    async def add_history(
        self,
        track_id: str,
        now: float,
        was_skipped: bool = False,
        playback_position_ms: int | None = None,
    ) -> None:
        await self._store.add_history(
            [HistoryEntry(track_id, now, was_skipped, playback_position_ms)],
            keep=self.history_size,
        )

    async def add_skipped_history(
        self,
        track_ids: Iterable[str],
        now: float,
        playback_position_ms: int | None = None,
    ) -> None:
        entries = [
            HistoryEntry(tid, now, True, playback_position_ms)
            for tid in track_ids
        ]
        await self._store.add_history(entries, keep=self.history_size)

    async def recent_history(self, limit: int | None = None) -> list[HistoryEntry]:
        return await self._store.recent_history(limit or self.history_size)

    async def clear_history(self) -> None:
        """Drop the audit history. Play counts are kept."""
        await self._store.clear_history()
        logger.info("Playback history cleared")
