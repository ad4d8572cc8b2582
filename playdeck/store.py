"""
PlayDeck Library Store

SQLite-backed persistence for the catalog, play statistics, the queue
window and the playback audit history.

Tables:
- tracks: catalog records (insertion order = catalog order)
- track_statistics: play counts and last activity per track
- queue_items: the current queue window (replaced as a whole)
- playback_history: append-only audit log, trimmed to the newest N rows
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Iterable

import aiosqlite

from playdeck.models import HistoryEntry, QueueSlot, Statistics, Track

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tracks (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    artist      TEXT NOT NULL,
    album       TEXT NOT NULL,
    image_url   TEXT,
    duration_ms INTEGER,
    uri         TEXT NOT NULL,
    fetched_at  REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS track_statistics (
    track_id          TEXT PRIMARY KEY,
    play_count        INTEGER NOT NULL DEFAULT 0,
    last_activity_at  REAL
);

CREATE TABLE IF NOT EXISTS queue_items (
    position     INTEGER PRIMARY KEY,
    track_id     TEXT NOT NULL,
    inserted_at  REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS playback_history (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id              TEXT NOT NULL,
    played_at             REAL NOT NULL,
    was_skipped           INTEGER NOT NULL DEFAULT 0,
    playback_position_ms  INTEGER
);

CREATE INDEX IF NOT EXISTS idx_stats_shuffle ON track_statistics(play_count, last_activity_at);
CREATE INDEX IF NOT EXISTS idx_history_played ON playback_history(played_at);
"""


class LibraryStore:
    """
    Async SQLite store for PlayDeck.

    Usage:
        store = LibraryStore(Path("data/playdeck.db"))
        await store.open()

        await store.upsert_tracks(tracks)
        await store.increment_play_count(["id1"], 1, time.time())
        await store.replace_queue(slots)

        await store.close()
    """

    def __init__(self, db_path: Path):
        self._db: aiosqlite.Connection | None = None
        self._db_path = db_path
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        """Open the database and ensure the schema exists."""
        if str(self._db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA_SQL)
        await self._db.commit()
        logger.info(f"Library store opened: {self._db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Library store closed")

    # =========================================================================
    # TRACKS
    # =========================================================================

    async def upsert_tracks(self, tracks: Iterable[Track]) -> int:
        """Insert or update catalog tracks. Existing rows keep their catalog order."""
        rows = [
            (t.id, t.title, t.artist, t.album, t.image_url, t.duration_ms, t.uri, t.fetched_at)
            for t in tracks
        ]
        if not rows:
            return 0
        async with self._lock:
            await self._db.executemany(
                """INSERT INTO tracks
                (id, title, artist, album, image_url, duration_ms, uri, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    artist = excluded.artist,
                    album = excluded.album,
                    image_url = excluded.image_url,
                    duration_ms = excluded.duration_ms,
                    uri = excluded.uri,
                    fetched_at = excluded.fetched_at""",
                rows,
            )
            await self._db.commit()
        return len(rows)

    async def get_tracks(self) -> list[Track]:
        """All catalog tracks in catalog order."""
        tracks = []
        async with self._db.execute(
            "SELECT id, title, artist, album, image_url, duration_ms, uri, fetched_at "
            "FROM tracks ORDER BY rowid"
        ) as cursor:
            async for row in cursor:
                tracks.append(_row_to_track(row))
        return tracks

    async def get_tracks_by_ids(self, track_ids: Iterable[str]) -> dict[str, Track]:
        """Batch lookup; unknown ids are absent from the result."""
        ids = list(track_ids)
        if not ids:
            return {}
        result = {}
        async with self._db.execute(
            "SELECT id, title, artist, album, image_url, duration_ms, uri, fetched_at "
            "FROM tracks WHERE id IN (SELECT value FROM json_each(?))",
            (json.dumps(ids),),
        ) as cursor:
            async for row in cursor:
                result[row["id"]] = _row_to_track(row)
        return result

    async def get_track(self, track_id: str) -> Track | None:
        found = await self.get_tracks_by_ids([track_id])
        return found.get(track_id)

    async def track_count(self) -> int:
        async with self._db.execute("SELECT COUNT(*) AS n FROM tracks") as cursor:
            row = await cursor.fetchone()
            return row["n"]

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def ensure_statistics(self, track_ids: Iterable[str]) -> int:
        """Create zeroed statistics rows for ids that have none. Returns rows created."""
        rows = [(tid,) for tid in track_ids]
        if not rows:
            return 0
        async with self._lock:
            before = self._db.total_changes
            await self._db.executemany(
                "INSERT OR IGNORE INTO track_statistics (track_id, play_count, last_activity_at) "
                "VALUES (?, 0, NULL)",
                rows,
            )
            await self._db.commit()
            return self._db.total_changes - before

    async def increment_play_count(
        self, track_ids: Iterable[str], delta: int, timestamp: float
    ) -> int:
        """Atomically add `delta` to each track's play count. Unknown ids are skipped."""
        ids = list(track_ids)
        if not ids:
            return 0
        async with self._lock:
            cursor = await self._db.execute(
                "UPDATE track_statistics "
                "SET play_count = play_count + ?, last_activity_at = ? "
                "WHERE track_id IN (SELECT value FROM json_each(?))",
                (delta, timestamp, json.dumps(ids)),
            )
            await self._db.commit()
            return cursor.rowcount or 0

    async def least_played(self, limit: int, exclude_ids: Iterable[str] = ()) -> list[str]:
        """Track ids ordered least played first, never-played before oldest activity.

        Ties fall back to catalog sync order (statistics rowid).
        """
        if limit <= 0:
            return []
        ids = []
        async with self._db.execute(
            "SELECT track_id FROM track_statistics "
            "WHERE track_id NOT IN (SELECT value FROM json_each(?)) "
            "ORDER BY play_count ASC, COALESCE(last_activity_at, 0) ASC, rowid ASC "
            "LIMIT ?",
            (json.dumps(sorted(set(exclude_ids))), limit),
        ) as cursor:
            async for row in cursor:
                ids.append(row["track_id"])
        return ids

    async def get_play_counts(self, track_ids: Iterable[str]) -> dict[str, int]:
        ids = list(track_ids)
        if not ids:
            return {}
        counts = {}
        async with self._db.execute(
            "SELECT track_id, play_count FROM track_statistics "
            "WHERE track_id IN (SELECT value FROM json_each(?))",
            (json.dumps(ids),),
        ) as cursor:
            async for row in cursor:
                counts[row["track_id"]] = row["play_count"]
        return counts

    async def get_statistics(self, track_id: str) -> Statistics | None:
        async with self._db.execute(
            "SELECT track_id, play_count, last_activity_at FROM track_statistics "
            "WHERE track_id = ?",
            (track_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return Statistics(
            track_id=row["track_id"],
            play_count=row["play_count"],
            last_activity_at=row["last_activity_at"],
        )

    # =========================================================================
    # QUEUE WINDOW
    # =========================================================================

    async def load_queue(self) -> list[QueueSlot]:
        """The persisted window ordered by position."""
        slots = []
        async with self._db.execute(
            "SELECT position, track_id, inserted_at FROM queue_items ORDER BY position"
        ) as cursor:
            async for row in cursor:
                slots.append(QueueSlot(
                    position=row["position"],
                    track_id=row["track_id"],
                    inserted_at=row["inserted_at"],
                ))
        return slots

    async def replace_queue(self, slots: Iterable[QueueSlot]) -> None:
        """Replace the whole window in a single transaction."""
        rows = [(s.position, s.track_id, s.inserted_at) for s in slots]
        async with self._lock:
            try:
                await self._db.execute("DELETE FROM queue_items")
                if rows:
                    await self._db.executemany(
                        "INSERT INTO queue_items (position, track_id, inserted_at) VALUES (?, ?, ?)",
                        rows,
                    )
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                raise

    # =========================================================================
    # PLAYBACK HISTORY
    # =========================================================================

    async def add_history(self, entries: Iterable[HistoryEntry], keep: int = 20) -> None:
        """Append audit entries and trim to the newest `keep` rows."""
        rows = [
            (e.track_id, e.played_at, int(e.was_skipped), e.playback_position_ms)
            for e in entries
        ]
        if not rows:
            return
        async with self._lock:
            await self._db.executemany(
                "INSERT INTO playback_history (track_id, played_at, was_skipped, playback_position_ms) "
                "VALUES (?, ?, ?, ?)",
                rows,
            )
            await self._db.execute(
                "DELETE FROM playback_history WHERE id NOT IN ("
                "SELECT id FROM playback_history ORDER BY played_at DESC, id DESC LIMIT ?)",
                (keep,),
            )
            await self._db.commit()

    async def recent_history(self, limit: int = 20) -> list[HistoryEntry]:
        """Most recent audit entries, newest first."""
        entries = []
        async with self._db.execute(
            "SELECT track_id, played_at, was_skipped, playback_position_ms "
            "FROM playback_history ORDER BY played_at DESC, id DESC LIMIT ?",
            (limit,),
        ) as cursor:
            async for row in cursor:
                entries.append(HistoryEntry(
                    track_id=row["track_id"],
                    played_at=row["played_at"],
                    was_skipped=bool(row["was_skipped"]),
                    playback_position_ms=row["playback_position_ms"],
                ))
        return entries

    async def clear_history(self) -> None:
        async with self._lock:
            await self._db.execute("DELETE FROM playback_history")
            await self._db.commit()


def _row_to_track(row: aiosqlite.Row) -> Track:
    return Track(
        id=row["id"],
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        image_url=row["image_url"],
        duration_ms=row["duration_ms"],
        uri=row["uri"],
        fetched_at=row["fetched_at"],
    )
