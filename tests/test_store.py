"""Tests for LibraryStore — catalog, statistics, queue window, history."""

import sqlite3
from pathlib import Path

import pytest

from playdeck.models import HistoryEntry, QueueSlot, Track
from playdeck.store import LibraryStore

from tests.conftest import make_tracks


# =========================================================================
# TRACKS
# =========================================================================


async def test_upsert_and_get_tracks_in_catalog_order(store):
    tracks = make_tracks(5)
    assert await store.upsert_tracks(tracks) == 5

    loaded = await store.get_tracks()
    assert [t.id for t in loaded] == ["t0", "t1", "t2", "t3", "t4"]
    assert loaded[0] == tracks[0]


async def test_upsert_updates_fields_but_keeps_order(store):
    await store.upsert_tracks(make_tracks(3))
    renamed = Track(id="t0", title="Renamed", artist="New", album="B", uri="spotify:track:t0")
    await store.upsert_tracks([renamed])

    loaded = await store.get_tracks()
    assert [t.id for t in loaded] == ["t0", "t1", "t2"]
    assert loaded[0].title == "Renamed"
    assert await store.track_count() == 3


async def test_get_tracks_by_ids_skips_unknown(store):
    await store.upsert_tracks(make_tracks(3))
    found = await store.get_tracks_by_ids(["t1", "nope"])
    assert set(found) == {"t1"}
    assert await store.get_track("nope") is None


# =========================================================================
# STATISTICS
# =========================================================================


async def test_ensure_statistics_creates_only_missing(store):
    assert await store.ensure_statistics(["a", "b"]) == 2
    assert await store.ensure_statistics(["a", "b", "c"]) == 1

    stats = await store.get_statistics("c")
    assert stats.play_count == 0
    assert stats.last_activity_at is None


async def test_increment_play_count_ignores_unknown(store):
    await store.ensure_statistics(["a"])
    updated = await store.increment_play_count(["a", "ghost"], 2, 123.0)
    assert updated == 1

    stats = await store.get_statistics("a")
    assert stats.play_count == 2
    assert stats.last_activity_at == 123.0
    assert await store.get_statistics("ghost") is None


async def test_least_played_excludes_and_orders(store):
    await store.ensure_statistics(["a", "b", "c", "d"])
    await store.increment_play_count(["a"], 1, 10.0)

    assert await store.least_played(10) == ["b", "c", "d", "a"]
    assert await store.least_played(10, {"b", "d"}) == ["c", "a"]
    assert await store.least_played(2) == ["b", "c"]
    assert await store.least_played(0) == []


# =========================================================================
# QUEUE WINDOW
# =========================================================================


async def test_replace_queue_replaces_whole_window(store):
    await store.replace_queue([QueueSlot(0, "a", 1.0), QueueSlot(1, "b", 1.0)])
    await store.replace_queue([QueueSlot(-1, "a", 2.0), QueueSlot(0, "b", 2.0)])

    slots = await store.load_queue()
    assert [(s.position, s.track_id) for s in slots] == [(-1, "a"), (0, "b")]


async def test_replace_queue_rolls_back_on_duplicate_position(store):
    await store.replace_queue([QueueSlot(0, "a", 1.0)])
    with pytest.raises(sqlite3.IntegrityError):
        await store.replace_queue([QueueSlot(0, "b", 2.0), QueueSlot(0, "c", 2.0)])

    slots = await store.load_queue()
    assert [(s.position, s.track_id) for s in slots] == [(0, "a")]


async def test_queue_survives_reopen(tmp_path: Path):
    db = tmp_path / "deck.db"
    first = LibraryStore(db)
    await first.open()
    await first.replace_queue([QueueSlot(0, "a", 1.0), QueueSlot(1, "b", 1.0)])
    await first.close()

    second = LibraryStore(db)
    await second.open()
    slots = await second.load_queue()
    await second.close()
    assert [s.track_id for s in slots] == ["a", "b"]


# =========================================================================
# PLAYBACK HISTORY
# =========================================================================


async def test_history_trimmed_to_newest(store):
    entries = [HistoryEntry(f"t{i}", float(i)) for i in range(25)]
    await store.add_history(entries, keep=20)

    recent = await store.recent_history(50)
    assert len(recent) == 20
    assert recent[0].track_id == "t24"
    assert recent[-1].track_id == "t5"


async def test_history_round_trips_skip_fields(store):
    await store.add_history([HistoryEntry("a", 5.0, was_skipped=True, playback_position_ms=1200)])
    (entry,) = await store.recent_history()
    assert entry.was_skipped is True
    assert entry.playback_position_ms == 1200

    await store.clear_history()
    assert await store.recent_history() == []
