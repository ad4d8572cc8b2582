"""Tests for least-played selection and the sequential wrap-around fill."""

from playdeck.playback.shuffle import sequential_fill

from tests.conftest import make_tracks


async def test_select_least_played_first(ledger, selector, catalog):
    await ledger.record_play("t0")
    await ledger.record_play("t1")

    picked = await selector.select(3, set(), catalog)
    assert [t.id for t in picked] == ["t2", "t3", "t4"]


async def test_select_never_returns_excluded(selector, catalog):
    excluded = {f"t{i}" for i in range(0, 40, 2)}
    picked = await selector.select(30, excluded, catalog)

    assert len(picked) == 20
    assert not {t.id for t in picked} & excluded
    assert len({t.id for t in picked}) == len(picked)


async def test_select_falls_back_to_catalog_order(store, ledger, selector):
    tracks = make_tracks(6)
    await store.upsert_tracks(tracks)
    # Only t0 and t1 have statistics yet
    await ledger.ensure_tracked(["t0", "t1"])

    picked = await selector.select(4, {"t3"}, tracks, anchor_index=3)
    assert [t.id for t in picked] == ["t0", "t1", "t4", "t5"]


async def test_select_terminates_on_small_catalog(store, ledger, selector):
    tracks = make_tracks(3)
    await store.upsert_tracks(tracks)

    picked = await selector.select(10, set(), tracks)
    assert sorted(t.id for t in picked) == ["t0", "t1", "t2"]


async def test_select_edge_cases(selector, catalog):
    assert await selector.select(0, set(), catalog) == []
    assert await selector.select(5, set(), []) == []


def test_sequential_fill_wraps_from_anchor():
    tracks = make_tracks(5)
    filled = sequential_fill(tracks, set(), 3, anchor_index=3)
    assert [t.id for t in filled] == ["t4", "t0", "t1"]


def test_sequential_fill_skips_picked_and_stops_after_one_circuit():
    tracks = make_tracks(4)
    filled = sequential_fill(tracks, {"t1", "t2"}, 10, anchor_index=0)
    assert [t.id for t in filled] == ["t3", "t0"]
