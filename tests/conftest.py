"""Shared fixtures for PlayDeck tests."""

import asyncio
from pathlib import Path

import pytest

from playdeck.models import PlayerState, Track
from playdeck.playback.ledger import StatisticsLedger
from playdeck.playback.orchestrator import SessionOrchestrator
from playdeck.playback.queue_engine import QueueEngine
from playdeck.playback.shuffle import ShuffleSelector
from playdeck.remote.session import RemoteSessionManager
from playdeck.store import LibraryStore


def make_tracks(count: int, prefix: str = "t") -> list[Track]:
    """Catalog tracks t0..t{count-1}, each 200s long."""
    return [
        Track(
            id=f"{prefix}{i}",
            title=f"Song {i}",
            artist=f"Artist {i}",
            album="Album",
            uri=f"spotify:track:{prefix}{i}",
            duration_ms=200_000,
            fetched_at=1700000000.0,
        )
        for i in range(count)
    ]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeSubscription:
    def __init__(self, on_state, on_error):
        self.on_state = on_state
        self.on_error = on_error
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTransport:
    """In-memory RemoteTransport recording every call."""

    def __init__(self, open_failures: int = 0):
        self.open_failures = open_failures
        self.open_calls = 0
        self.close_calls = 0
        self.commands: list[tuple] = []
        self.fail_commands: set[str] = set()
        self.subscriptions: list[FakeSubscription] = []

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_calls <= self.open_failures:
            raise ConnectionError("player offline")

    async def close(self) -> None:
        self.close_calls += 1

    async def play(self, uri: str) -> None:
        self._command("play", uri)

    async def pause(self) -> None:
        self._command("pause")

    async def resume(self) -> None:
        self._command("resume")

    def _command(self, name: str, *args) -> None:
        if name in self.fail_commands:
            raise ConnectionError(f"{name} rejected")
        self.commands.append((name, *args))

    def subscribe(self, on_state, on_error) -> FakeSubscription:
        sub = FakeSubscription(on_state, on_error)
        self.subscriptions.append(sub)
        return sub

    @property
    def active_subscriptions(self) -> list[FakeSubscription]:
        return [s for s in self.subscriptions if not s.cancelled]

    def emit(self, state: PlayerState) -> None:
        for sub in self.active_subscriptions:
            sub.on_state(state)

    def fail(self, error: Exception) -> None:
        for sub in self.active_subscriptions:
            sub.on_error(error)


async def eventually(predicate, timeout: float = 2.0) -> None:
    """Wait until predicate() is true or fail the test."""
    async def _wait():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_wait(), timeout=timeout)


@pytest.fixture
async def store():
    """In-memory LibraryStore, opened and closed per test."""
    s = LibraryStore(db_path=Path(":memory:"))
    await s.open()
    yield s
    await s.close()


@pytest.fixture
def ledger(store):
    return StatisticsLedger(store)


@pytest.fixture
def selector(ledger):
    return ShuffleSelector(ledger)


@pytest.fixture
def engine(store, ledger, selector):
    return QueueEngine(store, ledger, selector)


@pytest.fixture
async def catalog(store, ledger):
    """40 synced tracks with zeroed statistics."""
    tracks = make_tracks(40)
    await store.upsert_tracks(tracks)
    await ledger.ensure_tracked(t.id for t in tracks)
    return tracks


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def session(transport, sleep):
    return RemoteSessionManager(transport, sleep=sleep)


@pytest.fixture
async def orchestrator(store, ledger, engine, session, sleep, catalog):
    """Orchestrator over the 40-track catalog, watcher not running."""
    orch = SessionOrchestrator(store, ledger, engine, session, sleep=sleep)
    await orch.start(watch=False)
    yield orch
    await orch.stop()


async def read_sse_frames(response, count=1, timeout=2.0):
    """Read `count` SSE frames from a streaming response.

    Each frame is returned as a dict with 'event' and 'data' keys.
    """
    frames = []
    buffer = b""

    async def _read():
        nonlocal buffer
        while len(frames) < count:
            chunk = await response.content.readany()
            if not chunk:
                break
            buffer += chunk
            while b"\n\n" in buffer:
                raw_frame, buffer = buffer.split(b"\n\n", 1)
                frame = _parse_sse_frame(raw_frame.decode())
                if frame:
                    frames.append(frame)
                    if len(frames) >= count:
                        return

    try:
        await asyncio.wait_for(_read(), timeout=timeout)
    except asyncio.TimeoutError:
        pass
    return frames


def _parse_sse_frame(raw: str) -> dict | None:
    """Parse a single SSE frame into {event, data}; keepalive comments are skipped."""
    event = None
    data_lines = []
    for line in raw.strip().split("\n"):
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())
    if event is None and not data_lines:
        return None
    return {"event": event, "data": "\n".join(data_lines)}
