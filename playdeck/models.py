"""
PlayDeck Data Model

Immutable records shared by the store, the queue engine and the remote
session. Queue and statistics rows reference tracks by id only; the
catalog (tracks table) owns the Track records.

Queue positions:
  negative  -> history (-1 is the most recently played)
  0         -> current track
  positive  -> upcoming (1 plays next)
"""

from dataclasses import dataclass, field
import time


@dataclass(frozen=True)
class Track:
    """A catalog record (one liked track)."""
    id: str
    title: str
    artist: str
    album: str
    uri: str
    image_url: str | None = None
    duration_ms: int | None = None
    fetched_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class QueueSlot:
    """One position in the queue window."""
    position: int
    track_id: str
    inserted_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Statistics:
    """Play-count ledger row for a single track."""
    track_id: str
    play_count: int = 0
    last_activity_at: float | None = None


@dataclass(frozen=True)
class HistoryEntry:
    """Audit log entry for a play or skip."""
    track_id: str
    played_at: float
    was_skipped: bool = False
    playback_position_ms: int | None = None


@dataclass(frozen=True)
class PlayerState:
    """What the remote endpoint reports as playing right now."""
    track_id: str | None
    is_playing: bool
    position_ms: int = 0
    duration_ms: int | None = None
    title: str = ""
    artist: str = ""
    album: str = ""
    uri: str = ""

    @property
    def before_halfway(self) -> bool:
        """True if playback has not yet reached half of the track."""
        if not self.duration_ms:
            return False
        return self.position_ms < self.duration_ms / 2


@dataclass(frozen=True)
class SnapshotEntry:
    """A window slot joined against the catalog and the ledger."""
    position: int
    track: Track
    play_count: int


@dataclass(frozen=True)
class StreamItem:
    """One item of the player-state stream: a state or a terminal error."""
    state: PlayerState | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class IntentResult:
    """Outcome of a user intent, mapped to a stable status code."""
    ok: bool
    status: str
    message: str
    track: Track | None = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status": self.status,
            "message": self.message,
            "track": track_to_dict(self.track) if self.track else None,
        }


def track_to_dict(track: Track) -> dict:
    """Serialize a track for JSON responses."""
    return {
        "id": track.id,
        "title": track.title,
        "artist": track.artist,
        "album": track.album,
        "uri": track.uri,
        "image_url": track.image_url,
        "duration_ms": track.duration_ms,
    }


def player_state_to_dict(state: PlayerState) -> dict:
    return {
        "track_id": state.track_id,
        "is_playing": state.is_playing,
        "position_ms": state.position_ms,
        "duration_ms": state.duration_ms,
        "title": state.title,
        "artist": state.artist,
        "album": state.album,
        "uri": state.uri,
    }
