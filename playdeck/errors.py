"""
PlayDeck Errors

Every failure an intent can report. Each kind carries a stable short
`status` code and a default user-facing `message`; the orchestrator and the
HTTP routes report these unchanged.
"""


class PlaybackError(Exception):
    """Base class for all PlayDeck errors."""

    status = "error"
    message = "Playback failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail
        super().__init__(detail or self.message)


class NotConnected(PlaybackError):
    """A command was issued without a live remote session."""

    status = "not_connected"
    message = "Not connected to the player"


class TrackNotFound(PlaybackError):
    """A queued track id has no catalog record."""

    status = "track_not_found"
    message = "Track not found"


class NoSuchQueuePosition(PlaybackError):
    """Jump target is not present in the queue window."""

    status = "no_such_position"
    message = "No track at that queue position"


class TransportFailure(PlaybackError):
    """The remote transport failed to connect, execute a command or stream state."""

    status = "transport_failure"
    message = "Player connection error"


class EmptyCatalog(PlaybackError):
    """The queue cannot be initialized because the catalog has no tracks."""

    status = "empty_catalog"
    message = "No tracks available. Sync the catalog first."


class CatalogError(PlaybackError):
    """The catalog source could not be fetched."""

    status = "catalog_unavailable"
    message = "Could not fetch the track catalog"
