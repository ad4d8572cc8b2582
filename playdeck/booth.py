"""
PlayDeck Booth Log

The "booth" is the human-readable record of what the deck is doing, kept
like a DJ keeps track of their set.

Events:
- 🎵 TRACK: The current track changed
- ⏭️ SKIP: Tracks passed over by a forward move
- 🔀 SHUFFLE: Upcoming queue regenerated
- 🔌 REMOTE: Player connection events
- 📚 CATALOG: Catalog sync
"""

import logging
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path


class Event(Enum):
    """Event types for the booth log."""
    # Playback events
    TRACK_CHANGE = "🎵 TRACK"
    TRACK_SYNC = "🎵 SYNC"
    PAUSE = "⏸️ PAUSE"
    RESUME = "▶️ RESUME"
    SKIP = "⏭️ SKIP"
    SHUFFLE = "🔀 SHUFFLE"

    # Remote player events
    REMOTE_CONNECT = "🔌 CONNECT"
    REMOTE_RETRY = "🔌 RETRY"
    REMOTE_DISCONNECT = "🔌 DISCONNECT"
    REMOTE_ERROR = "🔌 RMT.ERR"

    # Catalog events
    CATALOG_SYNC = "📚 CATALOG"
    CATALOG_ERROR = "📚 CAT.ERR"

    # System events
    SYSTEM_START = "⚡ START"
    SYSTEM_STOP = "⚡ STOP"
    SYSTEM_ERROR = "❌ ERROR"


class BoothFormatter(logging.Formatter):
    """Custom formatter for booth log - clean and DJ-friendly."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        event = getattr(record, 'event', None)
        if event:
            prefix = event.value
        else:
            prefix = f"[{record.levelname}]"

        return f"{timestamp} {prefix} │ {record.getMessage()}"


class BoothLog:
    """
    Central event logger for PlayDeck.

    Usage:
        from playdeck.booth import booth

        booth.track_change("Artist", "Title")
        booth.skipped(3)
    """

    def __init__(self, name: str = "playdeck.booth"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)
        self._configured = False

    def configure(self, log_file: Path | None = None, console: bool = True) -> None:
        """Configure booth log outputs."""
        if self._configured:
            return

        formatter = BoothFormatter()

        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        # Booth lines are already on the console; keep them out of the root logger
        self.logger.propagate = False
        self._configured = True

    def _log(self, event: Event, message: str) -> None:
        if not self._configured:
            self.configure()
        self.logger.info(message, extra={'event': event})

    # === Playback events ===

    def track_change(self, artist: str, title: str) -> None:
        """Log a track started by an intent."""
        self._log(Event.TRACK_CHANGE, f"{artist} — {title}")

    def track_sync(self, artist: str, title: str) -> None:
        """Log a track change made on the player itself."""
        self._log(Event.TRACK_SYNC, f"{artist} — {title} (changed on player)")

    def paused(self) -> None:
        self._log(Event.PAUSE, "Paused")

    def resumed(self) -> None:
        self._log(Event.RESUME, "Resumed")

    def skipped(self, count: int, partial: bool = False) -> None:
        """Log tracks passed over by a forward move."""
        msg = f"{count} track(s) skipped"
        if partial:
            msg += " (current stopped before halfway)"
        self._log(Event.SKIP, msg)

    def shuffled(self, count: int) -> None:
        self._log(Event.SHUFFLE, f"{count} upcoming track(s) reshuffled")

    # === Remote player events ===

    def remote_connect(self, where: str) -> None:
        self._log(Event.REMOTE_CONNECT, f"Connected to {where}")

    def remote_retry(self, attempt: int, max_attempts: int, delay: float) -> None:
        self._log(Event.REMOTE_RETRY, f"Attempt {attempt}/{max_attempts} failed, retrying in {delay:.1f}s")

    def remote_disconnect(self) -> None:
        self._log(Event.REMOTE_DISCONNECT, "Disconnected")

    def remote_error(self, error: str) -> None:
        self._log(Event.REMOTE_ERROR, error)

    # === Catalog events ===

    def catalog_sync(self, count: int, new: int) -> None:
        """Log a completed catalog sync."""
        self._log(Event.CATALOG_SYNC, f"{count} track(s) synced, {new} new")

    def catalog_error(self, error: str) -> None:
        self._log(Event.CATALOG_ERROR, error)

    # === System events ===

    def start(self, component: str) -> None:
        """Log component started."""
        self._log(Event.SYSTEM_START, component)

    def stop(self, component: str) -> None:
        """Log component stopped."""
        self._log(Event.SYSTEM_STOP, component)

    def error(self, message: str) -> None:
        """Log system error."""
        self._log(Event.SYSTEM_ERROR, message)


# Global booth log instance
booth = BoothLog()
