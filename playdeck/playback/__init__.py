"""PlayDeck Playback Package."""

from playdeck.playback.ledger import StatisticsLedger
from playdeck.playback.shuffle import ShuffleSelector
from playdeck.playback.queue_engine import QueueEngine, PendingMove
from playdeck.playback.orchestrator import SessionOrchestrator

__all__ = ["StatisticsLedger", "ShuffleSelector", "QueueEngine", "PendingMove", "SessionOrchestrator"]
