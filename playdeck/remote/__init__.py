"""PlayDeck remote player session and transports."""

from playdeck.remote.session import (
    ConnectionState,
    RemoteSessionManager,
    RemoteTransport,
    Subscription,
)
from playdeck.remote.web_api import WebApiTransport

__all__ = [
    "ConnectionState",
    "RemoteSessionManager",
    "RemoteTransport",
    "Subscription",
    "WebApiTransport",
]
