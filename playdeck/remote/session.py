"""
PlayDeck Remote Session Manager

Connection lifecycle and command dispatch for the remote player.

States:
  DISCONNECTED → CONNECTING → CONNECTED
  CONNECTED → DISCONNECTED on transport error or disconnect()

Only connecting is retried (connect_with_retry, exponential backoff).
Commands are issued at most once: a transport error drops the session and
surfaces as TransportFailure.

The player-state stream is an async generator over the transport's
callback subscription. Closing or cancelling the iterator cancels the
subscription, and nothing is delivered afterwards.
"""

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Protocol, runtime_checkable

from playdeck.booth import booth
from playdeck.errors import NotConnected, TransportFailure
from playdeck.models import PlayerState, StreamItem

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
INITIAL_DELAY = 2.0
MAX_DELAY = 10.0


class Subscription(Protocol):
    """Handle returned by RemoteTransport.subscribe()."""

    def cancel(self) -> None: ...


@runtime_checkable
class RemoteTransport(Protocol):
    """What the session manager needs from a remote player connection."""

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def play(self, uri: str) -> None: ...

    async def pause(self) -> None: ...

    async def resume(self) -> None: ...

    def subscribe(
        self,
        on_state: Callable[[PlayerState], None],
        on_error: Callable[[Exception], None],
    ) -> Subscription: ...


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RemoteSessionManager:
    """
    Owns the single session with the remote player.

    Usage:
        session = RemoteSessionManager(WebApiTransport(...))
        await session.connect_with_retry()
        await session.play("spotify:track:...")

        async for item in session.player_state_stream():
            if not item.ok:
                break
            handle(item.state)
    """

    def __init__(
        self,
        transport: RemoteTransport,
        max_attempts: int = MAX_ATTEMPTS,
        initial_delay: float = INITIAL_DELAY,
        max_delay: float = MAX_DELAY,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self._transport = transport
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._connect_lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    # =====================================================================
    # CONNECTION
    # =====================================================================

    async def connect(self) -> None:
        """Open the session. No-op if already connected.

        Concurrent callers wait on the same lock, so only one open() runs.
        """
        async with self._connect_lock:
            if self._state is ConnectionState.CONNECTED:
                return
            self._state = ConnectionState.CONNECTING
            try:
                await self._transport.open()
            except asyncio.CancelledError:
                self._state = ConnectionState.DISCONNECTED
                raise
            except TransportFailure:
                self._state = ConnectionState.DISCONNECTED
                raise
            except Exception as e:
                self._state = ConnectionState.DISCONNECTED
                raise TransportFailure(f"Connect failed: {e}") from e
            self._state = ConnectionState.CONNECTED
            logger.info("Remote session connected")

    async def connect_with_retry(
        self,
        max_attempts: int | None = None,
        initial_delay: float | None = None,
        max_delay: float | None = None,
    ) -> None:
        """Connect, retrying with exponential backoff.

        Raises the last TransportFailure once attempts are exhausted.
        Cancelling during a backoff sleep aborts the remaining attempts.
        """
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        delay = self.initial_delay if initial_delay is None else initial_delay
        max_delay = self.max_delay if max_delay is None else max_delay

        if self.is_connected:
            return
        if max_attempts < 1:
            raise TransportFailure("No connection attempts allowed")

        last_error: TransportFailure | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                await self.connect()
                if attempt > 1:
                    logger.info(f"Connected on attempt {attempt}/{max_attempts}")
                return
            except TransportFailure as e:
                last_error = e
                logger.warning(f"Connect attempt {attempt}/{max_attempts} failed: {e}")

            if attempt == max_attempts:
                break

            booth.remote_retry(attempt, max_attempts, delay)
            try:
                await self._sleep(delay)
            except asyncio.CancelledError:
                self._state = ConnectionState.DISCONNECTED
                logger.info("Connect retry cancelled")
                raise
            delay = min(delay * 2, max_delay)

        booth.remote_error(f"Could not connect after {max_attempts} attempt(s)")
        raise last_error

    async def disconnect(self) -> None:
        """Release the session. Safe to call repeatedly."""
        async with self._connect_lock:
            was_connected = self._state is ConnectionState.CONNECTED
            self._state = ConnectionState.DISCONNECTED
            try:
                await self._transport.close()
            except Exception:
                logger.exception("Error closing remote transport")
            if was_connected:
                logger.info("Remote session disconnected")
                booth.remote_disconnect()

    # =====================================================================
    # COMMANDS
    # =====================================================================

    async def play(self, uri: str) -> None:
        await self._command("play", lambda: self._transport.play(uri))

    async def pause(self) -> None:
        await self._command("pause", self._transport.pause)

    async def resume(self) -> None:
        await self._command("resume", self._transport.resume)

    async def _command(self, name: str, call: Callable[[], Awaitable]) -> None:
        if self._state is not ConnectionState.CONNECTED:
            raise NotConnected(f"Cannot {name}: not connected to the player")
        try:
            await call()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            logger.warning(f"Remote {name} failed: {e}")
            if isinstance(e, TransportFailure):
                raise
            raise TransportFailure(f"{name} failed: {e}") from e

    # =====================================================================
    # PLAYER STATE STREAM
    # =====================================================================

    async def player_state_stream(self) -> AsyncIterator[StreamItem]:
        """Yield player states until the transport reports an error.

        The final item of a failed stream carries the error; the stream
        itself never raises for transport reasons.
        """
        queue: asyncio.Queue[StreamItem] = asyncio.Queue()
        closed = False

        def on_state(state: PlayerState) -> None:
            if not closed:
                queue.put_nowait(StreamItem(state=state))

        def on_error(error: Exception) -> None:
            if not closed:
                queue.put_nowait(StreamItem(error=_as_failure(error)))

        try:
            subscription = self._transport.subscribe(on_state, on_error)
        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            yield StreamItem(error=_as_failure(e))
            return

        try:
            while True:
                item = await queue.get()
                if not item.ok:
                    self._state = ConnectionState.DISCONNECTED
                    logger.warning(f"Player state stream ended: {item.error}")
                    yield item
                    return
                yield item
        finally:
            closed = True
            subscription.cancel()


def _as_failure(error: Exception) -> TransportFailure:
    if isinstance(error, TransportFailure):
        return error
    failure = TransportFailure(f"Player state stream failed: {error}")
    failure.__cause__ = error
    return failure
