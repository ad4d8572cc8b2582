"""
PlayDeck Web API Transport

RemoteTransport over a Web-API-style player (Spotify Connect endpoints):

  GET /me/player           current playback (204 = nothing playing)
  PUT /me/player/play      {"uris": [uri]} starts a track, empty body resumes
  PUT /me/player/pause

Player state is polled every `poll_interval` seconds while subscribed.
The access token is supplied by configuration; refreshing it is out of
scope here.
"""

import asyncio
import logging
from typing import Callable

import aiohttp

from playdeck.booth import booth
from playdeck.errors import TransportFailure
from playdeck.models import PlayerState

logger = logging.getLogger(__name__)


class PollingSubscription:
    """Subscription backed by a polling task."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()


class WebApiTransport:
    """HTTP transport for the remote player."""

    def __init__(
        self,
        api_base: str,
        access_token: str,
        poll_interval: float = 3.0,
        timeout: float = 10.0,
    ):
        """
        Args:
            api_base: API root (e.g., https://api.spotify.com/v1)
            access_token: Bearer token with playback scopes
            poll_interval: Seconds between player state polls
            timeout: Per-request timeout in seconds
        """
        self.api_base = api_base.rstrip("/")
        self.poll_interval = poll_interval
        self._access_token = access_token
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None
        self._subscriptions: list[PollingSubscription] = []

    async def open(self) -> None:
        """Create the HTTP session and verify the player endpoint answers."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"Authorization": f"Bearer {self._access_token}"},
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        try:
            await self.fetch_state()
        except TransportFailure:
            await self.close()
            raise
        booth.remote_connect(self.api_base)

    async def close(self) -> None:
        """Stop any polling still running and close the HTTP session."""
        for sub in self._subscriptions:
            if sub.active:
                sub.cancel()
        self._subscriptions.clear()
        if self._session:
            await self._session.close()
            self._session = None
            logger.info("Web API transport closed")

    async def play(self, uri: str) -> None:
        await self._request("PUT", "/me/player/play", json={"uris": [uri]})

    async def pause(self) -> None:
        await self._request("PUT", "/me/player/pause")

    async def resume(self) -> None:
        await self._request("PUT", "/me/player/play")

    async def fetch_state(self) -> PlayerState | None:
        """Current player state, or None if nothing is playing."""
        data = await self._request("GET", "/me/player")
        return parse_player_state(data)

    def subscribe(
        self,
        on_state: Callable[[PlayerState], None],
        on_error: Callable[[Exception], None],
    ) -> PollingSubscription:
        task = asyncio.create_task(self._poll_loop(on_state, on_error))
        sub = PollingSubscription(task)
        self._subscriptions = [s for s in self._subscriptions if s.active]
        self._subscriptions.append(sub)
        return sub

    async def _poll_loop(
        self,
        on_state: Callable[[PlayerState], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        while True:
            try:
                state = await self.fetch_state()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                on_error(e)
                return
            if state is not None:
                on_state(state)
            await asyncio.sleep(self.poll_interval)

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict | None:
        if self._session is None:
            raise TransportFailure("Transport is not open")
        url = f"{self.api_base}{path}"
        try:
            async with self._session.request(method, url, json=json) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise TransportFailure(
                        f"{method} {path} failed ({response.status}): {error_text[:200]}"
                    )
                if response.status == 204 or response.content_type != "application/json":
                    return None
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFailure(f"{method} {path}: {e}") from e


def parse_player_state(data: dict | None) -> PlayerState | None:
    """Build a PlayerState from a /me/player response body."""
    if not data:
        return None
    item = data.get("item") or {}
    artists = ", ".join(a.get("name", "") for a in item.get("artists", []))
    return PlayerState(
        track_id=item.get("id"),
        is_playing=bool(data.get("is_playing", False)),
        position_ms=data.get("progress_ms") or 0,
        duration_ms=item.get("duration_ms"),
        title=item.get("name", ""),
        artist=artists,
        album=(item.get("album") or {}).get("name", ""),
        uri=item.get("uri", ""),
    )
