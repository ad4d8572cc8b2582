"""
PlayDeck Catalog Sync

Fetches the user's saved tracks page by page and mirrors them into the
library store. First occurrence of an id wins; catalog order is the order
tracks were first seen. Newly seen tracks get zeroed statistics.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Protocol, runtime_checkable

import aiohttp

from playdeck.booth import booth
from playdeck.errors import CatalogError
from playdeck.models import Track
from playdeck.playback.ledger import StatisticsLedger
from playdeck.store import LibraryStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
PAGE_DELAY = 0.1


@dataclass(frozen=True)
class CatalogPage:
    items: list[Track] = field(default_factory=list)
    next_cursor: int | None = None


@runtime_checkable
class CatalogSource(Protocol):
    """A paginated source of catalog tracks."""

    async def fetch_page(self, cursor: int | None) -> CatalogPage: ...


class SavedTracksSource:
    """Saved ("liked") tracks from a Web-API-style library endpoint."""

    def __init__(
        self,
        api_base: str,
        access_token: str,
        page_size: int = PAGE_SIZE,
        timeout: float = 15.0,
    ):
        self.api_base = api_base.rstrip("/")
        self.page_size = page_size
        self._access_token = access_token
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"Authorization": f"Bearer {self._access_token}"},
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def fetch_page(self, cursor: int | None) -> CatalogPage:
        if self._session is None:
            await self.start()

        offset = cursor or 0
        url = f"{self.api_base}/me/tracks"
        params = {"limit": self.page_size, "offset": offset}
        try:
            async with self._session.get(url, params=params) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise CatalogError(f"Saved tracks API error ({response.status}): {error_text[:200]}")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CatalogError(f"Saved tracks API connection error: {e}") from e

        raw_items = data.get("items", [])
        items = [t for t in (parse_saved_track(i) for i in raw_items) if t is not None]
        next_cursor = offset + len(raw_items) if data.get("next") and raw_items else None
        return CatalogPage(items=items, next_cursor=next_cursor)


def parse_saved_track(item: dict, now: float | None = None) -> Track | None:
    """Flatten one saved-tracks item into a Track. None for unplayable entries."""
    track = item.get("track") or {}
    if not track.get("id") or not track.get("uri"):
        return None
    album = track.get("album") or {}
    images = album.get("images") or []
    return Track(
        id=track["id"],
        title=track.get("name", ""),
        artist=", ".join(a.get("name", "") for a in track.get("artists", [])),
        album=album.get("name", ""),
        uri=track["uri"],
        image_url=images[0].get("url") if images else None,
        duration_ms=track.get("duration_ms"),
        fetched_at=now if now is not None else time.time(),
    )


class CatalogSync:
    """Mirrors a CatalogSource into the library store."""

    def __init__(
        self,
        source: CatalogSource,
        store: LibraryStore,
        ledger: StatisticsLedger,
        page_delay: float = PAGE_DELAY,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self._source = source
        self._store = store
        self._ledger = ledger
        self.page_delay = page_delay
        self._sleep = sleep

    async def sync(self) -> int:
        """Fetch every page and upsert the result. Returns tracks synced."""
        tracks: list[Track] = []
        seen: set[str] = set()
        cursor: int | None = None
        pages = 0

        while True:
            try:
                page = await self._source.fetch_page(cursor)
            except CatalogError as e:
                booth.catalog_error(str(e))
                raise
            except Exception as e:
                booth.catalog_error(str(e))
                raise CatalogError(f"Catalog fetch failed: {e}") from e

            pages += 1
            for track in page.items:
                if track.id in seen:
                    continue
                seen.add(track.id)
                tracks.append(track)

            if page.next_cursor is None or page.next_cursor == cursor:
                break
            cursor = page.next_cursor
            await self._sleep(self.page_delay)

        await self._store.upsert_tracks(tracks)
        created = await self._ledger.ensure_tracked(t.id for t in tracks)
        total = await self._store.track_count()
        logger.info(
            f"Catalog sync: {len(tracks)} tracks from {pages} page(s), {created} new, {total} in library"
        )
        booth.catalog_sync(len(tracks), created)
        return len(tracks)
