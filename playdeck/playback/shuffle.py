"""
PlayDeck Shuffle Selection

Least-played-first track selection used to fill the upcoming queue:
- lowest play count first
- equal counts: never played first, then longest since last activity
- ids in the exclusion set are never returned
- when the ledger cannot supply enough tracks (fresh catalog, small
  library), the rest is filled by walking the catalog sequentially from
  just after the anchor track, wrapping around once
"""

import logging
from typing import Iterable, Sequence

from playdeck.models import Track
from playdeck.playback.ledger import StatisticsLedger

logger = logging.getLogger(__name__)


class ShuffleSelector:
    """Picks upcoming tracks from the catalog using the statistics ledger."""

    def __init__(self, ledger: StatisticsLedger):
        self._ledger = ledger

    async def select(
        self,
        count: int,
        exclude_ids: Iterable[str],
        catalog: Sequence[Track],
        anchor_index: int = 0,
    ) -> list[Track]:
        """Return at most `count` tracks, none of them in `exclude_ids`."""
        if count <= 0 or not catalog:
            return []

        excluded = set(exclude_ids)
        by_id = {t.id: t for t in catalog}

        ranked_ids = await self._ledger.least_played(count, excluded)
        result = [by_id[tid] for tid in ranked_ids if tid in by_id and tid not in excluded]

        missing = count - len(result)
        if missing <= 0:
            return result[:count]

        picked = {t.id for t in result} | excluded
        filled = sequential_fill(catalog, picked, missing, anchor_index)
        if filled:
            logger.debug(
                f"Shuffle fallback: {len(result)} ranked + {len(filled)} sequential "
                f"(anchor {anchor_index})"
            )
        return result + filled


def sequential_fill(
    catalog: Sequence[Track],
    picked_ids: set[str],
    count: int,
    anchor_index: int,
) -> list[Track]:
    """Walk the catalog circularly from anchor+1, collecting unpicked tracks.

    Stops after `count` tracks or one full circuit, whichever comes first.
    """
    size = len(catalog)
    if count <= 0 or size == 0:
        return []

    seen = set(picked_ids)
    result = []
    start = (anchor_index + 1) % size
    for step in range(size):
        candidate = catalog[(start + step) % size]
        if candidate.id in seen:
            continue
        result.append(candidate)
        seen.add(candidate.id)
        if len(result) >= count:
            break
    return result
