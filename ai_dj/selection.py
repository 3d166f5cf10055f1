"""
Track filtering and final selection.

Policy: never block playback because of thresholds.  The popularity cutoff
relaxes when it is too strict for the pool, and falls away entirely if even
the relaxed cutoff leaves nothing.  Selection is a plain shuffle-and-truncate
so repeated requests for the same intent don't replay the same hits.
"""

import random
from typing import List, Optional

from .normalize import dedup_key
from .models import Track
from .process_log import ProcessLog


def filter_by_popularity(
    tracks: List[Track],
    preferred: int = 15,
    relaxed: int = 5,
    min_viable: int = 5,
    log: Optional[ProcessLog] = None,
) -> List[Track]:
    """
    Adaptive popularity filter.

    1. Keep tracks with popularity >= ``preferred``.
    2. If that leaves fewer than ``min_viable`` while the pool itself has at
       least ``min_viable``, fall back to ``relaxed``.
    3. If the result is still empty, return the pool unfiltered.
    """
    kept = [t for t in tracks if t.popularity >= preferred]

    if len(kept) < min_viable and len(tracks) >= min_viable:
        if log is not None:
            log.add(
                f"⚠ Popularity >= {preferred} too strict ({len(kept)} tracks). "
                f"Relaxing to >= {relaxed}"
            )
        kept = [t for t in tracks if t.popularity >= relaxed]

    if log is not None:
        log.add(f"Filter: popularity check ({len(kept)} / {len(tracks)} kept)")

    if not kept:
        if log is not None:
            log.add("⚠ No tracks matched popularity criteria. Using all candidates")
        return list(tracks)

    if log is not None:
        log.sample("Sample", kept)
    return kept


def select_tracks(
    tracks: List[Track],
    max_tracks: int = 40,
    rng: Optional[random.Random] = None,
) -> List[Track]:
    """Shuffle the survivors uniformly, then keep at most ``max_tracks``."""
    shuffled = list(tracks)
    (rng or random).shuffle(shuffled)
    return shuffled[:max_tracks]


def place_priority_first(
    tracks: List[Track],
    priority: Optional[Track],
    max_tracks: int = 40,
) -> List[Track]:
    """Put ``priority`` at index 0, removing any other copy of it from the list."""
    if priority is None:
        return tracks[:max_tracks]

    key = dedup_key(priority)

    def _same(t: Track) -> bool:
        if priority.id and t.id == priority.id:
            return True
        if priority.uri and t.uri == priority.uri:
            return True
        return dedup_key(t) == key

    rest = [t for t in tracks if not _same(t)]
    return ([priority] + rest)[:max_tracks]
