"""
Track identity normalization.

Catalog searches return the same recording many times over: remasters, live
editions, "(feat. X)" variants.  ``dedup_key`` collapses those to one key
while keeping the primary artist in it, so unrelated songs that share a
title stay distinct.
"""

import re
from typing import Iterable, List, Set, Tuple

from .models import Track

_REMASTER_SUFFIX = re.compile(r"\s-\s.*remaster.*$", re.IGNORECASE)
_PARENTHETICAL = re.compile(r"\(.*?\)")


def normalize_track_name(name: str) -> str:
    """'Song - 2011 Remaster' / 'Song (Live)' -> 'song'."""
    name = _REMASTER_SUFFIX.sub("", name or "")
    name = _PARENTHETICAL.sub("", name)
    return " ".join(name.split()).lower()


def dedup_key(track: Track) -> Tuple[str, str]:
    return normalize_track_name(track.name), track.primary_artist.strip().lower()


def deduplicate_tracks(tracks: Iterable[Track]) -> List[Track]:
    """Drop later duplicates; survivors keep their input order."""
    seen: Set[Tuple[str, str]] = set()
    unique: List[Track] = []
    for track in tracks:
        key = dedup_key(track)
        if key in seen:
            continue
        seen.add(key)
        unique.append(track)
    return unique
