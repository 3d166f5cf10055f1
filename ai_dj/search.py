"""
Catalog Search Aggregator

Fans a list of free-text queries out to the catalog and pools the results:

  - an optional priority lookup (best single match) runs first,
  - every query issues a track search and a playlist search concurrently,
  - the best playlist hit is opened and its tracks are tagged with
    ``context_name`` so the UI can show where they came from,
  - each query fails on its own: one bad query never aborts the batch.

The pool is shuffled, not ranked, so a single query can't dominate what the
selector sees.  ``artist:`` tokens are extracted for the log only; hard
filtering on them wiped out results for mixed queries such as
``["80s hits", "artist:Queen"]``.
"""

import asyncio
import random
import re
from typing import List, Optional

from loguru import logger

from .config import DJConfig
from .errors import CatalogError
from .models import SearchResult, Track
from .process_log import ProcessLog

_ARTIST_QUOTED = re.compile(r"""artist:\s*["']([^"']+)["']""", re.IGNORECASE)
_ARTIST_BARE = re.compile(r"artist:\s*([^\s\"']+(?:\s+(?!\S*:)[^\s\"']+)*)", re.IGNORECASE)

OFFICIAL_OWNER_FILTER = "owner:spotify"


def extract_target_artists(queries: List[str]) -> List[str]:
    """
    Pull the artist names out of ``artist:"Name"`` / ``artist:Name`` tokens.

    A bare token takes the rest of the query up to the next ``key:`` filter,
    so ``artist:Daft Punk genre:house`` yields ``daft punk``.
    """
    artists: List[str] = []
    for q in queries:
        quoted = _ARTIST_QUOTED.search(q)
        if quoted:
            artists.append(quoted.group(1).strip().lower())
            continue
        bare = _ARTIST_BARE.search(q)
        if bare:
            artists.append(bare.group(1).strip().lower())
    return artists


def clean_query(query: str, only_official: bool = False) -> str:
    cleaned = " ".join(query.replace('"', "").replace("'", "").split())
    if only_official:
        return f"{OFFICIAL_OWNER_FILTER} {cleaned}"
    return cleaned


class SearchAggregator:
    def __init__(
        self,
        catalog,
        config: Optional[DJConfig] = None,
        log: Optional[ProcessLog] = None,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.config = config or DJConfig()
        self.log = log if log is not None else ProcessLog()
        self._rng = rng or random.Random()

    async def search(
        self,
        queries: List[str],
        priority_track: Optional[str] = None,
    ) -> SearchResult:
        self.log.add(f"Searching for: {', '.join(queries)}")

        targets = extract_target_artists(queries)
        if targets:
            self.log.add(f"Target artists: {', '.join(targets)}")

        priority = None
        if priority_track:
            priority = await self.find_priority_track(priority_track)

        batches = await asyncio.gather(*(self._search_one(q) for q in queries))
        pooled: List[Track] = [t for batch in batches for t in batch]
        self._rng.shuffle(pooled)

        if not pooled and priority is None:
            self.log.add("No tracks found from catalog search")
        return SearchResult(tracks=pooled, priority=priority)

    async def find_priority_track(self, query: str) -> Optional[Track]:
        try:
            hits = await self.catalog.search_tracks(clean_query(query), limit=1)
        except CatalogError as e:
            logger.warning(f"Priority track lookup failed for {query!r}: {e}")
            self.log.add(f"⚠ Priority track lookup failed: {query}")
            return None
        if not hits:
            self.log.add(f"⚠ Priority track not found: {query}")
            return None
        self.log.add(f"Priority track: {hits[0].label()}")
        return hits[0]

    async def _search_one(self, query: str) -> List[Track]:
        search_query = clean_query(query, self.config.only_official)
        tracks, playlists = await asyncio.gather(
            self.catalog.search_tracks(search_query, limit=self.config.track_search_limit),
            self.catalog.search_playlists(search_query, limit=self.config.playlist_search_limit),
            return_exceptions=True,
        )
        for outcome in (tracks, playlists):
            if isinstance(outcome, BaseException) and not isinstance(outcome, CatalogError):
                raise outcome

        results: List[Track] = []
        if isinstance(tracks, CatalogError):
            logger.warning(f"Track search failed for {query!r}: {tracks}")
            self.log.add(f"⚠ Search failed for: {query}")
        else:
            results.extend(tracks)

        if isinstance(playlists, CatalogError):
            logger.warning(f"Playlist search failed for {query!r}: {playlists}")
        elif playlists:
            results.extend(await self._scan_playlist(playlists[0]))
        return results

    async def _scan_playlist(self, playlist) -> List[Track]:
        try:
            tracks = await self.catalog.get_playlist_tracks(
                playlist.id, limit=self.config.playlist_track_limit
            )
        except CatalogError as e:
            logger.warning(f"Failed to load tracks from playlist {playlist.name!r}: {e}")
            return []

        context = f"Playlist: {playlist.name}"
        tagged = [
            t.model_copy(update={"context_name": context})
            for t in tracks
            if t.is_playable_track
        ]
        self.log.add(f"Scanned playlist: \"{playlist.name}\" ({len(tagged)} tracks)")
        self.log.sample("Sample", tagged)
        return tagged
