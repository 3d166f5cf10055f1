"""Test doubles shared by the test modules."""

from datetime import datetime
from typing import Dict, List, Optional, Set

from ai_dj.errors import CatalogError
from ai_dj.models import Artist, Device, PlaybackState, Playlist, Track


def make_track(
    track_id: str,
    name: Optional[str] = None,
    artist: str = "Artist",
    popularity: int = 50,
    duration_ms: int = 200_000,
) -> Track:
    return Track(
        id=track_id,
        name=name or f"Song {track_id}",
        artists=[Artist(name=artist)],
        popularity=popularity,
        uri=f"spotify:track:{track_id}",
        duration_ms=duration_ms,
    )


def make_tracks(prefix: str, count: int, popularity: int = 50) -> List[Track]:
    return [
        make_track(f"{prefix}{i}", artist=f"{prefix} artist {i}", popularity=popularity)
        for i in range(count)
    ]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int, second: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute, second=second)


class FakeCatalog:
    """In-memory stand-in for ``CatalogClient`` that records every call."""

    def __init__(self):
        self.track_results: Dict[str, List[Track]] = {}
        self.playlist_results: Dict[str, List[Playlist]] = {}
        self.playlist_tracks: Dict[str, List[Track]] = {}
        self.fail_queries: Set[str] = set()
        self.fail_playlist_ids: Set[str] = set()

        self.devices: List[Device] = [Device(id="dev-1", name="Laptop", type="Computer", is_active=True)]
        self.device_failures = 0
        self.queue: List[Track] = []
        self.queue_error: Optional[Exception] = None
        self.playback_state: Optional[PlaybackState] = None

        self.play_error: Optional[Exception] = None
        self.shuffle_error: Optional[Exception] = None
        self.repeat_error: Optional[Exception] = None
        self.enqueue_errors: Set[str] = set()

        self.search_calls: List[tuple] = []
        self.playlist_search_calls: List[str] = []
        self.device_calls = 0
        self.play_calls: List[tuple] = []
        self.shuffle_calls: List[tuple] = []
        self.repeat_calls: List[tuple] = []
        self.transfer_calls: List[str] = []
        self.enqueued: List[str] = []
        self.controls: List[tuple] = []
        self.tokens: List[str] = []
        self.closed = False

    # Catalog
    async def search_tracks(self, query: str, limit: int = 20) -> List[Track]:
        self.search_calls.append((query, limit))
        if query in self.fail_queries:
            raise CatalogError(f"search failed for {query}", status_code=500)
        return list(self.track_results.get(query, []))[:limit]

    async def search_playlists(self, query: str, limit: int = 2) -> List[Playlist]:
        self.playlist_search_calls.append(query)
        if query in self.fail_queries:
            raise CatalogError(f"playlist search failed for {query}", status_code=500)
        return list(self.playlist_results.get(query, []))[:limit]

    async def get_playlist_tracks(self, playlist_id: str, limit: int = 20) -> List[Track]:
        if playlist_id in self.fail_playlist_ids:
            raise CatalogError("playlist fetch failed", status_code=500)
        return list(self.playlist_tracks.get(playlist_id, []))[:limit]

    # Player state
    async def get_playback_state(self) -> Optional[PlaybackState]:
        return self.playback_state

    async def get_devices(self) -> List[Device]:
        self.device_calls += 1
        if self.device_failures:
            self.device_failures -= 1
            return []
        return list(self.devices)

    async def get_queue(self) -> List[Track]:
        if self.queue_error is not None:
            raise self.queue_error
        return list(self.queue)

    # Transport
    async def play(self, uris: List[str], device_id: Optional[str] = None) -> None:
        self.play_calls.append((list(uris), device_id))
        if self.play_error is not None:
            raise self.play_error

    async def set_shuffle(self, state: bool, device_id: Optional[str] = None) -> None:
        self.shuffle_calls.append((state, device_id))
        if self.shuffle_error is not None:
            raise self.shuffle_error

    async def set_repeat(self, state: str, device_id: Optional[str] = None) -> None:
        self.repeat_calls.append((state, device_id))
        if self.repeat_error is not None:
            raise self.repeat_error

    async def transfer_playback(self, device_id: str, play: bool = False) -> None:
        self.transfer_calls.append(device_id)

    async def add_to_queue(self, uri: str, device_id: Optional[str] = None) -> None:
        if uri in self.enqueue_errors:
            raise CatalogError("enqueue failed", status_code=500)
        self.enqueued.append(uri)
        self.queue.append(Track(id=uri.rsplit(":", 1)[-1], uri=uri, name="queued"))

    async def next(self, device_id: Optional[str] = None) -> None:
        self.controls.append(("next", device_id))

    async def previous(self, device_id: Optional[str] = None) -> None:
        self.controls.append(("previous", device_id))

    async def pause(self, device_id: Optional[str] = None) -> None:
        self.controls.append(("pause", device_id))

    async def resume(self, device_id: Optional[str] = None) -> None:
        self.controls.append(("resume", device_id))

    def update_access_token(self, token: str) -> None:
        self.tokens.append(token)

    async def aclose(self) -> None:
        self.closed = True
