"""
Spotify Web API client used as the remote catalog and playback service.

Only the handful of endpoints the DJ needs are wrapped.  Every method either
returns parsed result types from ``models`` or raises ``CatalogError``;
deciding whether a failure is fatal is left to the caller.  Transport
commands treat HTTP 204 (no body) as success.

The bearer token can be swapped at any time with ``update_access_token``
without rebuilding the client.
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from .errors import CatalogError
from .models import Device, PlaybackState, Playlist, Track, parse_many

API_BASE = "https://api.spotify.com/v1"
DEFAULT_TIMEOUT = 10.0


class CatalogClient:
    def __init__(
        self,
        access_token: str,
        base_url: str = API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    def update_access_token(self, token: str) -> None:
        self._access_token = token

    @property
    def access_token(self) -> str:
        return self._access_token

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not self._access_token:
            raise CatalogError("No access token available")

        params = {k: v for k, v in (params or {}).items() if v is not None}
        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            response = await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise CatalogError(f"{method} {path} failed: {e}") from e

        if response.status_code == 204 or not response.content:
            if response.is_success:
                return None
        if not response.is_success:
            detail = response.text[:200] if response.content else response.reason_phrase
            raise CatalogError(
                f"{method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            logger.warning(f"{method} {path} returned a non-JSON body, ignoring it")
            return None

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def search_tracks(self, query: str, limit: int = 20) -> List[Track]:
        data = await self._request(
            "GET", "/search", params={"q": query, "type": "track", "limit": limit}
        )
        return parse_many(Track, _items(data, "tracks"))

    async def search_playlists(self, query: str, limit: int = 2) -> List[Playlist]:
        data = await self._request(
            "GET", "/search", params={"q": query, "type": "playlist", "limit": limit}
        )
        return [p for p in parse_many(Playlist, _items(data, "playlists")) if p.id]

    async def get_playlist_tracks(self, playlist_id: str, limit: int = 20) -> List[Track]:
        """Tracks of a playlist; episodes, local files and empty slots are dropped."""
        data = await self._request(
            "GET", f"/playlists/{playlist_id}/tracks", params={"limit": limit}
        )
        entries = data.get("items") if isinstance(data, dict) else None
        raw_tracks = [e.get("track") for e in entries or [] if isinstance(e, dict)]
        return [t for t in parse_many(Track, raw_tracks) if t.is_playable_track]

    # ------------------------------------------------------------------
    # Player state
    # ------------------------------------------------------------------

    async def get_playback_state(self) -> Optional[PlaybackState]:
        data = await self._request("GET", "/me/player")
        if not isinstance(data, dict):
            return None
        parsed = parse_many(PlaybackState, [data])
        return parsed[0] if parsed else None

    async def get_devices(self) -> List[Device]:
        data = await self._request("GET", "/me/player/devices")
        return parse_many(Device, _field(data, "devices"))

    async def get_queue(self) -> List[Track]:
        """Upcoming queue, tracks only."""
        data = await self._request("GET", "/me/player/queue")
        queue = _field(data, "queue")
        return [t for t in parse_many(Track, queue) if t.type == "track"]

    # ------------------------------------------------------------------
    # Transport commands
    # ------------------------------------------------------------------

    async def play(self, uris: List[str], device_id: Optional[str] = None) -> None:
        await self._request(
            "PUT", "/me/player/play", params={"device_id": device_id}, json={"uris": uris}
        )

    async def resume(self, device_id: Optional[str] = None) -> None:
        await self._request("PUT", "/me/player/play", params={"device_id": device_id})

    async def pause(self, device_id: Optional[str] = None) -> None:
        await self._request("PUT", "/me/player/pause", params={"device_id": device_id})

    async def next(self, device_id: Optional[str] = None) -> None:
        await self._request("POST", "/me/player/next", params={"device_id": device_id})

    async def previous(self, device_id: Optional[str] = None) -> None:
        await self._request("POST", "/me/player/previous", params={"device_id": device_id})

    async def set_shuffle(self, state: bool, device_id: Optional[str] = None) -> None:
        await self._request(
            "PUT",
            "/me/player/shuffle",
            params={"state": "true" if state else "false", "device_id": device_id},
        )

    async def set_repeat(self, state: str, device_id: Optional[str] = None) -> None:
        await self._request(
            "PUT", "/me/player/repeat", params={"state": state, "device_id": device_id}
        )

    async def transfer_playback(self, device_id: str, play: bool = False) -> None:
        await self._request(
            "PUT", "/me/player", json={"device_ids": [device_id], "play": play}
        )

    async def add_to_queue(self, uri: str, device_id: Optional[str] = None) -> None:
        await self._request(
            "POST", "/me/player/queue", params={"uri": uri, "device_id": device_id}
        )


def _items(data: Any, section: str) -> List[Any]:
    if not isinstance(data, dict):
        return []
    block = data.get(section)
    if not isinstance(block, dict):
        return []
    items = block.get("items")
    return items if isinstance(items, list) else []


def _field(data: Any, name: str) -> Any:
    return data.get(name) if isinstance(data, dict) else None
