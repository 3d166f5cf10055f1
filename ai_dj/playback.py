"""
Playback issuance: device resolution and the play command.

``play_tracks`` is the only place the DJ starts music.  It raises when no
device can be found or the play command is rejected; the engine rolls back
its applied signature on either so the next tick retries.  Shuffle-off
before playing and repeat-off afterwards are best effort.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from loguru import logger

from .config import DJConfig
from .errors import CatalogError, NoDeviceError
from .models import Device, Track
from .process_log import ProcessLog

NO_DEVICE_MESSAGE = (
    "No active playback device found after retries. "
    "Open Spotify on your phone or computer and try again."
)

Spawner = Callable[[Awaitable[Any]], Any]


class PlaybackController:
    def __init__(
        self,
        catalog,
        config: Optional[DJConfig] = None,
        log: Optional[ProcessLog] = None,
        spawn: Optional[Spawner] = None,
    ):
        self.catalog = catalog
        self.config = config or DJConfig()
        self.log = log if log is not None else ProcessLog()
        self._spawn = spawn or asyncio.ensure_future
        self.device_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def set_active_device(self, device_id: str) -> None:
        """Pin ``device_id`` and transfer playback to it (transfer failure is non-fatal)."""
        self.device_id = device_id
        logger.info(f"Active device set to: {device_id}")
        try:
            await self.catalog.transfer_playback(device_id)
        except CatalogError as e:
            logger.warning(f"Transfer playback failed: {e}")
            return
        logger.info(f"Playback transferred to {device_id}")

    async def resolve_device(self) -> str:
        if self.device_id:
            return self.device_id

        for attempt in range(1, self.config.device_attempts + 1):
            try:
                devices = await self.catalog.get_devices()
            except CatalogError as e:
                logger.warning(f"Failed to fetch devices (attempt {attempt}): {e}")
                devices = []

            logger.info(
                f"Devices found (attempt {attempt}): "
                + (", ".join(_describe(d) for d in devices) or "none")
            )
            chosen = pick_device(devices)
            if chosen:
                self.device_id = chosen
                return chosen

            if attempt < self.config.device_attempts:
                await asyncio.sleep(self.config.device_retry_delay)

        raise NoDeviceError(NO_DEVICE_MESSAGE)

    # ------------------------------------------------------------------
    # Play
    # ------------------------------------------------------------------

    async def play_tracks(self, tracks: List[Track]) -> None:
        uris = [t.uri for t in tracks if t.uri]
        if not uris:
            return

        device_id = await self.resolve_device()

        try:
            await self.catalog.set_shuffle(False, device_id)
        except CatalogError as e:
            logger.warning(f"Disabling shuffle failed (non-critical): {e}")

        logger.info(f"Playing {len(uris)} tracks on device {device_id}")
        try:
            await self.catalog.play(uris, device_id)
        except CatalogError as e:
            if e.status_code == 404:
                # Pinned device vanished; rediscover on the next attempt
                self.device_id = None
            raise

        self.log.add(f"Playback started: {len(uris)} tracks")
        self._spawn(self._disable_repeat_later(device_id))

    async def _disable_repeat_later(self, device_id: str) -> None:
        await asyncio.sleep(self.config.repeat_off_delay)
        try:
            await self.catalog.set_repeat("off", device_id)
        except CatalogError as e:
            logger.warning(f"Set repeat mode failed (non-critical): {e}")


def pick_device(devices: List[Device]) -> Optional[str]:
    """Prefer the device already marked active, else the first usable one."""
    usable = [d for d in devices if d.id]
    active = next((d for d in usable if d.is_active), None)
    if active:
        return active.id
    return usable[0].id if usable else None


def _describe(device: Device) -> str:
    state = "Active" if device.is_active else "Inactive"
    return f"{device.name} ({device.type}, {state})"
