"""
DJ Reconciliation Engine

Keeps remote playback in line with the schedule.  Each ``tick()``:

1. Looks ``preload_ms`` ahead and, if a different intent starts soon,
   resolves its tracks in a detached task into a single-slot preload cache.
2. Matches the current intent.  Nothing matches -> nothing to do.
3. If the intent's query signature differs from the last applied one, it
   transitions: the signature is recorded *before* any await so an
   overlapping tick can't trigger the same change twice, the session log and
   played-set are reset, tracks come from the preload slot when it matches
   (else a fresh search), and playback is issued.  If playback fails the
   signature is rolled back and the error re-raised, so the next tick
   retries the same transition.  A transition overtaken by a newer one
   while it awaited drops its result without playing or rolling back.
4. If the signature is unchanged, it tops up the remote queue instead.

All mutable state (schedule, signature, preload slot, played-set, process
log) is owned by one ``DJEngine`` instance.  Everything runs on a single
asyncio loop; the in-flight flags only guard against overlapping awaits.
"""

import asyncio
import random
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Set

from loguru import logger

from .catalog import CatalogClient
from .config import DJConfig
from .errors import CatalogError, ScheduleCompileError
from .models import (
    Device,
    DJStatus,
    PlaybackState,
    PreloadSlot,
    ScheduleItem,
    Track,
)
from .normalize import deduplicate_tracks
from .playback import PlaybackController
from .process_log import ProcessLog
from .schedule import Schedule, parse_schedule_payload
from .search import SearchAggregator
from .selection import filter_by_popularity, place_priority_first, select_tracks


class DJEngine:
    def __init__(
        self,
        catalog,
        config: Optional[DJConfig] = None,
        compiler=None,
        store=None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.catalog = catalog
        self.config = config or DJConfig()
        self.compiler = compiler
        self.store = store
        self._clock = clock or datetime.now
        self._rng = rng or random.Random()

        self.schedule = Schedule()
        self.process_log = ProcessLog(self.config.process_log_size, clock=self._clock)
        self.search = SearchAggregator(catalog, self.config, self.process_log, self._rng)
        self.playback = PlaybackController(
            catalog, self.config, self.process_log, spawn=self._spawn
        )

        self.last_query: Optional[str] = None
        self._preloaded: Optional[PreloadSlot] = None
        self._preloading = False
        self._refilling = False
        self._session_played: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

        if store is not None:
            self.schedule.replace(store.load_schedule())
            self.last_query = store.load_last_query()

    @classmethod
    def create(cls, access_token: str, **kwargs) -> "DJEngine":
        """Build an engine talking to the live catalog with ``access_token``."""
        return cls(CatalogClient(access_token), **kwargs)

    async def dispose(self) -> None:
        """Cancel detached work and close the catalog connection."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        aclose = getattr(self.catalog, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("DJ engine disposed")

    def update_access_token(self, token: str) -> None:
        """Swap the catalog token; schedule, signature and logs are untouched."""
        self.catalog.update_access_token(token)
        logger.info("Access token updated")

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def join_background(self) -> None:
        """Wait until every detached task (preload, repeat-off) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    def set_schedule(self, items: List[Any]) -> List[ScheduleItem]:
        parsed = parse_schedule_payload(list(items))
        self.schedule.replace(parsed)
        self._persist_schedule()
        logger.info(f"Schedule set: {len(parsed)} blocks")
        return self.schedule.items

    def remove_schedule_item(self, index: int) -> List[ScheduleItem]:
        if self.schedule.remove(index):
            self._persist_schedule()
        return self.schedule.items

    async def create_schedule(
        self,
        instruction: str,
        personal_preference: Optional[str] = None,
    ) -> List[ScheduleItem]:
        """Ask the intent compiler for a schedule merged with the current one."""
        if self.compiler is None:
            raise ScheduleCompileError("AI not initialized: no intent compiler configured")
        items = await self.compiler.generate_schedule(
            instruction, self.schedule.items, personal_preference
        )
        self.schedule.replace(items)
        self._persist_schedule()
        logger.info(f"Schedule generated: {len(items)} blocks")
        return self.schedule.items

    def get_current_item(self) -> Optional[ScheduleItem]:
        return self.schedule.match_at(self._clock())

    def _persist_schedule(self) -> None:
        if self.store is not None:
            self.store.save_schedule(self.schedule.items)

    def _set_last_query(self, signature: Optional[str]) -> None:
        self.last_query = signature
        if self.store is not None:
            self.store.save_last_query(signature)

    # ------------------------------------------------------------------
    # Track pipeline
    # ------------------------------------------------------------------

    async def search_tracks(
        self,
        queries: List[str],
        priority_track: Optional[str] = None,
    ) -> List[Track]:
        """Search, dedupe, filter and select; the priority track, if found, leads."""
        result = await self.search.search(queries, priority_track)
        if result.is_empty:
            return []

        unique = deduplicate_tracks(result.tracks)
        self.process_log.add(
            f"Found {len(result.tracks)} raw hits -> {len(unique)} unique tracks"
        )
        filtered = filter_by_popularity(
            unique,
            preferred=self.config.preferred_popularity,
            relaxed=self.config.relaxed_popularity,
            min_viable=self.config.min_viable_tracks,
            log=self.process_log,
        )
        selected = select_tracks(filtered, self.config.max_tracks, self._rng)
        final = place_priority_first(selected, result.priority, self.config.max_tracks)
        self.process_log.add(f"Final playlist: {len(final)} tracks selected")
        return final

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------

    async def tick(self) -> None:
        now = self._clock()
        current = self.schedule.match_at(now)
        self._check_preload(now, current)

        if current is None:
            return

        signature = current.signature
        if signature != self.last_query:
            await self._transition(current, signature)
        else:
            await self.refill_queue(current)

    def _check_preload(self, now: datetime, current: Optional[ScheduleItem]) -> None:
        if len(self.schedule) <= 1:
            return
        upcoming = self.schedule.match_at(now + timedelta(milliseconds=self.config.preload_ms))
        if upcoming is None:
            return

        signature = upcoming.signature
        if signature == self.last_query:
            return
        if current is not None and signature == current.signature:
            return
        if self._preloaded is not None and self._preloaded.signature == signature:
            return
        if self._preloading:
            return

        logger.info(f"Preloading tracks for upcoming schedule: {signature}")
        self._preloading = True
        self._spawn(self._preload(upcoming, signature))

    async def _preload(self, item: ScheduleItem, signature: str) -> None:
        try:
            tracks = await self.search_tracks(item.queries, item.priority_track)
            if signature == self.last_query:
                logger.info(f"Dropping preload for {signature!r}: already applied")
                return
            self._preloaded = PreloadSlot(signature=signature, tracks=tracks)
            logger.info(f"Preloaded {len(tracks)} tracks for {signature!r}")
        except Exception:
            logger.exception(f"Failed to preload {signature!r}")
        finally:
            self._preloading = False

    async def _transition(self, item: ScheduleItem, signature: str) -> None:
        logger.info(f"DJ change: {signature}")
        self._set_last_query(signature)
        self.process_log.clear()
        self._session_played.clear()
        self.process_log.add("New DJ session started")
        if item.thought:
            self.process_log.add(f"DJ thought: {item.thought}")

        slot = self._preloaded
        if slot is not None and slot.signature == signature:
            self.process_log.add(f"Using preloaded tracks ({len(slot.tracks)})")
            tracks = slot.tracks
            self._preloaded = None
        else:
            self.process_log.add("Performing immediate search")
            tracks = await self.search_tracks(item.queries, item.priority_track)
            if self.last_query != signature:
                logger.info(f"Dropping stale transition to {signature!r}, now on {self.last_query!r}")
                return

        if not tracks:
            self.process_log.add("No tracks to play for this block")
            return

        try:
            await self.playback.play_tracks(tracks)
        except Exception as e:
            if self.last_query != signature:
                logger.warning(f"Stale transition to {signature!r} failed, keeping {self.last_query!r}: {e}")
                return
            logger.error(f"Playback failed, reverting DJ state to retry on next tick: {e}")
            self.process_log.add(f"⚠ Playback failed: {e}")
            self._set_last_query(None)
            raise

        if self.last_query != signature:
            return
        self._session_played.update(t.uri for t in tracks if t.uri)

    # ------------------------------------------------------------------
    # Queue refill
    # ------------------------------------------------------------------

    async def refill_queue(self, item: ScheduleItem) -> int:
        """Top up the remote queue when it runs low; returns the number of tracks added."""
        if self._refilling:
            return 0
        self._refilling = True
        try:
            return await self._refill(item)
        finally:
            self._refilling = False

    async def _refill(self, item: ScheduleItem) -> int:
        session = self.last_query
        try:
            queue = await self.catalog.get_queue()
        except CatalogError as e:
            logger.warning(f"Queue check skipped, could not fetch queue: {e}")
            return 0

        if len(queue) > self.config.refill_threshold:
            return 0

        self.process_log.add(f"Queue running low ({len(queue)} left), topping up")
        candidates = await self.search_tracks(item.queries)

        excluded = {t.uri for t in queue if t.uri} | self._session_played
        fresh: List[Track] = []
        for track in candidates:
            if not track.uri or track.uri in excluded:
                continue
            excluded.add(track.uri)
            fresh.append(track)
            if len(fresh) >= self.config.refill_batch_size:
                break

        if not fresh:
            logger.warning(f"No new unique tracks to add for {item.signature!r}")
            self.process_log.add("⚠ No new unique tracks found for refill")
            return 0

        added = 0
        for i, track in enumerate(fresh):
            if i and self.config.refill_append_delay:
                await asyncio.sleep(self.config.refill_append_delay)
            if self.last_query != session:
                logger.info(f"Intent changed to {self.last_query!r}, abandoning refill for {session!r}")
                break
            try:
                await self.catalog.add_to_queue(track.uri, self.playback.device_id)
            except CatalogError as e:
                logger.warning(f"Failed to queue {track.label()}: {e}")
                continue
            added += 1
            if self.last_query == session:
                self._session_played.add(track.uri)

        self.process_log.add(f"Added {added} tracks to the queue")
        self.process_log.sample("Queued", fresh)
        return added

    # ------------------------------------------------------------------
    # Player passthrough
    # ------------------------------------------------------------------

    async def get_queue(self) -> List[Track]:
        try:
            return await self.catalog.get_queue()
        except CatalogError as e:
            logger.warning(f"Failed to fetch queue: {e}")
            return []

    async def get_playback_state(self) -> Optional[PlaybackState]:
        try:
            return await self.catalog.get_playback_state()
        except CatalogError as e:
            logger.warning(f"Failed to fetch playback state: {e}")
            return None

    async def get_devices(self) -> List[Device]:
        try:
            return await self.catalog.get_devices()
        except CatalogError as e:
            logger.warning(f"Failed to fetch devices: {e}")
            return []

    async def set_active_device(self, device_id: str) -> None:
        await self.playback.set_active_device(device_id)

    async def next(self) -> None:
        await self._control("next")

    async def previous(self) -> None:
        await self._control("previous")

    async def pause(self) -> None:
        await self._control("pause")

    async def resume(self) -> None:
        await self._control("resume")

    async def _control(self, command: str) -> None:
        try:
            await getattr(self.catalog, command)(self.playback.device_id)
        except CatalogError as e:
            logger.warning(f"Control request {command} failed: {e}")

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_process_log(self) -> List[str]:
        return self.process_log.entries()

    def get_status(self) -> DJStatus:
        return DJStatus(
            current_schedule_item=self.get_current_item(),
            current_query=self.last_query,
            preloaded_query=self._preloaded.signature if self._preloaded else None,
            schedule_size=len(self.schedule),
            config=self.config,
        )

    @property
    def session_played(self) -> Set[str]:
        return set(self._session_played)

    @property
    def preloaded(self) -> Optional[PreloadSlot]:
        return self._preloaded

    def __repr__(self) -> str:
        return f"<DJEngine schedule={len(self.schedule)} last_query={self.last_query!r}>"
