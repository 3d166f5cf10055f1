"""
Self-rescheduling tick loop around ``DJEngine.tick``.

One task runs one tick at a time: it awaits the tick, reads the playback
state to pick the next delay, then sleeps.  Ticks therefore never overlap.
The cadence tightens to ``fast_tick_interval`` while the playing track is
about to end, so slot boundaries are caught promptly.

Errors never stop the loop.  They are logged, kept as ``last_error`` and
handed to ``on_error`` (e.g. to show a toast), and the next tick runs as
usual.  For tests, ``run_once()`` drives a single iteration without timers.
"""

import asyncio
from typing import Callable, Optional

from loguru import logger

from .engine import DJEngine


class DJLoopRunner:
    def __init__(
        self,
        engine: DJEngine,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.engine = engine
        self.on_error = on_error
        self.last_error: Optional[str] = None
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.ensure_future(self._run())
        logger.info("DJ loop started")

    async def stop(self) -> None:
        self._stopping = True
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("DJ loop stopped")

    async def __aenter__(self) -> "DJLoopRunner":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _run(self) -> None:
        while not self._stopping:
            delay = await self.run_once()
            await asyncio.sleep(delay)

    async def run_once(self) -> float:
        """Run one tick and return the delay before the next one."""
        config = self.engine.config
        delay = config.tick_interval
        self.ticks += 1
        try:
            await self.engine.tick()
            self.last_error = None
            state = await self.engine.get_playback_state()
            if state is not None and state.is_playing:
                remaining = state.remaining_ms
                if remaining is not None and remaining < config.ending_soon_ms:
                    delay = config.fast_tick_interval
        except Exception as e:
            logger.error(f"Error in DJ loop tick: {e}")
            self.last_error = str(e)
            if self.on_error is not None:
                try:
                    self.on_error(e)
                except Exception:
                    logger.exception("DJ loop error callback failed")
        return delay
