"""Bounded, newest-first diagnostic trail shown in the operator log viewer."""

from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional

from loguru import logger


class ProcessLog:
    def __init__(
        self,
        max_entries: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._entries: Deque[str] = deque(maxlen=max_entries)
        self._clock = clock or datetime.now

    def add(self, message: str) -> str:
        entry = f"[{self._clock().strftime('%H:%M:%S')}] {message}"
        logger.info(message)
        self._entries.appendleft(entry)
        return entry

    def sample(self, label: str, tracks: list, count: int = 3) -> None:
        """Log the first few tracks of a list so the operator can eyeball results."""
        if not tracks:
            return
        names = ", ".join(t.label() for t in tracks[:count])
        more = f" ...and {len(tracks) - count} more" if len(tracks) > count else ""
        self.add(f"   {label}: {names}{more}")

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
