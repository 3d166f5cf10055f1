"""
Schedule Model: an ordered list of time-ranged intents.

``match_at`` answers "what should be playing at this moment?".  Items are
scanned in order and the first one whose half-open ``[start, end)`` range
contains the wall-clock ``HH:MM`` wins; ranges with ``start > end`` wrap past
midnight.  A schedule holding a single item treats it as always active.
"""

from datetime import datetime
from typing import Any, Iterable, Iterator, List, Optional

from loguru import logger
from pydantic import ValidationError

from .models import ScheduleItem

# Keys an intent compiler may wrap the list in instead of returning it bare
WRAPPER_KEYS = ("schedule", "items", "list", "blocks")


def parse_schedule_payload(raw: Any) -> List[ScheduleItem]:
    """
    Normalize externally produced schedule data.

    Accepts a bare list of item dicts or an object wrapping the list in one of
    ``WRAPPER_KEYS``.  Items that fail validation are dropped with a warning;
    anything unrecognisable yields an empty schedule, never an exception.
    """
    if isinstance(raw, dict):
        wrapped = next(
            (raw[k] for k in WRAPPER_KEYS if isinstance(raw.get(k), list)),
            None,
        )
        if wrapped is None:
            wrapped = next((v for v in raw.values() if isinstance(v, list)), None)
        raw = wrapped

    if not isinstance(raw, list):
        logger.warning(f"Schedule payload is not a list, treating as empty: {type(raw).__name__}")
        return []

    items: List[ScheduleItem] = []
    for i, entry in enumerate(raw):
        if isinstance(entry, ScheduleItem):
            items.append(entry)
            continue
        if not isinstance(entry, dict):
            logger.warning(f"Dropping schedule entry {i}: not an object")
            continue
        try:
            items.append(ScheduleItem.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Dropping schedule entry {i}: {e.errors()[0].get('msg', e)}")
    return items


class Schedule:
    def __init__(self, items: Optional[Iterable[ScheduleItem]] = None):
        self._items: List[ScheduleItem] = list(items or [])

    @property
    def items(self) -> List[ScheduleItem]:
        return list(self._items)

    def replace(self, items: Iterable[ScheduleItem]) -> None:
        self._items = list(items)

    def remove(self, index: int) -> bool:
        """Remove the item at ``index``; out-of-range indices are ignored."""
        if 0 <= index < len(self._items):
            del self._items[index]
            return True
        return False

    def match_at(self, when: datetime) -> Optional[ScheduleItem]:
        minute = when.hour * 60 + when.minute
        for item in self._items:
            if item.contains(minute):
                return item
        if len(self._items) == 1:
            return self._items[0]
        return None

    def to_payload(self) -> List[dict]:
        return [item.to_payload() for item in self._items]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ScheduleItem]:
        return iter(list(self._items))

    def __repr__(self) -> str:
        return f"<Schedule items={len(self._items)}>"
