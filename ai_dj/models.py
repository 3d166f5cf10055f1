"""
Data models for the DJ engine.

Two families live here:

- Remote result types (``Track``, ``Playlist``, ``Device``, ``PlaybackState``)
  parsed defensively from catalog responses.  Unknown fields are ignored and
  ``null`` values fall back to the field default, so a half-filled response
  never crashes the loop.
- Schedule types (``ScheduleItem``) produced by the intent compiler and held
  by the schedule model, plus the small internal value types the engine
  passes around (``SearchResult``, ``PreloadSlot``).
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from loguru import logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .config import DJConfig

M = TypeVar("M", bound=BaseModel)

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")

MINUTES_PER_DAY = 24 * 60


# ---------------------------------------------------------------------------
# Remote result types
# ---------------------------------------------------------------------------

class _RemoteModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # null means "absent" everywhere in the catalog API
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


def _only_dicts(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


class Artist(_RemoteModel):
    id: Optional[str] = None
    name: str = ""


class Image(_RemoteModel):
    url: str = ""
    height: Optional[int] = None
    width: Optional[int] = None


class Album(_RemoteModel):
    id: Optional[str] = None
    name: str = ""
    images: List[Image] = Field(default_factory=list)

    @field_validator("images", mode="before")
    @classmethod
    def _clean_images(cls, v: Any) -> List[Dict[str, Any]]:
        return _only_dicts(v)


class Track(_RemoteModel):
    """A catalog track, optionally tagged with the playlist it came from."""

    id: Optional[str] = None
    name: str = ""
    artists: List[Artist] = Field(default_factory=list)
    popularity: int = 0
    uri: str = ""
    type: str = "track"
    duration_ms: int = 0
    album: Optional[Album] = None
    context_name: Optional[str] = None

    @field_validator("artists", mode="before")
    @classmethod
    def _clean_artists(cls, v: Any) -> List[Dict[str, Any]]:
        return _only_dicts(v)

    @property
    def primary_artist(self) -> str:
        return self.artists[0].name if self.artists else ""

    @property
    def is_playable_track(self) -> bool:
        return self.type == "track" and bool(self.id) and bool(self.uri)

    def label(self) -> str:
        return f"{self.name} ({self.primary_artist or 'unknown'})"


class Playlist(_RemoteModel):
    id: Optional[str] = None
    name: str = ""
    uri: str = ""


class Device(_RemoteModel):
    id: Optional[str] = None
    name: str = ""
    type: str = ""
    is_active: bool = False
    volume_percent: Optional[int] = None


class PlaybackState(_RemoteModel):
    is_playing: bool = False
    progress_ms: Optional[int] = None
    item: Optional[Track] = None
    device: Optional[Device] = None
    shuffle_state: Optional[bool] = None
    repeat_state: Optional[str] = None

    @property
    def remaining_ms(self) -> Optional[int]:
        """Milliseconds left in the current item, or None when unknown."""
        if not self.item or not self.item.duration_ms or self.progress_ms is None:
            return None
        return self.item.duration_ms - self.progress_ms


def parse_many(model: Type[M], items: Any) -> List[M]:
    """Validate each dict in ``items`` as ``model``, skipping anything malformed."""
    parsed: List[M] = []
    if not isinstance(items, list):
        return parsed
    for raw in items:
        if not isinstance(raw, dict):
            continue
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError as e:
            logger.debug(f"Skipping malformed {model.__name__}: {e}")
    return parsed


# ---------------------------------------------------------------------------
# Schedule types
# ---------------------------------------------------------------------------

def parse_clock_time(value: str) -> int:
    """Convert ``"HH:MM"`` (or ``"H:MM"``, ``"HH:MM:SS"``) to minutes past midnight."""
    m = _TIME_RE.match(str(value))
    if not m:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    hour, minute = int(m.group(1)), int(m.group(2))
    if minute > 59 or hour > 24 or (hour == 24 and minute != 0):
        raise ValueError(f"Time out of range: {value!r}")
    return hour * 60 + minute


class ScheduleItem(BaseModel):
    """
    One time slot of the DJ schedule.

    ``[start, end)`` is a half-open wall-clock interval; ``start > end`` means
    the slot runs across midnight.  ``queries`` is never empty after
    validation.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    start: str
    end: str
    queries: List[str]
    priority_track: Optional[str] = Field(default=None, alias="priorityTrack")
    thought: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_query(cls, data: Any) -> Any:
        # Older schedules carry a single "query" string instead of "queries"
        if isinstance(data, dict) and not data.get("queries") and data.get("query"):
            data = {**data, "queries": [data["query"]]}
        return data

    @field_validator("start", "end", mode="before")
    @classmethod
    def _normalize_time(cls, v: Any) -> str:
        minutes = parse_clock_time(v)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @field_validator("queries", mode="before")
    @classmethod
    def _clean_queries(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, (list, tuple)):
            raise ValueError("queries must be a list of strings")
        cleaned = [str(q).strip() for q in v if q is not None and str(q).strip()]
        if not cleaned:
            raise ValueError("queries must contain at least one non-empty string")
        return cleaned

    @field_validator("priority_track", "thought", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @property
    def start_minute(self) -> int:
        return parse_clock_time(self.start)

    @property
    def end_minute(self) -> int:
        return parse_clock_time(self.end)

    def contains(self, minute: int) -> bool:
        start, end = self.start_minute, self.end_minute
        if start <= minute < end:
            return True
        if start > end:
            return minute >= start or minute < end
        return False

    @property
    def signature(self) -> str:
        return query_signature(self.queries, self.priority_track)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def query_signature(queries: Iterable[str], priority_track: Optional[str] = None) -> str:
    """Key used to decide whether the active intent has changed."""
    signature = "|".join(queries)
    if priority_track:
        signature += f"||{priority_track}"
    return signature


# ---------------------------------------------------------------------------
# Engine value types
# ---------------------------------------------------------------------------

@dataclass
class SearchResult:
    """Pooled search hits plus the resolved priority track, if any."""

    tracks: List[Track] = field(default_factory=list)
    priority: Optional[Track] = None

    @property
    def is_empty(self) -> bool:
        return not self.tracks and self.priority is None


@dataclass(frozen=True)
class PreloadSlot:
    signature: str
    tracks: List[Track]


class DJStatus(BaseModel):
    current_schedule_item: Optional[ScheduleItem] = None
    current_query: Optional[str] = None
    preloaded_query: Optional[str] = None
    schedule_size: int = 0
    config: DJConfig
