"""
Tuning configuration for the DJ engine.

Every threshold the search, selection, playback and refill stages use lives
on ``DJConfig``.  Defaults match the values the player was tuned with; any
field can be overridden from the environment as ``DJ_<FIELD_NAME>``
(e.g. ``DJ_REFILL_BATCH_SIZE=8``).
"""

import os
from typing import Any, Dict, Mapping, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

ENV_PREFIX = "DJ_"


class DJConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Selection
    preferred_popularity: int = Field(15, ge=0, le=100)
    relaxed_popularity: int = Field(5, ge=0, le=100)
    min_viable_tracks: int = Field(5, ge=0)
    max_tracks: int = Field(40, ge=1)

    # Search
    track_search_limit: int = Field(40, ge=1, le=50)
    playlist_search_limit: int = Field(2, ge=1, le=50)
    playlist_track_limit: int = Field(20, ge=1, le=100)
    only_official: bool = False

    # Preload / refill
    preload_ms: int = Field(60_000, ge=0)
    refill_threshold: int = Field(2, ge=0)
    refill_batch_size: int = Field(5, ge=1)
    refill_append_delay: float = Field(0.3, ge=0)

    # Playback
    device_attempts: int = Field(3, ge=1)
    device_retry_delay: float = Field(1.0, ge=0)
    repeat_off_delay: float = Field(0.5, ge=0)

    # Loop cadence
    tick_interval: float = Field(5.0, gt=0)
    fast_tick_interval: float = Field(1.0, gt=0)
    ending_soon_ms: int = Field(10_000, ge=0)

    process_log_size: int = Field(100, ge=1)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DJConfig":
        """Build a config, letting ``DJ_*`` environment variables override defaults."""
        env = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw.strip() != "":
                overrides[name] = raw.strip()
        try:
            return cls(**overrides)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid DJ_* overrides, using defaults: {e}")
            return cls()
