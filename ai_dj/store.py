"""
Local persistence for the schedule and the last-applied query signature.

State is a single JSON document at ``.data/dj_state.json`` so a restarted
player resumes the same schedule without re-triggering playback for an
intent that was already applied.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from .models import ScheduleItem
from .schedule import parse_schedule_payload

_REPO_ROOT = Path(__file__).resolve().parent.parent
STATE_PATH = _REPO_ROOT / ".data" / "dj_state.json"


class StateStore:
    def __init__(self, path: Path = STATE_PATH) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read DJ state from {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def load_schedule(self) -> List[ScheduleItem]:
        return parse_schedule_payload(self._read().get("schedule", []))

    def save_schedule(self, items: List[ScheduleItem]) -> None:
        data = self._read()
        data["schedule"] = [item.to_payload() for item in items]
        self._write(data)

    def load_last_query(self) -> Optional[str]:
        value = self._read().get("last_query")
        return value if isinstance(value, str) and value else None

    def save_last_query(self, signature: Optional[str]) -> None:
        data = self._read()
        if signature is None:
            data.pop("last_query", None)
        else:
            data["last_query"] = signature
        self._write(data)

    def __repr__(self) -> str:
        return f"<StateStore path={self.path}>"
