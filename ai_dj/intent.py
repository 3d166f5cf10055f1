"""
Shared intent-compiling utilities for turning natural language into a DJ
schedule.

Holds the prompt the language model is given, the per-request context block
(current date/time, preferences, the schedule to merge into) and the
defensive parser that turns the model's raw text back into ``ScheduleItem``s.
Used by ``ai_integration.ScheduleAI``; any other compiler backend can reuse
the same prompt and parser.
"""

import json
import re
from datetime import datetime
from typing import List, Optional

from loguru import logger

from .models import ScheduleItem
from .schedule import parse_schedule_payload


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """
# Role
You are an excellent DJ assistant. Analyze the user's natural language instructions and return a list of "Start Time (HH:MM)", "End Time (HH:MM)", "Spotify Search Queries", and a short "DJ Thought" in JSON format.
# Rules
1. **Create Schedule**: New schedule from instructions.
2. **Future Only**: If "future only", skip the current time slot.
3. **JSON Only**: Raw JSON output only, no prose and no markdown.
# Output Format
[{"start":"00:00","end":"14:00","queries":["chill instrumental","artist:\\"Bill Evans\\"","genre:jazz"],"priorityTrack":"artist:\\"Bill Evans\\" Waltz for Debby","thought":"Morning chill jazz."},{"start":"14:00","end":"23:59","queries":["upbeat dance","genre:house","artist:\\"Daft Punk\\""],"thought":"Afternoon energy."}]
# Search Syntax
- `genre:` e.g. "genre:jazz"
- `year:` e.g. "year:1980-1989"
- `artist:` e.g. "artist:\\"Queen\\""
# Constraints
- **Time**: 24-hour (HH:MM). A slot may cross midnight (e.g. 23:00 -> 01:00).
- **Search queries**: hybrid language strategy.
  - Generic terms (genre, mood, vibe): always include English keywords ("Female Vocals", "90s Rock", "Piano Jazz").
  - Specific artists and songs: use their native language for accuracy.
  - Do not translate specific song titles unless the English title is known globally.
- **DJ Thought**: write it in the same language as the user's request.
- **Diversity**: provide 3-5 specific queries, never repeat identical keywords. Translate moods into concrete artists and genres.
- **Artist specificity**: if a specific artist is requested, every query must include that artist, quoted: artist:\\"TM Network\\" Get Wild
- **Cultural context**: prefer songs culturally tied to the request (memes, commercials, seasons).
- **Priority Track**: if one specific song is the core of the request, set "priorityTrack" to a search query for that song using its exact native title.
- **Query strategy**: specific song/artist associations first, then broader genre/mood. Mix safe hits and tasteful selections.
"""

MERGE_TASK = """
# Task: Merge Request into Schedule
1. **Prioritize New Request**: overwrite conflicting time slots.
2. **Keep Existing**: retain non-conflicting slots.
3. **Split Slots**: if needed (e.g. 14:00-16:00 + request at 15:00 -> 14-15 old and 15-16 new).
4. **Output**: return the COMPLETE updated schedule.
"""

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


# ---------------------------------------------------------------------------
# build_request_context
# ---------------------------------------------------------------------------

def build_request_context(
    user_request: str,
    now: Optional[datetime] = None,
    current_schedule: Optional[List[ScheduleItem]] = None,
    personal_preference: Optional[str] = None,
) -> str:
    """
    Build the user-turn text sent alongside ``SYSTEM_PROMPT``.

    Layout::

        Current Context: 2025-01-31 (Friday) 14:05
        User Request: <request>

        # Preferences (Strict)          (only when given)
        Existing Schedule: [...]        (only when a schedule exists)
        # Task: Merge Request ...
    """
    now = now or datetime.now()
    context = (
        f"Current Context: {now:%Y-%m-%d} ({now:%A}) {now:%H:%M}\n"
        f"User Request: {user_request}"
    )

    if personal_preference and personal_preference.strip():
        context += f"\n\n# Preferences (Strict)\n{personal_preference.strip()}"

    if current_schedule:
        payload = json.dumps([item.to_payload() for item in current_schedule], ensure_ascii=False)
        context += f"\n\nExisting Schedule:\n{payload}\n{MERGE_TASK}"

    return context


# ---------------------------------------------------------------------------
# parse_schedule_response
# ---------------------------------------------------------------------------

def parse_schedule_response(text: str) -> List[ScheduleItem]:
    """
    Turn raw model output into schedule items.

    Markdown fences are stripped; if the text still isn't valid JSON, the
    outermost ``[...]`` or ``{...}`` block is tried.  Malformed output yields
    an empty list so the caller can ask the user to retry.
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    if not cleaned:
        logger.warning("Intent compiler returned an empty response")
        return []

    data = _loads_lenient(cleaned)
    if data is None:
        logger.warning(f"Could not parse intent compiler output as JSON: {cleaned[:200]!r}")
        return []
    return parse_schedule_payload(data)


def _loads_lenient(text: str):
    try:
        return json.loads(text)
    except ValueError:
        pass
    for open_ch, close_ch in (("[", "]"), ("{", "}")):
        start, end = text.find(open_ch), text.rfind(close_ch)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except ValueError:
                continue
    return None
