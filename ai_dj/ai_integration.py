"""
Claude API Integration for Schedule Generation

Uses the Anthropic SDK as the DJ's intent compiler: a natural language
request ("jazz until noon, then upbeat pop") goes in, a list of
``ScheduleItem``s comes out.  The prompt and the defensive response parser
live in ``intent.py``; this module only owns the API client.
"""

import os
from datetime import datetime
from typing import Any, Callable, List, Optional

from loguru import logger

from .errors import ScheduleCompileError
from .intent import SYSTEM_PROMPT, build_request_context, parse_schedule_response
from .models import ScheduleItem

MODEL = "claude-sonnet-4-6"
MAX_TOKENS = 2048


class ScheduleAI:
    """
    Intent compiler backed by Claude.

    Architecture:
    - Build the request context (date/time, preferences, existing schedule)
    - Send it with the DJ system prompt in a single messages call
    - Parse the text blocks of the reply into schedule items
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        client: Any = None,
    ):
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        self.model = model or os.environ.get("DJ_AI_MODEL", MODEL)
        self._clock = clock or datetime.now
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._api_key) or self._client is not None

    def _get_client(self):
        """Lazy-init the Anthropic client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def generate_schedule(
        self,
        user_request: str,
        current_schedule: Optional[List[ScheduleItem]] = None,
        personal_preference: Optional[str] = None,
    ) -> List[ScheduleItem]:
        if not self.enabled:
            raise ScheduleCompileError("No ANTHROPIC_API_KEY set; schedule generation unavailable")

        context = build_request_context(
            user_request,
            now=self._clock(),
            current_schedule=current_schedule,
            personal_preference=personal_preference,
        )

        try:
            client = self._get_client()
            response = await client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": context}],
            )
        except Exception as e:
            logger.error(f"Claude API error: {e}")
            raise ScheduleCompileError(f"Schedule generation failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        logger.info(f"AI raw output: {text[:500]}")

        items = parse_schedule_response(text)
        if not items:
            logger.warning("Intent compiler produced zero schedule blocks")
        return items
