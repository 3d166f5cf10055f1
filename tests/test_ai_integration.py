import asyncio
from datetime import datetime
from types import SimpleNamespace

import pytest

from ai_dj.ai_integration import MAX_TOKENS, MODEL, ScheduleAI
from ai_dj.errors import ScheduleCompileError
from ai_dj.intent import SYSTEM_PROMPT
from ai_dj.models import ScheduleItem


class FakeMessages:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=[
            SimpleNamespace(type="text", text=part) for part in self.reply
        ])


def make_ai(reply=None, error=None):
    messages = FakeMessages(reply, error)
    ai = ScheduleAI(
        api_key="test-key",
        clock=lambda: datetime(2025, 1, 31, 14, 5),
        client=SimpleNamespace(messages=messages),
    )
    return ai, messages


def test_generate_schedule_sends_prompt_and_parses_reply():
    ai, messages = make_ai(reply=[
        '```json\n[{"start":"14:00","end":"18:00",',
        '"queries":["upbeat pop"],"thought":"Energy"}]\n```',
    ])

    items = asyncio.run(ai.generate_schedule("upbeat pop this afternoon"))

    assert [i.queries for i in items] == [["upbeat pop"]]
    call = messages.calls[0]
    assert call["model"] == MODEL
    assert call["max_tokens"] == MAX_TOKENS
    assert call["system"] == SYSTEM_PROMPT
    content = call["messages"][0]["content"]
    assert content.startswith("Current Context: 2025-01-31 (Friday) 14:05")
    assert "User Request: upbeat pop this afternoon" in content


def test_existing_schedule_and_preference_reach_the_model():
    ai, messages = make_ai(reply=["[]"])
    current = [ScheduleItem(start="09:00", end="12:00", queries=["lofi"])]

    items = asyncio.run(ai.generate_schedule("more", current, "no vocals"))

    assert items == []
    content = messages.calls[0]["messages"][0]["content"]
    assert "Existing Schedule:" in content
    assert "no vocals" in content


def test_api_failure_becomes_compile_error():
    ai, _ = make_ai(error=RuntimeError("overloaded"))

    with pytest.raises(ScheduleCompileError, match="overloaded"):
        asyncio.run(ai.generate_schedule("anything"))


def test_disabled_without_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    ai = ScheduleAI()

    assert not ai.enabled
    with pytest.raises(ScheduleCompileError):
        asyncio.run(ai.generate_schedule("anything"))


def test_model_can_be_overridden_from_env(monkeypatch):
    monkeypatch.setenv("DJ_AI_MODEL", "claude-custom")
    assert ScheduleAI(api_key="k").model == "claude-custom"
