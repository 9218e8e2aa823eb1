"""Shared fixtures for analysis tests."""

import asyncio
import copy
import json

import pytest

from meeting_insights.providers import GenerativeProvider

VALID_PAYLOAD = {
    "summary": {
        "executive": "The team agreed to ship the release by Friday.",
        "detailed": "Speaker A proposed shipping by Friday. Speaker B agreed and took ownership.",
        "bulletPoints": ["Ship by Friday", "Speaker B owns the release"],
    },
    "actionItems": [
        {
            "description": "Ship by Friday",
            "assignee": "Speaker B",
            "dueDate": None,
            "priority": "high",
        },
        {
            "description": "Update the changelog",
            "assignee": None,
            "dueDate": "2024-06-07",
            "priority": "low",
        },
    ],
    "decisions": [{"description": "Release ships Friday", "consensus": "unanimous"}],
    "topics": [
        {"name": "Release timeline", "relevance": 0.9},
        {"name": "Ownership", "relevance": 0.4},
    ],
    "sentiment": {"score": 0.6, "magnitude": 0.3, "primaryEmotion": "positive"},
    "suggestedTitle": "Friday release sync",
}


class ScriptedProvider(GenerativeProvider):
    """Provider double that replays scripted responses.

    Each script entry is either response text or an exception to raise.
    Records every prompt and tracks overlapping calls.
    """

    def __init__(self, script, delay: float = 0.0):
        self.script = list(script)
        self.delay = delay
        self.prompts: list[str] = []
        self.json_modes: list[bool] = []
        self.temperatures: list[float] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.shutdown_called = False

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt, *, temperature=0.2, json_mode=False, timeout=60.0):
        self.prompts.append(prompt)
        self.json_modes.append(json_mode)
        self.temperatures.append(temperature)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
            if isinstance(item, BaseException):
                raise item
            return item
        finally:
            self.in_flight -= 1

    async def shutdown(self) -> None:
        self.shutdown_called = True


@pytest.fixture
def valid_payload():
    """Fresh schema-compliant analysis payload."""
    return copy.deepcopy(VALID_PAYLOAD)


@pytest.fixture
def valid_response(valid_payload):
    """Schema-compliant payload serialized as provider response text."""
    return json.dumps(valid_payload)


@pytest.fixture
def scripted_provider():
    """Factory for ScriptedProvider instances."""

    def _create(*script, delay: float = 0.0) -> ScriptedProvider:
        return ScriptedProvider(script, delay=delay)

    return _create
