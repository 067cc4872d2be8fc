"""Shared fixtures: real registry/context, fake completion client and history source."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from duet.api.client import Completion
from duet.config import Settings
from duet.memory.context import ConversationContext
from duet.memory.schemas import ConversationEntry, HistoryMessage
from duet.tasks.orchestrator import TaskOrchestrator
from duet.tasks.registry import TaskRegistry

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCompletionClient:
    """Canned completions keyed on the stage.

    Calls with include_reasoning=True are reasoning-stage calls; everything
    else is a response-stage call. Set `gate` to hold calls until released.
    """

    def __init__(self, reasoning: str | None = "Let me think it through.", content: str | None = "The answer.") -> None:
        self.reasoning = reasoning
        self.content = content
        self.reasoning_error: Exception | None = None
        self.response_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[str, list[dict], dict]] = []

    @property
    def reasoning_calls(self) -> list[tuple[str, list[dict], dict]]:
        return [c for c in self.calls if c[2].get("include_reasoning")]

    @property
    def response_calls(self) -> list[tuple[str, list[dict], dict]]:
        return [c for c in self.calls if not c[2].get("include_reasoning")]

    async def complete(self, model: str, messages: list[dict], **params) -> Completion:
        self.calls.append((model, messages, params))
        if self.gate is not None:
            await self.gate.wait()
        if params.get("include_reasoning"):
            if self.reasoning_error:
                raise self.reasoning_error
            return Completion(content="(ignored)", reasoning=self.reasoning, model=model)
        if self.response_error:
            raise self.response_error
        return Completion(content=self.content, reasoning=None, model=model)


class FakeHistorySource:
    """Returns a preset history and counts lookups."""

    def __init__(self, history: list[HistoryMessage] | None = None) -> None:
        self.history = history
        self.calls = 0

    async def find_active_conversation(self) -> list[HistoryMessage] | None:
        self.calls += 1
        return self.history


class RecordingRegistry(TaskRegistry):
    """TaskRegistry that keeps every snapshot it stores."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.snapshots = []

    def update_task(self, task_id, /, **fields):
        updated = super().update_task(task_id, **fields)
        self.snapshots.append(updated)
        return updated


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    """Real Settings that ignore any local .env file."""
    return Settings(_env_file=None, **overrides)


def make_entry(n: int, **overrides) -> ConversationEntry:
    fields = {
        "timestamp": datetime.now(UTC),
        "prompt": f"question {n}",
        "reasoning": f"reasoning {n}",
        "response": f"answer {n}",
        "model": "test/response-model",
    }
    fields.update(overrides)
    return ConversationEntry(**fields)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings(
        reasoning_model="test/reasoning-model",
        response_model="test/response-model",
        status_wait_timeout=1.0,
        status_poll_interval=0.01,
    )


@pytest.fixture
def registry(settings) -> RecordingRegistry:
    return RecordingRegistry(
        wait_timeout=settings.status_wait_timeout,
        poll_interval=settings.status_poll_interval,
    )


@pytest.fixture
def context() -> ConversationContext:
    return ConversationContext(max_entries=10)


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def history_source() -> FakeHistorySource:
    return FakeHistorySource()


@pytest.fixture
def orchestrator(registry, context, fake_client, settings, history_source) -> TaskOrchestrator:
    return TaskOrchestrator(registry, context, fake_client, settings, history_source)
