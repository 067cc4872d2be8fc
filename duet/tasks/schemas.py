"""Task state DTOs.

TaskInfo is frozen: the registry replaces whole records on every change,
so a reader never sees a half-updated task.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(StrEnum):
    PENDING = "pending"
    REASONING = "reasoning"
    RESPONDING = "responding"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETE, TaskStatus.ERROR)


# Allowed forward moves; ERROR is reachable from every non-terminal state.
TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.REASONING, TaskStatus.ERROR}),
    TaskStatus.REASONING: frozenset({TaskStatus.RESPONDING, TaskStatus.ERROR}),
    TaskStatus.RESPONDING: frozenset({TaskStatus.COMPLETE, TaskStatus.ERROR}),
    TaskStatus.COMPLETE: frozenset(),
    TaskStatus.ERROR: frozenset(),
}

IMMUTABLE_FIELDS = frozenset({"task_id", "prompt", "show_reasoning", "created_at"})


def _now() -> datetime:
    return datetime.now(UTC)


class TaskInfo(BaseModel):
    """State of one two-stage generation job."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    task_id: str
    status: TaskStatus = TaskStatus.PENDING
    prompt: str
    show_reasoning: bool = False
    reasoning: str | None = None
    response: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=_now)
    timestamp: datetime = Field(default_factory=_now)  # last state change

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_status(self) -> dict[str, Any]:
        """Caller-facing view: reasoning only if requested, response only when complete."""
        result: dict[str, Any] = {"status": self.status.value}
        if self.show_reasoning and self.reasoning is not None:
            result["reasoning"] = self.reasoning
        if self.status == TaskStatus.COMPLETE and self.response is not None:
            result["response"] = self.response
        if self.error is not None:
            result["error"] = self.error
        return result
