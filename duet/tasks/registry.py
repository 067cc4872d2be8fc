"""Task registry: source of truth for in-flight and finished generation jobs.

All mutating operations are synchronous and replace the whole TaskInfo
record at once, so under the event loop they are atomic with respect to
every other task. Each status change sets a per-task asyncio.Event that
wakes callers parked in wait_for_update().
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from duet.errors import NotFoundError, ValidationError
from duet.tasks.schemas import IMMUTABLE_FIELDS, TRANSITIONS, TaskInfo, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 10.0  # seconds
DEFAULT_POLL_INTERVAL = 0.1  # seconds


def _validate_task_id(task_id: Any) -> None:
    if not isinstance(task_id, str) or not task_id:
        raise ValidationError("Invalid task ID")


def _validate_timeout(timeout: Any) -> None:
    if (
        isinstance(timeout, bool)
        or not isinstance(timeout, (int, float))
        or not math.isfinite(timeout)
        or timeout <= 0
    ):
        raise ValidationError(f"Timeout must be a positive number, got {timeout!r}")


class TaskRegistry:
    """Maps task id -> TaskInfo and lets callers wait for status changes."""

    def __init__(
        self,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        _validate_timeout(wait_timeout)
        _validate_timeout(poll_interval)
        self._tasks: dict[str, TaskInfo] = {}
        self._signals: dict[str, asyncio.Event] = {}
        self._wait_timeout = wait_timeout
        self._poll_interval = poll_interval

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    # ------------------------------------------------------------------
    # create / read
    # ------------------------------------------------------------------

    def create_task(self, prompt: str, show_reasoning: bool = False) -> str:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        task_id = uuid4().hex
        self._tasks[task_id] = TaskInfo(
            task_id=task_id,
            prompt=prompt,
            show_reasoning=bool(show_reasoning),
        )
        logger.debug("Created task %s", task_id[:8])
        return task_id

    def get_task(self, task_id: str) -> TaskInfo | None:
        _validate_task_id(task_id)
        return self._tasks.get(task_id)

    def require_task(self, task_id: str) -> TaskInfo:
        task = self.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    def update_task(self, task_id: str, /, **fields: Any) -> TaskInfo:
        """Merge fields into the task and refresh its timestamp.

        The replacement record is fully validated before it is stored; on
        any error the previous record stays in place untouched.
        """
        current = self.require_task(task_id)
        if current.is_terminal:
            raise ValidationError(f"Illegal transition for task {task_id}: {current.status} is terminal")

        frozen = IMMUTABLE_FIELDS.intersection(fields)
        if frozen:
            raise ValidationError(f"Cannot modify immutable task fields: {sorted(frozen)}")
        fields.pop("timestamp", None)

        try:
            updated = TaskInfo.model_validate(
                {**current.model_dump(), **fields, "timestamp": datetime.now(UTC)}
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid task update: {e}") from e

        if updated.status != current.status and updated.status not in TRANSITIONS[current.status]:
            raise ValidationError(
                f"Illegal transition for task {task_id}: {current.status} -> {updated.status}"
            )

        self._tasks[task_id] = updated
        if updated.status != current.status:
            logger.debug("Task %s: %s -> %s", task_id[:8], current.status, updated.status)
            self._notify(task_id)
        return updated

    def set_status(self, task_id: str, status: TaskStatus | str, /, **fields: Any) -> TaskInfo:
        return self.update_task(task_id, **fields, status=status)

    # ------------------------------------------------------------------
    # retention
    # ------------------------------------------------------------------

    def prune(self, max_age: float) -> int:
        """Drop terminal tasks whose last change is older than max_age seconds."""
        cutoff = datetime.now(UTC) - timedelta(seconds=max_age)
        stale = [
            task_id for task_id, task in self._tasks.items()
            if task.is_terminal and task.timestamp < cutoff
        ]
        for task_id in stale:
            del self._tasks[task_id]
            self._notify(task_id)
        if stale:
            logger.info("Pruned %d finished tasks older than %ss", len(stale), max_age)
        return len(stale)

    # ------------------------------------------------------------------
    # wait_for_update()
    # ------------------------------------------------------------------

    async def wait_for_update(self, task_id: str, timeout: float | None = None) -> TaskInfo:
        """Suspend until the task's status changes or timeout elapses.

        Returns immediately for terminal tasks. Otherwise wakes on the
        task's change signal and re-checks the registry at least every
        poll interval. Always returns the current snapshot, changed or not.
        """
        if timeout is None:
            timeout = self._wait_timeout
        _validate_timeout(timeout)

        task = self.require_task(task_id)
        if task.is_terminal:
            return task

        initial_status = task.status
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            current = self._tasks.get(task_id)
            if current is None:
                raise NotFoundError(f"Task {task_id} no longer exists")
            if current.status != initial_status or current.is_terminal:
                return current

            remaining = deadline - loop.time()
            if remaining <= 0:
                return current

            signal = self._signals.setdefault(task_id, asyncio.Event())
            try:
                await asyncio.wait_for(signal.wait(), timeout=min(self._poll_interval, remaining))
            except asyncio.TimeoutError:
                pass

    def _notify(self, task_id: str) -> None:
        signal = self._signals.pop(task_id, None)
        if signal is not None:
            signal.set()
