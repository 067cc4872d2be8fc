"""Tasks: registry, status waiting and the two-stage orchestrator.

Public API: TaskRegistry, TaskOrchestrator + schema types.
"""

from duet.tasks.orchestrator import EMPTY_RESPONSE_PLACEHOLDER, TaskOrchestrator
from duet.tasks.registry import TaskRegistry
from duet.tasks.schemas import TRANSITIONS, TaskInfo, TaskStatus

__all__ = [
    "EMPTY_RESPONSE_PLACEHOLDER",
    "TRANSITIONS",
    "TaskInfo",
    "TaskOrchestrator",
    "TaskRegistry",
    "TaskStatus",
]
