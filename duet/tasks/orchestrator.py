"""Task orchestrator: drives one task through reasoning then response.

Pipeline per task:
  pending -> reasoning   (optionally clear rolling context, fetch editor history)
  reasoning -> responding (reasoning model produced reasoning text)
  responding -> complete  (response model answered; turn folded into context)
Any failure lands in the terminal error state with the exception message.

submit() returns as soon as the task exists; the pipeline runs as a
background asyncio task. Multiple pipelines interleave freely at every
remote call; the rolling context is the only state they share.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from duet.api.client import CompletionClient
from duet.config import Settings
from duet.errors import UpstreamError
from duet.memory.context import ConversationContext
from duet.memory.history import ClineHistorySource, format_history
from duet.memory.schemas import ConversationEntry, HistoryMessage
from duet.tasks.registry import TaskRegistry
from duet.tasks.schemas import TaskStatus

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_PLACEHOLDER = "Error: No response content"


class TaskOrchestrator:
    """Runs two-stage generation tasks and records their progress."""

    def __init__(
        self,
        registry: TaskRegistry,
        context: ConversationContext,
        client: CompletionClient,
        settings: Settings,
        history_source: ClineHistorySource | None = None,
    ) -> None:
        self._registry = registry
        self._context = context
        self._client = client
        self._settings = settings
        self._history_source = history_source
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of pipelines still running."""
        return len(self._running)

    def submit(
        self,
        prompt: str,
        show_reasoning: bool = False,
        clear_context: bool = False,
        include_history: bool = True,
    ) -> str:
        """Create a task and start its pipeline in the background.

        Raises ValidationError synchronously for a blank prompt.
        """
        if self._settings.task_retention > 0:
            self._registry.prune(self._settings.task_retention)

        task_id = self._registry.create_task(prompt, show_reasoning)
        pipeline = asyncio.create_task(
            self.run(task_id, clear_context=clear_context, include_history=include_history),
            name=f"duet-task-{task_id[:8]}",
        )
        self._running.add(pipeline)
        pipeline.add_done_callback(self._running.discard)
        logger.info("Task %s submitted", task_id[:8])
        return task_id

    async def stop(self) -> None:
        """Cancel pipelines still in flight (process shutdown only)."""
        for pipeline in list(self._running):
            pipeline.cancel()
        for pipeline in list(self._running):
            try:
                await pipeline
            except asyncio.CancelledError:
                pass
        self._running.clear()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run(self, task_id: str, clear_context: bool = False, include_history: bool = True) -> None:
        """Run the full pipeline for an existing pending task.

        Never raises: every failure is recorded on the task as status=error.
        """
        try:
            await self._run_stages(task_id, clear_context, include_history)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("Task %s failed: %s", task_id[:8], message)
            task = self._registry.get_task(task_id)
            if task is not None and not task.is_terminal:
                self._registry.set_status(task_id, TaskStatus.ERROR, error=message)

    async def _run_stages(self, task_id: str, clear_context: bool, include_history: bool) -> None:
        task = self._registry.require_task(task_id)

        if clear_context:
            self._context.clear()
            logger.debug("Rolling context cleared for task %s", task_id[:8])
        self._registry.set_status(task_id, TaskStatus.REASONING)

        history: list[HistoryMessage] | None = None
        if include_history and self._history_source is not None:
            history = await self._history_source.find_active_conversation()

        reasoning = await self._reason(task.prompt, history)
        self._registry.set_status(task_id, TaskStatus.RESPONDING, reasoning=reasoning)

        response = await self._respond(task.prompt, reasoning, history)

        self._context.add_entry(
            ConversationEntry(
                timestamp=datetime.now(UTC),
                prompt=task.prompt,
                reasoning=reasoning,
                response=response,
                model=self._settings.response_model,
            )
        )
        self._registry.set_status(task_id, TaskStatus.COMPLETE, reasoning=reasoning, response=response)
        logger.info("Task %s complete", task_id[:8])

    async def _reason(self, prompt: str, history: list[HistoryMessage] | None) -> str:
        """Stage 1: ask the reasoning model and keep only its reasoning text."""
        if history:
            formatted = format_history(history, self._settings.reasoning_history_limit)
            if formatted:
                prompt = f"{formatted}\n\nNew question: {prompt}"

        if len(self._context):
            prompt = f"Previous conversation:\n{self._context.format_for_prompt()}\n\nNew question: {prompt}"

        model = self._settings.reasoning_model
        completion = await self._client.complete(
            model,
            [{"role": "user", "content": prompt}],
            include_reasoning=True,
        )
        if not completion.reasoning:
            raise UpstreamError(f"No reasoning received from {model}")
        return completion.reasoning

    async def _respond(self, prompt: str, reasoning: str, history: list[HistoryMessage] | None) -> str:
        """Stage 2: answer conditioned on prior turns and the stage-1 reasoning."""
        if history:
            formatted = format_history(history, self._settings.response_history_limit)
            if formatted:
                prompt = f"{formatted}\n\nCurrent task: {prompt}"

        messages = [
            *self._context.as_messages(),
            {"role": "user", "content": prompt},
            {"role": "assistant", "content": f"<thinking>{reasoning}</thinking>"},
        ]
        completion = await self._client.complete(
            self._settings.response_model,
            messages,
            repetition_penalty=1,
        )
        if not completion.content:
            logger.warning("Empty response from %s, using placeholder", self._settings.response_model)
            return EMPTY_RESPONSE_PLACEHOLDER
        return completion.content
