"""Editor conversation history: locating it on disk and bounding it for prompts.

The history source reads the Cline VS Code extension's task storage. Each
task directory holds api_conversation_history.json (the chat) and
ui_messages.json (UI events, including "conversation_ended"). The most
recently modified conversation that has not ended is the active one.

History is best-effort enrichment: any failure reading it degrades to
"no history" instead of failing the task.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from duet.errors import HistoryUnavailable, ValidationError
from duet.memory.schemas import HistoryMessage

logger = logging.getLogger(__name__)

HISTORY_FILE = "api_conversation_history.json"
UI_MESSAGES_FILE = "ui_messages.json"
CLINE_EXTENSION_ID = "saoudrizwan.claude-dev"

_MESSAGES = TypeAdapter(list[HistoryMessage])
_SEPARATOR = "\n\n"


def format_history(messages: Sequence[HistoryMessage | dict[str, Any]], max_length: int) -> str:
    """Render the most recent messages that fit in max_length characters.

    Messages are taken newest first until the next one would push the joined
    output (separators included) past max_length, then put back into
    chronological order. The result is never longer than max_length.
    """
    if isinstance(max_length, bool) or not isinstance(max_length, int) or max_length <= 0:
        raise ValidationError(f"max_length must be a positive integer, got {max_length!r}")
    if not isinstance(messages, (list, tuple)):
        raise ValidationError("History must be a list of messages")
    try:
        parsed = _MESSAGES.validate_python(list(messages))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid message format in history: {e}") from e

    accepted: list[str] = []
    total = 0
    for msg in reversed(parsed):
        speaker = "Human" if msg.role == "user" else "Assistant"
        rendered = f"{speaker}: {msg.text}"
        cost = len(rendered) + (len(_SEPARATOR) if accepted else 0)
        if total + cost > max_length:
            break
        accepted.append(rendered)
        total += cost

    accepted.reverse()
    return _SEPARATOR.join(accepted)


def default_tasks_dir() -> Path:
    """Cline's global storage task directory for the current platform."""
    home = Path.home()
    if sys.platform == "win32":
        base = home / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        base = home / "Library" / "Application Support"
    else:
        base = home / ".config"
    return base / "Code" / "User" / "globalStorage" / CLINE_EXTENSION_ID / "tasks"


class ClineHistorySource:
    """Finds the active Cline conversation and parses its messages."""

    def __init__(self, tasks_dir: str | Path | None = None) -> None:
        self.tasks_dir = Path(tasks_dir) if tasks_dir else default_tasks_dir()

    async def find_active_conversation(self) -> list[HistoryMessage] | None:
        """Return the newest non-ended conversation, or None.

        File reads run in a worker thread so the event loop keeps serving
        other tasks and status polls.
        """
        try:
            return await asyncio.to_thread(self._load_active)
        except HistoryUnavailable as e:
            logger.warning("Editor history unavailable: %s", e)
            return None

    def _load_active(self) -> list[HistoryMessage] | None:
        if not self.tasks_dir.is_dir():
            raise HistoryUnavailable(f"Directory not found: {self.tasks_dir}")

        candidates: list[tuple[float, Path]] = []
        try:
            for child in self.tasks_dir.iterdir():
                if not child.is_dir():
                    continue
                mtime = self._active_mtime(child)
                if mtime is not None:
                    candidates.append((mtime, child))
        except OSError as e:
            raise HistoryUnavailable(f"Failed to scan {self.tasks_dir}: {e}") from e

        if not candidates:
            logger.info("No active conversations found in %s", self.tasks_dir)
            return None

        _, latest = max(candidates, key=lambda c: c[0])
        logger.debug("Using conversation %s", latest.name)
        return self._read_history(latest / HISTORY_FILE)

    def _active_mtime(self, conversation_dir: Path) -> float | None:
        """History file mtime if the conversation is readable and not ended."""
        try:
            mtime = (conversation_dir / HISTORY_FILE).stat().st_mtime
            ui_messages = json.loads((conversation_dir / UI_MESSAGES_FILE).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug("Skipping conversation %s: %s", conversation_dir.name, e)
            return None

        if not isinstance(ui_messages, list):
            logger.debug("Skipping conversation %s: ui messages are not a list", conversation_dir.name)
            return None
        if any(isinstance(m, dict) and m.get("type") == "conversation_ended" for m in ui_messages):
            return None
        return mtime

    def _read_history(self, path: Path) -> list[HistoryMessage]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise HistoryUnavailable(f"Failed to read {path}: {e}") from e
        if not isinstance(raw, list):
            raise HistoryUnavailable(f"{path} does not contain a message list")
        try:
            return _MESSAGES.validate_python(_text_only(raw))
        except PydanticValidationError as e:
            raise HistoryUnavailable(f"Invalid message format in {path}: {e}") from e


def _text_only(raw: list[Any]) -> list[Any]:
    """Drop non-text content parts (tool calls, images) from stored messages.

    A message whose content list holds no text at all is dropped entirely.
    """
    cleaned: list[Any] = []
    for msg in raw:
        if isinstance(msg, dict) and isinstance(msg.get("content"), list):
            parts = [
                p for p in msg["content"]
                if isinstance(p, dict) and isinstance(p.get("text"), str)
            ]
            if not parts:
                continue
            msg = {**msg, "content": parts}
        cleaned.append(msg)
    return cleaned
