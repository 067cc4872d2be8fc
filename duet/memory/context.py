"""Rolling conversation context: the last N completed turns.

Shared by every task in the process: each successful task appends one
entry, and every task reads the buffer to build its prompts. Appends and
clears are plain synchronous calls, so under a single event loop they
never interleave with another task's read.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from duet.errors import ValidationError
from duet.memory.schemas import ConversationEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10


class ConversationContext:
    """Fixed-capacity FIFO of ConversationEntry, oldest first."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if isinstance(max_entries, bool) or not isinstance(max_entries, int) or max_entries <= 0:
            raise ValidationError(f"max_entries must be a positive integer, got {max_entries!r}")
        self._max_entries = max_entries
        self._entries: deque[ConversationEntry] = deque(maxlen=max_entries)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def add_entry(self, entry: ConversationEntry | Mapping[str, Any]) -> ConversationEntry:
        """Append a completed turn, evicting the oldest one when full.

        Mappings are validated into a ConversationEntry first; anything
        missing one of timestamp/prompt/reasoning/response/model is rejected.
        """
        if not isinstance(entry, ConversationEntry):
            if not isinstance(entry, Mapping):
                raise ValidationError(f"Invalid conversation entry: {type(entry).__name__}")
            try:
                entry = ConversationEntry.model_validate(dict(entry))
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid conversation entry: {e}") from e

        evicting = len(self._entries) == self._max_entries
        self._entries.append(entry)
        if evicting:
            logger.debug("Context full (%d), evicted oldest entry", self._max_entries)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> tuple[ConversationEntry, ...]:
        """Snapshot of the buffer in insertion order."""
        return tuple(self._entries)

    def format_for_prompt(self) -> str:
        return "\n\n".join(
            f"Question: {e.prompt}\nReasoning: {e.reasoning}\nAnswer: {e.response}"
            for e in self._entries
        )

    def as_messages(self) -> list[dict[str, str]]:
        """Prior turns as alternating user/assistant chat messages."""
        messages: list[dict[str, str]] = []
        for e in self._entries:
            messages.append({"role": "user", "content": e.prompt})
            messages.append({"role": "assistant", "content": e.response})
        return messages
