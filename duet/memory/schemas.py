"""Pydantic DTOs for the rolling context and editor history."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class ConversationEntry(BaseModel):
    """One completed turn, folded into the rolling context."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    prompt: str
    reasoning: str
    response: str
    model: str


class ContentPart(BaseModel):
    """A typed text fragment inside a history message."""

    type: str
    text: str


class HistoryMessage(BaseModel):
    """A single role-tagged message from the editor's stored conversation."""

    role: Literal["user", "assistant"]
    content: str | list[ContentPart]

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content)
