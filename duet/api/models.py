"""Argument models for the MCP tools.

Field aliases keep the camelCase names callers send over the wire.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr


class GenerateResponseArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: StrictStr
    show_reasoning: StrictBool = Field(False, alias="showReasoning")
    clear_context: StrictBool = Field(False, alias="clearContext")
    include_history: StrictBool = Field(True, alias="includeHistory")


class CheckResponseStatusArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: StrictStr = Field(alias="taskId")
