"""MCP interface: the two-stage generator as an asynchronous tool.

Exposes 2 tools:
  generate_response      - Start a task, returns {"taskId"} immediately
  check_response_status  - Wait briefly for progress, returns the task's status

Uses the mcp library's low-level Server; main.py attaches it to stdio or
Streamable HTTP.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool
from pydantic import ValidationError as PydanticValidationError

from duet.api.models import CheckResponseStatusArgs, GenerateResponseArgs
from duet.config import Settings
from duet.tasks.orchestrator import TaskOrchestrator
from duet.tasks.registry import TaskRegistry

logger = logging.getLogger(__name__)

SERVER_NAME = "duet"


def create_mcp_server(
    orchestrator: TaskOrchestrator,
    registry: TaskRegistry,
    settings: Settings,
) -> Server:
    """Create the MCP server with duet tools."""
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name="generate_response",
                description=(
                    f"Generate a response using {settings.reasoning_model}'s reasoning and "
                    f"{settings.response_model}'s response generation. Returns a task ID "
                    "immediately; poll check_response_status for the result."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "prompt": {"type": "string", "description": "The user's input prompt"},
                        "showReasoning": {
                            "type": "boolean",
                            "description": "Whether to include reasoning in the status result",
                        },
                        "clearContext": {
                            "type": "boolean",
                            "description": "Clear the rolling conversation context before this request",
                        },
                        "includeHistory": {
                            "type": "boolean",
                            "description": "Include the active Cline conversation history (default: true)",
                        },
                    },
                    "required": ["prompt"],
                },
            ),
            Tool(
                name="check_response_status",
                description=(
                    "Check the status of a response generation task. Waits up to "
                    f"{settings.status_wait_timeout:g}s for progress before returning."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "taskId": {"type": "string", "description": "The task ID from generate_response"},
                    },
                    "required": ["taskId"],
                },
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Route tool calls to appropriate handlers."""
        try:
            if name == "generate_response":
                return await _handle_generate(arguments)
            elif name == "check_response_status":
                return await _handle_check(arguments)
            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]
        except Exception as e:
            logger.error("MCP tool %s error: %s", name, e)
            return [TextContent(type="text", text=f"Error: {_describe(e)}")]

    async def _handle_generate(args: dict) -> list[TextContent]:
        params = GenerateResponseArgs.model_validate(args)
        task_id = orchestrator.submit(
            params.prompt,
            show_reasoning=params.show_reasoning,
            clear_context=params.clear_context,
            include_history=params.include_history,
        )
        return [TextContent(type="text", text=json.dumps({"taskId": task_id}))]

    async def _handle_check(args: dict) -> list[TextContent]:
        params = CheckResponseStatusArgs.model_validate(args)
        task = await registry.wait_for_update(params.task_id)
        return [TextContent(type="text", text=json.dumps(task.to_status()))]

    return server


def _describe(error: Exception) -> str:
    if isinstance(error, PydanticValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in error.errors()
        )
    return str(error) or type(error).__name__
