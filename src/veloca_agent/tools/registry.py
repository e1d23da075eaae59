"""
Tool registry for looking up and running the tools a model may call.
"""

import asyncio
import json
from typing import Any

import structlog

from ..llm.base import ToolCall, ToolDefinition
from .base import Tool, ToolOutcome, ToolResult

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for managing tools."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool of the same name."""
        self._tools[tool.name] = tool
        logger.info("Tool registered", tool_name=tool.name)

    def unregister(self, name: str) -> None:
        if self._tools.pop(name, None) is not None:
            logger.info("Tool unregistered", tool_name=name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        return list(self._tools)

    def get_definitions(self) -> list[ToolDefinition]:
        """Definitions for every registered tool, in registration order."""
        return [tool.definition() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: str | dict[str, Any]) -> ToolResult:
        """Run a tool by name. ``arguments`` may be a JSON string.

        Failures (unknown tool, bad arguments, a raising handler) come back
        as unsuccessful results so the model can see and react to them.
        """
        tool = self.get(name)
        if tool is None:
            return ToolResult.failure(f"Tool '{name}' not found")

        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                logger.warning("Invalid tool arguments", tool_name=name, error=str(e))
                return ToolResult.failure(f"Invalid JSON arguments: {e}")

        if not isinstance(arguments, dict):
            return ToolResult.failure("Tool arguments must be a JSON object")

        try:
            logger.info("Executing tool", tool_name=name, arguments=arguments)
            result = await tool.invoke(arguments)
            logger.info("Tool executed", tool_name=name, success=result.success)
            return result
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e))
            return ToolResult.failure(str(e))

    async def execute_calls(self, tool_calls: list[ToolCall]) -> list[ToolOutcome]:
        """Run sibling tool calls concurrently; outcomes come back in call order."""
        results = await asyncio.gather(
            *(self.execute(call.name, call.arguments) for call in tool_calls)
        )
        return [ToolOutcome.from_result(call, result) for call, result in zip(tool_calls, results)]
