"""
Tools the agent loop can hand to a model.

A ``Tool`` is an async handler plus the parameters it accepts. The handler
returns a ``ToolResult``; each call the model requested is then recorded as
a ``ToolOutcome``, which is what a tool entry persists and what the model
sees on the next turn.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ..llm.base import ToolCall, ToolDefinition


@dataclass
class ToolResult:
    """What a handler returns."""

    success: bool
    output: str = ""
    data: Any = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)


@dataclass
class ToolOutcome:
    """The recorded result of one requested tool call."""

    call_id: str
    function_name: str
    result: str | None = None
    error: str | None = None

    @classmethod
    def from_result(cls, call: ToolCall, result: ToolResult) -> "ToolOutcome":
        if result.success:
            return cls(call_id=call.id, function_name=call.name, result=result.output)
        return cls(call_id=call.id, function_name=call.name, error=result.error or "Tool failed")

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def content(self) -> str:
        """Text sent back to the model for this call."""
        if self.error is not None:
            return f"Error: {self.error}"
        return self.result or ""


@dataclass
class ToolParameter:
    """One named argument of a tool."""

    name: str
    json_type: str  # string, integer, number, boolean, array, object
    description: str
    required: bool = True
    enum: list[str] | None = None

    def schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.json_type, "description": self.description}
        if self.enum:
            prop["enum"] = list(self.enum)
        return prop


ToolHandler = Callable[..., Awaitable[ToolResult]]


@dataclass
class Tool:
    """An async function a model may call by name."""

    name: str
    description: str
    handler: ToolHandler
    parameters: list[ToolParameter] = field(default_factory=list)

    def definition(self) -> ToolDefinition:
        """The provider-neutral definition sent with each model call."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters={
                "type": "object",
                "properties": {p.name: p.schema() for p in self.parameters},
                "required": [p.name for p in self.parameters if p.required],
            },
        )

    def missing_arguments(self, arguments: dict[str, Any]) -> list[str]:
        return [p.name for p in self.parameters if p.required and p.name not in arguments]

    async def invoke(self, arguments: dict[str, Any]) -> ToolResult:
        """Call the handler, refusing calls that leave out a required argument."""
        missing = self.missing_arguments(arguments)
        if missing:
            return ToolResult.failure(f"Missing required arguments: {', '.join(missing)}")
        return await self.handler(**arguments)
