"""
Base classes for LLM providers.

Every provider implements the same capability interface: convert neutral
``LLMMessage`` objects to its wire shape, parse a full response or a stream
chunk into the neutral ``LLMResponse`` / ``StreamChunk``, and invoke the
model in buffering or streaming mode.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal

Role = Literal["user", "assistant", "tool", "system", "developer"]

# Text or a multimodal list of typed parts ({"type": "text", "text": ...}, ...)
MessageContent = str | list[dict[str, Any]] | None


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A tool call made by the LLM. ``arguments`` is the serialized JSON string."""

    id: str
    name: str
    arguments: str = "{}"


@dataclass
class LLMMessage:
    """A message in the conversation."""

    role: Role
    content: MessageContent = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    thinking: str | None = None


@dataclass
class LLMResponse:
    """Normalized response from an LLM."""

    content: str | None = None
    role: Role = "assistant"
    tool_calls: list[ToolCall] = field(default_factory=list)
    thinking: str | None = None
    token_consumption: int | None = None
    model: str = ""
    finish_reason: str | None = None
    raw_response: Any = None


@dataclass
class ToolCallDelta:
    """A fragment of one tool call, addressed by its position in the response."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass
class StreamChunk:
    """One normalized incremental unit of a streamed response."""

    role: Role | None = None
    content: str | None = None
    thinking: str | None = None
    tool_calls: list[ToolCallDelta] = field(default_factory=list)
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None
    raw: Any = None


class BaseLLM(ABC):
    """Base class for LLM providers."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int | None = 4096,
        temperature: float | None = 0.7,
        top_p: float | None = None,
        tool_choice: str | dict[str, Any] | None = None,
        parallel_tool_calls: bool | None = None,
        request_options: dict[str, Any] | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p
        self.tool_choice = tool_choice
        self.parallel_tool_calls = parallel_tool_calls
        self.request_options = dict(request_options or {})

    @abstractmethod
    def to_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert neutral messages to the provider's wire format."""
        pass

    @abstractmethod
    def parse_response(self, raw: Any) -> LLMResponse:
        """Parse a complete provider response."""
        pass

    @abstractmethod
    def parse_chunk(self, raw: Any) -> StreamChunk:
        """Parse one provider stream event."""
        pass

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from the LLM."""
        pass

    @abstractmethod
    def stream(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from the LLM."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass
