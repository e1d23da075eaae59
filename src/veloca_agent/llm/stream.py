"""
Folding streamed chunks into a complete response.

``accumulate`` is a pure step: it never mutates the state it is given, so a
consumer can forward each chunk downstream and fold it in the same pass
while the fold itself stays unit-testable on its own.
"""

from dataclasses import dataclass, field, replace

from ..exceptions import ProviderError
from .base import LLMResponse, Role, StreamChunk, ToolCall


@dataclass(frozen=True)
class PartialToolCall:
    """A tool call assembled from one or more deltas."""

    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass(frozen=True)
class StreamState:
    """Everything accumulated from a stream so far."""

    role: Role = "assistant"
    content: str = ""
    thinking: str = ""
    tool_calls: dict[int, PartialToolCall] = field(default_factory=dict)
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None
    chunk_count: int = 0

    @property
    def token_consumption(self) -> int | None:
        if self.total_tokens is not None:
            return self.total_tokens
        if self.input_tokens is None and self.output_tokens is None:
            return None
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    def to_response(self, model: str = "") -> LLMResponse:
        """Build the normalized response once the stream has drained."""
        if self.chunk_count == 0:
            raise ProviderError("Stream ended without producing any chunks")

        tool_calls = []
        # Index-addressed and possibly sparse: order by index, skip nameless gaps
        for index in sorted(self.tool_calls):
            partial = self.tool_calls[index]
            if not partial.name:
                continue
            tool_calls.append(ToolCall(
                id=partial.id or f"call_{index}",
                name=partial.name,
                arguments=partial.arguments or "{}",
            ))

        return LLMResponse(
            content=self.content or None,
            role=self.role,
            tool_calls=tool_calls,
            thinking=self.thinking or None,
            token_consumption=self.token_consumption,
            model=model,
            finish_reason=self.finish_reason,
        )


def accumulate(state: StreamState, chunk: StreamChunk) -> StreamState:
    """Fold one chunk into ``state`` and return the new state."""
    tool_calls = state.tool_calls
    if chunk.tool_calls:
        tool_calls = dict(state.tool_calls)
        for delta in chunk.tool_calls:
            current = tool_calls.get(delta.index, PartialToolCall())
            tool_calls[delta.index] = PartialToolCall(
                id=delta.id or current.id,
                name=current.name + (delta.name or ""),
                arguments=current.arguments + (delta.arguments or ""),
            )

    return replace(
        state,
        role=chunk.role or state.role,
        content=state.content + (chunk.content or ""),
        thinking=state.thinking + (chunk.thinking or ""),
        tool_calls=tool_calls,
        input_tokens=chunk.input_tokens if chunk.input_tokens is not None else state.input_tokens,
        output_tokens=chunk.output_tokens if chunk.output_tokens is not None else state.output_tokens,
        total_tokens=chunk.total_tokens if chunk.total_tokens is not None else state.total_tokens,
        finish_reason=chunk.finish_reason or state.finish_reason,
        chunk_count=state.chunk_count + 1,
    )
