"""
Anthropic Claude LLM provider.
"""

import json
from typing import Any, AsyncIterator

import anthropic
import structlog

from ..exceptions import ProviderError
from .base import (
    BaseLLM,
    LLMMessage,
    LLMResponse,
    StreamChunk,
    ToolCall,
    ToolCallDelta,
    ToolDefinition,
)

logger = structlog.get_logger()

DEFAULT_MAX_TOKENS = 4096


def _parse_arguments(arguments: str) -> dict[str, Any]:
    try:
        parsed = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class AnthropicLLM(BaseLLM):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        max_tokens: int | None = DEFAULT_MAX_TOKENS,
        temperature: float | None = 0.7,
        client_options: dict[str, Any] | None = None,
        **kwargs: Any,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature, **kwargs)
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            **(client_options or {}),
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def to_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to Anthropic format."""
        converted: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role in ("system", "developer"):
                continue

            if msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content if msg.content is not None else "",
                }
                # Results answering one assistant turn share a single user message
                previous = converted[-1] if converted else None
                if (
                    previous
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and previous["content"]
                    and previous["content"][-1].get("type") == "tool_result"
                ):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            elif msg.role == "assistant" and msg.tool_calls:
                content: list[dict[str, Any]] = []
                if isinstance(msg.content, str) and msg.content:
                    content.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    content.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": _parse_arguments(tc.arguments),
                    })
                converted.append({"role": "assistant", "content": content})
            else:
                converted.append({
                    "role": msg.role,
                    "content": msg.content if msg.content is not None else "",
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Anthropic format."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]

    def _extract_system_prompt(self, messages: list[LLMMessage]) -> str | None:
        """Extract system prompt from messages."""
        for msg in messages:
            if msg.role in ("system", "developer") and isinstance(msg.content, str):
                return msg.content
        return None

    def _convert_tool_choice(self) -> dict[str, Any] | None:
        choice = self.tool_choice
        if choice is None:
            return None
        if isinstance(choice, dict):
            return dict(choice)
        if choice == "required":
            return {"type": "any"}
        return {"type": choice}

    def _build_request(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None,
        system_prompt: str | None,
    ) -> dict[str, Any]:
        system = system_prompt or self._extract_system_prompt(messages)

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": self.to_messages(messages),
        }

        if system:
            kwargs["system"] = system
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.top_p is not None:
            kwargs["top_p"] = self.top_p

        if tools:
            kwargs["tools"] = self._convert_tools(tools)
            tool_choice = self._convert_tool_choice()
            if tool_choice is not None:
                if self.parallel_tool_calls is False:
                    tool_choice["disable_parallel_tool_use"] = True
                kwargs["tool_choice"] = tool_choice

        kwargs.update(self.request_options)
        return kwargs

    def parse_response(self, raw: Any) -> LLMResponse:
        """Parse a Message into the neutral shape."""
        if getattr(raw, "content", None) is None:
            raise ProviderError("Anthropic response has no content", details={"model": self.model})

        content = ""
        thinking = ""
        tool_calls = []

        for block in raw.content:
            if block.type == "text":
                content += block.text
            elif block.type == "thinking":
                thinking += block.thinking
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=json.dumps(block.input if isinstance(block.input, dict) else {}),
                ))

        usage = raw.usage
        return LLMResponse(
            content=content or None,
            role="assistant",
            tool_calls=tool_calls,
            thinking=thinking or None,
            token_consumption=usage.input_tokens + usage.output_tokens if usage else None,
            model=raw.model,
            finish_reason=raw.stop_reason,
            raw_response=raw,
        )

    def parse_chunk(self, raw: Any) -> StreamChunk:
        """Parse one raw stream event into the neutral shape."""
        chunk = StreamChunk(raw=raw)

        if raw.type == "message_start":
            chunk.role = "assistant"
            chunk.input_tokens = raw.message.usage.input_tokens
        elif raw.type == "content_block_start":
            block = raw.content_block
            if block.type == "tool_use":
                chunk.tool_calls = [ToolCallDelta(index=raw.index, id=block.id, name=block.name)]
            elif block.type == "text":
                chunk.content = block.text
            elif block.type == "thinking":
                chunk.thinking = block.thinking
        elif raw.type == "content_block_delta":
            delta = raw.delta
            if delta.type == "text_delta":
                chunk.content = delta.text
            elif delta.type == "input_json_delta":
                chunk.tool_calls = [ToolCallDelta(index=raw.index, arguments=delta.partial_json)]
            elif delta.type == "thinking_delta":
                chunk.thinking = delta.thinking
        elif raw.type == "message_delta":
            chunk.output_tokens = raw.usage.output_tokens
            chunk.finish_reason = raw.delta.stop_reason

        return chunk

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from Claude."""
        kwargs = self._build_request(messages, tools, system_prompt)

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e))
            raise

        return self.parse_response(response)

    async def stream(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from Claude."""
        kwargs = self._build_request(messages, tools, system_prompt)
        kwargs["stream"] = True

        try:
            stream = await self.client.messages.create(**kwargs)

            async with stream:  # type: ignore
                async for event in stream:
                    yield self.parse_chunk(event)

        except anthropic.APIError as e:
            logger.error("Anthropic streaming error", error=str(e))
            raise
