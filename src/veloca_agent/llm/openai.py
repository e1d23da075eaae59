"""
OpenAI GPT LLM provider (also works with OpenRouter and compatible APIs).
"""

from typing import Any, AsyncIterator

import openai
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


class OpenAILLM(BaseLLM):
    """OpenAI Chat Completions provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int | None = 4096,
        temperature: float | None = 0.7,
        client_options: dict[str, Any] | None = None,
        **kwargs: Any,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature, **kwargs)
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            **(client_options or {}),
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    def to_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to OpenAI format."""
        converted = []

        for msg in messages:
            if msg.role == "tool":
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.content if msg.content is not None else "",
                })
            elif msg.role == "assistant" and msg.tool_calls:
                converted.append({
                    "role": "assistant",
                    # null, never "", is accepted next to tool_calls
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": tc.arguments},
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                converted.append({
                    "role": msg.role,
                    "content": msg.content if msg.content is not None else "",
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to OpenAI format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

    def _build_request(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None,
        system_prompt: str | None,
    ) -> dict[str, Any]:
        converted_messages = self.to_messages(messages)

        if system_prompt:
            converted_messages.insert(0, {"role": "system", "content": system_prompt})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": converted_messages,
        }

        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.top_p is not None:
            kwargs["top_p"] = self.top_p

        if tools:
            kwargs["tools"] = self._convert_tools(tools)
            if self.tool_choice is not None:
                kwargs["tool_choice"] = self.tool_choice
            if self.parallel_tool_calls is not None:
                kwargs["parallel_tool_calls"] = self.parallel_tool_calls

        kwargs.update(self.request_options)
        return kwargs

    def parse_response(self, raw: Any) -> LLMResponse:
        """Parse a ChatCompletion into the neutral shape."""
        if not getattr(raw, "choices", None):
            raise ProviderError("OpenAI response has no choices", details={"model": self.model})

        choice = raw.choices[0]
        message = choice.message

        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
            for tc in (message.tool_calls or [])
        ]

        return LLMResponse(
            content=message.content,
            role=getattr(message, "role", None) or "assistant",
            tool_calls=tool_calls,
            # Reasoning-capable compatible endpoints expose this extra field
            thinking=getattr(message, "reasoning_content", None),
            token_consumption=raw.usage.total_tokens if raw.usage else None,
            model=raw.model,
            finish_reason=choice.finish_reason,
            raw_response=raw,
        )

    def parse_chunk(self, raw: Any) -> StreamChunk:
        """Parse a ChatCompletionChunk into the neutral shape."""
        chunk = StreamChunk(raw=raw)

        usage = getattr(raw, "usage", None)
        if usage is not None:
            chunk.input_tokens = usage.prompt_tokens
            chunk.output_tokens = usage.completion_tokens
            chunk.total_tokens = usage.total_tokens

        if not raw.choices:
            return chunk

        choice = raw.choices[0]
        delta = choice.delta
        chunk.role = delta.role
        chunk.content = delta.content
        chunk.thinking = getattr(delta, "reasoning_content", None)
        chunk.finish_reason = choice.finish_reason
        chunk.tool_calls = [
            ToolCallDelta(
                index=tc.index,
                id=tc.id,
                name=tc.function.name if tc.function else None,
                arguments=tc.function.arguments if tc.function else None,
            )
            for tc in (delta.tool_calls or [])
        ]
        return chunk

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from GPT."""
        kwargs = self._build_request(messages, tools, system_prompt)

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            logger.error("OpenAI API error", error=str(e))
            raise

        return self.parse_response(response)

    async def stream(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from GPT."""
        kwargs = self._build_request(messages, tools, system_prompt)
        kwargs["stream"] = True
        kwargs.setdefault("stream_options", {"include_usage": True})

        try:
            stream = await self.client.chat.completions.create(**kwargs)

            # Closing the stream releases the HTTP response when the consumer stops early
            async with stream:  # type: ignore
                async for chunk in stream:
                    yield self.parse_chunk(chunk)

        except openai.APIError as e:
            logger.error("OpenAI streaming error", error=str(e))
            raise
