"""
LLM module for model invocation.

Providers:
- OpenAI GPT (native SDK)
- Anthropic Claude (native SDK)
- OpenRouter (via OpenAI-compatible endpoint)
"""

from .anthropic import AnthropicLLM
from .base import (
    BaseLLM,
    LLMMessage,
    LLMResponse,
    StreamChunk,
    ToolCall,
    ToolCallDelta,
    ToolDefinition,
)
from .factory import create_llm
from .openai import OpenAILLM
from .stream import StreamState, accumulate

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "StreamChunk",
    "ToolCall",
    "ToolCallDelta",
    "ToolDefinition",
    "AnthropicLLM",
    "OpenAILLM",
    "StreamState",
    "accumulate",
    "create_llm",
]
