"""
Shared fixtures: scripted fake LLM providers and temporary stores.
"""

from typing import Any, AsyncIterator

import pytest

from veloca_agent.config import Settings
from veloca_agent.llm.base import (
    BaseLLM,
    LLMMessage,
    LLMResponse,
    StreamChunk,
    ToolDefinition,
)
from veloca_agent.storage import LocalFileStore


class FakeLLM(BaseLLM):
    """Provider that replays scripted responses and records every call.

    ``responses`` feed ``generate``; ``streams`` (lists of chunks) feed
    ``stream``. When a script runs out, the last item is repeated.
    """

    def __init__(
        self,
        responses: list[LLMResponse] | None = None,
        streams: list[list[StreamChunk]] | None = None,
    ):
        super().__init__(api_key="test-key", model="fake-model")
        self.responses = list(responses or [])
        self.streams = list(streams or [])
        self.calls: list[dict[str, Any]] = []

    def to_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        return [{"role": m.role, "content": m.content} for m in messages]

    def parse_response(self, raw: Any) -> LLMResponse:
        return raw

    def parse_chunk(self, raw: Any) -> StreamChunk:
        return raw

    def _next(self, script: list):
        index = min(len(self.calls) - 1, len(script) - 1)
        return script[index]

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        self.calls.append({"messages": list(messages), "tools": tools, "system_prompt": system_prompt})
        return self._next(self.responses)

    async def stream(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        self.calls.append({"messages": list(messages), "tools": tools, "system_prompt": system_prompt})
        for chunk in self._next(self.streams):
            yield chunk

    @property
    def provider_name(self) -> str:
        return "fake"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and pointed at tmp_path."""
    return Settings(
        _env_file=None,
        storage_dir=str(tmp_path / "storage"),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'veloca.db'}",
        tool_iteration_delay=1.5,
    )


@pytest.fixture
def store(tmp_path) -> LocalFileStore:
    return LocalFileStore(tmp_path / "storage")
