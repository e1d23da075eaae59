"""
The agent loop - drives one conversational turn against a stored session.

Each iteration assembles the session's context, compacts it when it nears
the context window, calls the model, persists the answer, and runs any tool
calls the model asked for. The loop ends when a response carries no tool
calls, or fails once the iteration ceiling is reached.

Two modes share the same state machine:
- ``run`` waits for the full response before deciding what to do next;
- ``run_stream`` forwards every chunk as it arrives, folds it into a
  ``StreamState`` in the same pass, and emits a marker event as soon as
  thinking or a tool call first shows up in the stream.
"""

import asyncio
import contextlib
from dataclasses import dataclass
from typing import AsyncIterator, Literal

import structlog

from ..config import LLMConfig, Settings, StorageMode, get_settings
from ..context import (
    CompactionConfig,
    compact_conversation,
    load_context,
    should_compact,
)
from ..exceptions import AgentCancelledError, ConfigurationError, IterationLimitError
from ..llm import (
    BaseLLM,
    LLMMessage,
    LLMResponse,
    StreamChunk,
    StreamState,
    ToolCall,
    ToolDefinition,
    accumulate,
    create_llm,
)
from ..llm.base import MessageContent
from ..storage import SessionStore, create_store
from ..tools import ToolRegistry

logger = structlog.get_logger()

AgentEventType = Literal["thinking", "tool_calls", "error", "done"]


@dataclass
class AgentInput:
    """What one invocation of the loop works on.

    Unset optional fields fall back to ``Settings``. ``load_mode`` defaults
    to ``storage_mode``.
    """

    session_id: str
    context_window: int
    storage_mode: StorageMode | None = None
    load_mode: StorageMode | None = None
    compaction_threshold: float | None = None
    compact_ratio: float | None = None
    max_iterations: int | None = None
    user_message: MessageContent = None

    def validate(self) -> None:
        """Raise ``ConfigurationError`` for a missing or invalid field."""
        if not self.session_id:
            raise ConfigurationError("session_id is required")
        if not self.context_window or self.context_window <= 0:
            raise ConfigurationError(
                "context_window must be a positive token count",
                details={"context_window": self.context_window},
            )
        for name in ("compaction_threshold", "compact_ratio"):
            value = getattr(self, name)
            if value is not None and not 0 < value <= 1:
                raise ConfigurationError(
                    f"{name} must be a fraction in (0, 1]",
                    details={name: value},
                )
        if self.max_iterations is not None and self.max_iterations < 1:
            raise ConfigurationError(
                "max_iterations must be at least 1",
                details={"max_iterations": self.max_iterations},
            )
        if self.load_mode and self.storage_mode and self.load_mode != self.storage_mode:
            raise ConfigurationError(
                "load_mode and storage_mode must name the same backend",
                details={"load_mode": self.load_mode, "storage_mode": self.storage_mode},
            )


@dataclass
class AgentEvent:
    """A marker emitted by the streaming loop alongside raw chunks."""

    type: AgentEventType
    content: str | None = None
    tool_name: str | None = None
    response: LLMResponse | None = None
    error: Exception | None = None


def _new_markers(before: StreamState, after: StreamState) -> list[AgentEvent]:
    """Markers for what the latest chunk revealed for the first time."""
    markers = []
    if after.thinking and not before.thinking:
        markers.append(AgentEvent(type="thinking", content=after.thinking))

    for index in sorted(after.tool_calls):
        name = after.tool_calls[index].name
        seen = before.tool_calls.get(index)
        if name and not (seen and seen.name):
            markers.append(AgentEvent(type="tool_calls", content=f"[tool_calls:{name}]", tool_name=name))

    return markers


@dataclass
class _Run:
    """Everything resolved once per invocation."""

    session_id: str
    llm: BaseLLM
    store: SessionStore
    compaction: CompactionConfig
    max_iterations: int
    tools: list[ToolDefinition]
    system_prompt: str | None
    cancel_event: asyncio.Event | None = None


class AgentLoop:
    """Runs the call-model / run-tools / repeat cycle for a session."""

    def __init__(
        self,
        llm: BaseLLM | None = None,
        tool_registry: ToolRegistry | None = None,
        settings: Settings | None = None,
        stores: dict[str, SessionStore] | None = None,
    ):
        self.settings = settings or get_settings()
        self.llm = llm
        self.tool_registry = tool_registry or ToolRegistry()
        self.stores: dict[str, SessionStore] = dict(stores or {})

    def get_store(self, mode: StorageMode) -> SessionStore:
        """Get (or lazily create) the store for a storage mode."""
        if mode not in self.stores:
            self.stores[mode] = create_store(mode, self.settings)
        return self.stores[mode]

    async def _start(
        self,
        agent_input: AgentInput,
        config: LLMConfig | None,
        cancel_event: asyncio.Event | None,
    ) -> _Run:
        agent_input.validate()
        config = config or self.settings.get_llm_config()

        if self.llm is None:
            self.llm = create_llm(config, self.settings)

        mode = agent_input.load_mode or agent_input.storage_mode or self.settings.storage_mode
        store = self.get_store(mode)

        run = _Run(
            session_id=agent_input.session_id,
            llm=self.llm,
            store=store,
            compaction=CompactionConfig(
                context_window=agent_input.context_window,
                compaction_threshold=(
                    agent_input.compaction_threshold or self.settings.compaction_threshold
                ),
                compact_ratio=agent_input.compact_ratio or self.settings.compact_ratio,
            ),
            max_iterations=agent_input.max_iterations or self.settings.max_iterations,
            tools=self.tool_registry.get_definitions(),
            system_prompt=config.system_prompt,
            cancel_event=cancel_event,
        )

        if agent_input.user_message is not None:
            await store.append_entry(run.session_id, "user", agent_input.user_message)

        logger.info(
            "Agent loop started",
            session_id=run.session_id,
            provider=run.llm.provider_name,
            storage_mode=mode,
            max_iterations=run.max_iterations,
        )
        return run

    def _check_cancelled(self, run: _Run, iteration: int) -> None:
        if run.cancel_event is not None and run.cancel_event.is_set():
            logger.info("Agent loop cancelled", session_id=run.session_id, iteration=iteration)
            raise AgentCancelledError(
                "Agent loop was cancelled",
                details={"session_id": run.session_id, "iteration": iteration},
            )

    async def _maybe_compact(self, run: _Run, iteration: int) -> list[LLMMessage]:
        """Assemble the session's context, compacting it if it is too large."""
        context = await load_context(run.store, run.session_id)
        config = run.compaction

        if not should_compact(
            context.used_tokens,
            config.context_window,
            config.compaction_threshold,
        ):
            return context.messages

        logger.info(
            "Context approaching limit, running compaction",
            session_id=run.session_id,
            iteration=iteration,
            estimated_tokens=context.used_tokens,
            context_window=config.context_window,
        )
        messages, _ = await compact_conversation(
            run.llm,
            run.store,
            run.session_id,
            context.messages,
            context.anchors,
            context.used_tokens,
            config,
            previous_summary=context.summary,
        )
        return messages

    async def _persist_response(self, run: _Run, response: LLMResponse) -> None:
        await run.store.append_entry(
            run.session_id,
            "assistant",
            response.content,
            tool_calls=response.tool_calls or None,
            thinking=response.thinking,
            token_consumption=response.token_consumption,
        )

    async def _execute_tools(self, run: _Run, tool_calls: list[ToolCall]) -> None:
        """Run sibling tool calls concurrently and persist results in call order."""
        outcomes = await self.tool_registry.execute_calls(tool_calls)
        for outcome in outcomes:
            await run.store.append_entry(
                run.session_id,
                "tool",
                outcome.content,
                tool_result=outcome,
            )

    async def _pause(self, run: _Run) -> None:
        """Wait between tool iterations, waking early on cancellation."""
        delay = self.settings.tool_iteration_delay
        if run.cancel_event is None:
            await asyncio.sleep(delay)
            return

        try:
            await asyncio.wait_for(run.cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise AgentCancelledError(
            "Agent loop was cancelled",
            details={"session_id": run.session_id},
        )

    async def _after_tools(self, run: _Run, response: LLMResponse, iteration: int) -> None:
        await self._execute_tools(run, response.tool_calls)
        self._check_cancelled(run, iteration)
        if iteration < run.max_iterations:
            await self._pause(run)

    def _limit_reached(self, run: _Run) -> IterationLimitError:
        logger.warning(
            "Agent loop reached iteration limit",
            session_id=run.session_id,
            max_iterations=run.max_iterations,
        )
        return IterationLimitError(run.max_iterations, session_id=run.session_id)

    async def run(
        self,
        agent_input: AgentInput,
        config: LLMConfig | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> LLMResponse:
        """Run the loop in buffering mode and return the final response."""
        run = await self._start(agent_input, config, cancel_event)

        for iteration in range(1, run.max_iterations + 1):
            self._check_cancelled(run, iteration)
            messages = await self._maybe_compact(run, iteration)

            logger.debug(
                "Calling model",
                session_id=run.session_id,
                iteration=iteration,
                message_count=len(messages),
            )
            response = await run.llm.generate(
                messages=messages,
                tools=run.tools or None,
                system_prompt=run.system_prompt,
            )
            self._check_cancelled(run, iteration)
            await self._persist_response(run, response)

            if not response.tool_calls:
                logger.info("Agent loop finished", session_id=run.session_id, iterations=iteration)
                return response

            await self._after_tools(run, response, iteration)

        raise self._limit_reached(run)

    async def run_stream(
        self,
        agent_input: AgentInput,
        config: LLMConfig | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamChunk | AgentEvent]:
        """Run the loop in streaming mode.

        Yields every ``StreamChunk`` as it arrives, each followed by any
        marker it triggered. The final event is ``done`` carrying the
        response. The provider stream is closed on every exit path.
        Failures yield an ``error`` event before the exception propagates.
        """
        try:
            run = await self._start(agent_input, config, cancel_event)

            for iteration in range(1, run.max_iterations + 1):
                self._check_cancelled(run, iteration)
                messages = await self._maybe_compact(run, iteration)

                state = StreamState()
                stream = run.llm.stream(
                    messages=messages,
                    tools=run.tools or None,
                    system_prompt=run.system_prompt,
                )
                async with contextlib.aclosing(stream):
                    async for chunk in stream:
                        yield chunk
                        previous, state = state, accumulate(state, chunk)
                        for marker in _new_markers(previous, state):
                            yield marker
                        self._check_cancelled(run, iteration)

                response = state.to_response(run.llm.model)
                await self._persist_response(run, response)

                if not response.tool_calls:
                    logger.info(
                        "Agent loop finished",
                        session_id=run.session_id,
                        iterations=iteration,
                    )
                    yield AgentEvent(type="done", content=response.content, response=response)
                    return

                await self._after_tools(run, response, iteration)

            raise self._limit_reached(run)

        except Exception as e:
            logger.error("Agent loop failed", session_id=agent_input.session_id, error=str(e))
            yield AgentEvent(type="error", content=str(e), error=e)
            raise


def invoke_agent(
    agent_input: AgentInput,
    config: LLMConfig | None = None,
    *,
    llm: BaseLLM | None = None,
    tool_registry: ToolRegistry | None = None,
    settings: Settings | None = None,
    stores: dict[str, SessionStore] | None = None,
    cancel_event: asyncio.Event | None = None,
):
    """Invoke the agent loop.

    Returns an awaitable ``LLMResponse`` when ``config.stream`` is false, and
    an async iterator of ``StreamChunk | AgentEvent`` when it is true.
    """
    loop = AgentLoop(
        llm=llm,
        tool_registry=tool_registry,
        settings=settings,
        stores=stores,
    )
    if config is not None and config.stream:
        return loop.run_stream(agent_input, config, cancel_event)
    return loop.run(agent_input, config, cancel_event)
