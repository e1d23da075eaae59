"""
Tests for message assembly and context loading.
"""

from datetime import datetime, timedelta, timezone

import pytest

from veloca_agent.context.assembler import (
    assemble_messages,
    count_context_tokens,
    entry_to_message,
    load_context,
    summary_message,
)
from veloca_agent.context.prompts import SUMMARY_PREFIX
from veloca_agent.context.tokens import estimate_tokens
from veloca_agent.llm.base import ToolCall
from veloca_agent.storage.base import CompactionRecord, Entry
from veloca_agent.tools.base import ToolOutcome

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _entry(entry_id: str, role: str = "user", content="text", second: int = 0, **fields) -> Entry:
    return Entry(
        id=entry_id,
        role=role,
        content=content,
        created_at=BASE_TIME + timedelta(seconds=second),
        **fields,
    )


def test_assemble_without_summary():
    entries = [_entry("e1", content="hi"), _entry("e2", "assistant", "hello")]
    messages = assemble_messages(entries, None, None)

    assert [m.role for m in messages] == ["user", "assistant"]
    assert [m.content for m in messages] == ["hi", "hello"]


def test_assemble_start_is_inclusive():
    """Test the start entry itself is kept."""
    entries = [_entry("e1"), _entry("e2"), _entry("e3")]
    messages = assemble_messages(entries, "e2", None)

    assert len(messages) == 2


def test_assemble_prepends_summary():
    """Test the summary becomes one leading user message."""
    entries = [_entry("e1"), _entry("e2"), _entry("e3", content="latest")]
    messages = assemble_messages(entries, "e3", "what happened")

    assert len(messages) == 2
    assert messages[0].role == "user"
    assert messages[0].content == f"{SUMMARY_PREFIX}\nwhat happened"
    assert messages[1].content == "latest"


def test_assemble_unknown_start_keeps_everything():
    """Test an unknown start id is a warning, not an error."""
    entries = [_entry("e1"), _entry("e2")]
    messages = assemble_messages(entries, "missing", "S")

    assert len(messages) == 3


def test_assistant_tool_calls_get_null_content():
    """Test empty content next to tool calls becomes None."""
    entry = _entry(
        "e1",
        "assistant",
        "",
        tool_calls=[ToolCall(id="c1", name="get_weather", arguments='{"city": "NYC"}')],
    )
    message = entry_to_message(entry)

    assert message.content is None
    assert message.tool_calls[0].name == "get_weather"


def test_tool_entry_carries_call_id():
    entry = _entry(
        "e1",
        "tool",
        "sunny",
        tool_result=ToolOutcome(call_id="c1", function_name="get_weather", result="sunny"),
    )
    message = entry_to_message(entry)

    assert message.tool_call_id == "c1"
    assert message.name == "get_weather"
    assert message.content == "sunny"


def test_count_tokens_without_cache_estimates_all():
    entries = [_entry("e1", content="hello there"), _entry("e2", "assistant", "hi")]
    messages = assemble_messages(entries, None, None)

    assert count_context_tokens(entries, messages) == estimate_tokens(messages)


def test_count_tokens_reuses_reported_count():
    """Test only the tail after the last reported count is estimated."""
    entries = [
        _entry("e1", content="hello"),
        _entry("e2", "assistant", "hi", token_consumption=500),
        _entry("e3", content="abcdefgh"),
    ]
    messages = assemble_messages(entries, None, None)

    assert count_context_tokens(entries, messages) == 500 + 2


def test_count_tokens_lookback_limited_to_three_assistants():
    entries = [_entry("e0", "assistant", "x", token_consumption=999)]
    for i in range(1, 4):
        entries.append(_entry(f"u{i}", content="q"))
        entries.append(_entry(f"a{i}", "assistant", "a"))
    messages = assemble_messages(entries, None, None)

    assert count_context_tokens(entries, messages) == estimate_tokens(messages)


def test_count_tokens_ignores_counts_before_compaction():
    """Test a count reported before the active record is not reused."""
    record = CompactionRecord(
        id="r1", summary="S", trigger_entry_id="e1", created_at=BASE_TIME + timedelta(seconds=5)
    )
    entries = [
        _entry("e1", content="hello", second=0),
        _entry("e2", "assistant", "hi", second=1, token_consumption=5000),
    ]
    messages = [summary_message("S")] + assemble_messages(entries, None, None)

    count = count_context_tokens(entries, messages, offset=1, since=record)

    assert count == estimate_tokens(messages)


@pytest.mark.asyncio
async def test_load_context_empty_session(store):
    """Test a missing session assembles to nothing."""
    context = await load_context(store, "nope")

    assert context.messages == []
    assert context.used_tokens == 0
    assert context.summary is None


@pytest.mark.asyncio
async def test_load_context_with_compaction(store):
    """Test anchors line up with messages and the summary maps to its record."""
    e1 = await store.append_entry("s1", "user", "first question")
    e2 = await store.append_entry("s1", "assistant", "first answer")
    e3 = await store.append_entry("s1", "user", "second question")
    record = await store.append_compaction_record("s1", "asked one thing", e2.id)

    context = await load_context(store, "s1")

    assert context.summary == "asked one thing"
    assert context.record.id == record.id
    assert [m.content for m in context.messages[1:]] == ["second question"]
    assert context.anchors == [record.id, e3.id]
    assert e1.id not in context.anchors
    assert e2.id not in context.anchors
    assert context.used_tokens == estimate_tokens(context.messages)


@pytest.mark.asyncio
async def test_load_context_never_replays_tool_result_without_its_call(store):
    """Test a record ending on a tool result resumes at the following entry."""
    call = ToolCall(id="c1", name="get_weather", arguments='{"city": "NYC"}')
    await store.append_entry("s1", "user", "weather?")
    await store.append_entry("s1", "assistant", None, tool_calls=[call])
    tool = await store.append_entry(
        "s1",
        "tool",
        "sunny",
        tool_result=ToolOutcome(call_id="c1", function_name="get_weather", result="sunny"),
    )
    question = await store.append_entry("s1", "user", "and tomorrow?")
    record = await store.append_compaction_record("s1", "asked about NYC weather", tool.id)

    context = await load_context(store, "s1")

    assert context.anchors == [record.id, question.id]
    assert [m.role for m in context.messages] == ["user", "user"]
    assert context.messages[1].content == "and tomorrow?"
