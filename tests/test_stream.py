"""
Tests for folding streamed chunks.
"""

import pytest

from veloca_agent.exceptions import ProviderError
from veloca_agent.llm.base import StreamChunk, ToolCallDelta
from veloca_agent.llm.stream import StreamState, accumulate


def _fold(chunks: list[StreamChunk]) -> StreamState:
    state = StreamState()
    for chunk in chunks:
        state = accumulate(state, chunk)
    return state


def test_accumulate_text():
    state = _fold([
        StreamChunk(role="assistant", content="Hel"),
        StreamChunk(content="lo"),
        StreamChunk(content=None, finish_reason="stop"),
    ])

    assert state.content == "Hello"
    assert state.role == "assistant"
    assert state.finish_reason == "stop"
    assert state.chunk_count == 3


def test_accumulate_is_pure():
    """Test folding never mutates the state it was given."""
    before = StreamState()
    after = accumulate(before, StreamChunk(
        content="x",
        tool_calls=[ToolCallDelta(index=0, id="c1", name="get_weather")],
    ))

    assert before.content == ""
    assert before.tool_calls == {}
    assert before.chunk_count == 0
    assert after.content == "x"

    again = accumulate(after, StreamChunk(tool_calls=[ToolCallDelta(index=0, arguments="{}")]))
    assert after.tool_calls[0].arguments == ""
    assert again.tool_calls[0].arguments == "{}"


def test_tool_arguments_assembled_across_fragments():
    state = _fold([
        StreamChunk(tool_calls=[ToolCallDelta(index=0, id="c1", name="get_weather", arguments="")]),
        StreamChunk(tool_calls=[ToolCallDelta(index=0, arguments='{"ci')]),
        StreamChunk(tool_calls=[ToolCallDelta(index=0, arguments='ty": "NYC"}')]),
    ])

    response = state.to_response("gpt-4o")

    assert len(response.tool_calls) == 1
    assert response.tool_calls[0].id == "c1"
    assert response.tool_calls[0].name == "get_weather"
    assert response.tool_calls[0].arguments == '{"city": "NYC"}'
    assert response.model == "gpt-4o"


def test_sparse_tool_call_indices():
    """Test index-addressed calls come back ordered and nameless gaps are skipped."""
    state = _fold([
        StreamChunk(tool_calls=[ToolCallDelta(index=2, id="c2", name="second", arguments="{}")]),
        StreamChunk(tool_calls=[ToolCallDelta(index=0, id="c0", name="first", arguments="{}")]),
        StreamChunk(tool_calls=[ToolCallDelta(index=1, arguments="{}")]),
    ])

    response = state.to_response()

    assert [call.name for call in response.tool_calls] == ["first", "second"]


def test_usage_is_overwritten_by_later_chunks():
    state = _fold([
        StreamChunk(input_tokens=10),
        StreamChunk(output_tokens=3),
        StreamChunk(output_tokens=7),
    ])

    assert state.input_tokens == 10
    assert state.output_tokens == 7
    assert state.token_consumption == 17

    state = accumulate(state, StreamChunk(total_tokens=20))
    assert state.token_consumption == 20


def test_thinking_accumulated():
    state = _fold([StreamChunk(thinking="Let me "), StreamChunk(thinking="think")])
    response = state.to_response()

    assert response.thinking == "Let me think"
    assert response.content is None
    assert response.token_consumption is None


def test_empty_stream_raises():
    with pytest.raises(ProviderError):
        StreamState().to_response()
