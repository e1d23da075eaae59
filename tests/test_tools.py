"""
Tests for tools module.
"""

import pytest

from veloca_agent.llm.base import ToolCall
from veloca_agent.tools.base import Tool, ToolOutcome, ToolParameter, ToolResult
from veloca_agent.tools.registry import ToolRegistry


async def get_weather(city: str, units: str = "celsius") -> ToolResult:
    return ToolResult(success=True, output=f"Sunny in {city}", data={"units": units})


async def broken(**kwargs) -> ToolResult:
    raise RuntimeError("tool exploded")


def _weather_tool() -> Tool:
    return Tool(
        name="get_weather",
        description="Get the current weather for a city",
        parameters=[
            ToolParameter(name="city", json_type="string", description="City name"),
            ToolParameter(
                name="units",
                json_type="string",
                description="Temperature units",
                required=False,
                enum=["celsius", "fahrenheit"],
            ),
        ],
        handler=get_weather,
    )


def test_tool_result_success():
    """Test successful tool result."""
    result = ToolResult(success=True, output="Test output", data={"key": "value"})

    assert result.success is True
    assert result.output == "Test output"
    assert result.data == {"key": "value"}
    assert result.error is None


def test_tool_outcome_content():
    """Test the text sent back to the model for a call."""
    ok = ToolOutcome(call_id="c1", function_name="f", result="done")
    failed = ToolOutcome(call_id="c2", function_name="f", error="boom")

    assert ok.success is True
    assert ok.content == "done"
    assert failed.success is False
    assert failed.content == "Error: boom"


def test_tool_outcome_from_result():
    call = ToolCall(id="c1", name="get_weather", arguments="{}")

    ok = ToolOutcome.from_result(call, ToolResult(success=True, output="sunny"))
    failed = ToolOutcome.from_result(call, ToolResult(success=False))

    assert (ok.call_id, ok.function_name, ok.result) == ("c1", "get_weather", "sunny")
    assert failed.error == "Tool failed"
    assert failed.result is None


def test_tool_definition():
    """Test the definition lists only required parameters as required."""
    definition = _weather_tool().definition()

    assert definition.name == "get_weather"
    assert definition.parameters["type"] == "object"
    assert definition.parameters["properties"]["city"] == {"type": "string", "description": "City name"}
    assert definition.parameters["properties"]["units"]["enum"] == ["celsius", "fahrenheit"]
    assert definition.parameters["required"] == ["city"]


def test_registry_definitions():
    registry = ToolRegistry()
    registry.register(_weather_tool())
    registry.register(Tool(name="broken", description="Always fails", handler=broken))

    definitions = registry.get_definitions()

    assert registry.list_tools() == ["get_weather", "broken"]
    assert [d.name for d in definitions] == ["get_weather", "broken"]
    assert definitions[1].parameters == {"type": "object", "properties": {}, "required": []}

    registry.unregister("broken")
    assert registry.get("broken") is None


@pytest.mark.asyncio
async def test_invoke_reports_missing_required_arguments():
    """Test a call without a required argument never reaches the handler."""
    calls = []

    async def handler(**kwargs) -> ToolResult:
        calls.append(kwargs)
        return ToolResult(success=True)

    tool = Tool(
        name="get_weather",
        description="Get the current weather for a city",
        parameters=[ToolParameter(name="city", json_type="string", description="City name")],
        handler=handler,
    )

    result = await tool.invoke({"units": "celsius"})

    assert result.success is False
    assert result.error == "Missing required arguments: city"
    assert calls == []


@pytest.mark.asyncio
async def test_execute_optional_argument_may_be_left_out():
    registry = ToolRegistry()
    registry.register(_weather_tool())

    result = await registry.execute("get_weather", {"city": "Oslo"})

    assert result.success is True
    assert result.data == {"units": "celsius"}


@pytest.mark.asyncio
async def test_execute_with_json_arguments():
    registry = ToolRegistry()
    registry.register(_weather_tool())

    result = await registry.execute("get_weather", '{"city": "NYC"}')

    assert result.success is True
    assert result.output == "Sunny in NYC"


@pytest.mark.asyncio
async def test_execute_unknown_tool():
    registry = ToolRegistry()
    result = await registry.execute("nope", {})

    assert result.success is False
    assert "not found" in result.error


@pytest.mark.asyncio
async def test_execute_invalid_json():
    registry = ToolRegistry()
    registry.register(_weather_tool())

    result = await registry.execute("get_weather", "{not json")

    assert result.success is False
    assert "Invalid JSON" in result.error


@pytest.mark.asyncio
async def test_execute_captures_handler_error():
    registry = ToolRegistry()
    registry.register(Tool(name="broken", description="Always fails", handler=broken))

    result = await registry.execute("broken", "")

    assert result.success is False
    assert result.error == "tool exploded"


@pytest.mark.asyncio
async def test_execute_calls_keeps_call_order():
    """Test sibling calls run together and outcomes line up with call ids."""
    registry = ToolRegistry()
    registry.register(_weather_tool())
    registry.register(Tool(name="broken", description="Always fails", handler=broken))

    outcomes = await registry.execute_calls([
        ToolCall(id="c1", name="get_weather", arguments='{"city": "Paris"}'),
        ToolCall(id="c2", name="broken", arguments="{}"),
        ToolCall(id="c3", name="missing", arguments="{}"),
    ])

    assert [o.call_id for o in outcomes] == ["c1", "c2", "c3"]
    assert outcomes[0].result == "Sunny in Paris"
    assert outcomes[1].error == "tool exploded"
    assert "not found" in outcomes[2].error
