import logging

import pytest
from pydantic import BaseModel

import mcp_engine.types as types
from mcp_engine.server.exceptions import InvalidSignature, ToolError
from mcp_engine.server.tools import Tool, ToolManager, convert_result


class TestAddTools:
    def test_basic_function(self):
        def add(a: int, b: int) -> int:
            """Add two numbers."""
            return a + b

        manager = ToolManager()
        manager.add_tool(add)

        tool = manager.get_tool("add")
        assert tool is not None
        assert tool.name == "add"
        assert tool.description == "Add two numbers."
        assert tool.is_async is False
        assert tool.parameters["properties"]["a"]["type"] == "integer"
        assert tool.parameters["required"] == ["a", "b"]

    def test_async_function(self):
        async def fetch(url: str) -> str:
            return url

        tool = ToolManager().add_tool(fetch)
        assert tool.is_async is True

    def test_explicit_input_schema(self):
        schema = {"type": "object", "properties": {"q": {"type": "string"}}}

        def search(q: str) -> str:
            return q

        tool = ToolManager().add_tool(search, name="find", description="Find things", input_schema=schema)
        assert tool.to_mcp_tool() == types.Tool(name="find", description="Find things", inputSchema=schema)

    def test_lambda_needs_name(self):
        with pytest.raises(ValueError, match="name for lambda"):
            Tool.from_function(lambda x: x)

    def test_underscore_parameter_rejected(self):
        def bad(_private: int) -> int:
            return _private

        with pytest.raises(InvalidSignature):
            ToolManager().add_tool(bad)

    def test_duplicate_tool_warns(self, caplog: pytest.LogCaptureFixture):
        def f(x: int) -> int:
            return x

        manager = ToolManager()
        first = manager.add_tool(f)
        with caplog.at_level(logging.WARNING):
            second = manager.add_tool(f)
        assert first is second
        assert "Tool already exists: f" in caplog.text

    def test_decorator(self):
        manager = ToolManager()

        @manager.tool(name="shout")
        def upper(text: str) -> str:
            return text.upper()

        assert [tool.name for tool in manager.list_tools()] == ["shout"]

    def test_decorator_without_call(self):
        manager = ToolManager()
        with pytest.raises(TypeError, match="Did you forget to call it"):

            @manager.tool  # type: ignore[arg-type]
            def f(x: int) -> int:
                return x


@pytest.mark.anyio
class TestCallTools:
    async def test_call_tool(self):
        manager = ToolManager()

        @manager.tool()
        def add(a: int, b: int) -> int:
            return a + b

        result = await manager.call_tool("add", {"a": 1, "b": "2"})
        assert result == types.CallToolResult(content=[types.TextContent(text="3")])

    async def test_call_async_tool(self):
        manager = ToolManager()

        @manager.tool()
        async def greet(name: str) -> str:
            return f"hello {name}"

        result = await manager.call_tool("greet", {"name": "world"})
        assert result.content == [types.TextContent(text="hello world")]

    async def test_json_string_arguments_are_parsed(self):
        manager = ToolManager()

        @manager.tool()
        def total(values: list[int]) -> int:
            return sum(values)

        result = await manager.call_tool("total", {"values": "[1, 2, 3]"})
        assert result.content == [types.TextContent(text="6")]

    async def test_unknown_tool(self):
        with pytest.raises(ToolError, match="Unknown tool: missing"):
            await ToolManager().call_tool("missing", {})

    async def test_invalid_arguments(self):
        manager = ToolManager()

        @manager.tool()
        def add(a: int, b: int) -> int:
            return a + b

        with pytest.raises(ToolError, match="Error executing tool add"):
            await manager.call_tool("add", {"a": "one"})

    async def test_tool_exception_is_wrapped(self):
        manager = ToolManager()

        @manager.tool()
        def explode() -> None:
            raise RuntimeError("boom")

        with pytest.raises(ToolError, match="boom"):
            await manager.call_tool("explode")


class TestConvertResult:
    def test_passthrough(self):
        result = types.CallToolResult(content=[], isError=True)
        assert convert_result(result) is result

    def test_none_is_empty(self):
        assert convert_result(None).content == []

    def test_content_blocks_kept(self):
        image = types.ImageContent(data="aGk=", mimeType="image/png")
        assert convert_result([types.TextContent(text="a"), image]).content == [types.TextContent(text="a"), image]

    def test_model_and_json(self):
        class Point(BaseModel):
            x: int
            y: int

        assert convert_result(Point(x=1, y=2)).content == [types.TextContent(text='{"x":1,"y":2}')]
        assert convert_result({"a": [1, "é"]}).content == [types.TextContent(text='{"a": [1, "é"]}')]
