"""Tool catalog.

A ToolManager holds plain Python functions registered as MCP tools. Each tool's
input schema is derived from the function signature with pydantic, and calls
are validated against it before the function runs.

Example:
    ```python
    tools = ToolManager()

    @tools.tool()
    def add(a: int, b: int) -> str:
        \"\"\"Add two numbers.\"\"\"
        return str(a + b)

    server.include_tools(tools)
    ```
"""

import json
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, Field

import mcp_engine.types as types
from mcp_engine.server.exceptions import ToolError
from mcp_engine.utilities.func_metadata import FuncMetadata, func_metadata, is_async_callable
from mcp_engine.utilities.logging import get_logger

logger = get_logger(__name__)


class Tool(BaseModel):
    """Internal tool registration info."""

    fn: Callable[..., Any] = Field(exclude=True)
    name: str = Field(description="Name of the tool")
    description: str = Field(description="Description of what the tool does")
    parameters: dict[str, Any] = Field(description="JSON schema for tool parameters")
    fn_metadata: FuncMetadata = Field(
        description="Metadata about the function including a pydantic model for tool arguments"
    )
    is_async: bool = Field(description="Whether the tool is async")

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> "Tool":
        """Create a Tool from a function."""
        func_name = name or fn.__name__

        if func_name == "<lambda>":
            raise ValueError("You must provide a name for lambda functions")

        func_doc = description or fn.__doc__ or ""
        func_arg_metadata = func_metadata(fn)
        parameters = input_schema or func_arg_metadata.arg_model.model_json_schema(by_alias=True)

        return cls(
            fn=fn,
            name=func_name,
            description=func_doc.strip(),
            parameters=parameters,
            fn_metadata=func_arg_metadata,
            is_async=is_async_callable(fn),
        )

    def to_mcp_tool(self) -> types.Tool:
        return types.Tool(name=self.name, description=self.description or None, inputSchema=self.parameters)

    async def run(self, arguments: dict[str, Any]) -> Any:
        """Run the tool with arguments."""
        try:
            return await self.fn_metadata.call(self.fn, self.is_async, arguments)
        except Exception as e:
            raise ToolError(f"Error executing tool {self.name}: {e}") from e


def _to_content(value: Any) -> Sequence[types.Content]:
    match value:
        case None:
            return []
        case types.TextContent() | types.ImageContent() | types.EmbeddedResource():
            return [value]
        case str():
            return [types.TextContent(text=value)]
        case list() | tuple() if all(
            isinstance(item, types.TextContent | types.ImageContent | types.EmbeddedResource) for item in value
        ):
            return list(value)
        case BaseModel():
            return [types.TextContent(text=value.model_dump_json(by_alias=True, exclude_none=True))]
        case _:
            return [types.TextContent(text=json.dumps(value, ensure_ascii=False, default=str))]


def convert_result(value: Any) -> types.CallToolResult:
    """Normalise whatever a tool returned into a CallToolResult.

    A CallToolResult is passed through, strings become text content, content
    blocks are kept, and anything else is rendered as JSON text.
    """
    if isinstance(value, types.CallToolResult):
        return value
    return types.CallToolResult(content=list(_to_content(value)))


class ToolManager:
    """Manages registered tools."""

    def __init__(self, warn_on_duplicate_tools: bool = True):
        self._tools: dict[str, Tool] = {}
        self.warn_on_duplicate_tools = warn_on_duplicate_tools

    def get_tool(self, name: str) -> Tool | None:
        """Get tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        """List all registered tools."""
        return list(self._tools.values())

    def add_tool(
        self,
        fn: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> Tool:
        """Add a tool to the catalog."""
        tool = Tool.from_function(fn, name=name, description=description, input_schema=input_schema)
        existing = self._tools.get(tool.name)
        if existing:
            if self.warn_on_duplicate_tools:
                logger.warning(f"Tool already exists: {tool.name}")
            return existing
        self._tools[tool.name] = tool
        return tool

    def tool(
        self,
        name: str | None = None,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator to register a tool.

        Pass ``input_schema`` to advertise a hand-written schema; otherwise one
        is derived from the signature.
        """
        if callable(name):
            raise TypeError(
                "The @tool decorator was used incorrectly. Did you forget to call it? Use @tool() instead of @tool"
            )

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.add_tool(fn, name=name, description=description, input_schema=input_schema)
            return fn

        return decorator

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> types.CallToolResult:
        """Call a tool by name with arguments."""
        tool = self.get_tool(name)
        if not tool:
            raise ToolError(f"Unknown tool: {name}")

        result = await tool.run(arguments or {})
        return convert_result(result)
