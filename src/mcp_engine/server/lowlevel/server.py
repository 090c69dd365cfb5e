"""
MCP Server Module

This module provides the method registry of an MCP server: a mapping from JSON-RPC
method name to the handler that serves it. Handlers are registered either directly
with ``register_handler`` or with the typed decorators below, which parse the raw
``params`` object into the matching pydantic model before calling the user function.

Usage:
1. Create a Server instance:
   server = Server("your_server_name")

2. Define request handlers using decorators:
   @server.list_tools()
   async def handle_list_tools() -> list[types.Tool]:
       # Implementation

   @server.call_tool()
   async def handle_call_tool(
       name: str, arguments: dict | None
   ) -> list[types.TextContent | types.ImageContent | types.EmbeddedResource]:
       # Implementation

   @server.list_resource_templates()
   async def handle_list_resource_templates() -> list[types.ResourceTemplate]:
       # Implementation

3. Define notification handlers if needed:
   @server.progress_notification()
   async def handle_progress(
       progress_token: str | int, progress: float, total: float | None,
       message: str | None
   ) -> None:
       # Implementation

4. Run the server:
   async def main():
       await ServerRunner(server, StdioServerTransport()).run()

   anyio.run(main)

Capabilities advertised during the handshake are computed from which handlers are
registered at the time ``create_initialization_options`` is called.
"""

from __future__ import annotations as _annotations

import base64
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

import mcp_engine.types as types
from mcp_engine.server.models import InitializationOptions
from mcp_engine.server.session import NotificationHandler, RequestHandler
from mcp_engine.server.tools import convert_result
from mcp_engine.shared.exceptions import McpError

if TYPE_CHECKING:
    from mcp_engine.server.prompts import PromptManager
    from mcp_engine.server.resources import ResourceManager
    from mcp_engine.server.tools import ToolManager

logger = logging.getLogger(__name__)

ParamsT = TypeVar("ParamsT", bound=BaseModel)


class NotificationOptions:
    def __init__(
        self,
        prompts_changed: bool = False,
        resources_changed: bool = False,
        tools_changed: bool = False,
    ):
        self.prompts_changed = prompts_changed
        self.resources_changed = resources_changed
        self.tools_changed = tools_changed


def _parse_params(model: type[ParamsT], params: dict[str, Any] | None) -> ParamsT:
    """Validate raw ``params`` against ``model``.

    Raises:
        McpError: INVALID_PARAMS when validation fails.
    """
    try:
        return model.model_validate(params or {})
    except ValidationError as exc:
        raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=f"Invalid params: {exc}")) from exc


async def _ping_handler(_params: dict[str, Any] | None) -> types.EmptyResult:
    return types.EmptyResult()


class Server:
    def __init__(
        self,
        name: str,
        version: str | None = None,
        instructions: str | None = None,
    ):
        self.name = name
        self.version = version
        self.instructions = instructions
        self.request_handlers: dict[str, RequestHandler] = {
            "ping": _ping_handler,
        }
        self.notification_handlers: dict[str, NotificationHandler] = {}
        logger.debug("Initializing server %r", name)

    def register_handler(self, method: types.RequestMethod | str, handler: RequestHandler) -> None:
        """Register a request handler under a method name.

        Any string is accepted so that vendor extensions can be served next to
        the standard methods. Registering a method twice replaces the handler.
        """
        if method in self.request_handlers:
            logger.debug("Replacing handler for %s", method)
        self.request_handlers[method] = handler

    def register_notification_handler(
        self, method: types.ClientNotificationMethod | str, handler: NotificationHandler
    ) -> None:
        """Register a notification handler under a method name."""
        self.notification_handlers[method] = handler

    def get_handlers(self) -> dict[str, RequestHandler]:
        return dict(self.request_handlers)

    def get_notification_handlers(self) -> dict[str, NotificationHandler]:
        return dict(self.notification_handlers)

    def create_initialization_options(
        self,
        notification_options: NotificationOptions | None = None,
        experimental_capabilities: dict[str, dict[str, Any]] | None = None,
    ) -> InitializationOptions:
        """Create initialization options from this server instance.

        Capabilities are captured now; handlers registered afterwards are not
        reflected in the returned options.
        """

        def pkg_version(package: str) -> str:
            try:
                from importlib.metadata import version

                return version(package)
            except Exception:
                pass

            return "unknown"

        return InitializationOptions(
            server_name=self.name,
            server_version=self.version if self.version else pkg_version("mcp-engine"),
            capabilities=self.get_capabilities(
                notification_options or NotificationOptions(),
                experimental_capabilities or {},
            ),
            instructions=self.instructions,
        )

    def get_capabilities(
        self,
        notification_options: NotificationOptions,
        experimental_capabilities: dict[str, dict[str, Any]],
    ) -> types.ServerCapabilities:
        """Convert existing handlers to a ServerCapabilities object."""
        prompts_capability = None
        resources_capability = None
        tools_capability = None
        logging_capability = None

        # Set prompt capabilities if handler exists
        if "prompts/list" in self.request_handlers:
            prompts_capability = types.PromptsCapability(listChanged=notification_options.prompts_changed)

        # Set resource capabilities if handler exists
        if "resources/list" in self.request_handlers:
            resources_capability = types.ResourcesCapability(
                subscribe=False, listChanged=notification_options.resources_changed
            )

        # Set tool capabilities if handler exists
        if "tools/list" in self.request_handlers:
            tools_capability = types.ToolsCapability(listChanged=notification_options.tools_changed)

        # Set logging capabilities if handler exists
        if "logging/setLevel" in self.request_handlers:
            logging_capability = types.LoggingCapability()

        return types.ServerCapabilities(
            prompts=prompts_capability,
            resources=resources_capability,
            tools=tools_capability,
            logging=logging_capability,
            experimental=experimental_capabilities or None,
        )

    def list_prompts(self):
        def decorator(func: Callable[[], Awaitable[list[types.Prompt]]]):
            logger.debug("Registering handler for prompts/list")

            async def handler(_: dict[str, Any] | None):
                prompts = await func()
                return types.ListPromptsResult(prompts=list(prompts))

            self.register_handler("prompts/list", handler)
            return func

        return decorator

    def get_prompt(self):
        def decorator(
            func: Callable[[str, dict[str, str] | None], Awaitable[types.GetPromptResult]],
        ):
            logger.debug("Registering handler for prompts/get")

            async def handler(params: dict[str, Any] | None):
                req = _parse_params(types.GetPromptRequestParams, params)
                return await func(req.name, req.arguments)

            self.register_handler("prompts/get", handler)
            return func

        return decorator

    def list_resources(self):
        def decorator(func: Callable[[], Awaitable[list[types.Resource]]]):
            logger.debug("Registering handler for resources/list")

            async def handler(_: dict[str, Any] | None):
                resources = await func()
                return types.ListResourcesResult(resources=list(resources))

            self.register_handler("resources/list", handler)
            return func

        return decorator

    def list_resource_templates(self):
        def decorator(func: Callable[[], Awaitable[list[types.ResourceTemplate]]]):
            logger.debug("Registering handler for resources/templates/list")

            async def handler(_: dict[str, Any] | None):
                templates = await func()
                return types.ListResourceTemplatesResult(resourceTemplates=list(templates))

            self.register_handler("resources/templates/list", handler)
            return func

        return decorator

    def read_resource(self):
        def decorator(
            func: Callable[[str], Awaitable[str | bytes | types.ReadResourceResult]],
        ):
            logger.debug("Registering handler for resources/read")

            async def handler(params: dict[str, Any] | None):
                req = _parse_params(types.ReadResourceRequestParams, params)
                result = await func(req.uri)

                match result:
                    case types.ReadResourceResult():
                        return result
                    case str() as data:
                        content: types.TextResourceContents | types.BlobResourceContents = (
                            types.TextResourceContents(uri=req.uri, text=data, mimeType="text/plain")
                        )
                    case bytes() as data:
                        content = types.BlobResourceContents(
                            uri=req.uri,
                            blob=base64.b64encode(data).decode(),
                            mimeType="application/octet-stream",
                        )
                    case _:
                        raise TypeError(f"Unexpected return type from read_resource: {type(result).__name__}")

                return types.ReadResourceResult(contents=[content])

            self.register_handler("resources/read", handler)
            return func

        return decorator

    def set_logging_level(self):
        def decorator(func: Callable[[types.LoggingLevel], Awaitable[None]]):
            logger.debug("Registering handler for logging/setLevel")

            async def handler(params: dict[str, Any] | None):
                req = _parse_params(types.SetLevelRequestParams, params)
                await func(req.level)
                return types.EmptyResult()

            self.register_handler("logging/setLevel", handler)
            return func

        return decorator

    def list_tools(self):
        def decorator(func: Callable[[], Awaitable[list[types.Tool]]]):
            logger.debug("Registering handler for tools/list")

            async def handler(_: dict[str, Any] | None):
                tools = await func()
                return types.ListToolsResult(tools=list(tools))

            self.register_handler("tools/list", handler)
            return func

        return decorator

    def _make_error_result(self, error_message: str) -> types.CallToolResult:
        """Create an error CallToolResult."""
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=error_message)],
            isError=True,
        )

    def call_tool(self):
        """Register a tool call handler.

        The handler receives the tool name and its arguments. Its return value is
        normalised into a CallToolResult; an exception raised by the handler is
        reported as a CallToolResult with ``isError`` set rather than as a
        JSON-RPC error, so the client sees the message and the session carries on.
        """

        def decorator(
            func: Callable[
                [str, dict[str, Any]],
                Awaitable[Iterable[types.Content] | types.CallToolResult | str | dict[str, Any]],
            ],
        ):
            logger.debug("Registering handler for tools/call")

            async def handler(params: dict[str, Any] | None):
                req = _parse_params(types.CallToolRequestParams, params)
                try:
                    results = await func(req.name, req.arguments or {})
                except Exception as e:
                    logger.debug("Tool %s failed: %s", req.name, e)
                    return self._make_error_result(str(e))

                return convert_result(results)

            self.register_handler("tools/call", handler)
            return func

        return decorator

    def progress_notification(self):
        def decorator(
            func: Callable[[str | int, float, float | None, str | None], Awaitable[None]],
        ):
            logger.debug("Registering handler for notifications/progress")

            async def handler(params: dict[str, Any] | None):
                req = _parse_params(types.ProgressNotificationParams, params)
                await func(req.progressToken, req.progress, req.total, req.message)

            self.register_notification_handler("notifications/progress", handler)
            return func

        return decorator

    def roots_list_changed(self):
        def decorator(func: Callable[[], Awaitable[None]]):
            logger.debug("Registering handler for notifications/roots/list_changed")

            async def handler(_: dict[str, Any] | None):
                await func()

            self.register_notification_handler("notifications/roots/list_changed", handler)
            return func

        return decorator

    def include_tools(self, manager: ToolManager) -> None:
        """Serve ``tools/list`` and ``tools/call`` from a ToolManager."""

        @self.list_tools()
        async def _list_tools() -> list[types.Tool]:
            return [tool.to_mcp_tool() for tool in manager.list_tools()]

        @self.call_tool()
        async def _call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
            return await manager.call_tool(name, arguments)

    def include_prompts(self, manager: PromptManager) -> None:
        """Serve ``prompts/list`` and ``prompts/get`` from a PromptManager."""

        @self.list_prompts()
        async def _list_prompts() -> list[types.Prompt]:
            return [prompt.to_mcp_prompt() for prompt in manager.list_prompts()]

        @self.get_prompt()
        async def _get_prompt(name: str, arguments: dict[str, str] | None) -> types.GetPromptResult:
            return await manager.get_prompt(name, arguments)

    def include_resources(self, manager: ResourceManager) -> None:
        """Serve the ``resources/*`` methods from a ResourceManager."""

        @self.list_resources()
        async def _list_resources() -> list[types.Resource]:
            return [resource.to_mcp_resource() for resource in manager.list_resources()]

        @self.list_resource_templates()
        async def _list_resource_templates() -> list[types.ResourceTemplate]:
            return [template.to_mcp_template() for template in manager.list_templates()]

        @self.read_resource()
        async def _read_resource(uri: str) -> types.ReadResourceResult:
            return await manager.read_resource(uri)
