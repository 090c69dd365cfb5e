"""Wire types for the Model Context Protocol.

This module holds the JSON-RPC 2.0 envelopes the engine reads and writes, plus
the MCP result, capability and content shapes that travel inside them. Every
model allows extra fields so that anything a peer sends survives a
decode/encode cycle untouched.
"""

from typing import Annotated, Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION: Final[str] = "2.0"

LATEST_PROTOCOL_VERSION: Final[str] = "2025-06-18"

# Standard JSON-RPC error codes
PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603

# MCP-specific error codes, taken from the -32000..-32099 server range
SESSION_NOT_FOUND: Final[int] = -32001

RequestId = Annotated[int, Field(strict=True)] | str
ProgressToken = str | int

LoggingLevel = Literal["debug", "info", "notice", "warning", "error", "critical", "alert", "emergency"]

# Request methods the server knows how to route. Vendor extensions may use any
# other string; these literals only document the standard catalog.
RequestMethod = Literal[
    "initialize",
    "ping",
    "tools/list",
    "tools/call",
    "resources/list",
    "resources/read",
    "resources/templates/list",
    "prompts/list",
    "prompts/get",
    "logging/setLevel",
]

ClientNotificationMethod = Literal[
    "notifications/initialized",
    "notifications/cancelled",
    "notifications/progress",
    "notifications/roots/list_changed",
]

ServerNotificationMethod = Literal[
    "notifications/message",
    "notifications/progress",
    "notifications/resources/updated",
    "notifications/resources/list_changed",
    "notifications/tools/list_changed",
    "notifications/prompts/list_changed",
]


class MCPModel(BaseModel):
    """Base class for all MCP domain types. Allows extra fields for forward compatibility."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


# ---------------------------------------------------------------------------
# JSON-RPC envelopes
# ---------------------------------------------------------------------------


class JSONRPCBase(BaseModel):
    """Base class for all JSON-RPC messages."""

    model_config = ConfigDict(extra="allow", frozen=True)

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class JSONRPCResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCError(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData


JSONRPCMessage = JSONRPCRequest | JSONRPCNotification | JSONRPCResponse | JSONRPCError


# ---------------------------------------------------------------------------
# Shared bits
# ---------------------------------------------------------------------------


class Result(MCPModel):
    """Base class for results, with the reserved _meta key."""

    meta: dict[str, Any] | None = Field(alias="_meta", default=None)


class EmptyResult(Result):
    """A response that indicates success but carries no data."""


class Implementation(MCPModel):
    """Describes the name and version of an MCP implementation."""

    name: str
    version: str
    title: str | None = None


class RootsCapability(MCPModel):
    """Capability for root operations."""

    listChanged: bool | None = None


class SamplingCapability(MCPModel):
    """Capability for sampling operations."""


class ClientCapabilities(MCPModel):
    """Capabilities a client may support."""

    experimental: dict[str, dict[str, Any]] | None = None
    sampling: SamplingCapability | None = None
    roots: RootsCapability | None = None


class PromptsCapability(MCPModel):
    """Capability for prompts operations."""

    listChanged: bool | None = None


class ResourcesCapability(MCPModel):
    """Capability for resources operations."""

    subscribe: bool | None = None
    listChanged: bool | None = None


class ToolsCapability(MCPModel):
    """Capability for tools operations."""

    listChanged: bool | None = None


class LoggingCapability(MCPModel):
    """Capability for logging operations."""


class ServerCapabilities(MCPModel):
    """Capabilities that a server may support."""

    experimental: dict[str, dict[str, Any]] | None = None
    logging: LoggingCapability | None = None
    prompts: PromptsCapability | None = None
    resources: ResourcesCapability | None = None
    tools: ToolsCapability | None = None


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


class InitializeRequestParams(MCPModel):
    """Parameters for the initialize request.

    ``protocolVersion`` and ``clientInfo`` are required by the protocol, but
    some clients omit them; the handshake tolerates that and falls back to the
    latest version.
    """

    meta: dict[str, Any] | None = Field(alias="_meta", default=None)
    protocolVersion: str | int | None = None
    capabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    clientInfo: Implementation | None = None


class InitializeResult(Result):
    """After receiving an initialize request from the client, the server sends this response."""

    protocolVersion: str | int
    capabilities: ServerCapabilities
    serverInfo: Implementation
    instructions: str | None = None


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


class Annotations(MCPModel):
    audience: list[Literal["user", "assistant"]] | None = None
    priority: Annotated[float, Field(ge=0.0, le=1.0)] | None = None


class TextContent(MCPModel):
    """Text content for a message."""

    type: Literal["text"] = "text"
    text: str
    annotations: Annotations | None = None


class ImageContent(MCPModel):
    """Image content for a message."""

    type: Literal["image"] = "image"
    data: str
    """The base64-encoded image data."""
    mimeType: str
    annotations: Annotations | None = None


class ResourceContents(MCPModel):
    """The contents of a specific resource or sub-resource."""

    uri: str
    mimeType: str | None = None


class TextResourceContents(ResourceContents):
    """Text contents of a resource."""

    text: str


class BlobResourceContents(ResourceContents):
    """Binary contents of a resource."""

    blob: str
    """A base64-encoded string representing the binary data of the item."""


class EmbeddedResource(MCPModel):
    """The contents of a resource, embedded into a prompt or tool call result."""

    type: Literal["resource"] = "resource"
    resource: TextResourceContents | BlobResourceContents
    annotations: Annotations | None = None


Content = TextContent | ImageContent | EmbeddedResource


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class Tool(MCPModel):
    """Definition for a tool the client can call."""

    name: str
    description: str | None = None
    inputSchema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ListToolsResult(Result):
    """The server's response to a tools/list request from the client."""

    tools: list[Tool]
    nextCursor: str | None = None


class CallToolRequestParams(MCPModel):
    """Parameters for calling a tool."""

    meta: dict[str, Any] | None = Field(alias="_meta", default=None)
    name: str
    arguments: dict[str, Any] | None = None


class CallToolResult(Result):
    """The server's response to a tool call."""

    content: list[Content]
    isError: bool = False


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class Resource(MCPModel):
    """A known resource that the server is capable of reading."""

    uri: str
    name: str
    description: str | None = None
    mimeType: str | None = None
    size: int | None = None
    annotations: Annotations | None = None


class ResourceTemplate(MCPModel):
    """A template description for resources available on the server."""

    uriTemplate: str
    name: str
    description: str | None = None
    mimeType: str | None = None
    annotations: Annotations | None = None


class ListResourcesResult(Result):
    """The server's response to a resources/list request from the client."""

    resources: list[Resource]
    nextCursor: str | None = None


class ListResourceTemplatesResult(Result):
    """The server's response to a resources/templates/list request from the client."""

    resourceTemplates: list[ResourceTemplate]
    nextCursor: str | None = None


class ReadResourceRequestParams(MCPModel):
    """Parameters for reading a resource."""

    meta: dict[str, Any] | None = Field(alias="_meta", default=None)
    uri: str


class ReadResourceResult(Result):
    """The server's response to a resources/read request from the client."""

    contents: list[TextResourceContents | BlobResourceContents]


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class PromptArgument(MCPModel):
    """An argument for a prompt template."""

    name: str
    description: str | None = None
    required: bool | None = None


class Prompt(MCPModel):
    """A prompt or prompt template that the server offers."""

    name: str
    description: str | None = None
    arguments: list[PromptArgument] | None = None


class PromptMessage(MCPModel):
    """Describes a message returned as part of a prompt."""

    role: Literal["user", "assistant"]
    content: Content


class ListPromptsResult(Result):
    """The server's response to a prompts/list request from the client."""

    prompts: list[Prompt]
    nextCursor: str | None = None


class GetPromptRequestParams(MCPModel):
    """Parameters for getting a prompt."""

    meta: dict[str, Any] | None = Field(alias="_meta", default=None)
    name: str
    arguments: dict[str, str] | None = None


class GetPromptResult(Result):
    """The server's response to a prompts/get request from the client."""

    description: str | None = None
    messages: list[PromptMessage]


# ---------------------------------------------------------------------------
# Logging and notification params
# ---------------------------------------------------------------------------


class SetLevelRequestParams(MCPModel):
    """Parameters for setting the logging level."""

    meta: dict[str, Any] | None = Field(alias="_meta", default=None)
    level: LoggingLevel


class LoggingMessageNotificationParams(MCPModel):
    """Parameters for logging message notifications."""

    level: LoggingLevel
    logger: str | None = None
    data: Any


class ResourceUpdatedNotificationParams(MCPModel):
    """Parameters for resource update notifications."""

    uri: str


class ProgressNotificationParams(MCPModel):
    """Parameters for progress notifications."""

    progressToken: ProgressToken
    progress: float
    total: float | None = None
    message: str | None = None

