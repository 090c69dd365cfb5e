"""Server side of the Model Context Protocol (MCP) in Python.

Use mcp-engine to:

- Expose tools, prompts and resources to MCP clients
- Serve them over stdio (newline-delimited JSON) or HTTP Server-Sent Events
- Plug your own method handlers into the JSON-RPC dispatch

## Example

```python
from mcp_engine import Server, ToolManager, run

server = Server("Demo")
tools = ToolManager()

@tools.tool()
def add(a: int, b: int) -> int:
    \"\"\"Add two numbers\"\"\"
    return a + b

server.include_tools(tools)

if __name__ == "__main__":
    run(server)
```
"""

from .server.lowlevel import NotificationOptions, Server
from .server.models import InitializationOptions
from .server.prompts import PromptManager
from .server.resources import ResourceManager
from .server.runner import ServerRunner
from .server.serve import run, serve_sse, serve_stdio
from .server.session import InitializationState, ServerSession
from .server.settings import Settings
from .server.sse import SseServerTransport
from .server.stdio import StdioServerTransport
from .server.tools import ToolManager
from .shared.exceptions import McpError

__all__ = [
    "InitializationOptions",
    "InitializationState",
    "McpError",
    "NotificationOptions",
    "PromptManager",
    "ResourceManager",
    "Server",
    "ServerRunner",
    "ServerSession",
    "Settings",
    "SseServerTransport",
    "StdioServerTransport",
    "ToolManager",
    "run",
    "serve_sse",
    "serve_stdio",
]
