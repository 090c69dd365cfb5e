"""Entry points that wire a Server to a transport and run it."""

from typing import Literal

import anyio
import uvicorn

from mcp_engine.server.lowlevel.server import Server
from mcp_engine.server.runner import ServerRunner
from mcp_engine.server.settings import Settings
from mcp_engine.server.sse import SseServerTransport
from mcp_engine.server.starlette import create_sse_app
from mcp_engine.server.stdio import StdioServerTransport
from mcp_engine.utilities.logging import configure_logging, get_logger

logger = get_logger(__name__)

TransportName = Literal["stdio", "sse"]


async def serve_stdio(server: Server, settings: Settings | None = None) -> None:
    """Run the server over stdin/stdout until EOF or a termination signal."""
    settings = settings or Settings()
    transport = StdioServerTransport(queue_size=settings.queue_size)
    runner = ServerRunner(server, transport, settings=settings, handle_signals=True)
    await runner.run()


async def serve_sse(server: Server, settings: Settings | None = None) -> None:
    """Run the server over SSE, serving the HTTP app with uvicorn.

    uvicorn owns the process signals; when it exits the runner is shut down.
    """
    settings = settings or Settings()
    transport = SseServerTransport(settings.message_path, queue_size=settings.queue_size)
    runner = ServerRunner(server, transport, settings=settings)
    app = create_sse_app(transport, settings)

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    http_server = uvicorn.Server(config)

    async with anyio.create_task_group() as tg:
        tg.start_soon(runner.run)
        try:
            await http_server.serve()
        finally:
            runner.shutdown()


def run(server: Server, transport: TransportName = "stdio", settings: Settings | None = None) -> None:
    """Run the server. This is a synchronous function.

    Args:
        server: The server to run
        transport: Transport protocol to use ("stdio" or "sse")
        settings: Runtime settings; read from the environment when omitted
    """
    if transport not in TransportName.__args__:  # type: ignore
        raise ValueError(f"Unknown transport: {transport}")

    settings = settings or Settings()
    configure_logging(settings.log_level)
    logger.debug(f"Starting {server.name!r} over {transport}")

    match transport:
        case "stdio":
            anyio.run(serve_stdio, server, settings)
        case "sse":
            anyio.run(serve_sse, server, settings)
