"""Starlette adapter for the SSE transport.

This is the only module that knows about HTTP. It maps two routes onto the
SseServerTransport hooks:

    GET  {sse_path}                         -> handle_sse_request, streamed with sse-starlette
    POST {message_path}?session_id=<id>     -> handle_post_request

Usage:
    transport = SseServerTransport(settings.message_path)
    app = create_sse_app(transport, settings)
    uvicorn.run(app, host=settings.host, port=settings.port)
"""

import logging
from collections.abc import AsyncIterator
from typing import Any

import anyio
from sse_starlette import EventSourceResponse
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from mcp_engine.server.settings import Settings
from mcp_engine.server.sse import MemoryStreamSink, SseServerTransport
from mcp_engine.shared.codec import encode
from mcp_engine.shared.exceptions import McpError
from mcp_engine.types import SESSION_NOT_FOUND, ErrorData, JSONRPCError

logger = logging.getLogger(__name__)


def _error_response(error: ErrorData, status_code: int) -> Response:
    return Response(
        content=encode(JSONRPCError(id=None, error=error)),
        status_code=status_code,
        media_type="application/json",
    )


def create_sse_app(transport: SseServerTransport, settings: Settings | None = None, debug: bool = False) -> Starlette:
    """Create a Starlette ASGI app serving ``transport``.

    The app does not start the transport; run it next to a ServerRunner.
    """
    settings = settings or Settings()

    async def handle_sse(request: Request) -> Response:
        send_stream, receive_stream = anyio.create_memory_object_stream[dict[str, Any]](settings.queue_size)
        session_id = await transport.handle_sse_request(MemoryStreamSink(send_stream))
        logger.debug(f"SSE connection opened for session {session_id}")

        async def event_stream() -> AsyncIterator[dict[str, Any]]:
            try:
                async with receive_stream:
                    async for event in receive_stream:
                        yield event
            finally:
                # Client went away
                with anyio.CancelScope(shield=True):
                    await transport.close_session(session_id)

        return EventSourceResponse(event_stream())

    async def handle_post(request: Request) -> Response:
        session_id = request.query_params.get("session_id")
        if not session_id:
            logger.warning("Received request without session_id")
            return Response("session_id is required", status_code=400)

        body = await request.body()
        try:
            await transport.handle_post_request(session_id, body)
        except McpError as err:
            status_code = 404 if err.error.code == SESSION_NOT_FOUND else 400
            return _error_response(err.error, status_code)

        return Response("Accepted", status_code=202)

    return Starlette(
        debug=debug or settings.debug,
        routes=[
            Route(settings.sse_path, endpoint=handle_sse, methods=["GET"]),
            Route(settings.message_path, endpoint=handle_post, methods=["POST"]),
        ],
    )
