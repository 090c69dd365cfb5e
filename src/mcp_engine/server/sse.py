"""
SSE Server Transport Module

This module implements a Server-Sent Events (SSE) transport layer for MCP servers.
Server-to-client traffic is pushed over long-lived SSE connections; client-to-server
traffic arrives out of band as HTTP POST requests tagged with a session id.

All connected SSE clients share one logical MCP session: every outbound message is
broadcast to every connected sink.

The transport itself knows nothing about HTTP. An HTTP layer (see
``mcp_engine.server.starlette``) calls the two hooks:

- ``handle_sse_request(sink)`` when a client opens the event stream
- ``handle_post_request(session_id, body)`` when a client POSTs a message
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import anyio
import anyio.lowlevel
from anyio.streams.memory import MemoryObjectSendStream

from mcp_engine.server.transport import Transport
from mcp_engine.shared.channel import DEFAULT_BUFFER_SIZE
from mcp_engine.shared.codec import decode, encode
from mcp_engine.shared.exceptions import McpError
from mcp_engine.types import SESSION_NOT_FOUND, ErrorData, JSONRPCMessage

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MAX_AGE = 3600.0


class SseSink(Protocol):
    """Where the SSE transport writes events for one connected client."""

    async def send_event(self, event: str, data: str) -> None: ...

    async def close(self) -> None: ...


class MemoryStreamSink:
    """SseSink that feeds an anyio memory stream.

    The HTTP layer reads the other end and turns each item into an SSE frame.
    Items are dicts with ``event`` and ``data`` keys, which is the shape
    sse-starlette's EventSourceResponse accepts.

    Sends never wait: a client that has let the buffer fill up is reported as
    failed (``anyio.WouldBlock``) so one slow reader cannot stall a broadcast.
    """

    def __init__(self, send_stream: MemoryObjectSendStream[dict[str, Any]]) -> None:
        self._send = send_stream
        self._closed = False

    async def send_event(self, event: str, data: str) -> None:
        if self._closed:
            raise anyio.ClosedResourceError
        await anyio.lowlevel.checkpoint()
        self._send.send_nowait({"event": event, "data": data})

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with anyio.CancelScope(shield=True):
            await self._send.aclose()


@dataclass
class SseSession:
    sink: SseSink
    created_at: float = field(default_factory=time.monotonic)
    last_seen_at: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.last_seen_at = time.monotonic()


class SseServerTransport(Transport):
    """
    SSE server transport for MCP. Provides two hooks for the HTTP layer:

    1. handle_sse_request() registers a new client and tells it where to POST.
    2. handle_post_request() feeds a POSTed message into the inbound channel.
    """

    has_sessions = True

    def __init__(self, endpoint: str = "/messages", queue_size: int = DEFAULT_BUFFER_SIZE) -> None:
        """
        Creates a new SSE server transport.

        Args:
            endpoint: The relative or absolute URL clients should POST messages to.
                The session id is appended as the ``session_id`` query parameter.
            queue_size: Capacity of the inbound and outbound channels.
        """
        super().__init__(queue_size)
        self._endpoint = endpoint
        self._sessions: dict[str, SseSession] = {}
        self._lock = anyio.Lock()
        logger.debug(f"SseServerTransport initialized with endpoint: {endpoint}")

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def stop(self) -> None:
        if not self._started:
            return
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await self._close_sink(session.sink)
        await super().stop()
        logger.debug("SSE transport stopped")

    async def handle_sse_request(self, sink: SseSink) -> str:
        """Register a new SSE client and send it the ``endpoint`` event.

        Returns:
            The new session id (16 random bytes, hex-encoded).
        """
        session_id = secrets.token_hex(16)
        async with self._lock:
            self._sessions[session_id] = SseSession(sink=sink)
        logger.debug(f"Created new session with ID: {session_id}")

        separator = "&" if "?" in self._endpoint else "?"
        endpoint_url = f"{self._endpoint}{separator}session_id={session_id}"
        try:
            await sink.send_event("endpoint", endpoint_url)
        except Exception:
            await self.close_session(session_id)
            raise
        logger.debug(f"Sent endpoint event: {endpoint_url}")
        return session_id

    async def handle_post_request(self, session_id: str, body: bytes | str) -> None:
        """Accept one client message posted to the messages endpoint.

        Raises:
            McpError: SESSION_NOT_FOUND if the session is unknown or was evicted,
                PARSE_ERROR / INVALID_REQUEST if the body is not a valid message.
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.warning(f"Could not find session for ID: {session_id}")
                raise McpError(ErrorData(code=SESSION_NOT_FOUND, message="Session not found"))
            session.touch()

        message = decode(body)
        logger.debug(f"Received message for session {session_id}: {message}")
        if not await self._inbound.push(message):
            raise RuntimeError("Inbound channel is closed")

    async def read_message(self) -> JSONRPCMessage | None:
        # Inbound messages arrive through handle_post_request only.
        self._ensure_started()
        await anyio.lowlevel.checkpoint()
        return None

    async def write_message(self, message: JSONRPCMessage) -> None:
        """Broadcast ``message`` as a ``message`` event to every connected client."""
        self._ensure_started()
        data = encode(message)
        async with self._lock:
            targets = list(self._sessions.items())

        failed: list[str] = []
        for session_id, session in targets:
            try:
                await session.sink.send_event("message", data)
            except Exception:
                logger.exception(f"Failed to send message to session {session_id}")
                failed.append(session_id)

        for session_id in failed:
            await self.close_session(session_id)

    async def close_session(self, session_id: str) -> bool:
        """Remove one session and close its sink. Returns False if it was unknown."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await self._close_sink(session.sink)
        logger.debug(f"Closed session {session_id}")
        return True

    async def cleanup_sessions(self, max_age: float = DEFAULT_SESSION_MAX_AGE) -> None:
        """Close and evict every session not seen for more than ``max_age`` seconds."""
        now = time.monotonic()
        async with self._lock:
            expired = {
                session_id: session
                for session_id, session in self._sessions.items()
                if now - session.last_seen_at > max_age
            }
            for session_id in expired:
                del self._sessions[session_id]

        for session_id, session in expired.items():
            logger.info(f"Evicting idle session {session_id}")
            await self._close_sink(session.sink)

    async def _close_sink(self, sink: SseSink) -> None:
        try:
            await sink.close()
        except Exception:
            logger.exception("Error closing SSE sink")
