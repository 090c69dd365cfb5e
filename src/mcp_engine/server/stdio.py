"""Stdio Server Transport Module

This module provides functionality for creating an stdio-based transport layer
that can be used to communicate with an MCP client through standard input/output
streams. Each message is one line of JSON.

Example:
    ```python
    async def run_server():
        transport = StdioServerTransport()
        runner = ServerRunner(server, transport)
        await runner.run()

    anyio.run(run_server)
    ```
"""

import logging
import sys
from collections import deque
from io import TextIOWrapper
from typing import BinaryIO, TextIO

import anyio
import anyio.to_thread

from mcp_engine.server.transport import Transport
from mcp_engine.shared.channel import DEFAULT_BUFFER_SIZE
from mcp_engine.shared.codec import decode, encode
from mcp_engine.types import JSONRPCMessage

logger = logging.getLogger(__name__)


class _NonClosingTextIOWrapper(TextIOWrapper):
    """Text wrapper that never closes the underlying binary stream.

    The transport should not close the process' real stdin/stdout handles when
    it shuts down.
    """

    def close(self) -> None:
        if self.closed:
            return

        # Preserve normal flush semantics for writable streams while keeping the
        # underlying stdio handle alive.
        if self.writable():
            self.flush()


def _wrap_process_stdio(binary_stream: BinaryIO) -> TextIO:
    return _NonClosingTextIOWrapper(binary_stream, encoding="utf-8")


class StdioServerTransport(Transport):
    """Server transport for stdio: reads newline-delimited JSON from stdin and
    writes newline-delimited JSON to stdout. There is exactly one peer.
    """

    def __init__(
        self,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        queue_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        super().__init__(queue_size)
        # Encoding of stdin/stdout as text streams on python is platform-dependent
        # (Windows is particularly problematic), so we re-wrap the underlying
        # binary stream to ensure UTF-8.
        self._stdin = stdin if stdin is not None else _wrap_process_stdio(sys.stdin.buffer)
        self._stdout = stdout if stdout is not None else _wrap_process_stdio(sys.stdout.buffer)
        self._write_buffer: deque[str] = deque()

    async def stop(self) -> None:
        if not self._started:
            return
        await self.flush()
        await super().stop()
        logger.debug("Stdio transport stopped")

    async def read_message(self) -> JSONRPCMessage | None:
        """Read one line from stdin and decode it.

        Raises:
            anyio.EndOfStream: stdin reached end of file.
            McpError: the line is not a valid JSON-RPC message.
        """
        self._ensure_started()
        # A blocking readline must not pin shutdown, so the worker thread is
        # abandoned if this task gets cancelled.
        line = await anyio.to_thread.run_sync(self._stdin.readline, abandon_on_cancel=True)
        if not line:
            raise anyio.EndOfStream
        line = line.strip()
        if not line:
            return None
        return decode(line)

    async def write_message(self, message: JSONRPCMessage) -> None:
        self._ensure_started()
        self._write_buffer.append(encode(message) + "\n")
        await self.flush()

    async def flush(self) -> None:
        """Write out everything buffered so far."""
        if not self._started:
            return
        while self._write_buffer:
            data = self._write_buffer.popleft()
            try:
                await anyio.to_thread.run_sync(self._write_line, data)
            except (OSError, ValueError) as exc:
                raise RuntimeError(f"Failed to write to stdout: {exc}") from exc

    def _write_line(self, data: str) -> None:
        self._stdout.write(data)
        self._stdout.flush()
