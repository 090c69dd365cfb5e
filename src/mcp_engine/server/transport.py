"""Transport interface shared by the stdio and SSE server transports.

A transport owns raw I/O and speaks whole decoded messages. It also owns the
two channels the runner wires between itself and the session:

    inbound  - messages received from the peer, consumed by the session
    outbound - messages the session wants delivered, consumed by the write loop
"""

from abc import ABC, abstractmethod

from mcp_engine.shared.channel import DEFAULT_BUFFER_SIZE, Channel
from mcp_engine.types import JSONRPCMessage


class Transport(ABC):
    has_sessions: bool = False
    """Whether the transport tracks peer sessions that need periodic cleanup."""

    def __init__(self, queue_size: int = DEFAULT_BUFFER_SIZE) -> None:
        self._inbound: Channel[JSONRPCMessage] = Channel(queue_size)
        self._outbound: Channel[JSONRPCMessage] = Channel(queue_size)
        self._started = False

    async def start(self) -> None:
        """Start the transport.

        Raises:
            RuntimeError: If the transport is already started.
        """
        if self._started:
            raise RuntimeError("Transport already started")
        self._started = True

    async def stop(self) -> None:
        """Stop the transport. Stopping twice is a no-op."""
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    def get_streams(self) -> tuple[Channel[JSONRPCMessage], Channel[JSONRPCMessage]]:
        """Return the (inbound, outbound) channel pair."""
        return self._inbound, self._outbound

    @abstractmethod
    async def read_message(self) -> JSONRPCMessage | None:
        """Read the next message from the peer.

        Returns None when no message is currently available; the caller is
        expected to back off briefly and try again.
        """

    @abstractmethod
    async def write_message(self, message: JSONRPCMessage) -> None:
        """Deliver a message to the peer(s)."""

    async def cleanup_sessions(self, max_age: float) -> None:
        """Evict idle peer sessions. Single-peer transports have none."""

    def _ensure_started(self) -> None:
        if not self._started:
            raise RuntimeError("Transport not started")
