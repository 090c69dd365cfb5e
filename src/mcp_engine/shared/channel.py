"""Bounded message channel used between transports, sessions and the runner.

A thin wrapper over an anyio memory object stream pair that gives both ends the
push/pop-with-timeout shape the runner loops are written against. A timeout is
not an error: ``pop`` returns ``None`` and the caller re-polls or checks for
shutdown.
"""

import math
from typing import Generic, TypeVar

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

T = TypeVar("T")

DEFAULT_BUFFER_SIZE = 100


class Channel(Generic[T]):
    """A single-producer/single-consumer friendly FIFO with optional timeouts.

    Ordering is strictly first-in first-out. Several producers may push
    concurrently; the runner keeps exactly one consumer per channel so that
    messages are handled in the order they arrived.
    """

    _send_stream: MemoryObjectSendStream[T]
    _receive_stream: MemoryObjectReceiveStream[T]

    def __init__(self, max_buffer_size: float = DEFAULT_BUFFER_SIZE) -> None:
        if max_buffer_size != math.inf and max_buffer_size < 1:
            raise ValueError("max_buffer_size must be at least 1")
        self._send_stream, self._receive_stream = anyio.create_memory_object_stream[T](max_buffer_size)
        self._closed = False
        self._unconsumed = 0

    async def push(self, item: T, timeout: float | None = None) -> bool:
        """Append ``item``, waiting up to ``timeout`` seconds for buffer space.

        Returns False if the wait timed out or the channel has been closed.
        """
        if self._closed:
            return False
        with anyio.move_on_after(timeout):
            try:
                await self._send_stream.send(item)
            except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                return False
            self._unconsumed += 1
            return True
        return False

    def push_nowait(self, item: T) -> bool:
        """Append ``item`` if there is room right now."""
        if self._closed:
            return False
        try:
            self._send_stream.send_nowait(item)
        except (anyio.WouldBlock, anyio.ClosedResourceError, anyio.BrokenResourceError):
            return False
        self._unconsumed += 1
        return True

    async def pop(self, timeout: float | None = None) -> T | None:
        """Remove and return the oldest item.

        Returns None when ``timeout`` elapses with nothing to read, or when the
        channel is closed.
        """
        if self._closed:
            return None
        with anyio.move_on_after(timeout):
            try:
                item = await self._receive_stream.receive()
            except (anyio.EndOfStream, anyio.ClosedResourceError):
                return None
            self._unconsumed -= 1
            return item
        return None

    def close(self) -> None:
        """Close both ends. Pending items are discarded."""
        if self._closed:
            return
        self._closed = True
        self._send_stream.close()
        self._receive_stream.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of items pushed and not yet returned by ``pop``.

        An item handed straight to a waiting consumer still counts until that
        consumer resumes.
        """
        return self._unconsumed

    def empty(self) -> bool:
        return self.pending <= 0
