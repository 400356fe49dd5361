"""In-process transport pair, for embedding a server next to its client."""

from __future__ import annotations

import asyncio

from mcpcore.errors import TransportError

_EOF = b""


class MemoryTransport:
    """One end of a linked in-memory channel.

    Frames sent on one end are received on the other.  Closing either end
    ends both: pending and future ``receive`` calls on both sides fail.
    """

    def __init__(self) -> None:
        self._inbox: asyncio.Queue[bytes] = asyncio.Queue()
        self._peer: MemoryTransport | None = None
        self._closed = False

    async def connect(self) -> None:
        if self._peer is None:
            msg = "MemoryTransport is not linked; use create_memory_transport_pair()"
            raise TransportError(msg)

    def is_connected(self) -> bool:
        return not self._closed and self._peer is not None

    async def send(self, frame: bytes) -> None:
        if not self.is_connected():
            msg = "Transport not connected"
            raise TransportError(msg)
        assert self._peer is not None
        self._peer._inbox.put_nowait(frame)

    async def receive(self) -> bytes:
        if self._closed and self._inbox.empty():
            msg = "Transport closed"
            raise TransportError(msg)
        frame = await self._inbox.get()
        if frame == _EOF:
            self._closed = True
            # Keep the marker for any other waiter.
            self._inbox.put_nowait(_EOF)
            msg = "Transport closed"
            raise TransportError(msg)
        return frame

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(_EOF)
        peer = self._peer
        if peer is not None and not peer._closed:
            peer._closed = True
            peer._inbox.put_nowait(_EOF)


def create_memory_transport_pair() -> tuple[MemoryTransport, MemoryTransport]:
    """Return two linked transports: ``(client_side, server_side)``."""
    left = MemoryTransport()
    right = MemoryTransport()
    left._peer = right
    right._peer = left
    return left, right
