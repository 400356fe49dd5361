"""Transport protocol — the frame channel every binding implements."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Transport(Protocol):
    """Duplex channel carrying one encoded JSON-RPC message per frame.

    ``receive`` suspends until a complete frame is available and raises
    :class:`~mcpcore.errors.TransportError` once the channel is closed or
    broken; it never returns a partial frame.  ``close`` is idempotent.
    """

    async def connect(self) -> None: ...
    async def send(self, frame: bytes) -> None: ...
    async def receive(self) -> bytes: ...
    async def close(self) -> None: ...
    def is_connected(self) -> bool: ...
