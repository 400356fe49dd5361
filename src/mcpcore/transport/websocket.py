"""WebSocket transport — one JSON-RPC message per websocket frame.

Requires the ``websockets`` package (optional dependency ``ws``).
"""

from __future__ import annotations

from typing import Any

from mcpcore.errors import TransportError


class WebSocketTransport:
    """Communicates with an MCP server over a WebSocket."""

    def __init__(self, url: str, *, headers: dict[str, str] | None = None) -> None:
        self._url = url
        self._headers = headers or {}
        self._ws: Any = None  # websockets.asyncio.client.ClientConnection

    def is_connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """Open the WebSocket connection."""
        try:
            from websockets.asyncio.client import connect
        except ImportError as exc:
            msg = "websockets package required; install with: pip install mcpcore[ws]"
            raise ImportError(msg) from exc
        try:
            self._ws = await connect(self._url, additional_headers=self._headers or None)
        except OSError as exc:
            raise TransportError(f"Cannot connect to {self._url}: {exc}") from exc

    async def send(self, frame: bytes) -> None:
        if self._ws is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        from websockets.exceptions import ConnectionClosed

        try:
            await self._ws.send(frame.decode())
        except ConnectionClosed as exc:
            self._ws = None
            raise TransportError(f"Send failed: {exc}") from exc

    async def receive(self) -> bytes:
        if self._ws is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        from websockets.exceptions import ConnectionClosed

        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            self._ws = None
            raise TransportError(f"Transport closed: {exc}") from exc
        return raw.encode() if isinstance(raw, str) else bytes(raw)

    async def close(self) -> None:
        """Close the WebSocket connection."""
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
