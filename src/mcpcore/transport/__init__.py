"""Transports — stream (stdio), event-stream (SSE), websocket, and in-memory."""

from mcpcore.transport.base import Transport
from mcpcore.transport.memory import MemoryTransport, create_memory_transport_pair
from mcpcore.transport.sse import SSEClientTransport, SSEServerTransport
from mcpcore.transport.stdio import StdioTransport, StreamTransport, stdio_server_transport
from mcpcore.transport.websocket import WebSocketTransport

__all__ = [
    "MemoryTransport",
    "SSEClientTransport",
    "SSEServerTransport",
    "StdioTransport",
    "StreamTransport",
    "Transport",
    "WebSocketTransport",
    "create_memory_transport_pair",
    "stdio_server_transport",
]
