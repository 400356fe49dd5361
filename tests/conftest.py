"""Shared fixtures: an echo server and a client connected to it in memory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pytest

from mcpcore.client import MCPClient
from mcpcore.protocol.models import PromptArgument
from mcpcore.server import MCPServer, ServerSession
from mcpcore.transport.memory import create_memory_transport_pair

ECHO_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}


def build_server() -> MCPServer:
    server = MCPServer("test-server", "1.0.0")

    @server.tool(input_schema=ECHO_SCHEMA)
    def echo(arguments: dict[str, Any]) -> str:
        """Echo the given text."""
        return arguments["text"]

    @server.tool()
    def explode(arguments: dict[str, Any]) -> str:
        """Always fails."""
        raise RuntimeError("boom")

    @server.resource("file:///readme.txt", name="readme", mime_type="text/plain")
    def readme(uri: str) -> str:
        return "hello from readme"

    @server.prompt(arguments=[PromptArgument(name="topic", required=True)])
    def summarize(arguments: dict[str, str]) -> str:
        """Summarize a topic."""
        return f"Summarize {arguments['topic']}"

    return server


@pytest.fixture
def server() -> MCPServer:
    return build_server()


@pytest.fixture
async def connected(server: MCPServer) -> AsyncIterator[tuple[MCPClient, ServerSession]]:
    """A client that completed the handshake with ``server`` over a memory pair."""
    client_side, server_side = create_memory_transport_pair()
    session = await server.connect(server_side)
    client = MCPClient(client_side, request_timeout=5.0)
    await client.connect()
    try:
        yield client, session
    finally:
        await client.close()
        await server.close()
