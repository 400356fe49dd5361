"""MCPClient — connects to an MCP server and calls its tools, resources, and prompts.

Usage::

    ref = ServerRef(name="fs", command="python -m files_server")
    async with MCPClient.from_ref(ref) as client:
        tools = await client.list_tools()
        result = await client.call_tool("read_file", {"path": "/tmp/x"})

Requests may be issued concurrently; each waits on its own id.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from mcpcore.dispatcher import Dispatcher, NotificationListener
from mcpcore.errors import (
    PromptExecutionError,
    RemoteError,
    RequestTimeoutError,
    ToolExecutionError,
)
from mcpcore.events import (
    ClientConnected,
    ClientDisconnected,
    ClientError,
    ClientEventKind,
    ClientInitialized,
    EventEmitter,
)
from mcpcore.negotiation import CapabilityNegotiator
from mcpcore.protocol.models import (
    INITIALIZE,
    LATEST_PROTOCOL_VERSION,
    NOTIFICATION_INITIALIZED,
    PROMPTS_GET,
    PROMPTS_LIST,
    RESOURCES_LIST,
    RESOURCES_READ,
    SUPPORTED_PROTOCOL_VERSIONS,
    TOOLS_CALL,
    TOOLS_LIST,
    CallToolResult,
    ClientCapabilities,
    GetPromptResult,
    Implementation,
    InitializeParams,
    InitializeResult,
    JsonRpcNotification,
    JsonRpcRequest,
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
    Prompt,
    ReadResourceResult,
    Resource,
    Tool,
)
from mcpcore.session import Session
from mcpcore.transport.sse import SSEClientTransport
from mcpcore.transport.stdio import StdioTransport
from mcpcore.transport.websocket import WebSocketTransport
from mcpcore.utils.telemetry import ATTR_METHOD, ATTR_REQUEST_ID, get_tracer, record_error

if TYPE_CHECKING:
    from mcpcore.config import ClientSettings, ServerRef
    from mcpcore.events import Listener
    from mcpcore.negotiation import NegotiatedSession
    from mcpcore.protocol.models import JsonRpcError
    from mcpcore.transport.base import Transport

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

DEFAULT_CLIENT_INFO = Implementation(name="mcpcore", version="0.1.0")


class MCPClient:
    """Tool-consuming side of the protocol, bound to one transport."""

    def __init__(
        self,
        transport: Transport,
        *,
        client_info: Implementation | None = None,
        capabilities: ClientCapabilities | None = None,
        request_timeout: float = 30.0,
        protocol_version: str = LATEST_PROTOCOL_VERSION,
        supported_versions: tuple[str, ...] = SUPPORTED_PROTOCOL_VERSIONS,
    ) -> None:
        self.transport = transport
        self.client_info = client_info or DEFAULT_CLIENT_INFO
        self.capabilities = capabilities or ClientCapabilities()
        self.request_timeout = request_timeout
        self.protocol_version = protocol_version
        self.events: EventEmitter[ClientEventKind] = EventEmitter()
        self.negotiator = CapabilityNegotiator(
            "client",
            supported_versions=supported_versions,
            local_capabilities=self.capabilities,
        )
        self.dispatcher = Dispatcher(self.negotiator, emit=self.events.emit, on_error=self._on_error)
        self._session: Session | None = None
        self._ids = itertools.count(1)
        self.server_result: InitializeResult | None = None

    @classmethod
    def from_ref(
        cls, ref: ServerRef, settings: ClientSettings | None = None, **kwargs: Any
    ) -> MCPClient:
        """Build a client and its transport from a :class:`~mcpcore.config.ServerRef`."""
        if settings is not None:
            kwargs.setdefault("client_info", settings.client_info)
            kwargs.setdefault("capabilities", settings.capabilities)
            kwargs.setdefault("request_timeout", settings.request_timeout)
        return cls(_create_transport(ref), **kwargs)

    async def __aenter__(self) -> MCPClient:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    @property
    def is_initialized(self) -> bool:
        return self.negotiator.is_initialized

    @property
    def negotiated(self) -> NegotiatedSession | None:
        return self.negotiator.negotiated

    # -- lifecycle ----------------------------------------------------------

    async def connect(self) -> InitializeResult:
        """Connect the transport and perform the ``initialize`` handshake."""
        if self._session is not None:
            msg = "Client already connected"
            raise RuntimeError(msg)
        await self.transport.connect()
        self._session = Session(
            self.transport,
            self.dispatcher,
            on_error=self._on_error,
            on_closed=self._on_closed,
        )
        self._session.start()
        await self.events.emit(ClientConnected())
        try:
            return await self._handshake()
        except BaseException:
            await self._session.close("handshake failed")
            raise

    async def _handshake(self) -> InitializeResult:
        self.negotiator.begin_client_handshake()
        params = InitializeParams(
            protocol_version=self.protocol_version,
            capabilities=self.capabilities,
            client_info=self.client_info,
        )
        try:
            raw = await self.request(INITIALIZE, params.to_wire())
        except BaseException:
            self.negotiator.abort_handshake()
            raise
        result = InitializeResult.model_validate(raw)
        self.negotiator.complete_client_handshake(result, self.client_info)
        self.server_result = result
        logger.info(
            "Connected to %s %s (protocol %s)",
            result.server_info.name,
            result.server_info.version,
            result.protocol_version,
        )
        await self.events.emit(ClientInitialized(result))
        await self.notify(NOTIFICATION_INITIALIZED)
        return result

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close("client closed")

    # -- events -------------------------------------------------------------

    def on(self, kind: ClientEventKind, listener: Listener) -> Callable[[], None]:
        return self.events.on(kind, listener)

    def on_notification(self, method: str, listener: NotificationListener) -> Callable[[], None]:
        """Call *listener* with the params of every *method* notification."""
        self.dispatcher.add_notification_listener(method, listener)
        return lambda: self.dispatcher.remove_notification_listener(method, listener)

    async def _on_error(self, error: JsonRpcError) -> None:
        await self.events.emit(ClientError(error))

    async def _on_closed(self, reason: str) -> None:
        await self.events.emit(ClientDisconnected(reason))

    # -- generic requests ---------------------------------------------------

    def _require_session(self) -> Session:
        if self._session is None:
            msg = "Client not connected"
            raise RuntimeError(msg)
        return self._session

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a request and return its ``result`` object.

        Raises:
            RemoteError: The server answered with an error response.
            RequestTimeoutError: No response arrived within *timeout* seconds.
            DisconnectedError: The session closed while waiting.
        """
        session = self._require_session()
        request_id = next(self._ids)
        deadline = self.request_timeout if timeout is None else timeout

        with _tracer.start_as_current_span("mcp.request") as span:
            span.set_attribute(ATTR_METHOD, method)
            span.set_attribute(ATTR_REQUEST_ID, str(request_id))

            future = self.dispatcher.pending.register(request_id)
            try:
                await session.send(JsonRpcRequest(id=request_id, method=method, params=params))
                response = await asyncio.wait_for(future, timeout=deadline)
            except TimeoutError:
                self.dispatcher.pending.discard(request_id)
                logger.warning("Request %s (id %d) timed out after %ss", method, request_id, deadline)
                raise RequestTimeoutError(method, deadline) from None
            except BaseException:
                self.dispatcher.pending.discard(request_id)
                raise

            if response.error is not None:
                error = response.error
                record_error(span, error.code, error.message)
                raise RemoteError(error.code, error.message, error.data)
        return response.result or {}

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self._require_session().send(JsonRpcNotification(method=method, params=params))

    # -- typed helpers ------------------------------------------------------

    async def list_tools(self) -> list[Tool]:
        raw = await self.request(TOOLS_LIST)
        return ListToolsResult.model_validate(raw).tools

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        raise_on_error: bool = False,
        timeout: float | None = None,
    ) -> CallToolResult:
        raw = await self.request(
            TOOLS_CALL, {"name": name, "arguments": arguments or {}}, timeout=timeout
        )
        result = CallToolResult.model_validate(raw)
        if raise_on_error and result.is_error:
            raise ToolExecutionError(name, result.text())
        return result

    async def list_resources(self) -> list[Resource]:
        raw = await self.request(RESOURCES_LIST)
        return ListResourcesResult.model_validate(raw).resources

    async def read_resource(self, uri: str, *, timeout: float | None = None) -> ReadResourceResult:
        raw = await self.request(RESOURCES_READ, {"uri": uri}, timeout=timeout)
        return ReadResourceResult.model_validate(raw)

    async def list_prompts(self) -> list[Prompt]:
        raw = await self.request(PROMPTS_LIST)
        return ListPromptsResult.model_validate(raw).prompts

    async def get_prompt(
        self,
        name: str,
        arguments: dict[str, str] | None = None,
        *,
        raise_on_error: bool = False,
        timeout: float | None = None,
    ) -> GetPromptResult:
        raw = await self.request(
            PROMPTS_GET, {"name": name, "arguments": arguments or {}}, timeout=timeout
        )
        result = GetPromptResult.model_validate(raw)
        if raise_on_error and result.is_error:
            raise PromptExecutionError(name, result.description or "")
        return result


def _create_transport(ref: ServerRef) -> Transport:
    """Build the appropriate transport from the server reference."""
    if ref.transport == "stdio":
        assert ref.command is not None
        return StdioTransport(command=ref.command, env=dict(ref.env) or None)
    assert ref.url is not None
    if ref.transport == "sse":
        return SSEClientTransport(ref.url, headers=dict(ref.headers))
    return WebSocketTransport(ref.url, headers=dict(ref.headers))
