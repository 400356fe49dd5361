"""MCPServer — serves a registry of tools, resources, and prompts.

Usage::

    server = MCPServer("files", "1.0.0")

    @server.tool(input_schema={
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    })
    def echo(arguments):
        "Echo the given text."
        return arguments["text"]

    asyncio.run(server.run_stdio())

Every connection gets its own :class:`ServerSession` with an independent
handshake; the registry is shared between them.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from mcpcore.defaults import default_tools
from mcpcore.dispatcher import Dispatcher
from mcpcore.errors import DisconnectedError
from mcpcore.events import (
    EventEmitter,
    ServerError,
    ServerEventKind,
    SessionDisconnected,
    SessionInitialized,
)
from mcpcore.negotiation import CapabilityNegotiator
from mcpcore.protocol.models import (
    NOTIFICATION_MESSAGE,
    NOTIFICATION_PROMPTS_CHANGED,
    NOTIFICATION_RESOURCES_CHANGED,
    NOTIFICATION_TOOLS_CHANGED,
    SUPPORTED_PROTOCOL_VERSIONS,
    Implementation,
    JsonRpcNotification,
    LoggingLevel,
    LoggingMessageParams,
    PromptsCapability,
    ResourcesCapability,
    ServerCapabilities,
    ToolsCapability,
)
from mcpcore.registry import (
    PromptDefinition,
    Registry,
    RegistryKind,
    ResourceDefinition,
    ToolDefinition,
)
from mcpcore.session import Session
from mcpcore.transport.stdio import stdio_server_transport

if TYPE_CHECKING:
    from mcpcore.config import ServerSettings
    from mcpcore.events import Listener
    from mcpcore.negotiation import NegotiatedSession
    from mcpcore.protocol.models import JsonRpcError
    from mcpcore.transport.base import Transport

logger = logging.getLogger(__name__)

_LIST_CHANGED = {
    RegistryKind.TOOLS: NOTIFICATION_TOOLS_CHANGED,
    RegistryKind.RESOURCES: NOTIFICATION_RESOURCES_CHANGED,
    RegistryKind.PROMPTS: NOTIFICATION_PROMPTS_CHANGED,
}


def default_capabilities() -> ServerCapabilities:
    return ServerCapabilities(
        tools=ToolsCapability(list_changed=True),
        resources=ResourcesCapability(list_changed=True),
        prompts=PromptsCapability(list_changed=True),
        logging={},
    )


class ServerSession:
    """The server's view of one connected client."""

    def __init__(self, server: MCPServer, transport: Transport) -> None:
        self.server = server
        self.session_id = uuid.uuid4().hex
        self.negotiator = CapabilityNegotiator(
            "server",
            supported_versions=server.supported_versions,
            local_capabilities=server.capabilities,
        )
        self.dispatcher = Dispatcher(
            self.negotiator,
            registry=server.registry,
            server_info=server.info,
            instructions=server.instructions,
            session_id=self.session_id,
            emit=server.events.emit,
            on_error=self._on_error,
        )
        self._session = Session(
            transport,
            self.dispatcher,
            session_id=self.session_id,
            on_error=self._on_error,
            on_closed=self._on_closed,
            on_initialized=self._on_initialized,
        )

    @property
    def is_initialized(self) -> bool:
        return self.negotiator.is_initialized

    @property
    def is_closed(self) -> bool:
        return self._session.is_closed

    @property
    def negotiated(self) -> NegotiatedSession | None:
        return self.negotiator.negotiated

    def start(self) -> None:
        self._session.start()

    async def wait_closed(self) -> None:
        await self._session.wait_closed()

    async def close(self, reason: str = "server closed") -> None:
        await self._session.close(reason)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification to the client once the session is initialized."""
        if self.is_closed:
            raise DisconnectedError(self._session.close_reason)
        if not self.negotiator.is_initialized:
            msg = f"Cannot send {method} before the session is initialized"
            raise RuntimeError(msg)
        await self._session.send(JsonRpcNotification(method=method, params=params))

    async def send_log(
        self, level: LoggingLevel, data: Any, logger: str | None = None
    ) -> bool:
        """Forward a log entry; returns ``False`` if logging is not declared."""
        if self.server.capabilities.logging is None:
            return False
        params = LoggingMessageParams(level=level, data=data, logger=logger)
        await self.notify(NOTIFICATION_MESSAGE, params.to_wire())
        return True

    async def notify_list_changed(self, kind: RegistryKind) -> None:
        await self.notify(_LIST_CHANGED[kind])

    async def _on_initialized(self, negotiated: NegotiatedSession) -> None:
        await self.server.events.emit(SessionInitialized(self.session_id, negotiated))

    async def _on_error(self, error: JsonRpcError) -> None:
        await self.server.events.emit(ServerError(self.session_id, error))

    async def _on_closed(self, reason: str) -> None:
        self.server._forget(self)
        await self.server.events.emit(SessionDisconnected(self.session_id, reason))


class MCPServer:
    """Tool-providing side of the protocol."""

    def __init__(
        self,
        name: str,
        version: str,
        *,
        capabilities: ServerCapabilities | None = None,
        registry: Registry | None = None,
        supported_versions: tuple[str, ...] = SUPPORTED_PROTOCOL_VERSIONS,
        instructions: str | None = None,
    ) -> None:
        self.info = Implementation(name=name, version=version)
        self.capabilities = capabilities if capabilities is not None else default_capabilities()
        self.registry = registry if registry is not None else Registry()
        self.supported_versions = tuple(supported_versions)
        self.instructions = instructions
        self.events: EventEmitter[ServerEventKind] = EventEmitter()
        self._sessions: dict[str, ServerSession] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._background: set[asyncio.Task[None]] = set()
        self.registry.add_change_listener(self._on_registry_changed)

    @classmethod
    def from_settings(cls, settings: ServerSettings, *, registry: Registry | None = None) -> MCPServer:
        server = cls(
            settings.name,
            settings.version,
            capabilities=settings.capabilities,
            registry=registry,
            supported_versions=tuple(settings.supported_versions),
            instructions=settings.instructions,
        )
        if settings.include_default_tools:
            for definition in default_tools(settings.name, settings.version):
                server.register_tool(definition, replace=True)
        return server

    @property
    def sessions(self) -> list[ServerSession]:
        return list(self._sessions.values())

    # -- events -------------------------------------------------------------

    def on(self, kind: ServerEventKind, listener: Listener) -> Callable[[], None]:
        return self.events.on(kind, listener)

    # -- registration -------------------------------------------------------

    def tool(self, name: str | None = None, **kwargs: Any) -> Callable[[Any], Any]:
        return self.registry.tool(name, **kwargs)

    def resource(self, uri: str, **kwargs: Any) -> Callable[[Any], Any]:
        return self.registry.resource(uri, **kwargs)

    def prompt(self, name: str | None = None, **kwargs: Any) -> Callable[[Any], Any]:
        return self.registry.prompt(name, **kwargs)

    def register_tool(self, definition: ToolDefinition, *, replace: bool = False) -> ToolDefinition:
        return self.registry.register_tool(definition, replace=replace)

    def register_resource(
        self, definition: ResourceDefinition, *, replace: bool = False
    ) -> ResourceDefinition:
        return self.registry.register_resource(definition, replace=replace)

    def register_prompt(
        self, definition: PromptDefinition, *, replace: bool = False
    ) -> PromptDefinition:
        return self.registry.register_prompt(definition, replace=replace)

    # -- connections --------------------------------------------------------

    async def connect(self, transport: Transport) -> ServerSession:
        """Connect *transport* and start serving it in the background."""
        self._loop = asyncio.get_running_loop()
        await transport.connect()
        session = ServerSession(self, transport)
        self._sessions[session.session_id] = session
        session.start()
        logger.info("Server %s accepted session %s", self.info.name, session.session_id)
        return session

    async def serve(self, transport: Transport) -> None:
        """Serve *transport* until the peer disconnects."""
        session = await self.connect(transport)
        await session.wait_closed()

    async def run_stdio(self) -> None:
        """Serve this process's stdin and stdout."""
        transport = await stdio_server_transport()
        await self.serve(transport)

    async def close(self) -> None:
        sessions = self.sessions
        for session in sessions:
            await session.close()
        logger.info("Server %s closed %d session(s)", self.info.name, len(sessions))

    def _forget(self, session: ServerSession) -> None:
        self._sessions.pop(session.session_id, None)

    # -- list_changed broadcast ---------------------------------------------

    def _declares_list_changed(self, kind: RegistryKind) -> bool:
        capability = getattr(self.capabilities, kind.value, None)
        return bool(capability is not None and capability.list_changed)

    def _on_registry_changed(self, kind: RegistryKind) -> None:
        if not self._declares_list_changed(kind):
            return
        targets = [s for s in self.sessions if s.is_initialized]
        if not targets or self._loop is None or self._loop.is_closed():
            return
        for session in targets:
            coro = self._broadcast_list_changed(session, kind)
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is self._loop:
                task = running.create_task(coro)
                self._background.add(task)
                task.add_done_callback(self._background.discard)
            else:
                asyncio.run_coroutine_threadsafe(coro, self._loop)

    async def _broadcast_list_changed(self, session: ServerSession, kind: RegistryKind) -> None:
        try:
            await session.notify_list_changed(kind)
        except Exception:
            logger.exception(
                "Failed to send %s list_changed to session %s", kind.value, session.session_id
            )
