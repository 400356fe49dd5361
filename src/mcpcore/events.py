"""Lifecycle events emitted by the server and client orchestrators.

Every event is a frozen dataclass tagged with its kind; listeners are kept
in one list per kind::

    server.on(ServerEventKind.TOOL_CALLED, lambda event: print(event.name))

Listeners may be plain callables or coroutine functions.  A failing
listener is logged and does not stop the others.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar, Union

if TYPE_CHECKING:
    from mcpcore.negotiation import NegotiatedSession
    from mcpcore.protocol.models import InitializeResult, JsonRpcError

logger = logging.getLogger(__name__)


class ServerEventKind(str, Enum):
    INITIALIZED = "initialized"
    TOOL_CALLED = "tool-called"
    RESOURCE_READ = "resource-read"
    PROMPT_REQUESTED = "prompt-requested"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class ClientEventKind(str, Enum):
    CONNECTED = "connected"
    INITIALIZED = "initialized"
    NOTIFICATION = "notification"
    ERROR = "error"
    DISCONNECTED = "disconnected"


# ---------------------------------------------------------------------------
# Server events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionInitialized:
    kind: ClassVar[ServerEventKind] = ServerEventKind.INITIALIZED

    session_id: str
    negotiated: NegotiatedSession


@dataclass(frozen=True)
class ToolCalled:
    kind: ClassVar[ServerEventKind] = ServerEventKind.TOOL_CALLED

    session_id: str
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResourceRead:
    kind: ClassVar[ServerEventKind] = ServerEventKind.RESOURCE_READ

    session_id: str
    uri: str


@dataclass(frozen=True)
class PromptRequested:
    kind: ClassVar[ServerEventKind] = ServerEventKind.PROMPT_REQUESTED

    session_id: str
    name: str
    arguments: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ServerError:
    kind: ClassVar[ServerEventKind] = ServerEventKind.ERROR

    session_id: str
    error: JsonRpcError


@dataclass(frozen=True)
class SessionDisconnected:
    kind: ClassVar[ServerEventKind] = ServerEventKind.DISCONNECTED

    session_id: str
    reason: str = ""


# ---------------------------------------------------------------------------
# Client events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientConnected:
    kind: ClassVar[ClientEventKind] = ClientEventKind.CONNECTED


@dataclass(frozen=True)
class ClientInitialized:
    kind: ClassVar[ClientEventKind] = ClientEventKind.INITIALIZED

    result: InitializeResult


@dataclass(frozen=True)
class NotificationReceived:
    kind: ClassVar[ClientEventKind] = ClientEventKind.NOTIFICATION

    method: str
    params: dict[str, Any] | None = None


@dataclass(frozen=True)
class ClientError:
    kind: ClassVar[ClientEventKind] = ClientEventKind.ERROR

    error: JsonRpcError


@dataclass(frozen=True)
class ClientDisconnected:
    kind: ClassVar[ClientEventKind] = ClientEventKind.DISCONNECTED

    reason: str = ""


# ---------------------------------------------------------------------------
# Emitter
# ---------------------------------------------------------------------------

K = TypeVar("K", ServerEventKind, ClientEventKind)
Listener = Callable[[Any], Union[None, Awaitable[None]]]


class EventEmitter(Generic[K]):
    """Keeps a listener list per event kind and fans events out to it."""

    def __init__(self) -> None:
        self._listeners: dict[K, list[Listener]] = defaultdict(list)

    def on(self, kind: K, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners[kind].append(listener)
        return lambda: self.off(kind, listener)

    def off(self, kind: K, listener: Listener) -> None:
        listeners = self._listeners.get(kind, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, kind: K) -> int:
        return len(self._listeners.get(kind, []))

    async def emit(self, event: Any) -> None:
        """Deliver *event* to every listener registered for ``event.kind``."""
        for listener in list(self._listeners.get(event.kind, [])):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener for %s event failed", event.kind.value)
