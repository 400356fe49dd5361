"""Event-stream transports — server-push SSE plus a POST channel back.

The server pushes one JSON-RPC message per ``message`` event over a
long-lived ``text/event-stream`` response.  Its first event is ``endpoint``,
naming the URL the client POSTs its own messages to.

:class:`SSEClientTransport` is the client end (built on ``httpx``).
:class:`SSEServerTransport` is the framework-agnostic server end: an HTTP
layer streams :meth:`SSEServerTransport.events` to the client and forwards
POST bodies to :meth:`SSEServerTransport.post_message`.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urljoin
from uuid import uuid4

import httpx

from mcpcore.errors import TransportError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

_EOF = b""


@dataclass(frozen=True)
class SSEEvent:
    """A single dispatched server-sent event."""

    event: str = "message"
    data: str = ""
    id: str | None = None


def format_event(event: str, data: str) -> str:
    """Encode one event in ``text/event-stream`` syntax."""
    lines = [f"event: {event}"]
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


class SSEDecoder:
    """Incremental ``text/event-stream`` line parser.

    Feed it lines without their terminators; a blank line dispatches the
    event collected so far.
    """

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._id: str | None = None

    def feed(self, line: str) -> SSEEvent | None:
        if not line:
            if not self._data:
                self._event = ""
                return None
            event = SSEEvent(event=self._event or "message", data="\n".join(self._data), id=self._id)
            self._event = ""
            self._data = []
            return event

        if line.startswith(":"):
            return None  # comment / keep-alive

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            self._id = value
        return None


class SSEClientTransport:
    """Client end of the event-stream binding.

    Usage::

        transport = SSEClientTransport("http://localhost:8000/sse")
        async with MCPClient(transport) as client:
            tools = await client.list_tools()
    """

    def __init__(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._response: httpx.Response | None = None
        self._lines: AsyncIterator[str] | None = None
        self._decoder = SSEDecoder()
        self._backlog: deque[bytes] = deque()
        self._endpoint: str | None = None
        self._closed = False

    @property
    def endpoint(self) -> str | None:
        """The POST URL announced by the server, once connected."""
        return self._endpoint

    def is_connected(self) -> bool:
        return not self._closed and self._endpoint is not None

    async def connect(self) -> None:
        """Open the event stream and wait for the ``endpoint`` event."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._headers,
                timeout=httpx.Timeout(self._timeout, read=None),
            )
        request = self._client.build_request(
            "GET", self._url, headers={"Accept": "text/event-stream"}
        )
        try:
            self._response = await self._client.send(request, stream=True)
            self._response.raise_for_status()
        except httpx.HTTPError as exc:
            await self.close()
            raise TransportError(f"Cannot open event stream {self._url}: {exc}") from exc

        self._lines = self._response.aiter_lines()
        self._closed = False
        try:
            await asyncio.wait_for(self._await_endpoint(), self._timeout)
        except TimeoutError as exc:
            await self.close()
            msg = "Server did not announce a message endpoint"
            raise TransportError(msg) from exc
        logger.info("Event stream open at %s, posting to %s", self._url, self._endpoint)

    async def _await_endpoint(self) -> None:
        while self._endpoint is None:
            event = await self._next_event()
            if event.event == "endpoint":
                self._endpoint = urljoin(self._url, event.data.strip())
            elif event.event == "message":
                self._backlog.append(event.data.encode())

    async def _next_event(self) -> SSEEvent:
        if self._lines is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        try:
            async for line in self._lines:
                event = self._decoder.feed(line)
                if event is not None:
                    return event
        except httpx.HTTPError as exc:
            self._closed = True
            raise TransportError(f"Event stream failed: {exc}") from exc
        self._closed = True
        msg = "Transport closed"
        raise TransportError(msg)

    async def receive(self) -> bytes:
        """Return the data of the next ``message`` event."""
        if self._backlog:
            return self._backlog.popleft()
        if self._closed:
            msg = "Transport closed"
            raise TransportError(msg)
        while True:
            event = await self._next_event()
            if event.event == "message":
                return event.data.encode()
            logger.debug("Ignoring event-stream event %r", event.event)

    async def send(self, frame: bytes) -> None:
        """POST *frame* to the announced message endpoint."""
        if self._closed or self._client is None or self._endpoint is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        try:
            response = await self._client.post(
                self._endpoint,
                content=frame,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"POST to {self._endpoint} failed: {exc}") from exc

    async def close(self) -> None:
        self._closed = True
        response, self._response = self._response, None
        if response is not None:
            await response.aclose()
        client, self._client = self._client, None
        if client is not None and self._owns_client:
            await client.aclose()


class SSEServerTransport:
    """Server end of the event-stream binding for one client connection."""

    def __init__(self, endpoint: str, *, session_id: str | None = None) -> None:
        self.session_id = session_id or uuid4().hex
        self._endpoint = endpoint
        self._inbound: asyncio.Queue[bytes] = asyncio.Queue()
        self._outbound: asyncio.Queue[bytes] = asyncio.Queue()
        self._closed = False

    @property
    def endpoint_url(self) -> str:
        """The URL announced to the client in the ``endpoint`` event."""
        separator = "&" if "?" in self._endpoint else "?"
        return f"{self._endpoint}{separator}session_id={self.session_id}"

    async def connect(self) -> None:
        """Nothing to open; the HTTP layer owns the connection."""

    def is_connected(self) -> bool:
        return not self._closed

    async def send(self, frame: bytes) -> None:
        if self._closed:
            msg = "Transport closed"
            raise TransportError(msg)
        self._outbound.put_nowait(frame)

    async def receive(self) -> bytes:
        if self._closed and self._inbound.empty():
            msg = "Transport closed"
            raise TransportError(msg)
        frame = await self._inbound.get()
        if frame == _EOF:
            self._inbound.put_nowait(_EOF)
            msg = "Transport closed"
            raise TransportError(msg)
        return frame

    async def post_message(self, body: bytes) -> None:
        """Accept one client message delivered on the POST channel."""
        if self._closed:
            msg = "Transport closed"
            raise TransportError(msg)
        if not body.strip():
            msg = "Empty message body"
            raise TransportError(msg)
        self._inbound.put_nowait(body.strip())

    async def events(self) -> AsyncIterator[str]:
        """Yield encoded events for the streaming HTTP response."""
        yield format_event("endpoint", self.endpoint_url)
        while True:
            frame = await self._outbound.get()
            if frame == _EOF:
                return
            yield format_event("message", frame.decode())

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbound.put_nowait(_EOF)
        self._outbound.put_nowait(_EOF)
