"""Session — one connection's read loop and write path.

The read loop owns the transport's inbound side.  Each decoded request or
notification is handled in its own task so a slow handler never blocks the
loop; responses are matched to pending requests inline.  The one exception
is ``initialize``: it is answered before the next frame is read, so the
phase is already ``INITIALIZED`` when the client's follow-up arrives.

A request that reuses the id of one still being handled is refused with
``INVALID_REQUEST``; ids become free again once their response is sent.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Coroutine
from typing import TYPE_CHECKING, Any

from mcpcore.errors import CodecError, DisconnectedError, ErrorCode, RemoteError, TransportError
from mcpcore.protocol.codec import decode, encode
from mcpcore.protocol.models import (
    INITIALIZE,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    RequestId,
)

if TYPE_CHECKING:
    from mcpcore.dispatcher import Dispatcher
    from mcpcore.negotiation import NegotiatedSession
    from mcpcore.transport.base import Transport

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[JsonRpcError], Awaitable[None]]
ClosedCallback = Callable[[str], Awaitable[None]]
InitializedCallback = Callable[["NegotiatedSession"], Awaitable[None]]


class Session:
    """Binds a transport to a dispatcher for the lifetime of one connection."""

    def __init__(
        self,
        transport: Transport,
        dispatcher: Dispatcher,
        *,
        session_id: str | None = None,
        on_error: ErrorCallback | None = None,
        on_closed: ClosedCallback | None = None,
        on_initialized: InitializedCallback | None = None,
    ) -> None:
        self.transport = transport
        self.dispatcher = dispatcher
        self.session_id = session_id or uuid.uuid4().hex
        self._on_error = on_error
        self._on_closed = on_closed
        self._on_initialized = on_initialized
        self._write_lock = asyncio.Lock()
        self._reader: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._inbound: set[RequestId] = set()
        self._closing = False
        self._closed = asyncio.Event()
        self.close_reason = ""

    @property
    def is_closed(self) -> bool:
        return self._closing

    def start(self) -> None:
        """Start reading frames; call once the transport is connected."""
        if self._reader is not None:
            msg = "Session already started"
            raise RuntimeError(msg)
        self._reader = asyncio.create_task(self._read_loop(), name=f"mcp-session-{self.session_id}")

    async def send(self, message: Message) -> None:
        """Encode and write *message*; frames are never interleaved."""
        if self._closing:
            raise DisconnectedError(self.close_reason)
        frame = encode(message)
        async with self._write_lock:
            await self.transport.send(frame)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # -- read loop ----------------------------------------------------------

    async def _read_loop(self) -> None:
        reason = "transport closed"
        try:
            while not self._closing:
                try:
                    frame = await self.transport.receive()
                except TransportError as exc:
                    reason = str(exc) or reason
                    break

                try:
                    message = decode(frame)
                except CodecError as exc:
                    if not await self._handle_codec_error(exc):
                        reason = f"undecodable frame: {exc}"
                        break
                    continue

                await self._route(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Session %s read loop crashed", self.session_id)
            reason = f"read loop failed: {exc}"
        await self.close(reason)

    async def _handle_codec_error(self, exc: CodecError) -> bool:
        """Report a decode failure; returns ``False`` when the session cannot go on."""
        logger.warning("Session %s received an undecodable frame: %s", self.session_id, exc)
        error = JsonRpcError(code=exc.code, message=f"Parse error: {exc}")
        await self._report(error)

        if exc.request_id is not None:
            await self._safe_send(JsonRpcResponse(id=exc.request_id, error=error))
            return True
        if exc.message_id is not None:
            # A broken response: fail the request that was waiting on it.
            self.dispatcher.pending.reject(
                exc.message_id, RemoteError(ErrorCode.PARSE_ERROR, f"Malformed response: {exc}")
            )
            return True
        return not exc.fatal

    async def _route(self, message: Message) -> None:
        if isinstance(message, JsonRpcResponse):
            self.dispatcher.dispatch_response(message)
        elif isinstance(message, JsonRpcRequest) and message.method == INITIALIZE:
            await self._handle_initialize(message)
        elif isinstance(message, JsonRpcRequest):
            if message.id in self._inbound:
                await self._reject_duplicate(message)
                return
            self._inbound.add(message.id)
            self._spawn(self._handle_request(message))
        elif isinstance(message, JsonRpcNotification):
            self._spawn(self.dispatcher.dispatch_notification(message))

    async def _handle_initialize(self, request: JsonRpcRequest) -> None:
        negotiator = self.dispatcher.negotiator
        response = await self.dispatcher.dispatch_request(request)
        try:
            await self.send(response)
        except (TransportError, DisconnectedError):
            negotiator.abort_handshake()
            raise
        if response.error is not None:
            return
        if negotiator.role != "server":
            return
        negotiated = negotiator.mark_initialized()
        if self._on_initialized is not None:
            await self._on_initialized(negotiated)

    async def _handle_request(self, request: JsonRpcRequest) -> None:
        try:
            response = await self.dispatcher.dispatch_request(request)
            await self._safe_send(response)
        finally:
            self._inbound.discard(request.id)

    async def _reject_duplicate(self, request: JsonRpcRequest) -> None:
        logger.warning(
            "Session %s received %s with id %r while that id is still in flight",
            self.session_id,
            request.method,
            request.id,
        )
        error = JsonRpcError(
            code=ErrorCode.INVALID_REQUEST,
            message=f"Request id {request.id!r} is already in use",
            data={"id": request.id, "method": request.method},
        )
        await self._report(error)
        await self._safe_send(JsonRpcResponse(id=request.id, error=error))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Session %s handler task failed", self.session_id, exc_info=task.exception()
            )

    async def _safe_send(self, message: Message) -> None:
        try:
            await self.send(message)
        except (TransportError, DisconnectedError) as exc:
            logger.debug("Session %s dropped outgoing message: %s", self.session_id, exc)

    async def _report(self, error: JsonRpcError) -> None:
        if self._on_error is None:
            return
        try:
            await self._on_error(error)
        except Exception:
            logger.exception("Error callback failed for session %s", self.session_id)

    # -- shutdown -----------------------------------------------------------

    async def close(self, reason: str = "closed") -> None:
        """Tear the session down; safe to call more than once."""
        if self._closing:
            await self._closed.wait()
            return
        self._closing = True
        self.close_reason = reason
        logger.info("Session %s closing: %s", self.session_id, reason)

        self.dispatcher.negotiator.close()
        rejected = self.dispatcher.pending.reject_all(DisconnectedError(reason))
        if rejected:
            logger.debug("Session %s rejected %d pending request(s)", self.session_id, rejected)

        current = asyncio.current_task()
        to_cancel = [t for t in self._tasks if t is not current]
        if self._reader is not None and self._reader is not current:
            to_cancel.append(self._reader)
        for task in to_cancel:
            task.cancel()
        if to_cancel:
            await asyncio.wait(to_cancel)

        try:
            await self.transport.close()
        except Exception:
            logger.exception("Session %s failed to close its transport", self.session_id)

        try:
            if self._on_closed is not None:
                await self._on_closed(reason)
        finally:
            self._closed.set()
