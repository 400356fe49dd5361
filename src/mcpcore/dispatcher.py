"""Dispatcher — routes decoded messages for one session.

* Requests go through the negotiation gate, then the built-in method table
  (server role) and, for ``tools/call``, ``resources/read`` and
  ``prompts/get``, a second lookup in the :class:`~mcpcore.registry.Registry`.
* Responses are correlated by id against :class:`PendingRequests`.
* Notifications fan out to the listeners registered for their method.

Only dispatch-level problems (unknown method or name, malformed params)
become JSON-RPC errors.  A handler that raises is reported as a successful
response whose payload is flagged with ``isError``.
"""

from __future__ import annotations

import asyncio
import base64
import inspect
import json
import logging
import threading
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar, Union

from pydantic import BaseModel, ValidationError

from mcpcore.errors import ErrorCode, ProtocolError
from mcpcore.events import NotificationReceived, PromptRequested, ResourceRead, ToolCalled
from mcpcore.negotiation import SessionPhase
from mcpcore.protocol.models import (
    INITIALIZE,
    PROMPTS_GET,
    PROMPTS_LIST,
    RESOURCES_LIST,
    RESOURCES_READ,
    TOOLS_CALL,
    TOOLS_LIST,
    CallToolParams,
    CallToolResult,
    EmbeddedResource,
    GetPromptParams,
    GetPromptResult,
    ImageContent,
    InitializeParams,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    ListPromptsResult,
    ListResourcesResult,
    ListToolsResult,
    PromptMessage,
    ReadResourceParams,
    ReadResourceResult,
    RequestId,
    ResourceContents,
    TextContent,
)
from mcpcore.utils.telemetry import (
    ATTR_METHOD,
    ATTR_PROMPT_NAME,
    ATTR_REQUEST_ID,
    ATTR_RESOURCE_URI,
    ATTR_SESSION_ID,
    ATTR_TOOL_IS_ERROR,
    ATTR_TOOL_NAME,
    get_tracer,
    record_error,
)

if TYPE_CHECKING:
    from mcpcore.negotiation import CapabilityNegotiator
    from mcpcore.protocol.models import Implementation
    from mcpcore.registry import PromptDefinition, Registry, ResourceDefinition, ToolDefinition

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_M = TypeVar("_M", bound=BaseModel)

MethodHandler = Callable[[Union[dict[str, Any], None]], Awaitable[dict[str, Any]]]
NotificationListener = Callable[[Union[dict[str, Any], None]], Union[None, Awaitable[None]]]
EventSink = Callable[[Any], Awaitable[None]]
ErrorSink = Callable[[JsonRpcError], Awaitable[None]]


class PendingRequests:
    """Outstanding requests issued by this side, keyed by request id.

    Each entry is resolved at most once: by its response, by rejection, or
    by being discarded after a timeout.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._waiting: dict[RequestId, asyncio.Future[JsonRpcResponse]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._waiting)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._waiting

    def register(self, request_id: RequestId) -> asyncio.Future[JsonRpcResponse]:
        """Create the future that will receive the response to *request_id*."""
        future: asyncio.Future[JsonRpcResponse] = asyncio.get_running_loop().create_future()
        with self._lock:
            if request_id in self._waiting:
                raise ProtocolError(
                    ErrorCode.INVALID_REQUEST, f"Request id {request_id!r} is already outstanding"
                )
            self._waiting[request_id] = future
        return future

    def resolve(self, response: JsonRpcResponse) -> bool:
        """Deliver *response*; ``False`` when no request is waiting for its id."""
        with self._lock:
            future = self._waiting.pop(response.id, None)
        if future is None or future.done():
            return False
        future.set_result(response)
        return True

    def reject(self, request_id: RequestId, exc: BaseException) -> bool:
        with self._lock:
            future = self._waiting.pop(request_id, None)
        if future is None or future.done():
            return False
        future.set_exception(exc)
        return True

    def discard(self, request_id: RequestId) -> bool:
        """Forget *request_id*; a later response for it is treated as unmatched."""
        with self._lock:
            future = self._waiting.pop(request_id, None)
        if future is not None and not future.done():
            future.cancel()
        return future is not None

    def reject_all(self, exc: BaseException) -> int:
        with self._lock:
            futures = list(self._waiting.values())
            self._waiting.clear()
        count = 0
        for future in futures:
            if not future.done():
                future.set_exception(exc)
                count += 1
        return count


class Dispatcher:
    """Routes one session's inbound messages.

    With a *registry* the dispatcher plays the server role and serves the
    built-in methods; without one (client role) every request is answered
    with ``METHOD_NOT_FOUND`` once the session is initialized.
    """

    def __init__(
        self,
        negotiator: CapabilityNegotiator,
        *,
        registry: Registry | None = None,
        server_info: Implementation | None = None,
        instructions: str | None = None,
        session_id: str = "",
        emit: EventSink | None = None,
        on_error: ErrorSink | None = None,
    ) -> None:
        self.negotiator = negotiator
        self.registry = registry
        self.pending = PendingRequests()
        self.session_id = session_id
        self._server_info = server_info
        self._instructions = instructions
        self._emit = emit
        self._on_error = on_error
        self._methods: dict[str, MethodHandler] = {}
        self._listeners: dict[str, list[NotificationListener]] = defaultdict(list)

        if registry is not None:
            if server_info is None:
                msg = "A server-role dispatcher needs server_info"
                raise ValueError(msg)
            self._methods = {
                INITIALIZE: self._initialize,
                TOOLS_LIST: self._list_tools,
                TOOLS_CALL: self._call_tool,
                RESOURCES_LIST: self._list_resources,
                RESOURCES_READ: self._read_resource,
                PROMPTS_LIST: self._list_prompts,
                PROMPTS_GET: self._get_prompt,
            }

    @property
    def methods(self) -> list[str]:
        return list(self._methods)

    # -- notification listeners ---------------------------------------------

    def add_notification_listener(self, method: str, listener: NotificationListener) -> None:
        self._listeners[method].append(listener)

    def remove_notification_listener(self, method: str, listener: NotificationListener) -> None:
        listeners = self._listeners.get(method, [])
        if listener in listeners:
            listeners.remove(listener)

    # -- classification -----------------------------------------------------

    async def dispatch_request(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Run *request* and build its response; never raises for protocol errors."""
        with _tracer.start_as_current_span("mcp.dispatch") as span:
            span.set_attribute(ATTR_METHOD, request.method)
            span.set_attribute(ATTR_REQUEST_ID, str(request.id))
            span.set_attribute(ATTR_SESSION_ID, self.session_id)
            try:
                self.negotiator.check_dispatch(request.method)
                handler = self._methods.get(request.method)
                if handler is None:
                    raise ProtocolError(
                        ErrorCode.METHOD_NOT_FOUND, f"Method not found: {request.method}"
                    )
                result = await handler(request.params)
            except ProtocolError as exc:
                record_error(span, exc.code, exc.message)
                logger.debug("Request %s (id %r) failed: %s", request.method, request.id, exc)
                return JsonRpcResponse.failure(request.id, exc.code, exc.message, exc.data)
            except Exception as exc:
                logger.exception("Unexpected failure dispatching %s", request.method)
                record_error(span, ErrorCode.INTERNAL_ERROR, str(exc))
                error = JsonRpcError(code=ErrorCode.INTERNAL_ERROR, message=f"Internal error: {exc}")
                await self._report_error(error)
                return JsonRpcResponse(id=request.id, error=error)
            return JsonRpcResponse.success(request.id, result)

    def dispatch_response(self, response: JsonRpcResponse) -> bool:
        """Hand *response* to its waiting request; unmatched responses are dropped."""
        if self.pending.resolve(response):
            return True
        logger.warning(
            "Dropping response for unknown or expired request id %r", response.id
        )
        return False

    async def dispatch_notification(self, notification: JsonRpcNotification) -> int:
        """Run every listener for the notification's method; returns how many ran."""
        phase = self.negotiator.phase
        if phase in (SessionPhase.UNINITIALIZED, SessionPhase.CLOSED):
            logger.debug(
                "Ignoring notification %s while session is %s", notification.method, phase.value
            )
            return 0

        if self.negotiator.role == "client":
            await self._publish(NotificationReceived(notification.method, notification.params))
        listeners = list(self._listeners.get(notification.method, []))
        for listener in listeners:
            try:
                result = listener(notification.params)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.exception("Listener for notification %s failed", notification.method)
                await self._report_error(
                    JsonRpcError(
                        code=ErrorCode.INTERNAL_ERROR,
                        message=f"Notification listener for {notification.method} failed: {exc}",
                    )
                )
        return len(listeners)

    # -- helpers ------------------------------------------------------------

    async def _report_error(self, error: JsonRpcError) -> None:
        if self._on_error is not None:
            await self._on_error(error)

    async def _publish(self, event: Any) -> None:
        if self._emit is not None:
            await self._emit(event)

    def _require_registry(self) -> Registry:
        assert self.registry is not None
        return self.registry

    # -- built-in methods ---------------------------------------------------

    async def _initialize(self, params: dict[str, Any] | None) -> dict[str, Any]:
        parsed = _parse_params(InitializeParams, params)
        assert self._server_info is not None
        result = self.negotiator.begin_server_handshake(
            parsed, self._server_info, instructions=self._instructions
        )
        return result.to_wire()

    async def _list_tools(self, params: dict[str, Any] | None) -> dict[str, Any]:
        tools = [d.to_tool() for d in self._require_registry().list_tools()]
        return ListToolsResult(tools=tools).to_wire()

    async def _list_resources(self, params: dict[str, Any] | None) -> dict[str, Any]:
        resources = [d.to_resource() for d in self._require_registry().list_resources()]
        return ListResourcesResult(resources=resources).to_wire()

    async def _list_prompts(self, params: dict[str, Any] | None) -> dict[str, Any]:
        prompts = [d.to_prompt() for d in self._require_registry().list_prompts()]
        return ListPromptsResult(prompts=prompts).to_wire()

    async def _call_tool(self, params: dict[str, Any] | None) -> dict[str, Any]:
        parsed = _parse_params(CallToolParams, params)
        definition = self._require_registry().get_tool(parsed.name)
        if definition is None:
            raise ProtocolError(
                ErrorCode.INVALID_TOOL, f"Tool not found: {parsed.name}", {"name": parsed.name}
            )
        _validate_arguments(definition, parsed.arguments)
        await self._publish(ToolCalled(self.session_id, definition.name, parsed.arguments))

        with _tracer.start_as_current_span("mcp.tool") as span:
            span.set_attribute(ATTR_TOOL_NAME, definition.name)
            result = await self._run_tool(definition, parsed.arguments)
            span.set_attribute(ATTR_TOOL_IS_ERROR, bool(result.is_error))
        return result.to_wire()

    async def _run_tool(self, definition: ToolDefinition, arguments: dict[str, Any]) -> CallToolResult:
        try:
            value = await _invoke(definition.handler, arguments)
            return _to_call_tool_result(value)
        except Exception as exc:
            logger.exception("Tool %s failed", definition.name)
            await self._report_error(
                JsonRpcError(
                    code=ErrorCode.TOOL_EXECUTION_ERROR,
                    message=f"Tool execution failed: {definition.name}: {exc}",
                    data={"name": definition.name},
                )
            )
            return CallToolResult.from_text(f"Tool execution failed: {exc}", is_error=True)

    async def _read_resource(self, params: dict[str, Any] | None) -> dict[str, Any]:
        try:
            uri = ReadResourceParams.model_validate(params or {}).uri
        except ValidationError as exc:
            raise ProtocolError(
                ErrorCode.INVALID_RESOURCE, "Invalid resource uri", {"uri": (params or {}).get("uri")}
            ) from exc
        definition = self._require_registry().get_resource(uri)
        if definition is None:
            raise ProtocolError(ErrorCode.RESOURCE_NOT_FOUND, f"Resource not found: {uri}", {"uri": uri})
        await self._publish(ResourceRead(self.session_id, uri))

        with _tracer.start_as_current_span("mcp.resource") as span:
            span.set_attribute(ATTR_RESOURCE_URI, uri)
            result = await self._run_resource(definition)
        return result.to_wire()

    async def _run_resource(self, definition: ResourceDefinition) -> ReadResourceResult:
        try:
            value = await _invoke(definition.handler, definition.uri)
            return _to_read_resource_result(definition, value)
        except Exception as exc:
            logger.exception("Resource %s failed", definition.uri)
            await self._report_error(
                JsonRpcError(
                    code=ErrorCode.INTERNAL_ERROR,
                    message=f"Resource read failed: {definition.uri}: {exc}",
                    data={"uri": definition.uri},
                )
            )
            return ReadResourceResult(
                contents=[
                    ResourceContents(
                        uri=definition.uri,
                        mime_type="text/plain",
                        text=f"Resource read failed: {exc}",
                    )
                ],
                is_error=True,
            )

    async def _get_prompt(self, params: dict[str, Any] | None) -> dict[str, Any]:
        parsed = _parse_params(GetPromptParams, params)
        definition = self._require_registry().get_prompt(parsed.name)
        if definition is None:
            raise ProtocolError(
                ErrorCode.INVALID_PROMPT, f"Prompt not found: {parsed.name}", {"name": parsed.name}
            )
        missing = [name for name in definition.required_arguments if name not in parsed.arguments]
        if missing:
            raise ProtocolError(
                ErrorCode.INVALID_PARAMS,
                f"Missing required prompt arguments: {', '.join(missing)}",
                {"missing": missing},
            )
        await self._publish(PromptRequested(self.session_id, definition.name, parsed.arguments))

        with _tracer.start_as_current_span("mcp.prompt") as span:
            span.set_attribute(ATTR_PROMPT_NAME, definition.name)
            result = await self._run_prompt(definition, parsed.arguments)
        return result.to_wire()

    async def _run_prompt(
        self, definition: PromptDefinition, arguments: dict[str, str]
    ) -> GetPromptResult:
        try:
            value = await _invoke(definition.handler, arguments)
            return _to_get_prompt_result(definition, value)
        except Exception as exc:
            logger.exception("Prompt %s failed", definition.name)
            await self._report_error(
                JsonRpcError(
                    code=ErrorCode.PROMPT_EXECUTION_ERROR,
                    message=f"Prompt execution failed: {definition.name}: {exc}",
                    data={"name": definition.name},
                )
            )
            return GetPromptResult(
                description=f"Prompt execution failed: {exc}", messages=[], is_error=True
            )


# ---------------------------------------------------------------------------
# Params and results
# ---------------------------------------------------------------------------


def _parse_params(model: type[_M], params: dict[str, Any] | None) -> _M:
    try:
        return model.model_validate(params or {})
    except ValidationError as exc:
        details = [
            {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]} for err in exc.errors()
        ]
        raise ProtocolError(ErrorCode.INVALID_PARAMS, "Invalid params", {"errors": details}) from exc


def _validate_arguments(definition: ToolDefinition, arguments: dict[str, Any]) -> None:
    errors = sorted(
        definition.validator.iter_errors(arguments), key=lambda e: [str(p) for p in e.path]
    )
    if errors:
        raise ProtocolError(
            ErrorCode.INVALID_PARAMS,
            f"Invalid arguments for tool {definition.name}: {errors[0].message}",
            {"errors": [e.message for e in errors]},
        )


async def _invoke(handler: Callable[..., Any], *args: Any) -> Any:
    """Await coroutine handlers; run plain ones in a worker thread."""
    if inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)  # noqa: B004
    ):
        return await handler(*args)
    result = await asyncio.to_thread(handler, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


def _dump_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    return json.dumps(value, indent=2, default=str)


_CONTENT_TYPES = (TextContent, ImageContent, EmbeddedResource)


def _to_call_tool_result(value: Any) -> CallToolResult:
    if isinstance(value, CallToolResult):
        return value
    if value is None:
        return CallToolResult(content=[])
    if isinstance(value, str):
        return CallToolResult.from_text(value)
    if isinstance(value, _CONTENT_TYPES):
        return CallToolResult(content=[value])
    if isinstance(value, list) and value and all(isinstance(v, _CONTENT_TYPES) for v in value):
        return CallToolResult(content=list(value))
    return CallToolResult.from_text(_dump_json(value))


def _to_read_resource_result(definition: ResourceDefinition, value: Any) -> ReadResourceResult:
    if isinstance(value, ReadResourceResult):
        return value
    if isinstance(value, ResourceContents):
        return ReadResourceResult(contents=[value])
    if isinstance(value, list) and all(isinstance(v, ResourceContents) for v in value):
        return ReadResourceResult(contents=list(value))
    if isinstance(value, str):
        contents = ResourceContents(
            uri=definition.uri, mime_type=definition.mime_type or "text/plain", text=value
        )
    elif isinstance(value, (bytes, bytearray)):
        contents = ResourceContents(
            uri=definition.uri,
            mime_type=definition.mime_type or "application/octet-stream",
            blob=base64.b64encode(bytes(value)).decode("ascii"),
        )
    else:
        contents = ResourceContents(
            uri=definition.uri,
            mime_type=definition.mime_type or "application/json",
            text=_dump_json(value),
        )
    return ReadResourceResult(contents=[contents])


def _to_get_prompt_result(definition: PromptDefinition, value: Any) -> GetPromptResult:
    if isinstance(value, GetPromptResult):
        if value.description is None and definition.description is not None:
            return value.model_copy(update={"description": definition.description})
        return value
    if isinstance(value, str):
        messages = [PromptMessage(role="user", content=TextContent(text=value))]
    elif isinstance(value, PromptMessage):
        messages = [value]
    elif isinstance(value, list):
        messages = [
            v if isinstance(v, PromptMessage) else PromptMessage.model_validate(v) for v in value
        ]
    else:
        msg = f"Prompt {definition.name!r} returned unsupported type {type(value).__name__}"
        raise TypeError(msg)
    return GetPromptResult(description=definition.description, messages=messages)
