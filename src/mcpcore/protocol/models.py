"""MCP models — JSON-RPC 2.0 envelopes and protocol payloads.

The envelopes (:class:`JsonRpcRequest`, :class:`JsonRpcResponse`,
:class:`JsonRpcNotification`) are what the codec produces.  The payload
models give each built-in method a structured, validated parameter and
result type; they serialise with the camelCase names used on the wire.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

JSONRPC_VERSION = "2.0"
LATEST_PROTOCOL_VERSION = "2024-11-05"
SUPPORTED_PROTOCOL_VERSIONS: tuple[str, ...] = (LATEST_PROTOCOL_VERSION, "2025-03-26")

RequestId = Union[int, str]

# Built-in method names
INITIALIZE = "initialize"
TOOLS_LIST = "tools/list"
TOOLS_CALL = "tools/call"
RESOURCES_LIST = "resources/list"
RESOURCES_READ = "resources/read"
PROMPTS_LIST = "prompts/list"
PROMPTS_GET = "prompts/get"

# Notification names
NOTIFICATION_INITIALIZED = "notifications/initialized"
NOTIFICATION_MESSAGE = "notifications/message"
NOTIFICATION_TOOLS_CHANGED = "notifications/tools/list_changed"
NOTIFICATION_RESOURCES_CHANGED = "notifications/resources/list_changed"
NOTIFICATION_PROMPTS_CHANGED = "notifications/prompts/list_changed"

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request message."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str = Field(min_length=1)
    id: RequestId
    params: dict[str, Any] | None = None


class JsonRpcNotification(BaseModel):
    """A JSON-RPC 2.0 notification: a request without an id, never answered."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str = Field(min_length=1)
    params: dict[str, Any] | None = None


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message carrying either a result or an error."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    @model_validator(mode="after")
    def _result_xor_error(self) -> JsonRpcResponse:
        if (self.result is None) == (self.error is None):
            msg = "response must carry exactly one of 'result' or 'error'"
            raise ValueError(msg)
        return self

    @classmethod
    def success(cls, request_id: RequestId, result: dict[str, Any]) -> JsonRpcResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls, request_id: RequestId, code: int, message: str, data: Any = None
    ) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcError(code=code, message=message, data=data))


Message = Union[JsonRpcRequest, JsonRpcResponse, JsonRpcNotification]


# ---------------------------------------------------------------------------
# MCP payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialise with wire (camelCase) names, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Implementation(_Payload):
    """Name and version of a peer (``serverInfo`` / ``clientInfo``)."""

    name: str
    version: str


class ToolsCapability(_Payload):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    list_changed: bool | None = Field(default=None, alias="listChanged")


class ResourcesCapability(_Payload):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    subscribe: bool | None = None
    list_changed: bool | None = Field(default=None, alias="listChanged")


class PromptsCapability(_Payload):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    list_changed: bool | None = Field(default=None, alias="listChanged")


class ServerCapabilities(_Payload):
    """Features a server declares during the handshake."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    logging: dict[str, Any] | None = None
    prompts: PromptsCapability | None = None
    resources: ResourcesCapability | None = None
    tools: ToolsCapability | None = None
    experimental: dict[str, Any] | None = None


class ClientCapabilities(_Payload):
    """Features a client declares during the handshake."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    experimental: dict[str, Any] | None = None
    sampling: dict[str, Any] | None = None


class InitializeParams(_Payload):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    protocol_version: str = Field(alias="protocolVersion")
    capabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    client_info: Implementation | None = Field(default=None, alias="clientInfo")


class InitializeResult(_Payload):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    protocol_version: str = Field(alias="protocolVersion")
    capabilities: ServerCapabilities = Field(default_factory=ServerCapabilities)
    server_info: Implementation = Field(alias="serverInfo")
    instructions: str | None = None


# -- content ----------------------------------------------------------------


class TextContent(_Payload):
    type: Literal["text"] = "text"
    text: str


class ImageContent(_Payload):
    type: Literal["image"] = "image"
    data: str
    mime_type: str = Field(alias="mimeType")


class ResourceContents(_Payload):
    """Contents of a resource; exactly one of ``text`` or ``blob`` (base64)."""

    uri: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    text: str | None = None
    blob: str | None = None


class EmbeddedResource(_Payload):
    type: Literal["resource"] = "resource"
    resource: ResourceContents


Content = Annotated[
    Union[TextContent, ImageContent, EmbeddedResource],
    Field(discriminator="type"),
]


# -- tools ------------------------------------------------------------------


def empty_object_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


class Tool(_Payload):
    """A tool definition as returned by ``tools/list``."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=empty_object_schema, alias="inputSchema")


class ListToolsResult(_Payload):
    tools: list[Tool] = []


class CallToolParams(_Payload):
    name: str
    arguments: dict[str, Any] = {}

    @field_validator("arguments", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class CallToolResult(_Payload):
    content: list[Content] = []
    is_error: bool | None = Field(default=None, alias="isError")

    @classmethod
    def from_text(cls, text: str, *, is_error: bool | None = None) -> CallToolResult:
        return cls(content=[TextContent(text=text)], is_error=is_error)

    def text(self) -> str:
        """Join every text content item with newlines."""
        return "\n".join(c.text for c in self.content if isinstance(c, TextContent))


# -- resources --------------------------------------------------------------


class Resource(_Payload):
    """A resource descriptor as returned by ``resources/list``."""

    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class ListResourcesResult(_Payload):
    resources: list[Resource] = []


class ReadResourceParams(_Payload):
    uri: str = Field(min_length=1)


class ReadResourceResult(_Payload):
    contents: list[ResourceContents] = []
    is_error: bool | None = Field(default=None, alias="isError")


# -- prompts ----------------------------------------------------------------


class PromptArgument(_Payload):
    name: str
    description: str | None = None
    required: bool | None = None


class Prompt(_Payload):
    """A prompt descriptor as returned by ``prompts/list``."""

    name: str
    description: str | None = None
    arguments: list[PromptArgument] = []


class ListPromptsResult(_Payload):
    prompts: list[Prompt] = []


class GetPromptParams(_Payload):
    name: str
    arguments: dict[str, str] = {}

    @field_validator("arguments", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class PromptMessage(_Payload):
    role: Literal["user", "assistant"]
    content: Content


class GetPromptResult(_Payload):
    description: str | None = None
    messages: list[PromptMessage] = []
    is_error: bool | None = Field(default=None, alias="isError")


# -- logging ----------------------------------------------------------------

LoggingLevel = Literal[
    "debug", "info", "notice", "warning", "error", "critical", "alert", "emergency"
]


class LoggingMessageParams(_Payload):
    """Params of a ``notifications/message`` log entry."""

    level: LoggingLevel
    data: Any = None
    logger: str | None = None
