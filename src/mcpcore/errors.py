"""Shared error types and JSON-RPC error codes for the MCP runtime."""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Fixed error codes carried in JSON-RPC error objects."""

    # Standard JSON-RPC codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # MCP-specific codes
    INVALID_TOOL = -32000
    INVALID_RESOURCE = -32001
    INVALID_PROMPT = -32002
    RESOURCE_NOT_FOUND = -32003
    TOOL_EXECUTION_ERROR = -32004
    PROMPT_EXECUTION_ERROR = -32005


class MCPError(Exception):
    """Base error for all MCP runtime failures."""


class TransportError(MCPError):
    """The underlying channel failed, closed, or delivered a broken frame."""


class DisconnectedError(TransportError):
    """The session closed while a request was still waiting for its response."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Session disconnected" + (f": {detail}" if detail else ""))


class CodecError(MCPError):
    """A frame could not be decoded into a protocol message.

    ``request_id`` is only set when the payload was clearly a request (it
    carried a ``method`` and a valid ``id``), so the caller can still answer
    it.  ``fatal`` marks payloads with neither, which cannot be attributed to
    any exchange.
    """

    def __init__(
        self,
        message: str,
        *,
        message_id: int | str | None = None,
        has_method: bool = False,
    ) -> None:
        self.code = ErrorCode.PARSE_ERROR
        self.message_id = message_id
        self.has_method = has_method
        super().__init__(message)

    @property
    def request_id(self) -> int | str | None:
        return self.message_id if self.has_method else None

    @property
    def fatal(self) -> bool:
        return self.message_id is None and not self.has_method


class ProtocolError(MCPError):
    """A dispatch-level failure that becomes a JSON-RPC error response."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"[{code}] {message}")


class RemoteError(ProtocolError):
    """The peer answered a request with an error response."""


class RequestTimeoutError(MCPError):
    """A request did not receive its response before the deadline."""

    def __init__(self, method: str, timeout: float) -> None:
        self.method = method
        self.timeout = timeout
        super().__init__(f"Request {method} timed out after {timeout}s")


class RegistrationError(MCPError):
    """A tool, resource, or prompt key is already registered."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} already registered: {key} (pass replace=True to overwrite)")


class ToolExecutionError(MCPError):
    """A tool call completed but its result is flagged as an error."""

    code = ErrorCode.TOOL_EXECUTION_ERROR

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Tool execution failed: {name}" + (f": {detail}" if detail else ""))


class PromptExecutionError(MCPError):
    """A prompt request completed but its result is flagged as an error."""

    code = ErrorCode.PROMPT_EXECUTION_ERROR

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Prompt execution failed: {name}" + (f": {detail}" if detail else ""))


class ConfigError(MCPError):
    """Raised when a settings file fails parsing or validation."""
