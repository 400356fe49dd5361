"""Message codec — JSON frames to typed JSON-RPC envelopes and back.

Decoding is strict about the envelope shape so that the dispatcher only
ever sees well-formed messages::

    frame = encode(JsonRpcRequest(id=1, method="tools/list"))
    message = decode(frame)

Every failure raises :class:`~mcpcore.errors.CodecError` with the
``PARSE_ERROR`` code.  When the broken payload was clearly a request (it has
a ``method`` and a usable ``id``) the error keeps that id so the caller can
still answer it.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from mcpcore.errors import CodecError
from mcpcore.protocol.models import (
    JSONRPC_VERSION,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
)

if TYPE_CHECKING:
    from collections.abc import Callable


def encode(message: Message) -> bytes:
    """Serialise *message* into a compact UTF-8 JSON frame (no trailing newline)."""
    return json.dumps(to_dict(message), separators=(",", ":"), ensure_ascii=False).encode()


def to_dict(message: Message) -> dict[str, Any]:
    """Build the wire dictionary for *message*."""
    data: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
    if isinstance(message, JsonRpcResponse):
        data["id"] = message.id
        if message.error is not None:
            error: dict[str, Any] = {"code": message.error.code, "message": message.error.message}
            if message.error.data is not None:
                error["data"] = message.error.data
            data["error"] = error
        else:
            data["result"] = message.result
        return data

    if isinstance(message, JsonRpcRequest):
        data["id"] = message.id
    data["method"] = message.method
    if message.params is not None:
        data["params"] = message.params
    return data


def decode(frame: bytes | str) -> Message:
    """Parse and validate a single frame."""
    try:
        payload = json.loads(frame)
    except (UnicodeDecodeError, ValueError) as exc:
        raise CodecError(f"Invalid JSON: {exc}") from exc
    return from_dict(payload)


def from_dict(payload: Any) -> Message:
    """Validate an already-parsed JSON value into a :data:`Message`."""
    if not isinstance(payload, dict):
        raise CodecError("Message must be a JSON object")

    has_method = "method" in payload
    has_id = "id" in payload
    raw_id = payload.get("id")
    valid_id = _is_valid_id(raw_id)

    def fail(reason: str) -> CodecError:
        return CodecError(
            reason,
            message_id=raw_id if has_id and valid_id else None,
            has_method=has_method,
        )

    if payload.get("jsonrpc") != JSONRPC_VERSION:
        raise fail("Missing or unsupported 'jsonrpc' version marker")

    if has_id and not valid_id:
        raise fail("'id' must be a string or an integer")

    if has_method:
        return _decode_call(payload, has_id, fail)
    return _decode_response(payload, has_id, fail)


def _decode_call(payload: dict[str, Any], has_id: bool, fail: Callable[[str], CodecError]) -> Message:
    method = payload["method"]
    if not isinstance(method, str) or not method:
        raise fail("'method' must be a non-empty string")
    if "result" in payload or "error" in payload:
        raise fail("A request cannot carry 'result' or 'error'")

    params = payload.get("params")
    if params is not None and not isinstance(params, dict):
        raise fail("'params' must be an object")

    if has_id:
        return JsonRpcRequest(id=payload["id"], method=method, params=params)
    return JsonRpcNotification(method=method, params=params)


def _decode_response(payload: dict[str, Any], has_id: bool, fail: Callable[[str], CodecError]) -> Message:
    has_result = "result" in payload
    has_error = "error" in payload
    if not has_result and not has_error:
        raise fail("Message has neither 'method' nor 'result'/'error'")
    if has_result and has_error:
        raise fail("A response cannot carry both 'result' and 'error'")
    if not has_id:
        raise fail("A response must carry an 'id'")

    if has_error:
        error = payload["error"]
        if not isinstance(error, dict):
            raise fail("'error' must be an object")
        code = error.get("code")
        message = error.get("message")
        if not isinstance(code, int) or isinstance(code, bool):
            raise fail("'error.code' must be an integer")
        if not isinstance(message, str):
            raise fail("'error.message' must be a string")
        return JsonRpcResponse(
            id=payload["id"],
            error=JsonRpcError(code=code, message=message, data=error.get("data")),
        )

    result = payload["result"]
    if not isinstance(result, dict):
        raise fail("'result' must be an object")
    return JsonRpcResponse(id=payload["id"], result=result)


def _is_valid_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, str))
