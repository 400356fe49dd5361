"""Tests for request routing, pending-request correlation, and notifications."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcpcore.dispatcher import Dispatcher, PendingRequests
from mcpcore.errors import ErrorCode, ProtocolError
from mcpcore.events import PromptRequested, ResourceRead, ToolCalled
from mcpcore.negotiation import CapabilityNegotiator
from mcpcore.protocol.models import (
    GetPromptResult,
    Implementation,
    InitializeParams,
    InitializeResult,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    PromptArgument,
    PromptMessage,
    TextContent,
)
from mcpcore.registry import Registry

ECHO_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}


def _registry() -> Registry:
    registry = Registry()

    @registry.tool(input_schema=ECHO_SCHEMA)
    def echo(arguments: dict[str, Any]) -> str:
        return arguments["text"]

    @registry.tool()
    async def stats(arguments: dict[str, Any]) -> dict[str, Any]:
        return {"count": 2, "ok": True}

    @registry.tool()
    def nothing(arguments: dict[str, Any]) -> None:
        return None

    @registry.tool()
    def explode(arguments: dict[str, Any]) -> str:
        raise RuntimeError("boom")

    @registry.resource("file:///notes.txt", mime_type="text/markdown")
    def notes(uri: str) -> str:
        return "# notes"

    @registry.resource("file:///logo.png", mime_type="image/png")
    def logo(uri: str) -> bytes:
        return b"\x89PNG"

    @registry.resource("config://app")
    def app_config(uri: str) -> dict[str, Any]:
        return {"debug": False}

    @registry.resource("file:///broken")
    def broken(uri: str) -> str:
        raise OSError("disk gone")

    @registry.prompt(arguments=[PromptArgument(name="topic", required=True)])
    def summarize(arguments: dict[str, str]) -> str:
        """Summarize a topic."""
        return f"Summarize {arguments['topic']}"

    @registry.prompt()
    def dialogue(arguments: dict[str, str]) -> list[dict[str, Any]]:
        return [
            {"role": "user", "content": {"type": "text", "text": "hi"}},
            PromptMessage(role="assistant", content=TextContent(text="hello")),
        ]

    @registry.prompt()
    def failing(arguments: dict[str, str]) -> str:
        raise ValueError("template missing")

    return registry


def _dispatcher(*, initialized: bool = True) -> tuple[Dispatcher, AsyncMock, AsyncMock]:
    emit = AsyncMock()
    on_error = AsyncMock()
    negotiator = CapabilityNegotiator("server")
    dispatcher = Dispatcher(
        negotiator,
        registry=_registry(),
        server_info=Implementation(name="srv", version="1"),
        session_id="s1",
        emit=emit,
        on_error=on_error,
    )
    if initialized:
        negotiator.begin_server_handshake(
            InitializeParams(protocol_version="2024-11-05"), Implementation(name="srv", version="1")
        )
        negotiator.mark_initialized()
    return dispatcher, emit, on_error


async def _call(dispatcher: Dispatcher, method: str, params: dict[str, Any] | None = None) -> JsonRpcResponse:
    return await dispatcher.dispatch_request(JsonRpcRequest(id=1, method=method, params=params))


class TestPendingRequests:
    async def test_resolve_once(self) -> None:
        pending = PendingRequests()
        future = pending.register(1)
        response = JsonRpcResponse.success(1, {})
        assert pending.resolve(response) is True
        assert pending.resolve(response) is False
        assert await future is response
        assert len(pending) == 0

    async def test_duplicate_id(self) -> None:
        pending = PendingRequests()
        pending.register("a")
        with pytest.raises(ProtocolError):
            pending.register("a")

    async def test_discard_makes_late_response_unmatched(self) -> None:
        pending = PendingRequests()
        future = pending.register(7)
        assert pending.discard(7) is True
        assert future.cancelled()
        assert 7 not in pending
        assert pending.resolve(JsonRpcResponse.success(7, {})) is False

    async def test_reject_all(self) -> None:
        pending = PendingRequests()
        futures = [pending.register(i) for i in range(3)]
        assert pending.reject_all(ConnectionError("gone")) == 3
        for future in futures:
            with pytest.raises(ConnectionError):
                await future

    async def test_reject_single(self) -> None:
        pending = PendingRequests()
        future = pending.register(1)
        assert pending.reject(1, ValueError("bad")) is True
        assert pending.reject(1, ValueError("bad")) is False
        with pytest.raises(ValueError):
            await future


class TestDispatchGateAndRouting:
    async def test_method_before_initialize(self) -> None:
        dispatcher, _, _ = _dispatcher(initialized=False)
        response = await _call(dispatcher, "tools/list")
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_REQUEST

    async def test_unknown_method(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "sampling/createMessage")
        assert response.error is not None
        assert response.error.code == ErrorCode.METHOD_NOT_FOUND

    async def test_initialize(self) -> None:
        dispatcher, _, _ = _dispatcher(initialized=False)
        response = await _call(
            dispatcher,
            "initialize",
            {"protocolVersion": "2024-11-05", "capabilities": {}, "clientInfo": {"name": "c", "version": "1"}},
        )
        assert response.result is not None
        assert response.result["protocolVersion"] == "2024-11-05"
        assert response.result["serverInfo"] == {"name": "srv", "version": "1"}

    async def test_initialize_missing_version(self) -> None:
        dispatcher, _, _ = _dispatcher(initialized=False)
        response = await _call(dispatcher, "initialize", {"capabilities": {}})
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_PARAMS

    async def test_client_role_has_no_methods(self) -> None:
        negotiator = CapabilityNegotiator("client")
        negotiator.begin_client_handshake()
        negotiator.complete_client_handshake(
            InitializeResult(protocol_version="2024-11-05", server_info=Implementation(name="s", version="1"))
        )
        dispatcher = Dispatcher(negotiator)
        assert dispatcher.methods == []
        response = await _call(dispatcher, "tools/list")
        assert response.error is not None
        assert response.error.code == ErrorCode.METHOD_NOT_FOUND


class TestTools:
    async def test_list_in_registration_order(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "tools/list")
        assert response.result is not None
        names = [t["name"] for t in response.result["tools"]]
        assert names == ["echo", "stats", "nothing", "explode"]
        assert response.result["tools"][0]["inputSchema"] == ECHO_SCHEMA

    async def test_call_echo(self) -> None:
        dispatcher, emit, _ = _dispatcher()
        response = await _call(dispatcher, "tools/call", {"name": "echo", "arguments": {"text": "hi"}})
        assert response.result == {"content": [{"type": "text", "text": "hi"}]}
        emit.assert_awaited_once_with(ToolCalled("s1", "echo", {"text": "hi"}))

    async def test_unknown_tool(self) -> None:
        dispatcher, emit, _ = _dispatcher()
        response = await _call(dispatcher, "tools/call", {"name": "missing"})
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_TOOL
        emit.assert_not_awaited()

    async def test_missing_name(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "tools/call", {"arguments": {}})
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_PARAMS

    async def test_arguments_checked_against_schema(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "tools/call", {"name": "echo", "arguments": {"text": 5}})
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_PARAMS

        response = await _call(dispatcher, "tools/call", {"name": "echo"})
        assert response.error is not None
        assert "text" in response.error.message

    async def test_structured_result_is_json_text(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "tools/call", {"name": "stats"})
        assert response.result is not None
        assert response.result["content"][0]["text"] == '{\n  "count": 2,\n  "ok": true\n}'

    async def test_none_result_is_empty_content(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "tools/call", {"name": "nothing"})
        assert response.result == {"content": []}

    async def test_handler_failure_is_error_result(self) -> None:
        dispatcher, _, on_error = _dispatcher()
        response = await _call(dispatcher, "tools/call", {"name": "explode"})
        assert response.error is None
        assert response.result is not None
        assert response.result["isError"] is True
        assert "boom" in response.result["content"][0]["text"]
        reported = on_error.await_args.args[0]
        assert reported.code == ErrorCode.TOOL_EXECUTION_ERROR


class TestResources:
    async def test_text_resource(self) -> None:
        dispatcher, emit, _ = _dispatcher()
        response = await _call(dispatcher, "resources/read", {"uri": "file:///notes.txt"})
        assert response.result == {
            "contents": [{"uri": "file:///notes.txt", "mimeType": "text/markdown", "text": "# notes"}]
        }
        emit.assert_awaited_once_with(ResourceRead("s1", "file:///notes.txt"))

    async def test_bytes_become_blob(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "resources/read", {"uri": "file:///logo.png"})
        assert response.result is not None
        assert response.result["contents"][0]["blob"] == "iVBORw=="

    async def test_structured_resource_is_json(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "resources/read", {"uri": "config://app"})
        assert response.result is not None
        contents = response.result["contents"][0]
        assert contents["mimeType"] == "application/json"
        assert contents["text"] == '{\n  "debug": false\n}'

    async def test_unknown_uri(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "resources/read", {"uri": "file:///nope"})
        assert response.error is not None
        assert response.error.code == ErrorCode.RESOURCE_NOT_FOUND

    @pytest.mark.parametrize("params", [{}, {"uri": ""}, {"uri": 12}, {"uri": None}])
    async def test_invalid_uri(self, params: dict[str, Any]) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "resources/read", params)
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_RESOURCE
        assert response.error.data == {"uri": params.get("uri")}

    async def test_reader_failure(self) -> None:
        dispatcher, _, on_error = _dispatcher()
        response = await _call(dispatcher, "resources/read", {"uri": "file:///broken"})
        assert response.result is not None
        assert response.result["isError"] is True
        assert on_error.await_args.args[0].code == ErrorCode.INTERNAL_ERROR

    async def test_list(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "resources/list")
        assert response.result is not None
        assert [r["uri"] for r in response.result["resources"]][:2] == [
            "file:///notes.txt",
            "file:///logo.png",
        ]


class TestPrompts:
    async def test_string_prompt(self) -> None:
        dispatcher, emit, _ = _dispatcher()
        response = await _call(dispatcher, "prompts/get", {"name": "summarize", "arguments": {"topic": "MCP"}})
        assert response.result is not None
        result = GetPromptResult.model_validate(response.result)
        assert result.description == "Summarize a topic."
        assert result.messages[0].role == "user"
        assert result.messages[0].content == TextContent(text="Summarize MCP")
        emit.assert_awaited_once_with(PromptRequested("s1", "summarize", {"topic": "MCP"}))

    async def test_missing_required_argument(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "prompts/get", {"name": "summarize"})
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_PARAMS
        assert response.error.data == {"missing": ["topic"]}

    async def test_unknown_prompt(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "prompts/get", {"name": "nope"})
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_PROMPT

    async def test_message_list(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "prompts/get", {"name": "dialogue"})
        assert response.result is not None
        assert [m["role"] for m in response.result["messages"]] == ["user", "assistant"]

    async def test_prompt_failure(self) -> None:
        dispatcher, _, on_error = _dispatcher()
        response = await _call(dispatcher, "prompts/get", {"name": "failing"})
        assert response.result is not None
        assert response.result["isError"] is True
        assert on_error.await_args.args[0].code == ErrorCode.PROMPT_EXECUTION_ERROR

    async def test_list_arguments(self) -> None:
        dispatcher, _, _ = _dispatcher()
        response = await _call(dispatcher, "prompts/list")
        assert response.result is not None
        summarize = response.result["prompts"][0]
        assert summarize["arguments"] == [{"name": "topic", "required": True}]


class TestResponsesAndNotifications:
    async def test_unmatched_response_dropped(self) -> None:
        dispatcher, _, _ = _dispatcher()
        assert dispatcher.dispatch_response(JsonRpcResponse.success(99, {})) is False

    async def test_matched_response(self) -> None:
        dispatcher, _, _ = _dispatcher()
        future = dispatcher.pending.register(5)
        assert dispatcher.dispatch_response(JsonRpcResponse.success(5, {"x": 1})) is True
        assert (await future).result == {"x": 1}

    async def test_listeners_run(self) -> None:
        dispatcher, _, _ = _dispatcher()
        sync_listener = MagicMock()
        async_listener = AsyncMock()
        dispatcher.add_notification_listener("notifications/message", sync_listener)
        dispatcher.add_notification_listener("notifications/message", async_listener)

        ran = await dispatcher.dispatch_notification(
            JsonRpcNotification(method="notifications/message", params={"level": "info"})
        )

        assert ran == 2
        sync_listener.assert_called_once_with({"level": "info"})
        async_listener.assert_awaited_once_with({"level": "info"})

    async def test_no_listener_is_fine(self) -> None:
        dispatcher, _, _ = _dispatcher()
        assert await dispatcher.dispatch_notification(JsonRpcNotification(method="x/y")) == 0

    async def test_dropped_before_initialize(self) -> None:
        dispatcher, _, _ = _dispatcher(initialized=False)
        listener = MagicMock()
        dispatcher.add_notification_listener("x/y", listener)
        assert await dispatcher.dispatch_notification(JsonRpcNotification(method="x/y")) == 0
        listener.assert_not_called()

    async def test_failing_listener_reported(self) -> None:
        dispatcher, _, on_error = _dispatcher()
        dispatcher.add_notification_listener("x/y", MagicMock(side_effect=RuntimeError("bad")))
        await dispatcher.dispatch_notification(JsonRpcNotification(method="x/y"))
        on_error.assert_awaited_once()

    async def test_concurrent_calls_are_independent(self) -> None:
        dispatcher, _, _ = _dispatcher()
        requests = [
            JsonRpcRequest(id=i, method="tools/call", params={"name": "echo", "arguments": {"text": str(i)}})
            for i in range(20)
        ]
        responses = await asyncio.gather(*(dispatcher.dispatch_request(r) for r in requests))
        for i, response in enumerate(responses):
            assert response.id == i
            assert response.result is not None
            assert response.result["content"][0]["text"] == str(i)
