"""Tests for lifecycle events and the emitter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from mcpcore.events import (
    ClientDisconnected,
    ClientEventKind,
    EventEmitter,
    ServerEventKind,
    ToolCalled,
)


class TestEventEmitter:
    async def test_sync_and_async_listeners(self) -> None:
        emitter: EventEmitter[ServerEventKind] = EventEmitter()
        sync_listener = MagicMock()
        async_listener = AsyncMock()
        emitter.on(ServerEventKind.TOOL_CALLED, sync_listener)
        emitter.on(ServerEventKind.TOOL_CALLED, async_listener)

        event = ToolCalled("s1", "echo", {"text": "hi"})
        await emitter.emit(event)

        sync_listener.assert_called_once_with(event)
        async_listener.assert_awaited_once_with(event)

    async def test_only_matching_kind_receives(self) -> None:
        emitter: EventEmitter[ClientEventKind] = EventEmitter()
        listener = MagicMock()
        emitter.on(ClientEventKind.ERROR, listener)
        await emitter.emit(ClientDisconnected("bye"))
        listener.assert_not_called()

    async def test_unsubscribe(self) -> None:
        emitter: EventEmitter[ClientEventKind] = EventEmitter()
        listener = MagicMock()
        off = emitter.on(ClientEventKind.DISCONNECTED, listener)
        assert emitter.listener_count(ClientEventKind.DISCONNECTED) == 1
        off()
        assert emitter.listener_count(ClientEventKind.DISCONNECTED) == 0
        await emitter.emit(ClientDisconnected())
        listener.assert_not_called()

    async def test_failing_listener_does_not_stop_others(self) -> None:
        emitter: EventEmitter[ClientEventKind] = EventEmitter()
        after = MagicMock()
        emitter.on(ClientEventKind.DISCONNECTED, MagicMock(side_effect=RuntimeError("x")))
        emitter.on(ClientEventKind.DISCONNECTED, after)
        await emitter.emit(ClientDisconnected())
        after.assert_called_once()

    def test_events_carry_their_kind(self) -> None:
        assert ToolCalled("s", "t").kind is ServerEventKind.TOOL_CALLED
        assert ClientDisconnected().kind is ClientEventKind.DISCONNECTED
