"""Tests for the session phase state machine."""

from __future__ import annotations

import pytest

from mcpcore.errors import ErrorCode, ProtocolError
from mcpcore.negotiation import CapabilityNegotiator, SessionPhase
from mcpcore.protocol.models import (
    ClientCapabilities,
    Implementation,
    InitializeParams,
    InitializeResult,
    ServerCapabilities,
    ToolsCapability,
)

SERVER_INFO = Implementation(name="srv", version="1.0")


def _params(version: str = "2024-11-05") -> InitializeParams:
    return InitializeParams(
        protocol_version=version,
        capabilities=ClientCapabilities(),
        client_info=Implementation(name="cli", version="0.1"),
    )


class TestDispatchGate:
    def test_only_initialize_before_handshake(self) -> None:
        negotiator = CapabilityNegotiator("server")
        negotiator.check_dispatch("initialize")
        with pytest.raises(ProtocolError) as excinfo:
            negotiator.check_dispatch("tools/list")
        assert excinfo.value.code == ErrorCode.INVALID_REQUEST

    def test_requests_rejected_while_initializing(self) -> None:
        negotiator = CapabilityNegotiator("server")
        negotiator.begin_server_handshake(_params(), SERVER_INFO)
        with pytest.raises(ProtocolError):
            negotiator.check_dispatch("tools/list")

    def test_second_initialize_rejected(self) -> None:
        negotiator = CapabilityNegotiator("server")
        negotiator.begin_server_handshake(_params(), SERVER_INFO)
        negotiator.mark_initialized()
        with pytest.raises(ProtocolError) as excinfo:
            negotiator.check_dispatch("initialize")
        assert excinfo.value.code == ErrorCode.INVALID_REQUEST

    def test_everything_rejected_after_close(self) -> None:
        negotiator = CapabilityNegotiator("server")
        negotiator.close()
        assert negotiator.is_closed
        with pytest.raises(ProtocolError, match="closed"):
            negotiator.check_dispatch("initialize")


class TestServerHandshake:
    def test_accepts_supported_version(self) -> None:
        capabilities = ServerCapabilities(tools=ToolsCapability(list_changed=True))
        negotiator = CapabilityNegotiator("server", local_capabilities=capabilities)

        result = negotiator.begin_server_handshake(_params(), SERVER_INFO, instructions="be nice")

        assert negotiator.phase is SessionPhase.INITIALIZING
        assert result.protocol_version == "2024-11-05"
        assert result.capabilities == capabilities
        assert result.instructions == "be nice"
        assert negotiator.negotiated is None

        negotiated = negotiator.mark_initialized()
        assert negotiator.is_initialized
        assert negotiated.client_info is not None
        assert negotiated.client_info.name == "cli"
        assert negotiator.negotiated is negotiated

    def test_rejects_unknown_version(self) -> None:
        negotiator = CapabilityNegotiator("server")
        with pytest.raises(ProtocolError) as excinfo:
            negotiator.begin_server_handshake(_params("1999-01-01"), SERVER_INFO)
        assert excinfo.value.code == ErrorCode.INVALID_PARAMS
        assert "2024-11-05" in excinfo.value.data["supported"]
        assert negotiator.phase is SessionPhase.UNINITIALIZED

    def test_abort_returns_to_uninitialized(self) -> None:
        negotiator = CapabilityNegotiator("server")
        negotiator.begin_server_handshake(_params(), SERVER_INFO)
        negotiator.abort_handshake()
        assert negotiator.phase is SessionPhase.UNINITIALIZED
        with pytest.raises(ProtocolError):
            negotiator.mark_initialized()

    def test_empty_version_list(self) -> None:
        with pytest.raises(ValueError):
            CapabilityNegotiator("server", supported_versions=())


class TestClientHandshake:
    def test_complete(self) -> None:
        negotiator = CapabilityNegotiator("client")
        negotiator.begin_client_handshake()
        result = InitializeResult(protocol_version="2025-03-26", server_info=SERVER_INFO)

        negotiated = negotiator.complete_client_handshake(result)

        assert negotiator.is_initialized
        assert negotiated.protocol_version == "2025-03-26"
        assert negotiated.server_info == SERVER_INFO

    def test_server_picks_unsupported_version(self) -> None:
        negotiator = CapabilityNegotiator("client", supported_versions=("2024-11-05",))
        negotiator.begin_client_handshake()
        result = InitializeResult(protocol_version="2025-03-26", server_info=SERVER_INFO)
        with pytest.raises(ProtocolError):
            negotiator.complete_client_handshake(result)
        assert negotiator.phase is SessionPhase.UNINITIALIZED

    def test_complete_without_begin(self) -> None:
        negotiator = CapabilityNegotiator("client")
        result = InitializeResult(protocol_version="2024-11-05", server_info=SERVER_INFO)
        with pytest.raises(ProtocolError):
            negotiator.complete_client_handshake(result)
