"""Capability negotiation — the session phase state machine.

Phases move strictly forward::

    UNINITIALIZED -> INITIALIZING -> INITIALIZED -> CLOSED

A server enters ``INITIALIZING`` when it accepts an ``initialize`` request
and ``INITIALIZED`` only once the result has been sent.  A client enters
``INITIALIZING`` when it sends the request and ``INITIALIZED`` when the
matching result arrives.  ``CLOSED`` is terminal.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from mcpcore.errors import ErrorCode, ProtocolError
from mcpcore.protocol.models import (
    INITIALIZE,
    SUPPORTED_PROTOCOL_VERSIONS,
    ClientCapabilities,
    Implementation,
    InitializeParams,
    InitializeResult,
    ServerCapabilities,
)

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    CLOSED = "closed"


@dataclass(frozen=True)
class NegotiatedSession:
    """What both peers agreed on; fixed once the handshake completes."""

    protocol_version: str
    client_capabilities: ClientCapabilities
    server_capabilities: ServerCapabilities
    client_info: Implementation | None = None
    server_info: Implementation | None = None
    instructions: str | None = None


class CapabilityNegotiator:
    """Tracks one session's handshake on either side of the connection."""

    def __init__(
        self,
        role: Literal["server", "client"],
        *,
        supported_versions: tuple[str, ...] = SUPPORTED_PROTOCOL_VERSIONS,
        local_capabilities: ServerCapabilities | ClientCapabilities | None = None,
    ) -> None:
        if not supported_versions:
            msg = "At least one protocol version must be supported"
            raise ValueError(msg)
        self.role = role
        self.supported_versions = tuple(supported_versions)
        self._local_capabilities = local_capabilities
        self._phase = SessionPhase.UNINITIALIZED
        self._negotiated: NegotiatedSession | None = None
        self._proposal: NegotiatedSession | None = None
        self._lock = threading.Lock()

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def negotiated(self) -> NegotiatedSession | None:
        return self._negotiated

    @property
    def is_initialized(self) -> bool:
        return self._phase is SessionPhase.INITIALIZED

    @property
    def is_closed(self) -> bool:
        return self._phase is SessionPhase.CLOSED

    def check_dispatch(self, method: str) -> None:
        """Reject *method* unless the session is in a phase that allows it."""
        phase = self._phase
        if phase is SessionPhase.CLOSED:
            raise ProtocolError(ErrorCode.INVALID_REQUEST, "Session is closed")
        if method == INITIALIZE:
            if phase is not SessionPhase.UNINITIALIZED:
                raise ProtocolError(
                    ErrorCode.INVALID_REQUEST, f"Session already {phase.value}"
                )
            return
        if phase is not SessionPhase.INITIALIZED:
            raise ProtocolError(
                ErrorCode.INVALID_REQUEST,
                f"Method {method!r} not allowed before initialization completes",
            )

    # -- server side --------------------------------------------------------

    def begin_server_handshake(
        self,
        params: InitializeParams,
        server_info: Implementation,
        *,
        instructions: str | None = None,
    ) -> InitializeResult:
        """Validate a client's ``initialize`` and build the result to send."""
        with self._lock:
            if self._phase is not SessionPhase.UNINITIALIZED:
                raise ProtocolError(
                    ErrorCode.INVALID_REQUEST, f"Session already {self._phase.value}"
                )
            self._phase = SessionPhase.INITIALIZING
            if params.protocol_version not in self.supported_versions:
                self._phase = SessionPhase.UNINITIALIZED
                logger.warning(
                    "Rejected handshake with unsupported protocol version %s",
                    params.protocol_version,
                )
                raise ProtocolError(
                    ErrorCode.INVALID_PARAMS,
                    f"Unsupported protocol version: {params.protocol_version}",
                    {"supported": list(self.supported_versions)},
                )

            capabilities = self._local_capabilities
            if not isinstance(capabilities, ServerCapabilities):
                capabilities = ServerCapabilities()
            self._proposal = NegotiatedSession(
                protocol_version=params.protocol_version,
                client_capabilities=params.capabilities,
                server_capabilities=capabilities,
                client_info=params.client_info,
                server_info=server_info,
                instructions=instructions,
            )
        return InitializeResult(
            protocol_version=params.protocol_version,
            capabilities=capabilities,
            server_info=server_info,
            instructions=instructions,
        )

    def mark_initialized(self) -> NegotiatedSession:
        """Finish the server handshake after its result went out."""
        with self._lock:
            if self._phase is not SessionPhase.INITIALIZING or self._proposal is None:
                raise ProtocolError(
                    ErrorCode.INTERNAL_ERROR, f"No handshake in progress ({self._phase.value})"
                )
            self._negotiated, self._proposal = self._proposal, None
            self._phase = SessionPhase.INITIALIZED
        logger.info(
            "Session initialized (protocol %s, client %s)",
            self._negotiated.protocol_version,
            self._negotiated.client_info.name if self._negotiated.client_info else "?",
        )
        return self._negotiated

    def abort_handshake(self) -> None:
        """Return to ``UNINITIALIZED`` if the handshake result could not be delivered."""
        with self._lock:
            if self._phase is SessionPhase.INITIALIZING:
                self._phase = SessionPhase.UNINITIALIZED
                self._proposal = None

    # -- client side --------------------------------------------------------

    def begin_client_handshake(self) -> None:
        with self._lock:
            if self._phase is not SessionPhase.UNINITIALIZED:
                raise ProtocolError(
                    ErrorCode.INVALID_REQUEST, f"Session already {self._phase.value}"
                )
            self._phase = SessionPhase.INITIALIZING

    def complete_client_handshake(
        self, result: InitializeResult, client_info: Implementation | None = None
    ) -> NegotiatedSession:
        """Cache the server's answer and enter ``INITIALIZED``."""
        with self._lock:
            if self._phase is not SessionPhase.INITIALIZING:
                raise ProtocolError(
                    ErrorCode.INVALID_REQUEST, f"No handshake in progress ({self._phase.value})"
                )
            if result.protocol_version not in self.supported_versions:
                self._phase = SessionPhase.UNINITIALIZED
                raise ProtocolError(
                    ErrorCode.INVALID_PARAMS,
                    f"Server chose unsupported protocol version: {result.protocol_version}",
                    {"supported": list(self.supported_versions)},
                )
            capabilities = self._local_capabilities
            if not isinstance(capabilities, ClientCapabilities):
                capabilities = ClientCapabilities()
            self._negotiated = NegotiatedSession(
                protocol_version=result.protocol_version,
                client_capabilities=capabilities,
                server_capabilities=result.capabilities,
                client_info=client_info,
                server_info=result.server_info,
                instructions=result.instructions,
            )
            self._phase = SessionPhase.INITIALIZED
        return self._negotiated

    def close(self) -> None:
        with self._lock:
            self._phase = SessionPhase.CLOSED
            self._proposal = None
