"""OpenTelemetry tracing helpers for mcpcore.

Spans are created through the OpenTelemetry API only; without a configured
SDK every tracer is a no-op.  Instrumented call sites:

* ``mcp.request`` around each client request (method, request id)
* ``mcp.dispatch`` around each request a server answers (method, request id,
  session id, error code)
* ``mcp.tool`` / ``mcp.resource`` / ``mcp.prompt`` around handler calls

Usage::

    from mcpcore.utils.telemetry import ATTR_METHOD, get_tracer, record_error

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("mcp.dispatch") as span:
        span.set_attribute(ATTR_METHOD, "tools/call")
        ...
        record_error(span, -32601, "Method not found")

Exporting needs the ``otel`` extra (``pip install mcpcore[otel]``) and one
call to :func:`configure_telemetry` at startup.
"""

from __future__ import annotations

import sys
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

ATTR_METHOD = "mcp.method"
ATTR_REQUEST_ID = "mcp.request.id"
ATTR_SESSION_ID = "mcp.session.id"
ATTR_TOOL_NAME = "mcp.tool.name"
ATTR_TOOL_IS_ERROR = "mcp.tool.is_error"
ATTR_RESOURCE_URI = "mcp.resource.uri"
ATTR_PROMPT_NAME = "mcp.prompt.name"
ATTR_ERROR_CODE = "mcp.error.code"

_INSTRUMENTATION_NAME = "mcpcore"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a tracer for *name* (a no-op one until the SDK is configured)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def record_error(span: trace.Span, code: int, message: str) -> None:
    """Tag *span* with a JSON-RPC error code and mark it failed."""
    span.set_attribute(ATTR_ERROR_CODE, int(code))
    span.set_status(Status(StatusCode.ERROR, message))


def configure_telemetry(
    *,
    service_name: str = "mcpcore",
    export_to_console: bool = False,
    otlp_endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider (requires ``mcpcore[otel]``).

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    export_to_console:
        If ``True``, print finished spans as JSON to **stderr**; stdout is
        reserved for protocol frames when serving over stdio.
    otlp_endpoint:
        If set, batch-export spans via OTLP/gRPC to this endpoint.

    Raises
    ------
    ImportError
        If ``opentelemetry-sdk`` (or, with *otlp_endpoint*, the OTLP
        exporter) is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install mcpcore[otel]"
        )
        raise ImportError(msg) from exc

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    for processor in _span_processors(export_to_console, otlp_endpoint):
        provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)


def _span_processors(export_to_console: bool, otlp_endpoint: str | None) -> list[Any]:
    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    processors: list[Any] = []
    if export_to_console:
        processors.append(SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError as exc:
            msg = (
                "opentelemetry-exporter-otlp is required for OTLP export. "
                "Install it with: pip install mcpcore[otel]"
            )
            raise ImportError(msg) from exc
        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    return processors
