"""Built-in service tools every mcpcore server can expose."""

from __future__ import annotations

import os
import platform
import time
from datetime import datetime, timezone
from typing import Any

from mcpcore.protocol.models import (
    INITIALIZE,
    PROMPTS_GET,
    PROMPTS_LIST,
    RESOURCES_LIST,
    RESOURCES_READ,
    TOOLS_CALL,
    TOOLS_LIST,
)
from mcpcore.registry import ToolDefinition

_STARTED = time.monotonic()

BUILTIN_METHODS = (
    INITIALIZE,
    TOOLS_LIST,
    TOOLS_CALL,
    RESOURCES_LIST,
    RESOURCES_READ,
    PROMPTS_LIST,
    PROMPTS_GET,
)


def default_tools(service_name: str, version: str) -> list[ToolDefinition]:
    """Return ``health_check``, ``get_service_info`` and ``list_endpoints`` for a service."""

    def health_check(arguments: dict[str, Any]) -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def get_service_info(arguments: dict[str, Any]) -> dict[str, Any]:
        return {
            "name": service_name,
            "version": version,
            "python": platform.python_version(),
            "pid": os.getpid(),
            "uptime": round(time.monotonic() - _STARTED, 3),
        }

    def list_endpoints(arguments: dict[str, Any]) -> dict[str, Any]:
        return {"methods": list(BUILTIN_METHODS)}

    return [
        ToolDefinition(
            name="health_check",
            handler=health_check,
            description=f"Check the health status of the {service_name} service",
        ),
        ToolDefinition(
            name="get_service_info",
            handler=get_service_info,
            description=f"Get information about the {service_name} service",
        ),
        ToolDefinition(
            name="list_endpoints",
            handler=list_endpoints,
            description=f"List the protocol methods the {service_name} service answers",
        ),
    ]
