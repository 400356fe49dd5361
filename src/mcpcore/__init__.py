"""mcpcore — Model Context Protocol server and client runtime."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from mcpcore.client import MCPClient as MCPClient
    from mcpcore.registry import Registry as Registry
    from mcpcore.server import MCPServer as MCPServer

_EXPORTS = {
    "MCPClient": "mcpcore.client",
    "MCPServer": "mcpcore.server",
    "Registry": "mcpcore.registry",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'mcpcore' has no attribute {name!r}")
