"""Helpers shared by the commands that talk to a server."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.markup import escape

from mcpcore.cli_commands._output import console
from mcpcore.client import MCPClient
from mcpcore.config import ClientSettings, ServerRef, load_settings
from mcpcore.errors import ConfigError

_T = TypeVar("_T")

transport_option = click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "websocket"]),
    default="stdio",
    help="MCP server transport type.",
)
timeout_option = click.option(
    "--timeout",
    type=float,
    default=None,
    help="Per-request timeout in seconds [default: 30, or the config's request_timeout].",
)
config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Client settings YAML; SERVER is then the name of one of its servers.",
)


def build_ref(server: str, transport: str) -> ServerRef:
    """SERVER is a command for stdio, a URL otherwise."""
    if transport == "stdio":
        return ServerRef(name="cli", transport="stdio", command=server)
    return ServerRef(name="cli", transport=transport, url=server)


def resolve_target(
    server: str, transport: str, config_path: str | None
) -> tuple[ServerRef, ClientSettings | None]:
    """Turn the SERVER argument into a reference, looking it up in *config_path* if given."""
    if config_path is None:
        return build_ref(server, transport), None
    try:
        settings = load_settings(Path(config_path), ClientSettings)
        return settings.server(server), settings
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def parse_json_args(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"--args is not valid JSON: {exc}"
        raise click.BadParameter(msg) from exc
    if not isinstance(value, dict):
        msg = "--args must be a JSON object"
        raise click.BadParameter(msg)
    return value


def run_with_client(
    target: tuple[ServerRef, ClientSettings | None],
    timeout: float | None,
    action: Callable[[MCPClient], Awaitable[_T]],
    *,
    label: str,
) -> _T:
    """Connect to *target*, run *action*, and exit with status 1 on failure."""
    ref, settings = target
    kwargs: dict[str, Any] = {}
    if timeout is not None:
        kwargs["request_timeout"] = timeout

    async def _run() -> _T:
        async with MCPClient.from_ref(ref, settings, **kwargs) as client:
            return await action(client)

    try:
        return asyncio.run(_run())
    except Exception as exc:
        console.print(f"[red]{label} error:[/red] {escape(str(exc))}")
        sys.exit(1)
