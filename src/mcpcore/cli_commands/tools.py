"""``mcpcore tools`` — list and call tools on an MCP server."""

from __future__ import annotations

import sys

import click

from mcpcore.cli_commands._connect import (
    config_option,
    parse_json_args,
    resolve_target,
    run_with_client,
    timeout_option,
    transport_option,
)
from mcpcore.cli_commands._output import console, print_tool_result, print_tools_table


@click.group()
def tools() -> None:
    """List and call tools."""


@tools.command("list")
@click.argument("server")
@transport_option
@timeout_option
@config_option
def list_cmd(server: str, transport: str, timeout: float | None, config_path: str | None) -> None:
    """List the tools of an MCP server.

    SERVER is the command (for stdio) or URL (for sse and websocket) of the MCP server,
    or a server name when --config is given.
    """
    found = run_with_client(
        resolve_target(server, transport, config_path),
        timeout,
        lambda c: c.list_tools(),
        label="Discovery",
    )
    if not found:
        console.print("[yellow]No tools registered.[/yellow]")
        return
    print_tools_table(found)


@tools.command("call")
@click.argument("server")
@click.argument("name")
@click.option("--args", "raw_args", default=None, help="Tool arguments as a JSON object.")
@transport_option
@timeout_option
@config_option
def call_cmd(
    server: str,
    name: str,
    raw_args: str | None,
    transport: str,
    timeout: float | None,
    config_path: str | None,
) -> None:
    """Call tool NAME on SERVER and print its content."""
    arguments = parse_json_args(raw_args)
    result = run_with_client(
        resolve_target(server, transport, config_path),
        timeout,
        lambda c: c.call_tool(name, arguments),
        label="Call",
    )
    print_tool_result(result)
    if result.is_error:
        sys.exit(1)
