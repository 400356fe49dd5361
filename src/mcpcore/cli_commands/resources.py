"""``mcpcore resources`` — list and read resources on an MCP server."""

from __future__ import annotations

import sys

import click

from mcpcore.cli_commands._connect import (
    config_option,
    resolve_target,
    run_with_client,
    timeout_option,
    transport_option,
)
from mcpcore.cli_commands._output import console, print_resource, print_resources_table


@click.group()
def resources() -> None:
    """List and read resources."""


@resources.command("list")
@click.argument("server")
@transport_option
@timeout_option
@config_option
def list_cmd(server: str, transport: str, timeout: float | None, config_path: str | None) -> None:
    """List the resources of SERVER."""
    found = run_with_client(
        resolve_target(server, transport, config_path),
        timeout,
        lambda c: c.list_resources(),
        label="Discovery",
    )
    if not found:
        console.print("[yellow]No resources registered.[/yellow]")
        return
    print_resources_table(found)


@resources.command("read")
@click.argument("server")
@click.argument("uri")
@transport_option
@timeout_option
@config_option
def read_cmd(
    server: str, uri: str, transport: str, timeout: float | None, config_path: str | None
) -> None:
    """Read resource URI from SERVER."""
    result = run_with_client(
        resolve_target(server, transport, config_path),
        timeout,
        lambda c: c.read_resource(uri),
        label="Read",
    )
    print_resource(result)
    if result.is_error:
        sys.exit(1)
