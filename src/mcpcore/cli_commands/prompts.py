"""``mcpcore prompts`` — list and render prompts on an MCP server."""

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
from mcpcore.cli_commands._output import console, print_prompt, print_prompts_table


@click.group()
def prompts() -> None:
    """List and render prompts."""


@prompts.command("list")
@click.argument("server")
@transport_option
@timeout_option
@config_option
def list_cmd(server: str, transport: str, timeout: float | None, config_path: str | None) -> None:
    """List the prompts of SERVER."""
    found = run_with_client(
        resolve_target(server, transport, config_path),
        timeout,
        lambda c: c.list_prompts(),
        label="Discovery",
    )
    if not found:
        console.print("[yellow]No prompts registered.[/yellow]")
        return
    print_prompts_table(found)


@prompts.command("get")
@click.argument("server")
@click.argument("name")
@click.option("--args", "raw_args", default=None, help="Prompt arguments as a JSON object.")
@transport_option
@timeout_option
@config_option
def get_cmd(
    server: str,
    name: str,
    raw_args: str | None,
    transport: str,
    timeout: float | None,
    config_path: str | None,
) -> None:
    """Render prompt NAME from SERVER."""
    arguments = {k: str(v) for k, v in parse_json_args(raw_args).items()}
    result = run_with_client(
        resolve_target(server, transport, config_path),
        timeout,
        lambda c: c.get_prompt(name, arguments),
        label="Prompt",
    )
    print_prompt(result)
    if result.is_error:
        sys.exit(1)
