"""``mcpcore serve`` — run an MCP server on stdin/stdout."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.markup import escape

from mcpcore.cli_commands._output import err_console


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Server settings YAML file.",
)
@click.option("--name", default=None, help="Override the server name.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Log level (logs go to stderr).",
)
@click.option("--telemetry", is_flag=True, help="Export traces via OpenTelemetry.")
@click.option("--otlp-endpoint", default=None, help="OTLP/gRPC endpoint for --telemetry.")
def serve(
    config_path: str | None,
    name: str | None,
    log_level: str | None,
    telemetry: bool,
    otlp_endpoint: str | None,
) -> None:
    """Serve the built-in service tools over stdio."""
    from mcpcore.config import ServerSettings, load_settings
    from mcpcore.server import MCPServer

    try:
        settings = (
            load_settings(Path(config_path), ServerSettings) if config_path else ServerSettings()
        )
    except Exception as exc:
        err_console.print(f"[red]Validation error:[/red] {escape(str(exc))}")
        sys.exit(1)

    if name:
        settings = settings.model_copy(update={"name": name})

    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if telemetry:
        from mcpcore.utils.telemetry import configure_telemetry

        configure_telemetry(service_name=settings.name, otlp_endpoint=otlp_endpoint)

    server = MCPServer.from_settings(settings)
    try:
        asyncio.run(server.run_stdio())
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted.[/yellow]")
