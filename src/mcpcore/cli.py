"""mcpcore CLI entrypoint."""

from __future__ import annotations

import click

from mcpcore import __version__


@click.group()
@click.version_option(version=__version__, prog_name="mcpcore")
def main() -> None:
    """mcpcore — serve and query Model Context Protocol servers."""


# Register subcommands
from mcpcore.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
