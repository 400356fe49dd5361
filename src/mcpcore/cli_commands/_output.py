"""Shared CLI output formatters."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from mcpcore.protocol.models import (  # noqa: TC001
    CallToolResult,
    GetPromptResult,
    ImageContent,
    Prompt,
    ReadResourceResult,
    Resource,
    TextContent,
    Tool,
)

console = Console()
err_console = Console(stderr=True)


def print_tools_table(tools: list[Tool]) -> None:
    """Pretty-print tool definitions as a table."""
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Required")

    for tool in tools:
        required = ", ".join(tool.input_schema.get("required", [])) or "-"
        table.add_row(tool.name, _truncate(tool.description), required)

    console.print(table)


def print_resources_table(resources: list[Resource]) -> None:
    table = Table(title="Resources")
    table.add_column("URI", style="cyan")
    table.add_column("Name")
    table.add_column("MIME type")
    table.add_column("Description")

    for resource in resources:
        table.add_row(
            resource.uri,
            resource.name,
            resource.mime_type or "-",
            _truncate(resource.description or ""),
        )

    console.print(table)


def print_prompts_table(prompts: list[Prompt]) -> None:
    table = Table(title="Prompts")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Arguments")

    for prompt in prompts:
        arguments = ", ".join(
            f"{a.name}*" if a.required else a.name for a in prompt.arguments
        ) or "-"
        table.add_row(prompt.name, _truncate(prompt.description or ""), arguments)

    console.print(table)


def print_tool_result(result: CallToolResult) -> None:
    """Print each content item; error results are shown in red."""
    style = "red" if result.is_error else None
    for item in result.content:
        if isinstance(item, TextContent):
            console.print(item.text, style=style, markup=False)
        elif isinstance(item, ImageContent):
            console.print(f"<image {item.mime_type}, {len(item.data)} base64 chars>")
        else:
            console.print(f"<resource {item.resource.uri}>")


def print_resource(result: ReadResourceResult) -> None:
    style = "red" if result.is_error else None
    for contents in result.contents:
        if contents.text is not None:
            console.print(contents.text, style=style, markup=False)
        else:
            size = len(contents.blob or "")
            console.print(f"<blob {contents.mime_type or 'unknown'}, {size} base64 chars>")


def print_prompt(result: GetPromptResult) -> None:
    if result.is_error:
        console.print(f"[red]{result.description or 'Prompt failed'}[/red]")
        return
    if result.description:
        console.print(f"[bold]{result.description}[/bold]")
    for message in result.messages:
        content = message.content
        text = content.text if isinstance(content, TextContent) else f"<{content.type}>"
        console.print(f"[cyan]{message.role}:[/cyan] {text}")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
