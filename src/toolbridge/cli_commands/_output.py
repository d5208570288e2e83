"""Shared CLI output formatters."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from toolbridge.agent.events import AgentEvent
    from toolbridge.catalog.models import ToolDescriptor

console = Console()
err_console = Console(stderr=True)

_EVENT_STYLES = {
    "planning": "blue",
    "info": "cyan",
    "warning": "yellow",
    "executing": "magenta",
    "tool_result": "green",
    "tool_error": "red",
    "workflow_warning": "yellow",
    "interruption": "yellow",
    "completed": "bold green",
    "failed": "bold red",
    "cancelled": "bold yellow",
}


def print_tools_table(tools: list[ToolDescriptor]) -> None:
    """Pretty-print tool descriptors as a table; optional parameters end in ``?``."""
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Category", style="dim")
    table.add_column("Description")
    table.add_column("Parameters")
    table.add_column("Confirm")

    for tool in tools:
        params = ", ".join(p.name if p.required else f"{p.name}?" for p in tool.parameters)
        table.add_row(
            tool.name,
            tool.category,
            _truncate(tool.description),
            params or "-",
            "yes" if tool.requires_confirmation else "",
        )

    console.print(table)


def print_event(event: AgentEvent) -> None:
    """Render one agent event; chunks are written inline without markup."""
    if event.kind == "chunk":
        console.out(event.text, end="", highlight=False)
        return

    style = _EVENT_STYLES.get(event.kind, "white")
    if event.kind == "completed":
        # The answer itself already arrived as chunks.
        console.print()
        console.print(Text(event.kind, style=style))
        return

    text = event.text
    if event.kind in ("tool_result", "tool_error"):
        text = _truncate(text.replace("\n", " "), 120)
    console.print(Text.assemble((event.kind, style), " ", text))
    if event.kind == "failed" and event.data.get("stack"):
        console.print(json.dumps(event.data["stack"], indent=2), style="dim", markup=False)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
