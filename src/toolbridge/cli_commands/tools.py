"""``toolbridge tools`` — inspect the tools a catalog exposes."""

from __future__ import annotations

import json
import sys

import click

from toolbridge.cli_commands._loading import load_catalog
from toolbridge.cli_commands._output import console, print_tools_table


@click.group()
def tools() -> None:
    """Inspect tool catalogs."""


@tools.command("list")
@click.argument("catalog")
@click.option("--json", "as_json", is_flag=True, help="Print the tools/list wire payload.")
def list_tools(catalog: str, as_json: bool) -> None:
    """List the tools in CATALOG (``module:attribute``)."""
    from toolbridge.protocols.mcp.adapter import to_mcp_tool

    try:
        tool_catalog = load_catalog(catalog)
    except Exception as exc:
        console.print(f"[red]Catalog error:[/red] {exc}")
        sys.exit(1)

    descriptors = tool_catalog.list()
    if as_json:
        wire = [to_mcp_tool(d).to_wire() for d in descriptors]
        click.echo(json.dumps({"tools": wire}, indent=2))
        return

    if not descriptors:
        console.print("[yellow]No tools registered.[/yellow]")
        return

    print_tools_table(descriptors)
