"""``toolbridge serve`` — expose a tool catalog over stdio."""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from toolbridge.cli_commands._loading import (
    load_catalog,
    load_config,
    setup_logging,
    setup_telemetry,
)
from toolbridge.cli_commands._output import err_console

logger = logging.getLogger(__name__)


@click.command()
@click.argument("catalog")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), default=None)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Overrides the config level.",
)
def serve(catalog: str, config_path: str | None, log_level: str | None) -> None:
    """Serve CATALOG (``module:attribute``) as a JSON-RPC tool server on stdio."""
    from toolbridge.protocols.mcp.server import MCPServer
    from toolbridge.protocols.mcp.transport import StdioTransport

    try:
        config = load_config(config_path)
        tool_catalog = load_catalog(catalog)
    except Exception as exc:
        err_console.print(f"[red]Startup error:[/red] {exc}")
        sys.exit(1)

    setup_logging(log_level or config.log_level)
    setup_telemetry(config, stdout_free=False)

    async def _serve() -> None:
        transport = StdioTransport()
        await transport.connect()
        server = MCPServer(tool_catalog, transport=transport, settings=config.server)
        logger.info("Serving %d tool(s) on stdio", len(tool_catalog))
        try:
            await server.serve()
        finally:
            server.close()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted")
