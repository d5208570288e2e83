"""``toolbridge run`` — run one agent session against a tool catalog."""

from __future__ import annotations

import asyncio
import sys

import click

from toolbridge.cli_commands._loading import (
    load_catalog,
    load_config,
    setup_logging,
    setup_telemetry,
)
from toolbridge.cli_commands._output import console, print_event


@click.command()
@click.argument("catalog")
@click.argument("task")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), default=None)
@click.option("--model", "-m", default=None, help="Override the LiteLLM model string.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Overrides the config level.",
)
def run(
    catalog: str,
    task: str,
    config_path: str | None,
    model: str | None,
    log_level: str | None,
) -> None:
    """Ask the agent to do TASK using the tools in CATALOG (``module:attribute``)."""
    from toolbridge.agent.memory import InMemoryStore, JsonFileMemoryStore, MemoryStore
    from toolbridge.agent.orchestrator import AgentOrchestrator
    from toolbridge.core.context.counter import get_counter
    from toolbridge.core.interface.client import ModelClient

    try:
        config = load_config(config_path)
        tool_catalog = load_catalog(catalog)
    except Exception as exc:
        console.print(f"[red]Startup error:[/red] {exc}")
        sys.exit(1)

    if model:
        config.model.model = model

    setup_logging(log_level or config.log_level)
    setup_telemetry(config)

    counter = get_counter(config.model)
    memory: MemoryStore
    if config.memory.path:
        memory = JsonFileMemoryStore(
            config.memory.path, max_tokens=config.memory.max_tokens, counter=counter
        )
    else:
        memory = InMemoryStore(max_tokens=config.memory.max_tokens, counter=counter)

    orchestrator = AgentOrchestrator(
        ModelClient(config.model),
        tool_catalog,
        memory=memory,
        counter=counter,
        config=config.orchestrator,
    )

    async def _run() -> str:
        last_kind = ""
        async for event in orchestrator.stream(task):
            print_event(event)
            last_kind = event.kind
        return last_kind

    try:
        final = asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

    if final != "completed":
        sys.exit(1)
