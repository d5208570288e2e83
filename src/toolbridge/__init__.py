"""toolbridge — a JSON-RPC tool server and a streaming agent loop over one tool catalog."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from toolbridge.agent.orchestrator import AgentOrchestrator as AgentOrchestrator
    from toolbridge.catalog.catalog import ToolCatalog as ToolCatalog
    from toolbridge.protocols.mcp.server import MCPServer as MCPServer

_EXPORTS = {
    "AgentOrchestrator": "toolbridge.agent.orchestrator",
    "ToolCatalog": "toolbridge.catalog.catalog",
    "MCPServer": "toolbridge.protocols.mcp.server",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'toolbridge' has no attribute {name!r}")
