"""InProcessClient — the same tool view the RPC server exposes, without a wire.

Used by the orchestrator (and by embedders) to list tools as wire schemas
and call them against a shared :class:`ContextBinding`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from toolbridge.catalog.binding import ContextBinding
from toolbridge.protocols.errors import ToolExecutionError
from toolbridge.protocols.mcp.adapter import result_text, to_function_schema, to_mcp_tool

if TYPE_CHECKING:
    from toolbridge.catalog.catalog import ToolCatalog
    from toolbridge.catalog.models import ToolResult
    from toolbridge.protocols.mcp.models import MCPToolDef


class InProcessClient:
    """Direct catalog access shaped like an MCP client.

    Usage::

        client = InProcessClient(catalog, binding)
        schemas = client.get_function_schemas()
        result = await client.call_tool("echo", {"text": "hi"})
    """

    def __init__(self, catalog: ToolCatalog, binding: ContextBinding | None = None) -> None:
        self._catalog = catalog
        self._binding = binding or ContextBinding()

    @property
    def binding(self) -> ContextBinding:
        return self._binding

    def list_tools(self) -> list[MCPToolDef]:
        return [to_mcp_tool(d) for d in self._catalog.list()]

    def get_function_schemas(self) -> list[dict[str, Any]]:
        """Return every tool as an OpenAI-compatible function schema."""
        return [to_function_schema(t) for t in self.list_tools()]

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        raise_on_error: bool = False,
    ) -> ToolResult:
        """Execute *name* with the currently bound context.

        Raises:
            ToolNotFoundError: If the tool is not in the catalog.
            ToolExecutionError: If ``raise_on_error`` is set and the tool failed.
        """
        result = await self._catalog.execute(name, arguments or {}, self._binding.current)
        if raise_on_error and not result.success:
            raise ToolExecutionError(name, result_text(result))
        return result
