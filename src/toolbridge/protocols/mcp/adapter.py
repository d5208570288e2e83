"""Protocol adapter — pure translation between catalog and wire shapes.

Three directions are covered:

* :func:`to_mcp_tool` — :class:`ToolDescriptor` to the ``tools/list`` entry.
* :func:`to_call_response` — :class:`ToolResult` to the ``tools/call`` result.
* :func:`to_function_schema` — wire tool to an OpenAI-style function schema,
  the shape handed to the model.
"""

from __future__ import annotations

import json
from typing import Any

from toolbridge.catalog.models import ToolDescriptor, ToolResult
from toolbridge.protocols.mcp.models import InputSchema, MCPToolDef, TextContent, ToolsCallResult

DEFAULT_SUCCESS_TEXT = "Tool executed successfully"
DEFAULT_FAILURE_TEXT = "Tool execution failed"


def to_mcp_tool(descriptor: ToolDescriptor) -> MCPToolDef:
    """Convert a :class:`ToolDescriptor` to its wire definition.

    Every parameter whose ``required`` flag is not ``False`` lands in the
    ``required`` list, which is omitted entirely when empty. Array
    parameters default to string items unless the parameter carries a schema.
    """
    properties: dict[str, Any] = {}
    required: list[str] = []

    for param in descriptor.parameters:
        prop: dict[str, Any] = {"type": param.type, "description": param.description}
        if param.enum:
            prop["enum"] = list(param.enum)
        if param.type == "array":
            prop["items"] = dict(param.items) if param.items else {"type": "string"}
        properties[param.name] = prop

        if param.required is not False:
            required.append(param.name)

    return MCPToolDef(
        name=descriptor.name,
        description=descriptor.description,
        input_schema=InputSchema(properties=properties, required=required or None),
    )


def result_text(result: ToolResult) -> str:
    """Render a :class:`ToolResult` as the single text the wire carries."""
    if not result.success:
        return result.error or DEFAULT_FAILURE_TEXT
    if result.message:
        return result.message
    if result.result is not None:
        if isinstance(result.result, str):
            return result.result
        return json.dumps(result.result, indent=2, default=str)
    return DEFAULT_SUCCESS_TEXT


def to_call_response(result: ToolResult) -> ToolsCallResult:
    """Convert a :class:`ToolResult` to a ``tools/call`` result."""
    return ToolsCallResult(
        content=[TextContent(text=result_text(result))],
        is_error=not result.success,
    )


def to_function_schema(tool: MCPToolDef) -> dict[str, Any]:
    """Repackage a wire tool as an OpenAI-compatible function schema."""
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.input_schema.model_dump(exclude_none=True),
        },
    }


def extract_text(response: ToolsCallResult | dict[str, Any]) -> str:
    """Join the text parts of a ``tools/call`` result."""
    if isinstance(response, dict):
        response = ToolsCallResult.model_validate(response)
    return "\n".join(part.text for part in response.content)
