"""MCP protocol — Model Context Protocol tool server and in-process client."""

from toolbridge.protocols.mcp.adapter import (
    extract_text,
    result_text,
    to_call_response,
    to_function_schema,
    to_mcp_tool,
)
from toolbridge.protocols.mcp.client import InProcessClient
from toolbridge.protocols.mcp.models import (
    PROTOCOL_VERSION,
    InitializeResult,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPToolDef,
    ToolsCallResult,
)
from toolbridge.protocols.mcp.server import MCPServer
from toolbridge.protocols.mcp.transport import (
    LineBuffer,
    MemoryTransport,
    StdioTransport,
    StreamTransport,
    Transport,
)

__all__ = [
    "PROTOCOL_VERSION",
    "InProcessClient",
    "InitializeResult",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LineBuffer",
    "MCPServer",
    "MCPToolDef",
    "MemoryTransport",
    "StdioTransport",
    "StreamTransport",
    "ToolsCallResult",
    "Transport",
    "extract_text",
    "result_text",
    "to_call_response",
    "to_function_schema",
    "to_mcp_tool",
]
