"""Protocol layer — JSON-RPC error taxonomy and the MCP tool server."""

from toolbridge.protocols.errors import (
    ErrorCode,
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    InvalidToolParametersError,
    MethodNotFoundError,
    ParseError,
    ProtocolError,
    ToolExecutionError,
    ToolNotFoundError,
)

__all__ = [
    "ErrorCode",
    "InternalError",
    "InvalidParamsError",
    "InvalidRequestError",
    "InvalidToolParametersError",
    "MethodNotFoundError",
    "ParseError",
    "ProtocolError",
    "ToolExecutionError",
    "ToolNotFoundError",
]
