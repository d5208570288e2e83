"""Shared error types for the protocol layer.

Every error carries the JSON-RPC code it maps to, so the server can turn
any :class:`ProtocolError` into a wire error object without a lookup table.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from toolbridge.protocols.mcp.models import JsonRpcError


class ErrorCode(IntEnum):
    """JSON-RPC 2.0 error codes plus the MCP tool-specific range."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    TOOL_NOT_FOUND = -32001
    TOOL_EXECUTION_ERROR = -32002
    INVALID_TOOL_PARAMETERS = -32003


class ProtocolError(Exception):
    """Base error for all protocol-layer failures."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = "", data: Any = None) -> None:
        self.message = message or self.__class__.__doc__ or "Protocol error"
        self.data = data
        super().__init__(self.message)

    def to_error(self) -> JsonRpcError:
        """Return the JSON-RPC error object for this failure."""
        from toolbridge.protocols.mcp.models import JsonRpcError

        return JsonRpcError(code=int(self.code), message=self.message, data=self.data)


class ParseError(ProtocolError):
    """Invalid JSON was received."""

    code = ErrorCode.PARSE_ERROR


class InvalidRequestError(ProtocolError):
    """The JSON sent is not a valid request object."""

    code = ErrorCode.INVALID_REQUEST


class MethodNotFoundError(ProtocolError):
    """The requested method does not exist."""

    code = ErrorCode.METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Method not found: {method}")


class InvalidParamsError(ProtocolError):
    """Invalid method parameters."""

    code = ErrorCode.INVALID_PARAMS


class InternalError(ProtocolError):
    """Internal JSON-RPC error."""

    code = ErrorCode.INTERNAL_ERROR


class ToolNotFoundError(ProtocolError):
    """Requested tool does not exist in the catalog."""

    code = ErrorCode.TOOL_NOT_FOUND

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


class ToolExecutionError(ProtocolError):
    """A tool invocation failed inside its implementation."""

    code = ErrorCode.TOOL_EXECUTION_ERROR

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Tool execution failed: {name}" + (f": {detail}" if detail else ""))


class InvalidToolParametersError(ProtocolError):
    """Tool arguments do not match the tool's parameter specs."""

    code = ErrorCode.INVALID_TOOL_PARAMETERS

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(detail, data={"tool": name})
