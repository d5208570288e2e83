"""MCP models — JSON-RPC 2.0 messages and tool definitions.

Implements the message format used by the Model Context Protocol for
the handshake (``initialize``), tool discovery (``tools/list``) and
execution (``tools/call``).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

PROTOCOL_VERSION = "2024-11-05"


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------

RequestId = int | float | str | None


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request message.

    ``id`` null or absent marks a notification: no response is produced.
    """

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    id: RequestId = None
    params: dict[str, Any] | list[Any] | None = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message carrying either ``result`` or ``error``."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId = None
    result: Any = None
    error: JsonRpcError | None = None

    @model_validator(mode="after")
    def _result_xor_error(self) -> JsonRpcResponse:
        if self.error is not None and self.result is not None:
            msg = "a response carries either 'result' or 'error', never both"
            raise ValueError(msg)
        return self

    def to_wire(self) -> dict[str, Any]:
        """Serialise for the transport, keeping ``id`` even when it is null."""
        message: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            message["error"] = self.error.model_dump(exclude_none=True)
        else:
            message["result"] = self.result if self.result is not None else {}
        return message


# ---------------------------------------------------------------------------
# MCP-specific payloads
# ---------------------------------------------------------------------------


class InputSchema(BaseModel):
    """JSON Schema of a tool's arguments (always an object)."""

    type: Literal["object"] = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] | None = None


class MCPToolDef(BaseModel):
    """A tool definition as returned by ``tools/list``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    input_schema: InputSchema = Field(default_factory=InputSchema, alias="inputSchema")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ServerSettings(BaseModel):
    """Identity and protocol version the server reports on ``initialize``."""

    name: str = "toolbridge"
    version: str = "0.1.0"
    protocol_version: str = PROTOCOL_VERSION


class ServerInfo(BaseModel):
    name: str
    version: str


class InitializeResult(BaseModel):
    """Result of the ``initialize`` handshake."""

    model_config = ConfigDict(populate_by_name=True)

    protocol_version: str = Field(default=PROTOCOL_VERSION, alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=lambda: {"tools": {}})
    server_info: ServerInfo = Field(alias="serverInfo")


class TextContent(BaseModel):
    """Plain text content part of a ``tools/call`` result."""

    type: Literal["text"] = "text"
    text: str


class ToolsCallResult(BaseModel):
    """Result of ``tools/call``: content parts plus an error flag."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[TextContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
