"""Catalog models — tool descriptors, parameter specs and tool results."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

ParamType = Literal["string", "number", "boolean", "array", "object"]


class ParamSpec(BaseModel):
    """One named, typed parameter of a tool.

    ``required`` defaults to ``True``; only an explicit ``False`` makes a
    parameter optional.
    """

    name: str
    type: ParamType
    description: str = ""
    enum: list[str] | None = None
    required: bool = True
    items: dict[str, Any] | None = None


class ToolDescriptor(BaseModel):
    """Static description of a tool: its name, purpose and parameters."""

    name: str
    description: str = ""
    parameters: list[ParamSpec] = []
    category: str = "general"
    requires_confirmation: bool = False

    @model_validator(mode="after")
    def _unique_parameters(self) -> ToolDescriptor:
        seen: set[str] = set()
        for param in self.parameters:
            if param.name in seen:
                msg = f"duplicate parameter '{param.name}' in tool '{self.name}'"
                raise ValueError(msg)
            seen.add(param.name)
        return self


class ToolResult(BaseModel):
    """Outcome of a single tool execution.

    Either a success (with an optional ``message`` and/or ``result``) or a
    failure carrying an ``error`` text, never both.
    """

    success: bool
    message: str | None = None
    result: Any = None
    error: str | None = None

    @model_validator(mode="after")
    def _one_outcome(self) -> ToolResult:
        if self.success and self.error is not None:
            msg = "a successful ToolResult cannot carry an error"
            raise ValueError(msg)
        if not self.success and not self.error:
            msg = "a failed ToolResult must carry an error"
            raise ValueError(msg)
        return self

    @classmethod
    def ok(cls, result: Any = None, message: str | None = None) -> ToolResult:
        """Create a successful result."""
        return cls(success=True, result=result, message=message)

    @classmethod
    def fail(cls, error: str) -> ToolResult:
        """Create a failed result."""
        return cls(success=False, error=error or "Tool execution failed")


class ToolContext(BaseModel):
    """Execution context handed to a tool implementation.

    ``context_ref`` is opaque to the catalog: it identifies what the tool
    should act on (for example the active browser tab) and is forwarded
    untouched.
    """

    tool_name: str
    context_ref: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
