"""Tool Catalog — descriptors, validation and the execution entry point."""

from toolbridge.catalog.binding import ContextBinding, context_hash
from toolbridge.catalog.catalog import (
    CatalogFrozenError,
    DuplicateToolError,
    ToolCatalog,
    ToolHandler,
    validate_arguments,
)
from toolbridge.catalog.models import ParamSpec, ParamType, ToolContext, ToolDescriptor, ToolResult

__all__ = [
    "CatalogFrozenError",
    "ContextBinding",
    "DuplicateToolError",
    "ParamSpec",
    "ParamType",
    "ToolCatalog",
    "ToolContext",
    "ToolDescriptor",
    "ToolHandler",
    "ToolResult",
    "context_hash",
    "validate_arguments",
]
