"""Unified Model Interface — canonical messages and the streaming model client."""

from toolbridge.core.interface.client import ModelBackend, ModelClient
from toolbridge.core.interface.config import ModelConfig
from toolbridge.core.interface.models import (
    CanonicalMessage,
    ContentPart,
    ConversationHistory,
    TextContent,
    TextDelta,
    ToolCall,
    ToolCallIntent,
    TurnItem,
)

__all__ = [
    "CanonicalMessage",
    "ContentPart",
    "ConversationHistory",
    "ModelBackend",
    "ModelClient",
    "ModelConfig",
    "TextContent",
    "TextDelta",
    "ToolCall",
    "ToolCallIntent",
    "TurnItem",
]
