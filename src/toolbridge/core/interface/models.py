"""Canonical messages — the conversation format the agent loop works in.

The orchestrator never touches provider payloads: it builds a
:class:`ConversationHistory` of :class:`CanonicalMessage` objects and
receives a turn back as a stream of :class:`TextDelta` and
:class:`ToolCallIntent` items.
"""

from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Content Parts
# ---------------------------------------------------------------------------


class TextContent(BaseModel):
    """Plain text content part."""

    type: Literal["text"] = "text"
    text: str


ContentPart = TextContent


# ---------------------------------------------------------------------------
# Tool Calling — structured tool invocations
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """A tool invocation emitted by an assistant message."""

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str
    arguments: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Streamed turn items
# ---------------------------------------------------------------------------


class TextDelta(BaseModel):
    """A fragment of assistant text produced while a turn streams."""

    kind: Literal["text"] = "text"
    text: str


class ToolCallIntent(BaseModel):
    """A complete tool call requested by the model during a turn.

    ``arguments`` is whatever the model produced; it is checked against the
    tool's parameters by the catalog, not here.
    """

    kind: Literal["tool_call"] = "tool_call"
    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str
    arguments: Any = Field(default_factory=dict)


TurnItem = TextDelta | ToolCallIntent


# ---------------------------------------------------------------------------
# Canonical Message — the core message type
# ---------------------------------------------------------------------------


class CanonicalMessage(BaseModel):
    """A single message in the canonical format.

    Roles:
    - system: instruction/context messages
    - user: human input
    - assistant: model-generated messages (may include tool_calls)
    - tool: tool execution results (must include tool_call_id)
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: list[ContentPart] = []
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    metadata: dict[str, Any] = {}

    @property
    def text(self) -> str:
        """Extract concatenated text from all content parts."""
        return "".join(part.text for part in self.content)

    @classmethod
    def system(cls, text: str, **metadata: Any) -> "CanonicalMessage":
        """Create a system message."""
        return cls(role="system", content=[TextContent(text=text)], metadata=metadata)

    @classmethod
    def user(cls, text: str, **metadata: Any) -> "CanonicalMessage":
        """Create a user message."""
        return cls(role="user", content=[TextContent(text=text)], metadata=metadata)

    @classmethod
    def assistant(
        cls,
        text: str = "",
        tool_calls: list[ToolCall] | None = None,
        **metadata: Any,
    ) -> "CanonicalMessage":
        """Create an assistant message."""
        content: list[ContentPart] = [TextContent(text=text)] if text else []
        return cls(role="assistant", content=content, tool_calls=tool_calls, metadata=metadata)

    @classmethod
    def tool(cls, tool_call_id: str, text: str, **metadata: Any) -> "CanonicalMessage":
        """Create a tool-result message."""
        return cls(
            role="tool",
            content=[TextContent(text=text)],
            tool_call_id=tool_call_id,
            metadata=metadata,
        )


# ---------------------------------------------------------------------------
# Conversation History — ordered container of messages
# ---------------------------------------------------------------------------


class ConversationHistory(BaseModel):
    """An ordered sequence of canonical messages forming a conversation."""

    messages: list[CanonicalMessage] = []

    def append(self, message: CanonicalMessage) -> None:
        """Append a message to the history."""
        self.messages.append(message)

    @property
    def non_system_messages(self) -> list[CanonicalMessage]:
        return [m for m in self.messages if m.role != "system"]

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self):  # type: ignore[override]
        return iter(self.messages)
