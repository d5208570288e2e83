"""Agent events — what a session reports to its sink while it runs."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

EventKind = Literal[
    "planning",
    "info",
    "warning",
    "executing",
    "tool_result",
    "tool_error",
    "workflow_warning",
    "interruption",
    "chunk",
    "completed",
    "failed",
    "cancelled",
]

TERMINAL_KINDS: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


class AgentEvent(BaseModel):
    """One observable step of a session.

    ``text`` is the human-readable part; ``data`` carries structured detail
    (tool name and arguments, error kind and stack, token estimates).
    """

    kind: EventKind
    message_id: str
    text: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS


EventSink = Callable[[AgentEvent], "Awaitable[None] | None"]
