"""Per-request session state: cancellation, call log and the event emitter."""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import time
from typing import Any

from pydantic import BaseModel, Field

from toolbridge.agent.errors import SessionCancelledError
from toolbridge.agent.events import AgentEvent, EventKind, EventSink

logger = logging.getLogger(__name__)


class SessionState(enum.StrEnum):
    IDLE = "idle"
    PREPARING = "preparing"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.ABORTED)


class CancellationToken:
    """Cooperative cancellation flag that can also be awaited."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, message_id: str = "") -> None:
        if self._event.is_set():
            raise SessionCancelledError(message_id)


class ToolCallRecord(BaseModel):
    tool: str
    timestamp: float = Field(default_factory=time.time)


class SessionOutcome(BaseModel):
    """What :meth:`AgentOrchestrator.process_request` resolves to."""

    state: SessionState
    message_id: str
    text: str = ""
    tools_used: list[str] = Field(default_factory=list)
    error: str | None = None


class AgentSession:
    """Transient state for a single request.

    Created when the request starts and dropped when it settles; never
    reused. :meth:`emit` guarantees that nothing reaches the sink after the
    terminal event.
    """

    def __init__(
        self,
        message_id: str,
        task: str,
        *,
        token: CancellationToken | None = None,
        sink: EventSink | None = None,
        context_hash: str = "none",
    ) -> None:
        self.message_id = message_id
        self.task = task
        self.token = token or CancellationToken()
        self.state = SessionState.IDLE
        self.calls: list[ToolCallRecord] = []
        self.text = ""
        self.context_hash = context_hash
        self.interrupted = False
        self.interruption_reported = False
        self.error: str | None = None
        self._sink = sink
        self._terminal_sent = False

    @property
    def tools_used(self) -> list[str]:
        """Distinct tool names in first-use order."""
        return list(dict.fromkeys(record.tool for record in self.calls))

    @property
    def terminal_sent(self) -> bool:
        return self._terminal_sent

    def record_call(self, tool: str) -> ToolCallRecord:
        record = ToolCallRecord(tool=tool)
        self.calls.append(record)
        return record

    def mark_interrupted(self) -> None:
        self.interrupted = True

    def take_interruption(self) -> bool:
        """Return ``True`` exactly once after the first interruption."""
        if not self.interrupted or self.interruption_reported:
            return False
        self.interruption_reported = True
        return True

    def recent_tools(self, window: int) -> list[str]:
        return [record.tool for record in self.calls[-window:]] if window > 0 else []

    def append_text(self, delta: str) -> str:
        """Accumulate *delta* and return the part not yet sent downstream."""
        self.text += delta
        return delta

    def outcome(self) -> SessionOutcome:
        return SessionOutcome(
            state=self.state,
            message_id=self.message_id,
            text=self.text,
            tools_used=self.tools_used,
            error=self.error,
        )

    async def emit(self, kind: EventKind, text: str = "", **data: Any) -> bool:
        """Send one event to the sink; returns ``False`` if it was dropped."""
        if self._terminal_sent:
            logger.debug("Dropping %s event after terminal for %s", kind, self.message_id)
            return False
        event = AgentEvent(kind=kind, message_id=self.message_id, text=text, data=data)
        if event.is_terminal:
            self._terminal_sent = True
        if self._sink is None:
            return True
        try:
            outcome = self._sink(event)
            if inspect.isawaitable(outcome):
                await outcome
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Event sink failed on %s event", kind)
        return True
