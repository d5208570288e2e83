"""Shared fixtures: a small tool catalog, a scripted model and an event recorder."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from typing import Any

import pytest

from toolbridge.agent.events import AgentEvent
from toolbridge.catalog import ParamSpec, ToolCatalog, ToolContext, ToolDescriptor, ToolResult
from toolbridge.core.interface.models import ConversationHistory, TextDelta, ToolCallIntent


class ScriptedModel:
    """ModelBackend that replays one scripted list of items per turn.

    An :class:`asyncio.Event` in a turn blocks the stream until it is set,
    which lets tests cancel a session mid-turn. When the script runs out
    the model answers ``"done"``.
    """

    def __init__(self, turns: Iterable[list[Any]] = ()) -> None:
        self.turns = [list(turn) for turn in turns]
        self.prompts: list[str] = []
        self.histories: list[list[dict[str, Any]]] = []
        self.tools: list[list[dict[str, Any]]] = []

    async def stream_turn(
        self,
        system_prompt: str,
        tools: list[dict[str, Any]],
        history: ConversationHistory,
    ) -> AsyncIterator[TextDelta | ToolCallIntent]:
        self.prompts.append(system_prompt)
        self.tools.append(tools)
        self.histories.append([m.model_dump() for m in history])
        turn = self.turns.pop(0) if self.turns else [TextDelta(text="done")]
        for item in turn:
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            if isinstance(item, BaseException):
                raise item
            yield item


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[AgentEvent] = []

    def __call__(self, event: AgentEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: str) -> list[AgentEvent]:
        return [e for e in self.events if e.kind == kind]


@pytest.fixture
def scripted_model() -> type[ScriptedModel]:
    return ScriptedModel


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def calls() -> list[tuple[str, dict[str, Any], Any]]:
    """Log of (tool, args, context_ref) for every handler invocation."""
    return []


@pytest.fixture
def catalog(calls: list[tuple[str, dict[str, Any], Any]]) -> ToolCatalog:
    """A browser-flavoured catalog whose handlers only record their calls."""
    cat = ToolCatalog()

    def recording(name: str, result: Any = None) -> Any:
        def handler(args: dict[str, Any], ctx: ToolContext) -> Any:
            calls.append((name, args, ctx.context_ref))
            return ToolResult.ok(message=f"{name} ok") if result is None else result

        return handler

    cat.register(
        ToolDescriptor(
            name="navigate",
            description="Open a URL",
            parameters=[ParamSpec(name="url", type="string", description="Target URL")],
        ),
        recording("navigate"),
    )
    cat.register(
        ToolDescriptor(name="discover", description="List interactive elements"),
        recording("discover", {"buttons": ["#go"]}),
    )
    cat.register(
        ToolDescriptor(
            name="click",
            description="Click an element",
            parameters=[
                ParamSpec(name="selector", type="string"),
                ParamSpec(name="button", type="string", enum=["left", "right"], required=False),
            ],
        ),
        recording("click"),
    )

    @cat.tool("explode", "Always fails")
    def explode(args: dict[str, Any], ctx: ToolContext) -> Any:
        calls.append(("explode", args, ctx.context_ref))
        msg = "kaboom"
        raise RuntimeError(msg)

    return cat
