"""Tests for AgentOrchestrator — the session loop end to end with a scripted model."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from toolbridge.agent.errors import ModelError, SessionBusyError
from toolbridge.agent.interruption import InterruptionHub
from toolbridge.agent.memory import InMemoryStore, RelevantMemories
from toolbridge.agent.orchestrator import AgentOrchestrator
from toolbridge.agent.session import CancellationToken, SessionState
from toolbridge.catalog import ContextBinding, ToolCatalog, ToolContext, ToolResult
from toolbridge.config import OrchestratorConfig
from toolbridge.core.interface.client import ModelClient
from toolbridge.core.interface.config import ModelConfig
from toolbridge.core.interface.models import TextDelta, ToolCallIntent

_ACOMPLETION = "toolbridge.core.interface.client.litellm.acompletion"


async def _until(predicate: Callable[[], bool]) -> None:
    for _ in range(1000):
        if predicate():
            return
        await asyncio.sleep(0)
    msg = "condition never became true"
    raise AssertionError(msg)


def _call(name: str, call_id: str = "", **arguments: Any) -> ToolCallIntent:
    if call_id:
        return ToolCallIntent(id=call_id, name=name, arguments=arguments)
    return ToolCallIntent(name=name, arguments=arguments)


class TestCompletion:
    async def test_plain_answer(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[TextDelta(text="Hel"), TextDelta(text=""), TextDelta(text="lo")]])
        orchestrator = AgentOrchestrator(model, catalog, sink=recorder)

        outcome = await orchestrator.process_request("Say hello", message_id="m1")

        assert outcome.state is SessionState.COMPLETED
        assert outcome.text == "Hello"
        assert recorder.kinds == ["planning", "chunk", "chunk", "completed"]
        assert [e.text for e in recorder.of_kind("chunk")] == ["Hel", "lo"]
        completed = recorder.events[-1]
        assert completed.text == "Hello"
        assert completed.data == {"tools_used": []}
        assert {e.message_id for e in recorder.events} == {"m1"}
        assert orchestrator.active_session is None

    async def test_model_sees_catalog_tools(
        self, catalog: ToolCatalog, scripted_model: Any
    ) -> None:
        model = scripted_model()
        await AgentOrchestrator(model, catalog).process_request("anything")
        names = [schema["function"]["name"] for schema in model.tools[0]]
        assert names == ["navigate", "discover", "click", "explode"]
        assert model.histories[0] == [
            {
                "role": "user",
                "content": [{"type": "text", "text": "anything"}],
                "tool_calls": None,
                "tool_call_id": None,
                "metadata": {},
            }
        ]

    async def test_tool_flow(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any, calls: list[Any]
    ) -> None:
        model = scripted_model(
            [
                [TextDelta(text="Opening. "), _call("navigate", "c1", url="https://a.test")],
                [_call("discover", "c2")],
                [_call("click", "c3", selector="#go")],
                [TextDelta(text="Done")],
            ]
        )
        orchestrator = AgentOrchestrator(model, catalog, sink=recorder)

        outcome = await orchestrator.process_request("Log in")

        assert outcome.state is SessionState.COMPLETED
        assert outcome.tools_used == ["navigate", "discover", "click"]
        assert [name for name, _, _ in calls] == ["navigate", "discover", "click"]
        assert recorder.kinds == [
            "planning",
            "chunk",
            "executing",
            "planning",
            "tool_result",
            "executing",
            "tool_result",
            "executing",
            "tool_result",
            "chunk",
            "completed",
        ]
        executing = recorder.of_kind("executing")[0]
        assert executing.data == {
            "tool": "navigate",
            "arguments": {"url": "https://a.test"},
            "requires_confirmation": False,
        }
        assert "workflow_warning" not in recorder.kinds
        assert recorder.events[-1].text == "Opening. Done"

        second_turn = model.histories[1]
        assert second_turn[1]["role"] == "assistant"
        assert second_turn[1]["tool_calls"][0]["id"] == "c1"
        assert second_turn[2]["role"] == "tool"
        assert second_turn[2]["tool_call_id"] == "c1"
        assert second_turn[2]["content"][0]["text"] == "navigate ok"

    async def test_executing_flags_tools_needing_confirmation(
        self, scripted_model: Any, recorder: Any
    ) -> None:
        cat = ToolCatalog()

        @cat.tool("wipe", "Clear the page", requires_confirmation=True)
        def wipe(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
            return ToolResult.ok(message="wiped")

        model = scripted_model([[_call("wipe")], [TextDelta(text="ok")]])
        await AgentOrchestrator(model, cat, sink=recorder).process_request("wipe it")

        assert recorder.of_kind("executing")[0].data["requires_confirmation"] is True


class TestWorkflowHints:
    async def test_click_without_discovery_warns_but_runs(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any, calls: list[Any]
    ) -> None:
        model = scripted_model(
            [
                [_call("navigate", url="https://a.test")],
                [_call("click", selector="#guess")],
                [TextDelta(text="ok")],
            ]
        )
        await AgentOrchestrator(model, catalog, sink=recorder).process_request("click it")

        warnings = recorder.of_kind("workflow_warning")
        assert len(warnings) == 1
        assert warnings[0].data == {"tool": "click"}
        assert "discover" in warnings[0].text
        assert ("click", {"selector": "#guess"}, None) in calls
        assert recorder.kinds[-1] == "completed"


class TestToolFailures:
    async def test_failure_is_fed_back_to_the_model(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[_call("explode", "x1")], [TextDelta(text="recovered")]])
        outcome = await AgentOrchestrator(model, catalog, sink=recorder).process_request("try")

        assert outcome.state is SessionState.COMPLETED
        error = recorder.of_kind("tool_error")[0]
        assert error.text == "kaboom"
        assert error.data == {"tool": "explode"}
        assert model.histories[1][-1]["content"][0]["text"] == "Error: kaboom"

    async def test_invalid_arguments_reported_as_tool_error(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any, calls: list[Any]
    ) -> None:
        model = scripted_model([[_call("navigate")], [TextDelta(text="fine")]])
        await AgentOrchestrator(model, catalog, sink=recorder).process_request("go")

        assert recorder.of_kind("tool_error")[0].text == "Missing required parameter: url"
        assert calls == []
        assert recorder.kinds[-1] == "completed"

    async def test_unknown_tool_reported_as_tool_error(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[_call("teleport")], [TextDelta(text="fine")]])
        await AgentOrchestrator(model, catalog, sink=recorder).process_request("go")

        assert recorder.of_kind("tool_error")[0].text == "Tool not found: teleport"
        assert recorder.kinds[-1] == "completed"

    async def test_abort_policy_fails_the_session(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[_call("explode")], [TextDelta(text="never")]])
        orchestrator = AgentOrchestrator(
            model,
            catalog,
            sink=recorder,
            config=OrchestratorConfig(tool_error_policy="abort"),
        )
        outcome = await orchestrator.process_request("try")

        assert outcome.state is SessionState.FAILED
        assert recorder.kinds[-2:] == ["tool_error", "failed"]
        assert recorder.events[-1].data["error_kind"] == "tool_error"
        assert len(model.histories) == 1

    async def test_non_object_arguments_fail_the_session(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[ToolCallIntent(name="navigate", arguments=["https://a.test"])]])
        outcome = await AgentOrchestrator(model, catalog, sink=recorder).process_request("go")

        assert outcome.state is SessionState.FAILED
        assert recorder.events[-1].data["error_kind"] == "invalid_arguments"


class TestFailures:
    async def test_model_error(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[ModelError("Model request failed: 503")]])
        outcome = await AgentOrchestrator(model, catalog, sink=recorder).process_request("hi")

        assert outcome.state is SessionState.FAILED
        assert outcome.error == "Model request failed: 503"
        failed = recorder.events[-1]
        assert failed.kind == "failed"
        assert failed.text == "Error: Model request failed: 503"
        assert failed.data["error_kind"] == "model_error"
        assert 0 < len(failed.data["stack"]) <= 3
        assert all(" in " in frame for frame in failed.data["stack"])

    async def test_iteration_limit(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[_call("discover")], [_call("discover")], [_call("discover")]])
        orchestrator = AgentOrchestrator(
            model, catalog, sink=recorder, config=OrchestratorConfig(max_iterations=2)
        )
        outcome = await orchestrator.process_request("loop")

        assert outcome.state is SessionState.FAILED
        assert recorder.events[-1].text == (
            "Error: Stopped after 2 iterations without a final answer"
        )
        assert recorder.events[-1].data["error_kind"] == "iteration_limit"
        assert len(model.histories) == 2

    async def test_one_terminal_event_per_session(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[RuntimeError("unexpected")]])
        await AgentOrchestrator(model, catalog, sink=recorder).process_request("hi")
        terminal = [e for e in recorder.events if e.is_terminal]
        assert len(terminal) == 1
        assert terminal[0].data["error_kind"] == "RuntimeError"


class TestCancellation:
    async def test_abort_mid_stream(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        gate = asyncio.Event()
        model = scripted_model([[TextDelta(text="a"), gate, TextDelta(text="b")]])
        orchestrator = AgentOrchestrator(model, catalog, sink=recorder)

        task = asyncio.create_task(orchestrator.process_request("slow"))
        await _until(lambda: "chunk" in recorder.kinds)
        assert orchestrator.abort()
        outcome = await asyncio.wait_for(task, timeout=1)

        assert outcome.state is SessionState.ABORTED
        assert recorder.kinds == ["planning", "chunk", "cancelled"]
        assert recorder.events[-1].text == "Task cancelled"
        gate.set()
        await asyncio.sleep(0)
        assert recorder.kinds[-1] == "cancelled"

    async def test_abort_during_tool_execution(
        self, scripted_model: Any, recorder: Any
    ) -> None:
        cat = ToolCatalog()
        started = asyncio.Event()

        @cat.tool("wait_forever")
        async def wait_forever(args: dict[str, Any], ctx: ToolContext) -> None:
            started.set()
            await asyncio.Event().wait()

        model = scripted_model([[_call("wait_forever")]])
        orchestrator = AgentOrchestrator(model, cat, sink=recorder)
        task = asyncio.create_task(orchestrator.process_request("hang"))
        await asyncio.wait_for(started.wait(), timeout=1)
        orchestrator.abort()
        outcome = await asyncio.wait_for(task, timeout=1)

        assert outcome.state is SessionState.ABORTED
        assert recorder.kinds == ["planning", "executing", "cancelled"]

    async def test_pre_cancelled_token(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        token = CancellationToken()
        token.cancel()
        model = scripted_model()
        outcome = await AgentOrchestrator(model, catalog, sink=recorder).process_request(
            "never", token=token
        )
        assert outcome.state is SessionState.ABORTED
        assert model.prompts == []
        assert recorder.kinds == ["planning", "cancelled"]

    def test_abort_without_session(self, catalog: ToolCatalog, scripted_model: Any) -> None:
        assert AgentOrchestrator(scripted_model(), catalog).abort() is False


class TestConcurrency:
    async def test_second_request_rejected(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        gate = asyncio.Event()
        model = scripted_model([[gate, TextDelta(text="first")]])
        orchestrator = AgentOrchestrator(model, catalog, sink=recorder)

        first = asyncio.create_task(orchestrator.process_request("one", message_id="m1"))
        await _until(lambda: orchestrator.active_session is not None)
        with pytest.raises(SessionBusyError) as exc_info:
            await orchestrator.process_request("two", message_id="m2")
        assert exc_info.value.active_message_id == "m1"

        gate.set()
        outcome = await asyncio.wait_for(first, timeout=1)
        assert outcome.state is SessionState.COMPLETED
        assert {e.message_id for e in recorder.events} == {"m1"}

    async def test_preempt_cancels_running_session(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        model = scripted_model([[asyncio.Event()], [TextDelta(text="second")]])
        orchestrator = AgentOrchestrator(
            model, catalog, sink=recorder, config=OrchestratorConfig(concurrency_policy="preempt")
        )

        first = asyncio.create_task(orchestrator.process_request("one", message_id="m1"))
        await _until(lambda: len(model.prompts) == 1)
        second = await orchestrator.process_request("two", message_id="m2")
        first_outcome = await asyncio.wait_for(first, timeout=1)

        assert first_outcome.state is SessionState.ABORTED
        assert second.state is SessionState.COMPLETED
        by_session = {
            mid: [e.kind for e in recorder.events if e.message_id == mid] for mid in ("m1", "m2")
        }
        assert by_session["m1"][-1] == "cancelled"
        assert by_session["m2"][-1] == "completed"
        assert recorder.kinds.index("cancelled") < recorder.kinds.index("completed")


class TestMemory:
    async def test_successful_session_recorded(
        self, catalog: ToolCatalog, scripted_model: Any
    ) -> None:
        memory = InMemoryStore()
        model = scripted_model(
            [[_call("navigate", url="https://a.test")], [_call("discover")], [TextDelta(text="ok")]]
        )
        orchestrator = AgentOrchestrator(model, catalog, memory=memory)
        await orchestrator.process_request("open the site")

        pattern = memory.patterns[0]
        assert pattern.task == "open the site"
        assert pattern.steps == ["Step 1: navigate", "Step 2: discover"]
        assert pattern.tools == ["navigate", "discover"]

        await orchestrator.process_request("open the site")
        assert "## Previous Successful Patterns:" not in model.prompts[0]
        assert "## Previous Successful Patterns:" in model.prompts[-1]

    async def test_answer_without_tools_not_recorded(
        self, catalog: ToolCatalog, scripted_model: Any
    ) -> None:
        memory = InMemoryStore()
        await AgentOrchestrator(scripted_model(), catalog, memory=memory).process_request("hi")
        assert memory.patterns == []

    async def test_failure_recorded(self, catalog: ToolCatalog, scripted_model: Any) -> None:
        memory = InMemoryStore()
        model = scripted_model([[ModelError("rate limited")]])
        await AgentOrchestrator(model, catalog, memory=memory).process_request("hi")
        assert memory.failures[0].error == "rate limited"

    async def test_memory_write_failure_keeps_outcome(
        self, catalog: ToolCatalog, scripted_model: Any
    ) -> None:
        memory = MagicMock()
        memory.get_relevant_memories.return_value = RelevantMemories()
        memory.store_successful_pattern.side_effect = OSError("disk full")
        model = scripted_model([[_call("discover")], [TextDelta(text="ok")]])

        outcome = await AgentOrchestrator(model, catalog, memory=memory).process_request("x")

        assert outcome.state is SessionState.COMPLETED
        memory.store_successful_pattern.assert_called_once()


class TestEstimateEvents:
    async def test_info_above_large_threshold(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        config = OrchestratorConfig(large_task_threshold=0, very_large_task_threshold=10**9)
        await AgentOrchestrator(
            scripted_model(), catalog, sink=recorder, config=config
        ).process_request("hi")
        info = recorder.of_kind("info")
        assert len(info) == 1
        assert info[0].data["estimated_tokens"] > 20_000
        assert recorder.of_kind("warning") == []

    async def test_warning_above_very_large_threshold(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        config = OrchestratorConfig(large_task_threshold=0, very_large_task_threshold=0)
        await AgentOrchestrator(
            scripted_model(), catalog, sink=recorder, config=config
        ).process_request("hi")
        assert len(recorder.of_kind("warning")) == 1
        assert recorder.of_kind("info") == []

    async def test_small_task_is_quiet(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        await AgentOrchestrator(scripted_model(), catalog, sink=recorder).process_request("hi")
        assert "info" not in recorder.kinds
        assert "warning" not in recorder.kinds


class TestContext:
    async def test_interruption_reported_once(
        self, scripted_model: Any, recorder: Any
    ) -> None:
        hub = InterruptionHub()
        cat = ToolCatalog()

        @cat.tool("poke")
        def poke(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
            hub.signal(ctx.context_ref)
            hub.signal(ctx.context_ref)
            return ToolResult.ok(message="poked")

        model = scripted_model([[_call("poke")], [_call("poke")], [TextDelta(text="done")]])
        orchestrator = AgentOrchestrator(
            model,
            cat,
            binding=ContextBinding(initial="tab-1"),
            sink=recorder,
            interruptions=hub,
        )
        outcome = await orchestrator.process_request("poke twice")

        assert outcome.state is SessionState.COMPLETED
        assert recorder.kinds.count("interruption") == 1
        first_result = recorder.kinds.index("tool_result")
        assert recorder.kinds.index("interruption") == first_result + 1
        assert hub.subscriber_count() == 0

    async def test_context_mutating_tool_rebinds(
        self, scripted_model: Any
    ) -> None:
        active = {"tab": "tab-1"}
        seen: list[Any] = []
        cat = ToolCatalog()

        @cat.tool("switch_tab")
        def switch_tab(args: dict[str, Any], ctx: ToolContext) -> None:
            active["tab"] = "tab-2"

        @cat.tool("look")
        def look(args: dict[str, Any], ctx: ToolContext) -> None:
            seen.append(ctx.context_ref)

        binding = ContextBinding(source=lambda: active["tab"], initial="tab-1")
        model = scripted_model(
            [[_call("look")], [_call("switch_tab")], [_call("look")], [TextDelta(text="ok")]]
        )
        await AgentOrchestrator(model, cat, binding=binding).process_request("switch")

        assert seen == ["tab-1", "tab-2"]
        assert binding.bind_count == 1

    async def test_tools_see_source_context_from_the_start(
        self, catalog: ToolCatalog, scripted_model: Any, calls: list[Any]
    ) -> None:
        binding = ContextBinding(source=lambda: "tab-7")
        model = scripted_model([[_call("navigate", url="x")], [TextDelta(text="ok")]])
        await AgentOrchestrator(model, catalog, binding=binding).process_request("open x")

        assert calls == [("navigate", {"url": "x"}, "tab-7")]
        assert binding.bind_count == 1

    async def test_interruption_on_source_context_delivered(
        self, scripted_model: Any, recorder: Any
    ) -> None:
        hub = InterruptionHub()
        cat = ToolCatalog()

        @cat.tool("poke")
        def poke(args: dict[str, Any], ctx: ToolContext) -> ToolResult:
            hub.signal("tab-7")
            return ToolResult.ok(message="poked")

        model = scripted_model([[_call("poke")], [TextDelta(text="done")]])
        orchestrator = AgentOrchestrator(
            model,
            cat,
            binding=ContextBinding(source=lambda: "tab-7"),
            sink=recorder,
            interruptions=hub,
        )
        outcome = await orchestrator.process_request("poke")

        assert outcome.state is SessionState.COMPLETED
        assert recorder.kinds.count("interruption") == 1
        assert hub.subscriber_count() == 0


class TestStream:
    async def test_yields_events_in_order(self, catalog: ToolCatalog, scripted_model: Any) -> None:
        model = scripted_model([[_call("discover")], [TextDelta(text="ok")]])
        orchestrator = AgentOrchestrator(model, catalog)

        kinds = [event.kind async for event in orchestrator.stream("look")]

        assert kinds == ["planning", "executing", "tool_result", "chunk", "completed"]

    async def test_busy_raises_from_iteration(
        self, catalog: ToolCatalog, scripted_model: Any
    ) -> None:
        gate = asyncio.Event()
        model = scripted_model([[gate]])
        orchestrator = AgentOrchestrator(model, catalog)
        first = asyncio.create_task(orchestrator.process_request("one"))
        await _until(lambda: orchestrator.active_session is not None)

        with pytest.raises(SessionBusyError):
            async for _ in orchestrator.stream("two"):
                pass

        gate.set()
        await asyncio.wait_for(first, timeout=1)

    async def test_closing_early_cancels_session(
        self, catalog: ToolCatalog, scripted_model: Any
    ) -> None:
        model = scripted_model([[asyncio.Event()]])
        orchestrator = AgentOrchestrator(model, catalog)

        events = orchestrator.stream("hang")
        first = await anext(events)
        assert first.kind == "planning"
        await _until(lambda: len(model.prompts) == 1)
        await events.aclose()

        assert orchestrator.active_session is None

    async def test_per_request_sink(
        self, catalog: ToolCatalog, scripted_model: Any, recorder: Any
    ) -> None:
        other: list[Any] = []
        orchestrator = AgentOrchestrator(scripted_model(), catalog, sink=recorder)
        await orchestrator.process_request("hi", sink=other.append)
        assert recorder.events == []
        assert [e.kind for e in other][-1] == "completed"


class TestLiteLLMTurns:
    async def test_streamed_turn_keeps_trace_context_intact(
        self, catalog: ToolCatalog, caplog: pytest.LogCaptureFixture
    ) -> None:
        def chunk(text: str) -> MagicMock:
            delta = MagicMock()
            delta.content = text
            delta.tool_calls = None
            choice = MagicMock()
            choice.delta = delta
            item = MagicMock()
            item.choices = [choice]
            return item

        async def response() -> AsyncIterator[Any]:
            for text in ("Hel", "lo", "!"):
                yield chunk(text)

        client = ModelClient(ModelConfig(model="openai/gpt-4o"))
        with (
            caplog.at_level(logging.ERROR),
            patch(_ACOMPLETION, new=AsyncMock(return_value=response())),
        ):
            outcome = await AgentOrchestrator(client, catalog).process_request("greet")

        assert outcome.state is SessionState.COMPLETED
        assert outcome.text == "Hello!"
        assert [r for r in caplog.records if r.name.startswith("opentelemetry")] == []
