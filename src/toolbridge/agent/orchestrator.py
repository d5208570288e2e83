"""AgentOrchestrator — the plan → call tool → observe → continue loop.

One request runs as one :class:`AgentSession`::

    Idle → Preparing → Streaming → Completed | Failed | Aborted

Preparing builds the system prompt (instructions plus a memory digest) and
emits an advisory token estimate. Streaming asks the model for turns until
one comes back without a tool call, executing every requested tool through
the catalog in between. Every session ends with exactly one terminal event.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from collections.abc import AsyncIterator, Awaitable
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import uuid4

from toolbridge.agent.errors import (
    AgentError,
    IterationLimitError,
    SessionBusyError,
    SessionCancelledError,
    ToolArgumentsError,
    ToolCallAbortedError,
)
from toolbridge.agent.estimator import estimate_task_tokens
from toolbridge.agent.events import AgentEvent, EventSink
from toolbridge.agent.memory import InMemoryStore, MemoryStore
from toolbridge.agent.prompt import DEFAULT_INSTRUCTIONS, build_system_prompt
from toolbridge.agent.session import AgentSession, CancellationToken, SessionOutcome, SessionState
from toolbridge.catalog.models import ToolResult
from toolbridge.config import OrchestratorConfig
from toolbridge.core.interface.models import (
    CanonicalMessage,
    ConversationHistory,
    TextDelta,
    ToolCall,
    ToolCallIntent,
)
from toolbridge.protocols.errors import ToolNotFoundError
from toolbridge.protocols.mcp.adapter import result_text
from toolbridge.protocols.mcp.client import InProcessClient
from toolbridge.utils.telemetry import (
    ATTR_ESTIMATED_TOKENS,
    ATTR_ITERATION,
    ATTR_MAX_ITERATIONS,
    ATTR_MESSAGE_ID,
    ATTR_SESSION_STATE,
    ATTR_TOOL_NAME,
    get_tracer,
    mark_failed,
)

if TYPE_CHECKING:
    from toolbridge.agent.interruption import InterruptionSource, Unsubscribe
    from toolbridge.catalog.binding import ContextBinding
    from toolbridge.catalog.catalog import ToolCatalog
    from toolbridge.core.context.counter import TokenCounter
    from toolbridge.core.interface.client import ModelBackend

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_T = TypeVar("_T")
_STREAM_END = object()
_STACK_FRAMES = 3


def _error_kind(exc: BaseException) -> str:
    if isinstance(exc, AgentError):
        return exc.kind
    return type(exc).__name__


def _short_stack(exc: BaseException) -> list[str]:
    frames = traceback.extract_tb(exc.__traceback__)[-_STACK_FRAMES:]
    return [f"{f.filename}:{f.lineno} in {f.name}" for f in frames]


async def _next_item(stream: AsyncIterator[Any]) -> Any:
    try:
        return await anext(stream)
    except StopAsyncIteration:
        return _STREAM_END


class AgentOrchestrator:
    """Drives model turns and tool calls for one request at a time.

    Usage::

        orchestrator = AgentOrchestrator(
            ModelClient(ModelConfig(model="openai/gpt-4o")),
            catalog,
            binding=binding,
            sink=print,
        )
        outcome = await orchestrator.process_request("Open example.com and log in")

    A second request while one is in flight is rejected with
    :class:`SessionBusyError` unless ``concurrency_policy`` is ``"preempt"``,
    in which case the running session is cancelled first.
    """

    def __init__(
        self,
        model: ModelBackend,
        catalog: ToolCatalog,
        *,
        binding: ContextBinding | None = None,
        sink: EventSink | None = None,
        memory: MemoryStore | None = None,
        interruptions: InterruptionSource | None = None,
        counter: TokenCounter | None = None,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self._model = model
        self._catalog = catalog.freeze()
        self._client = InProcessClient(self._catalog, binding)
        self._binding = self._client.binding
        self._sink = sink
        self._memory: MemoryStore = memory if memory is not None else InMemoryStore()
        self._interruptions = interruptions
        self._counter = counter
        self.config = config or OrchestratorConfig()
        self._policy = self.config.workflow_policy()
        self._context_mutating = frozenset(self.config.context_mutating_tools)
        self._active: AgentSession | None = None
        self._settled: asyncio.Event | None = None

    @property
    def active_session(self) -> AgentSession | None:
        return self._active

    @property
    def binding(self) -> ContextBinding:
        return self._binding

    def abort(self) -> bool:
        """Cancel the in-flight session; returns ``False`` if there is none."""
        if self._active is None:
            return False
        logger.info("Aborting session %s", self._active.message_id)
        self._active.token.cancel()
        return True

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_request(
        self,
        task: str,
        message_id: str | None = None,
        token: CancellationToken | None = None,
        *,
        sink: EventSink | None = None,
    ) -> SessionOutcome:
        """Run one session to a terminal state and return its outcome.

        Raises:
            SessionBusyError: If a session is in flight and the policy is ``reject``.
        """
        message_id = message_id or uuid4().hex[:12]
        await self._claim()

        session = AgentSession(
            message_id,
            task,
            token=token,
            sink=sink if sink is not None else self._sink,
            context_hash=self._binding.hash,
        )
        settled = asyncio.Event()
        self._active = session
        self._settled = settled
        try:
            await self._run_session(session)
        finally:
            self._active = None
            self._settled = None
            settled.set()
        return session.outcome()

    async def stream(self, task: str, message_id: str | None = None) -> AsyncIterator[AgentEvent]:
        """Run a session and yield its events as they happen.

        Closing the iterator early cancels the session.
        """
        queue: asyncio.Queue[AgentEvent | None] = asyncio.Queue()

        async def run() -> SessionOutcome:
            try:
                return await self.process_request(task, message_id, sink=queue.put_nowait)
            finally:
                queue.put_nowait(None)

        runner = asyncio.create_task(run())
        try:
            while (event := await queue.get()) is not None:
                yield event
            await runner
        finally:
            if not runner.done():
                runner.cancel()
                await asyncio.gather(runner, return_exceptions=True)

    async def _claim(self) -> None:
        while self._active is not None:
            if self.config.concurrency_policy == "reject":
                raise SessionBusyError(self._active.message_id)
            settled = self._settled
            logger.info("Preempting session %s", self._active.message_id)
            self._active.token.cancel()
            if settled is not None:
                await settled.wait()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _run_session(self, session: AgentSession) -> None:
        unsubscribe: Unsubscribe | None = None
        with _tracer.start_as_current_span("agent.session") as span:
            span.set_attribute(ATTR_MESSAGE_ID, session.message_id)
            try:
                session.state = SessionState.PREPARING
                self._binding.refresh()
                session.context_hash = self._binding.hash
                unsubscribe = self._subscribe(session)
                system_prompt = await self._prepare(session)

                session.state = SessionState.STREAMING
                await self._loop(session, system_prompt)

                session.state = SessionState.COMPLETED
                await session.emit("completed", session.text, tools_used=session.tools_used)
            except SessionCancelledError:
                session.state = SessionState.ABORTED
                await session.emit("cancelled", "Task cancelled")
            except asyncio.CancelledError:
                session.state = SessionState.ABORTED
                await session.emit("cancelled", "Task cancelled")
                raise
            except Exception as exc:
                session.state = SessionState.FAILED
                session.error = str(exc) or type(exc).__name__
                logger.warning("Session %s failed: %s", session.message_id, session.error)
                mark_failed(span, session.error, exc)
                await session.emit(
                    "failed",
                    f"Error: {session.error}",
                    error_kind=_error_kind(exc),
                    stack=_short_stack(exc),
                )
            finally:
                if unsubscribe is not None:
                    unsubscribe()
                span.set_attribute(ATTR_SESSION_STATE, session.state.value)

        self._write_back(session)
        logger.info("Session %s settled as %s", session.message_id, session.state.value)

    def _subscribe(self, session: AgentSession) -> Unsubscribe | None:
        if self._interruptions is None:
            return None

        def on_interaction(_ref: Any) -> None:
            session.mark_interrupted()

        return self._interruptions.subscribe(self._binding.current, on_interaction)

    async def _prepare(self, session: AgentSession) -> str:
        await session.emit("planning", "Analyzing task")
        memories = self._memory.get_relevant_memories(session.task)
        system_prompt = build_system_prompt(
            memories,
            self.config.instructions or DEFAULT_INSTRUCTIONS,
            max_patterns=self.config.memory_pattern_limit,
            max_failures=self.config.memory_failure_limit,
        )

        with _tracer.start_as_current_span("agent.estimate") as span:
            estimate = estimate_task_tokens(
                session.task,
                system_prompt,
                self._counter,
                overhead=self.config.token_overhead,
                max_multiplier=self.config.max_multiplier,
            )
            span.set_attribute(ATTR_ESTIMATED_TOKENS, estimate.total)
        logger.debug(
            "Token estimate for %s: user=%d system=%d overhead=%d x%d total=%d",
            session.message_id,
            estimate.user_tokens,
            estimate.system_tokens,
            estimate.overhead,
            estimate.multiplier,
            estimate.total,
        )
        if estimate.total > self.config.very_large_task_threshold:
            await session.emit(
                "warning",
                f"This task may use about {estimate.total:,} tokens; consider splitting it up.",
                estimated_tokens=estimate.total,
            )
        elif estimate.total > self.config.large_task_threshold:
            await session.emit(
                "info",
                f"Estimated token usage: about {estimate.total:,} tokens.",
                estimated_tokens=estimate.total,
            )
        return system_prompt

    def _write_back(self, session: AgentSession) -> None:
        try:
            if session.state is SessionState.COMPLETED and session.calls:
                steps = [f"Step {i}: {record.tool}" for i, record in enumerate(session.calls, 1)]
                self._memory.store_successful_pattern(session.task, steps, session.tools_used)
            elif session.state is SessionState.FAILED:
                self._memory.store_failed_attempt(session.task, session.error or "unknown error")
        except Exception:
            logger.exception("Could not record memory for session %s", session.message_id)

    # ------------------------------------------------------------------
    # Streaming loop
    # ------------------------------------------------------------------

    async def _loop(self, session: AgentSession, system_prompt: str) -> None:
        history = ConversationHistory(messages=[CanonicalMessage.user(session.task)])
        tools = self._client.get_function_schemas()

        for iteration in range(self.config.max_iterations):
            await self._checkpoint(session)
            with _tracer.start_as_current_span("agent.model_turn") as span:
                span.set_attribute(ATTR_ITERATION, iteration)
                span.set_attribute(ATTR_MAX_ITERATIONS, self.config.max_iterations)
                text, calls = await self._model_turn(session, system_prompt, tools, history)

            if not calls:
                return

            history.append(
                CanonicalMessage.assistant(
                    text,
                    tool_calls=[
                        ToolCall(
                            id=call.id,
                            name=call.name,
                            arguments=call.arguments if isinstance(call.arguments, dict) else {},
                        )
                        for call in calls
                    ],
                )
            )
            for call in calls:
                await self._checkpoint(session)
                output = await self._call_tool(session, call)
                history.append(CanonicalMessage.tool(call.id, output))

        raise IterationLimitError(self.config.max_iterations)

    async def _checkpoint(self, session: AgentSession) -> None:
        session.token.raise_if_cancelled(session.message_id)
        if session.take_interruption():
            self._binding.refresh()
            session.context_hash = self._binding.hash
            await session.emit(
                "interruption",
                "The user interacted with the page; re-check its state before continuing.",
            )

    async def _model_turn(
        self,
        session: AgentSession,
        system_prompt: str,
        tools: list[dict[str, Any]],
        history: ConversationHistory,
    ) -> tuple[str, list[ToolCallIntent]]:
        text = ""
        calls: list[ToolCallIntent] = []
        stream = self._model.stream_turn(system_prompt, tools, history)
        try:
            while True:
                item = await self._until_cancelled(session, _next_item(stream))
                if item is _STREAM_END:
                    break
                session.token.raise_if_cancelled(session.message_id)
                if isinstance(item, TextDelta):
                    if not item.text:
                        continue
                    text += item.text
                    await session.emit("chunk", session.append_text(item.text))
                elif isinstance(item, ToolCallIntent):
                    calls.append(item)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return text, calls

    async def _call_tool(self, session: AgentSession, call: ToolCallIntent) -> str:
        name = call.name
        if not isinstance(call.arguments, dict):
            raise ToolArgumentsError(name, call.arguments)

        recent = session.recent_tools(self._policy.window)
        descriptor = self._catalog.get(name)
        await session.emit(
            "executing",
            f"Executing {name}",
            tool=name,
            arguments=call.arguments,
            requires_confirmation=descriptor is not None and descriptor.requires_confirmation,
        )

        with _tracer.start_as_current_span("agent.tool_call") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)
            try:
                result = await self._until_cancelled(
                    session, self._client.call_tool(name, call.arguments)
                )
            except ToolNotFoundError as exc:
                result = ToolResult.fail(exc.message)
        session.record_call(name)

        for hint in self._policy.check(name, recent):
            logger.info("Workflow hint for %s: %s", session.message_id, hint.text)
            await session.emit(hint.kind, hint.text, tool=name)

        if name in self._context_mutating and self._binding.refresh():
            session.context_hash = self._binding.hash
            logger.debug("Context changed after %s: %s", name, session.context_hash)

        text = result_text(result)
        if result.success:
            await session.emit("tool_result", text, tool=name)
            return text

        await session.emit("tool_error", text, tool=name)
        if self.config.tool_error_policy == "abort":
            raise ToolCallAbortedError(name, text)
        return f"Error: {text}"

    async def _until_cancelled(self, session: AgentSession, awaitable: Awaitable[_T]) -> _T:
        """Await *awaitable*, abandoning it as soon as the session is cancelled."""
        session.token.raise_if_cancelled(session.message_id)
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(session.token.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise SessionCancelledError(session.message_id)
