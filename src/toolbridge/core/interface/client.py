"""ModelClient — streaming async interface to LLMs via LiteLLM.

Wraps LiteLLM behind a canonical-message interface so the agent loop only
ever sees :class:`TextDelta` and :class:`ToolCallIntent` items.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

import litellm

from toolbridge.agent.errors import ModelError
from toolbridge.core.interface.config import ModelConfig
from toolbridge.core.interface.models import (
    CanonicalMessage,
    ConversationHistory,
    TextDelta,
    ToolCallIntent,
    TurnItem,
)
from toolbridge.utils.telemetry import ATTR_MODEL, ATTR_PROVIDER, get_tracer, mark_failed

_tracer = get_tracer(__name__)


@runtime_checkable
class ModelBackend(Protocol):
    """Anything that can stream one model turn."""

    def stream_turn(
        self,
        system_prompt: str,
        tools: list[dict[str, Any]],
        history: ConversationHistory,
    ) -> AsyncIterator[TurnItem]: ...


class ModelClient:
    """Async streaming client for LiteLLM-supported models.

    Usage::

        client = ModelClient(ModelConfig(model="openai/gpt-4o"))
        async for item in client.stream_turn(system_prompt, tools, history):
            ...

    Tool-call fragments are reassembled and yielded as complete
    :class:`ToolCallIntent` objects once the stream ends.
    """

    def __init__(self, config: ModelConfig) -> None:
        self.config = config

    async def stream_turn(
        self,
        system_prompt: str,
        tools: list[dict[str, Any]],
        history: ConversationHistory,
    ) -> AsyncIterator[TurnItem]:
        call_kwargs = self._build_kwargs(system_prompt, tools, history)

        # Not attached to the context: the generator may be resumed from other tasks.
        span = _tracer.start_span("model.stream")
        try:
            span.set_attribute(ATTR_MODEL, self.config.model)
            span.set_attribute(ATTR_PROVIDER, self.config.provider)

            try:
                response = await litellm.acompletion(**call_kwargs)  # pyright: ignore[reportUnknownMemberType]
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                mark_failed(span, "model request failed", exc)
                raise ModelError(f"Model request failed: {exc}") from exc

            fragments: dict[int, dict[str, str]] = {}
            try:
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    text = getattr(delta, "content", None)
                    if text:
                        yield TextDelta(text=text)
                    for tc in getattr(delta, "tool_calls", None) or []:
                        _merge_fragment(fragments, tc)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                mark_failed(span, "model stream failed", exc)
                raise ModelError(f"Model stream failed: {exc}") from exc
        finally:
            span.end()

        for index in sorted(fragments):
            slot = fragments[index]
            arguments = _parse_arguments(slot["arguments"])
            if slot["id"]:
                yield ToolCallIntent(id=slot["id"], name=slot["name"], arguments=arguments)
            else:
                yield ToolCallIntent(name=slot["name"], arguments=arguments)

    def _build_kwargs(
        self,
        system_prompt: str,
        tools: list[dict[str, Any]],
        history: ConversationHistory,
    ) -> dict[str, Any]:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(to_openai_messages(history))
        call_kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "stream": True,
            **self.config.extra,
        }
        if self.config.api_key:
            call_kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            call_kwargs["api_base"] = self.config.api_base
        if self.config.temperature is not None:
            call_kwargs["temperature"] = self.config.temperature
        if self.config.max_tokens is not None:
            call_kwargs["max_tokens"] = self.config.max_tokens
        if tools:
            call_kwargs["tools"] = tools
        return call_kwargs


def to_openai_messages(history: ConversationHistory) -> list[dict[str, Any]]:
    """Convert canonical history to LiteLLM's OpenAI-style message list."""
    return [_message_to_openai(m) for m in history]


def _message_to_openai(msg: CanonicalMessage) -> dict[str, Any]:
    result: dict[str, Any] = {"role": msg.role}

    if msg.role == "tool":
        result["tool_call_id"] = msg.tool_call_id
        result["content"] = msg.text
        return result

    result["content"] = msg.text or None
    if msg.tool_calls:
        result["tool_calls"] = [
            {
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
            }
            for tc in msg.tool_calls
        ]
    return result


def _merge_fragment(fragments: dict[int, dict[str, str]], tc: Any) -> None:
    """Fold one streamed tool-call delta into its slot, keyed by index."""
    index = getattr(tc, "index", None) or 0
    slot = fragments.setdefault(index, {"id": "", "name": "", "arguments": ""})
    if getattr(tc, "id", None):
        slot["id"] = tc.id
    function = getattr(tc, "function", None)
    if function is None:
        return
    if getattr(function, "name", None) and not slot["name"]:
        slot["name"] = function.name
    if getattr(function, "arguments", None):
        slot["arguments"] += function.arguments


def _parse_arguments(raw: str) -> Any:
    """Parse JSON string arguments from a tool call."""
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}
