"""ToolCatalog — the fixed set of invocable tools for one session.

Tools are registered as a :class:`ToolDescriptor` plus a handler. The
catalog validates arguments against the descriptor's parameter specs once,
at its boundary, so handlers only ever see well-typed input.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from toolbridge.catalog.models import ParamSpec, ToolContext, ToolDescriptor, ToolResult
from toolbridge.protocols.errors import InvalidToolParametersError, ToolNotFoundError
from toolbridge.utils.telemetry import ATTR_TOOL_NAME, ATTR_TOOL_SUCCESS, get_tracer, mark_failed

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

ToolHandler = Callable[[dict[str, Any], ToolContext], "Awaitable[Any] | Any"]


class DuplicateToolError(ValueError):
    """A tool with the same name is already registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool already registered: {name}")


class CatalogFrozenError(ValueError):
    """The catalog snapshot was frozen and can no longer change."""


@dataclass(frozen=True)
class _Entry:
    descriptor: ToolDescriptor
    handler: ToolHandler


class ToolCatalog:
    """In-memory registry of tools with a single ``execute`` entry point.

    Usage::

        catalog = ToolCatalog()
        catalog.register(
            ToolDescriptor(name="echo", parameters=[ParamSpec(name="text", type="string")]),
            lambda args, ctx: ToolResult.ok(message=args["text"]),
        )
        result = await catalog.execute("echo", {"text": "hi"}, context_ref="tab-1")
    """

    def __init__(self) -> None:
        self._tools: dict[str, _Entry] = {}
        self._frozen = False

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, descriptor: ToolDescriptor, handler: ToolHandler) -> None:
        """Add a tool; names must be unique and the catalog must not be frozen."""
        if self._frozen:
            msg = f"Cannot register '{descriptor.name}': catalog is frozen"
            raise CatalogFrozenError(msg)
        if descriptor.name in self._tools:
            raise DuplicateToolError(descriptor.name)
        self._tools[descriptor.name] = _Entry(descriptor, handler)

    def register_many(self, tools: Iterable[tuple[ToolDescriptor, ToolHandler]]) -> None:
        for descriptor, handler in tools:
            self.register(descriptor, handler)

    def tool(
        self,
        name: str,
        description: str = "",
        parameters: list[ParamSpec] | None = None,
        **extra: Any,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            descriptor = ToolDescriptor(
                name=name,
                description=description,
                parameters=parameters or [],
                **extra,
            )
            self.register(descriptor, handler)
            return handler

        return decorator

    def freeze(self) -> ToolCatalog:
        """Make the current snapshot immutable. Idempotent."""
        self._frozen = True
        return self

    def list(self) -> list[ToolDescriptor]:
        """Return all descriptors in registration order."""
        return [entry.descriptor for entry in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDescriptor | None:
        entry = self._tools.get(name)
        return entry.descriptor if entry else None

    def validate(self, name: str, args: dict[str, Any]) -> None:
        """Check *args* against the tool's parameter specs.

        Raises:
            ToolNotFoundError: If no tool is registered under *name*.
            InvalidToolParametersError: On the first violated parameter.
        """
        entry = self._tools.get(name)
        if entry is None:
            raise ToolNotFoundError(name)
        problem = validate_arguments(entry.descriptor, args)
        if problem is not None:
            raise InvalidToolParametersError(name, problem)

    async def execute(
        self,
        name: str,
        args: dict[str, Any],
        context_ref: Any = None,
    ) -> ToolResult:
        """Validate and run a tool, always returning a :class:`ToolResult`.

        A missing tool is a caller error and raises :class:`ToolNotFoundError`.
        Validation failures and handler exceptions become failed results.
        """
        entry = self._tools.get(name)
        if entry is None:
            raise ToolNotFoundError(name)

        with _tracer.start_as_current_span("catalog.execute") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)

            problem = validate_arguments(entry.descriptor, args)
            if problem is not None:
                logger.info("Rejected arguments for %s: %s", name, problem)
                span.set_attribute(ATTR_TOOL_SUCCESS, False)
                return ToolResult.fail(problem)

            context = ToolContext(tool_name=name, context_ref=context_ref)
            try:
                outcome = entry.handler(dict(args), context)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Tool %s raised %s: %s", name, type(exc).__name__, exc)
                span.set_attribute(ATTR_TOOL_SUCCESS, False)
                error = str(exc) or type(exc).__name__
                mark_failed(span, error, exc)
                return ToolResult.fail(error)

            result = outcome if isinstance(outcome, ToolResult) else ToolResult.ok(result=outcome)
            span.set_attribute(ATTR_TOOL_SUCCESS, result.success)
            return result


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def _matches_type(value: Any, param_type: str) -> bool:
    if param_type == "string":
        return isinstance(value, str)
    if param_type == "number":
        return isinstance(value, int | float) and not isinstance(value, bool)
    if param_type == "boolean":
        return isinstance(value, bool)
    if param_type == "object":
        return isinstance(value, dict)
    return isinstance(value, list)


def validate_arguments(descriptor: ToolDescriptor, args: dict[str, Any]) -> str | None:
    """Return a description of the first violated parameter spec, or ``None``.

    Unknown arguments are tolerated. A ``null`` value for an optional
    parameter counts as absent.
    """
    for param in descriptor.parameters:
        value = args.get(param.name)
        if value is None:
            if param.required:
                return f"Missing required parameter: {param.name}"
            continue

        if not _matches_type(value, param.type):
            article = "an" if param.type[0] in "aeiou" else "a"
            return f"Parameter {param.name} must be {article} {param.type}"

        if param.enum and str(value) not in param.enum:
            return f"Parameter {param.name} must be one of: {', '.join(param.enum)}"
    return None
