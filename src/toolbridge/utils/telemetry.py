"""Tracing helpers shared by the RPC server, the catalog and the agent loop.

Only the OpenTelemetry API is a hard dependency; until
:func:`configure_telemetry` installs an SDK provider every span is a no-op.

Usage::

    from toolbridge.utils.telemetry import ATTR_TOOL_NAME, get_tracer, mark_failed

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("catalog.execute") as span:
        span.set_attribute(ATTR_TOOL_NAME, name)
        ...
        mark_failed(span, "handler raised", exc)

Spans opened inside async generators must not be attached to the current
context; use ``start_span`` and end them explicitly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from toolbridge.config import TelemetrySettings

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_RPC_METHOD = "toolbridge.rpc.method"
ATTR_RPC_ERROR_CODE = "toolbridge.rpc.error_code"
ATTR_MESSAGE_ID = "toolbridge.session.message_id"
ATTR_SESSION_STATE = "toolbridge.session.state"
ATTR_ITERATION = "toolbridge.iteration"
ATTR_MAX_ITERATIONS = "toolbridge.max_iterations"
ATTR_ESTIMATED_TOKENS = "toolbridge.tokens.estimated"
ATTR_MODEL = "toolbridge.model"
ATTR_PROVIDER = "toolbridge.provider"
ATTR_TOOL_NAME = "toolbridge.tool.name"
ATTR_TOOL_SUCCESS = "toolbridge.tool.success"

_INSTRUMENTATION_NAME = "toolbridge"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a tracer for *name* (no-op until an SDK provider is installed)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def mark_failed(span: trace.Span, description: str, exc: BaseException | None = None) -> None:
    """Set an error status on *span*, recording *exc* as a span event when given."""
    if exc is not None:
        span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, description))


def configure_telemetry(
    settings: TelemetrySettings,
    *,
    service_name: str = _INSTRUMENTATION_NAME,
    stdout_free: bool = True,
) -> bool:
    """Install an SDK tracer provider according to *settings*.

    Returns ``False`` without touching the global provider when tracing is
    disabled. Console export is skipped when *stdout_free* is ``False``,
    since stdio serving owns stdout.

    Raises:
        ImportError: If ``opentelemetry-sdk`` (or, for OTLP export,
            ``opentelemetry-exporter-otlp``) is not installed.
    """
    if not settings.enabled:
        return False

    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for tracing. "
            "Install it with: pip install toolbridge[otel]"
        )
        raise ImportError(msg) from exc

    resource = Resource.create({"service.name": service_name})  # pyright: ignore[reportUnknownVariableType,reportUnknownMemberType]
    provider = TracerProvider(resource=resource)  # pyright: ignore[reportUnknownVariableType]
    console = settings.export_to_console and stdout_free
    for processor in _span_processors(settings, console=console):
        provider.add_span_processor(processor)  # pyright: ignore[reportUnknownMemberType]

    trace.set_tracer_provider(provider)  # pyright: ignore[reportUnknownArgumentType]
    return True


def _span_processors(settings: TelemetrySettings, *, console: bool) -> list[Any]:
    from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    processors: list[Any] = []
    if console:
        processors.append(SimpleSpanProcessor(ConsoleSpanExporter()))
    if settings.otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports,reportUnknownVariableType]
        except ImportError as exc:
            msg = (
                "opentelemetry-exporter-otlp is required for OTLP export. "
                "Install it with: pip install toolbridge[otel]"
            )
            raise ImportError(msg) from exc
        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    return processors
