"""MCPServer — JSON-RPC 2.0 tool server over a pluggable transport.

Routes ``initialize``, ``tools/list`` and ``tools/call`` to a frozen
:class:`~toolbridge.catalog.ToolCatalog`, maps failures to JSON-RPC error
codes and never answers notifications.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from toolbridge.catalog.binding import ContextBinding
from toolbridge.protocols.errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ParseError,
    ProtocolError,
    ToolNotFoundError,
)
from toolbridge.protocols.mcp.adapter import to_call_response, to_mcp_tool
from toolbridge.protocols.mcp.models import (
    InitializeResult,
    JsonRpcRequest,
    JsonRpcResponse,
    RequestId,
    ServerInfo,
    ServerSettings,
)
from toolbridge.utils.telemetry import (
    ATTR_RPC_ERROR_CODE,
    ATTR_RPC_METHOD,
    get_tracer,
    mark_failed,
)

if TYPE_CHECKING:
    from toolbridge.catalog.catalog import ToolCatalog
    from toolbridge.protocols.mcp.transport import Transport

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_MethodHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

_NOTIFICATIONS = frozenset({"notifications/initialized", "initialized", "notifications/cancelled"})


def _response_id(raw: dict[str, Any]) -> RequestId:
    req_id = raw.get("id")
    if isinstance(req_id, bool) or not isinstance(req_id, int | float | str):
        return None
    return req_id


class MCPServer:
    """Serves a tool catalog to a remote process.

    Usage::

        server = MCPServer(catalog, binding=binding, transport=StdioTransport())
        await transport.connect()
        await server.serve()

    :meth:`handle_message` is the pure request → response step and can be
    driven without any transport.
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        *,
        binding: ContextBinding | None = None,
        transport: Transport | None = None,
        settings: ServerSettings | None = None,
    ) -> None:
        self._catalog = catalog.freeze()
        self._binding = binding or ContextBinding()
        self._transport = transport
        self._settings = settings or ServerSettings()
        self._initialized = False
        self._client_info: dict[str, Any] = {}
        self._methods: dict[str, _MethodHandler] = {
            "initialize": self._handle_initialize,
            "tools/list": self._handle_tools_list,
            "tools/call": self._handle_tools_call,
        }

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def binding(self) -> ContextBinding:
        return self._binding

    @property
    def capabilities(self) -> dict[str, Any]:
        # resources/prompts are reserved; only tools are served.
        return {"tools": {}}

    # ------------------------------------------------------------------
    # Transport wiring
    # ------------------------------------------------------------------

    async def serve(self) -> None:
        """Attach to the transport and process messages until it closes."""
        if self._transport is None:
            msg = "MCPServer has no transport"
            raise RuntimeError(msg)
        self._transport.on_message(self._on_message)
        await self._transport.serve()

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()

    async def _on_message(self, raw: Any) -> None:
        response = await self.handle_message(raw)
        if response is not None and self._transport is not None:
            await self._transport.send(response)

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def handle_message(self, raw: Any) -> dict[str, Any] | None:
        """Process one decoded (or raw text) message.

        Returns the response to send, or ``None`` for notifications.
        """
        if isinstance(raw, str | bytes):
            try:
                raw = json.loads(raw)
            except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                return self._error_response(None, ParseError(f"Parse error: {exc}"))

        if not isinstance(raw, dict):
            # Without an id there is nothing to answer.
            logger.debug("Ignoring non-object message: %r", raw)
            return None

        if raw.get("id") is None:
            await self._handle_notification(raw)
            return None

        response_id = _response_id(raw)
        try:
            request = JsonRpcRequest.model_validate(raw)
        except ValidationError as exc:
            detail = "; ".join(err["msg"] for err in exc.errors())
            error = InvalidRequestError(f"Invalid request: {detail}")
            return self._error_response(response_id, error)

        with _tracer.start_as_current_span("rpc.request") as span:
            span.set_attribute(ATTR_RPC_METHOD, request.method)
            try:
                result = await self._dispatch(request)
            except ProtocolError as exc:
                span.set_attribute(ATTR_RPC_ERROR_CODE, int(exc.code))
                mark_failed(span, exc.message)
                return self._error_response(raw["id"], exc)
            except Exception as exc:
                logger.exception("Unhandled error while processing %s", request.method)
                span.set_attribute(ATTR_RPC_ERROR_CODE, int(InternalError.code))
                error = InternalError(str(exc) or type(exc).__name__)
                mark_failed(span, error.message, exc)
                return self._error_response(raw["id"], error)

        return JsonRpcResponse(id=raw["id"], result=result).to_wire()

    async def _dispatch(self, request: JsonRpcRequest) -> dict[str, Any]:
        handler = self._methods.get(request.method)
        if handler is None:
            raise MethodNotFoundError(request.method)
        if request.params is None:
            params: dict[str, Any] = {}
        elif isinstance(request.params, dict):
            params = request.params
        else:
            msg = f"{request.method} expects named parameters"
            raise InvalidParamsError(msg)
        return await handler(params)

    async def _handle_notification(self, raw: dict[str, Any]) -> None:
        """Process a notification; errors are logged and swallowed."""
        method = raw.get("method")
        try:
            if method in ("notifications/initialized", "initialized"):
                self._initialized = True
            elif method not in _NOTIFICATIONS:
                logger.debug("Ignoring unknown notification: %r", method)
        except Exception:
            logger.debug("Error while handling notification %r", method, exc_info=True)

    async def _handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        client_info = params.get("clientInfo")
        if isinstance(client_info, dict):
            self._client_info = client_info
            logger.info(
                "Client connected: %s %s", client_info.get("name"), client_info.get("version")
            )
        self._initialized = True
        result = InitializeResult(
            protocol_version=self._settings.protocol_version,
            capabilities=self.capabilities,
            server_info=ServerInfo(name=self._settings.name, version=self._settings.version),
        )
        return result.model_dump(by_alias=True)

    async def _handle_tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [to_mcp_tool(d).to_wire() for d in self._catalog.list()]}

    async def _handle_tools_call(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParamsError("tools/call requires a string 'name'")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("tools/call 'arguments' must be an object")

        if self._catalog.get(name) is None:
            raise ToolNotFoundError(name)
        self._catalog.validate(name, arguments)

        self._binding.refresh()
        result = await self._catalog.execute(name, arguments, self._binding.current)
        return to_call_response(result).to_wire()

    @staticmethod
    def _error_response(req_id: Any, error: ProtocolError) -> dict[str, Any]:
        return JsonRpcResponse(id=req_id, error=error.to_error()).to_wire()
