"""MCP transports — line-delimited JSON framing over byte streams.

Each transport satisfies the :class:`Transport` protocol, providing
``send``, ``on_message``, ``serve`` and ``close``. Framing depends only on
newline boundaries, never on how the underlying stream chunks its reads.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TextIO, runtime_checkable

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], "Awaitable[None] | None"]

_READ_CHUNK = 64 * 1024


@runtime_checkable
class Transport(Protocol):
    """Abstract server-side transport for JSON-RPC messages."""

    async def send(self, message: dict[str, Any]) -> None: ...
    def on_message(self, handler: MessageHandler) -> None: ...
    async def serve(self) -> None: ...
    def close(self) -> None: ...


class LineBuffer:
    """Accumulates bytes and yields complete newline-terminated lines.

    Any trailing partial line is retained until a later ``feed`` completes it.
    """

    def __init__(self) -> None:
        self._pending = bytearray()

    @property
    def pending(self) -> bytes:
        return bytes(self._pending)

    def feed(self, data: bytes) -> list[bytes]:
        self._pending.extend(data)
        *lines, rest = self._pending.split(b"\n")
        self._pending = bytearray(rest)
        return lines

    def clear(self) -> None:
        self._pending.clear()


async def _dispatch(handler: MessageHandler, message: Any) -> None:
    outcome = handler(message)
    if inspect.isawaitable(outcome):
        await outcome


class StreamTransport:
    """Newline-delimited JSON over an asyncio reader/writer pair.

    Unparseable lines are logged and dropped. Writes are serialised so a
    message is never split or interleaved with another.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        writer: Any = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._handler: MessageHandler | None = None
        self._buffer = LineBuffer()
        self._write_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler

    async def send(self, message: dict[str, Any]) -> None:
        """Write one JSON value followed by a newline."""
        if self._writer is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        line = (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")
        async with self._write_lock:
            self._writer.write(line)
            await self._writer.drain()

    async def feed(self, data: bytes) -> int:
        """Frame *data* and dispatch every complete message.

        Returns the number of messages handed to the handler.
        """
        if self._closed:
            return 0
        dispatched = 0
        for raw in self._buffer.feed(data):
            message = self._parse(raw)
            if message is None:
                continue
            handler = self._handler
            if handler is None or self._closed:
                continue
            await _dispatch(handler, message)
            dispatched += 1
        return dispatched

    async def serve(self) -> None:
        """Read until EOF or :meth:`close`."""
        if self._reader is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        while not self._closed:
            data = await self._reader.read(_READ_CHUNK)
            if not data:
                if self._buffer.pending.strip():
                    logger.warning("Discarding unterminated trailing line at EOF")
                break
            await self.feed(data)

    def close(self) -> None:
        """Stop reading and drop the handler; later input is ignored."""
        self._closed = True
        self._handler = None
        self._buffer.clear()

    @staticmethod
    def _parse(raw: bytes) -> Any:
        line = raw.strip()
        if not line:
            return None
        try:
            return json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Dropping unparseable message (%s): %.200r", exc, line)
            return None


class StdioTransport(StreamTransport):
    """Serves over the process's stdin/stdout.

    Call :meth:`connect` from inside the running event loop before
    :meth:`serve`.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        super().__init__()
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout

    async def connect(self) -> None:
        """Attach asyncio streams to the stdio pipes."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), self._stdin)
        w_transport, w_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, self._stdout
        )
        self._reader = reader
        self._writer = asyncio.StreamWriter(w_transport, w_protocol, reader, loop)


_EOF = object()


class MemoryTransport:
    """In-process transport: messages are injected, responses collected.

    Usage::

        transport = MemoryTransport()
        server = MCPServer(catalog, transport=transport)
        transport.inject({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        transport.close()
        await server.serve()
        transport.sent  # -> [{"jsonrpc": "2.0", "id": 1, "result": {...}}]
    """

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._handler: MessageHandler | None = None
        self._closed = False

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler

    def inject(self, message: Any) -> None:
        """Queue an incoming message for :meth:`serve`; ignored once closed."""
        if self._closed:
            return
        self._queue.put_nowait(message)

    async def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    async def serve(self) -> None:
        """Dispatch queued messages until :meth:`close` is reached."""
        while True:
            message = await self._queue.get()
            if message is _EOF:
                break
            handler = self._handler
            if handler is not None:
                await _dispatch(handler, message)

    def close(self) -> None:
        """Finish serving once already-queued messages are handled."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_EOF)
