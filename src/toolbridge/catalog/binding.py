"""ContextBinding — the execution context tools are currently pointed at.

Replaces a process-wide context store: a binding is constructed explicitly
and passed by reference to whoever executes tools (the RPC server, the
in-process client, the orchestrator).

Usage::

    binding = ContextBinding(source=lambda: window.active_tab_id)
    binding.refresh()                 # read the source, bind if changed
    await catalog.execute("click", args, binding.current)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


def context_hash(ref: Any) -> str:
    """Cheap fingerprint of a context ref."""
    if ref is None:
        return "none"
    return str(ref)


class ContextBinding:
    """Holds the current context ref and rebinds it only when it changes."""

    def __init__(self, source: Callable[[], Any] | None = None, initial: Any = None) -> None:
        self._source = source
        self._current: Any = initial
        self._hash = context_hash(initial)
        self._bind_count = 0

    @property
    def current(self) -> Any:
        return self._current

    @property
    def hash(self) -> str:
        return self._hash

    @property
    def bind_count(self) -> int:
        """Number of times a new context has actually been bound."""
        return self._bind_count

    def resolve(self) -> Any:
        """Read the source without binding; falls back to the current ref."""
        if self._source is None:
            return self._current
        return self._source()

    def bind(self, ref: Any) -> bool:
        """Bind *ref*; returns ``False`` (and does nothing) when unchanged."""
        new_hash = context_hash(ref)
        if new_hash == self._hash:
            return False
        logger.debug("Rebinding tool context: %s -> %s", self._hash, new_hash)
        self._current = ref
        self._hash = new_hash
        self._bind_count += 1
        return True

    def refresh(self) -> bool:
        """Re-read the source and bind the result if its fingerprint changed."""
        return self.bind(self.resolve())
