"""Out-of-band signals that a person touched the context the agent is using."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from toolbridge.catalog.binding import context_hash

logger = logging.getLogger(__name__)

InterruptionCallback = Callable[[Any], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class InterruptionSource(Protocol):
    def subscribe(self, context_ref: Any, callback: InterruptionCallback) -> Unsubscribe: ...


class InterruptionHub:
    """In-process :class:`InterruptionSource`.

    Whoever observes user input (a browser shell, a test) calls
    :meth:`signal`; every subscriber watching the same context is notified.

    Usage::

        hub = InterruptionHub()
        unsubscribe = hub.subscribe("tab-1", on_interrupt)
        hub.signal("tab-1")
        unsubscribe()
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[InterruptionCallback]] = defaultdict(list)

    def subscribe(self, context_ref: Any, callback: InterruptionCallback) -> Unsubscribe:
        key = context_hash(context_ref)
        self._subscribers[key].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[key]

        return unsubscribe

    def subscriber_count(self, context_ref: Any = None) -> int:
        if context_ref is None:
            return sum(len(c) for c in self._subscribers.values())
        return len(self._subscribers.get(context_hash(context_ref), []))

    def signal(self, context_ref: Any) -> int:
        """Notify subscribers of *context_ref*; returns how many were called."""
        callbacks = list(self._subscribers.get(context_hash(context_ref), []))
        for callback in callbacks:
            callback(context_ref)
        if callbacks:
            logger.debug("Interaction on %s sent to %d listener(s)", context_ref, len(callbacks))
        return len(callbacks)
