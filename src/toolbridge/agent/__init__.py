"""Agent loop — sessions, events, memory and the orchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolbridge.agent.errors import AgentError as AgentError
    from toolbridge.agent.errors import ModelError as ModelError
    from toolbridge.agent.errors import SessionBusyError as SessionBusyError
    from toolbridge.agent.errors import SessionCancelledError as SessionCancelledError
    from toolbridge.agent.events import AgentEvent as AgentEvent
    from toolbridge.agent.interruption import InterruptionHub as InterruptionHub
    from toolbridge.agent.memory import InMemoryStore as InMemoryStore
    from toolbridge.agent.memory import JsonFileMemoryStore as JsonFileMemoryStore
    from toolbridge.agent.orchestrator import AgentOrchestrator as AgentOrchestrator
    from toolbridge.agent.session import CancellationToken as CancellationToken
    from toolbridge.agent.session import SessionOutcome as SessionOutcome
    from toolbridge.agent.session import SessionState as SessionState

# agent.errors must stay importable without loading the orchestrator.
_EXPORTS = {
    "AgentError": "toolbridge.agent.errors",
    "ModelError": "toolbridge.agent.errors",
    "SessionBusyError": "toolbridge.agent.errors",
    "SessionCancelledError": "toolbridge.agent.errors",
    "AgentEvent": "toolbridge.agent.events",
    "InterruptionHub": "toolbridge.agent.interruption",
    "InMemoryStore": "toolbridge.agent.memory",
    "JsonFileMemoryStore": "toolbridge.agent.memory",
    "AgentOrchestrator": "toolbridge.agent.orchestrator",
    "CancellationToken": "toolbridge.agent.session",
    "SessionOutcome": "toolbridge.agent.session",
    "SessionState": "toolbridge.agent.session",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'toolbridge.agent' has no attribute {name!r}")
