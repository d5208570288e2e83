"""Workflow heuristics — advisory checks on the order tools are called in.

The checks never block a call. They produce hints the orchestrator turns
into ``workflow_warning`` and ``planning`` events.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal

DEFAULT_INTERACTIVE_TOOLS = frozenset(
    {"click_element", "fill_form", "submit_form", "click", "fill", "submit"}
)
DEFAULT_DISCOVERY_TOOLS = frozenset({"analyze_page_structure", "discover"})
DEFAULT_NAVIGATION_TOOLS = frozenset({"navigate_to_url", "navigate"})
DEFAULT_CONTEXT_MUTATING_TOOLS = frozenset({"create_tab", "switch_tab", "close_tab"})


@dataclass(frozen=True)
class WorkflowHint:
    kind: Literal["workflow_warning", "planning"]
    text: str


@dataclass(frozen=True)
class WorkflowPolicy:
    """Which tools count as interactive, discovery or navigation steps."""

    interactive_tools: frozenset[str] = DEFAULT_INTERACTIVE_TOOLS
    discovery_tools: frozenset[str] = DEFAULT_DISCOVERY_TOOLS
    navigation_tools: frozenset[str] = DEFAULT_NAVIGATION_TOOLS
    window: int = 5

    @classmethod
    def from_names(
        cls,
        interactive: Iterable[str] = DEFAULT_INTERACTIVE_TOOLS,
        discovery: Iterable[str] = DEFAULT_DISCOVERY_TOOLS,
        navigation: Iterable[str] = DEFAULT_NAVIGATION_TOOLS,
        window: int = 5,
    ) -> WorkflowPolicy:
        return cls(frozenset(interactive), frozenset(discovery), frozenset(navigation), window)

    def check(self, tool: str, recent: Sequence[str]) -> list[WorkflowHint]:
        """Return hints for calling *tool* given the *recent* call log.

        *recent* holds the last logged calls before this one, oldest first.
        """
        hints: list[WorkflowHint] = []
        if tool in self.interactive_tools:
            window = list(recent)[-self.window :] if self.window > 0 else []
            if not any(name in self.discovery_tools for name in window):
                discovery = " or ".join(sorted(self.discovery_tools)) or "a discovery tool"
                hints.append(
                    WorkflowHint(
                        "workflow_warning",
                        f"{tool} called without {discovery} in the last {self.window} calls; "
                        "selectors may be stale or guessed.",
                    )
                )
        if tool in self.navigation_tools and self.discovery_tools:
            first = sorted(self.discovery_tools)[0]
            hints.append(
                WorkflowHint("planning", f"Page changed: call {first} before interacting with it.")
            )
        return hints
