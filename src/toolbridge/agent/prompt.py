"""System prompt assembly: a static instruction block plus a memory digest."""

from __future__ import annotations

from toolbridge.agent.memory import RelevantMemories

DEFAULT_INSTRUCTIONS = """\
You are an agent that accomplishes tasks by breaking them into steps and calling tools.

Workflow:
1. After navigating to a page, call a discovery tool (for example analyze_page_structure) \
before clicking or filling anything, and use the selectors it returns.
2. Call one tool at a time and read its result before deciding the next step.
3. If a tool fails, read the error, adjust the arguments or approach, and try again.
4. When the task is done, or needs no tools at all, answer in plain text without calling a tool.

Planning:
- Break complex tasks into subgoals and execute them in order.
- Before each call, check that every required parameter is available.
- After each call, decide whether the approach is working and change it if not."""

DIGEST_PATTERNS = 3
DIGEST_FAILURES = 2


def memory_digest(
    memories: RelevantMemories,
    *,
    max_patterns: int = DIGEST_PATTERNS,
    max_failures: int = DIGEST_FAILURES,
) -> str:
    """Render the most relevant memories as a compact prompt section."""
    lines: list[str] = []
    patterns = memories.patterns[:max_patterns]
    failures = memories.failures[:max_failures]

    if patterns:
        lines.append("## Previous Successful Patterns:")
        for idx, pattern in enumerate(patterns, 1):
            lines.append(f"{idx}. Task: {pattern.task}")
            lines.append(f"   Tools used: {', '.join(pattern.tools)}")
            if pattern.steps:
                lines.append(f"   Steps: {' -> '.join(pattern.steps)}")

    if failures:
        if lines:
            lines.append("")
        lines.append("## Previous Failures and Solutions:")
        for idx, failure in enumerate(failures, 1):
            lines.append(f"{idx}. Task: {failure.task}")
            lines.append(f"   Error: {failure.error}")
            if failure.solution:
                lines.append(f"   Solution: {failure.solution}")

    return "\n".join(lines)


def build_system_prompt(
    memories: RelevantMemories | None = None,
    instructions: str = DEFAULT_INSTRUCTIONS,
    *,
    max_patterns: int = DIGEST_PATTERNS,
    max_failures: int = DIGEST_FAILURES,
) -> str:
    """Join the instructions with the memory digest, if there is one."""
    if memories is None or memories.empty:
        return instructions
    digest = memory_digest(memories, max_patterns=max_patterns, max_failures=max_failures)
    return f"{instructions}\n\n{digest}" if digest else instructions
