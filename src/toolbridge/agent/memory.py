"""Long-term memory — successful patterns and failed attempts across sessions.

Records are read back as a short digest in the system prompt of later
sessions; they are never replayed automatically.
"""

from __future__ import annotations

import json
import logging
import math
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

if TYPE_CHECKING:
    from toolbridge.core.context.counter import TokenCounter

logger = logging.getLogger(__name__)

PATTERNS_FILE = "successful-patterns.json"
FAILURES_FILE = "failed-attempts.json"
DEFAULT_MAX_TOKENS = 200_000
PATTERN_LIMIT = 5
FAILURE_LIMIT = 3


class SuccessfulPattern(BaseModel):
    task: str
    steps: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)


class FailedAttempt(BaseModel):
    task: str
    error: str
    solution: str | None = None
    timestamp: float = Field(default_factory=time.time)


class RelevantMemories(BaseModel):
    patterns: list[SuccessfulPattern] = Field(default_factory=list)
    failures: list[FailedAttempt] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.patterns and not self.failures


@runtime_checkable
class MemoryStore(Protocol):
    """Where the orchestrator reads and writes session memory."""

    def get_relevant_memories(self, task: str) -> RelevantMemories: ...

    def store_successful_pattern(self, task: str, steps: list[str], tools: list[str]) -> None: ...

    def store_failed_attempt(self, task: str, error: str, solution: str | None = None) -> None: ...


def _related(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    return a in b or b in a


class InMemoryStore:
    """Process-local memory; also the base for :class:`JsonFileMemoryStore`.

    Relevance is a case-insensitive substring match in either direction.
    Oldest records are dropped first once the total exceeds ``max_tokens``.
    """

    def __init__(
        self,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        pattern_limit: int = PATTERN_LIMIT,
        failure_limit: int = FAILURE_LIMIT,
        counter: TokenCounter | None = None,
    ) -> None:
        self.patterns: list[SuccessfulPattern] = []
        self.failures: list[FailedAttempt] = []
        self._max_tokens = max_tokens
        self._pattern_limit = pattern_limit
        self._failure_limit = failure_limit
        self._counter = counter

    def get_relevant_memories(self, task: str) -> RelevantMemories:
        patterns = [p for p in self.patterns if _related(p.task, task)]
        failures = [f for f in self.failures if _related(f.task, task)]
        return RelevantMemories(
            patterns=patterns[: self._pattern_limit],
            failures=failures[: self._failure_limit],
        )

    def store_successful_pattern(self, task: str, steps: list[str], tools: list[str]) -> None:
        self.patterns.append(SuccessfulPattern(task=task, steps=list(steps), tools=list(tools)))
        self._trim()
        self._save()

    def store_failed_attempt(self, task: str, error: str, solution: str | None = None) -> None:
        self.failures.append(FailedAttempt(task=task, error=error, solution=solution))
        self._trim()
        self._save()

    def token_count(self) -> int:
        records: list[BaseModel] = [*self.patterns, *self.failures]
        return sum(self._record_tokens(r) for r in records)

    def _record_tokens(self, record: BaseModel) -> int:
        text = record.model_dump_json()
        if self._counter is not None:
            return self._counter.count_text(text)
        return math.ceil(len(text) / 4)

    def _trim(self) -> None:
        """Drop the oldest patterns, then the oldest failures, until within budget."""
        total = self.token_count()
        while total > self._max_tokens and self.patterns:
            total -= self._record_tokens(self.patterns.pop(0))
        while total > self._max_tokens and self.failures:
            total -= self._record_tokens(self.failures.pop(0))

    def _save(self) -> None:
        pass


_patterns_adapter = TypeAdapter(list[SuccessfulPattern])
_failures_adapter = TypeAdapter(list[FailedAttempt])


class JsonFileMemoryStore(InMemoryStore):
    """Memory persisted as two JSON files under *directory*.

    Unreadable or malformed files are logged and treated as empty.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        pattern_limit: int = PATTERN_LIMIT,
        failure_limit: int = FAILURE_LIMIT,
        counter: TokenCounter | None = None,
    ) -> None:
        super().__init__(
            max_tokens=max_tokens,
            pattern_limit=pattern_limit,
            failure_limit=failure_limit,
            counter=counter,
        )
        self.directory = Path(directory)
        self.patterns = self._load(self.directory / PATTERNS_FILE, _patterns_adapter)
        self.failures = self._load(self.directory / FAILURES_FILE, _failures_adapter)
        self._trim()

    @staticmethod
    def _load(path: Path, adapter: TypeAdapter) -> list:  # type: ignore[type-arg]
        if not path.exists():
            return []
        try:
            return adapter.validate_json(path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.warning("Ignoring unreadable memory file %s: %s", path, exc)
            return []

    def _save(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        patterns = _patterns_adapter.dump_python(self.patterns, mode="json")
        failures = _failures_adapter.dump_python(self.failures, mode="json")
        self._write(self.directory / PATTERNS_FILE, patterns)
        self._write(self.directory / FAILURES_FILE, failures)

    @staticmethod
    def _write(path: Path, records: list) -> None:  # type: ignore[type-arg]
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(records, indent=2), encoding="utf-8")
        tmp.replace(path)
