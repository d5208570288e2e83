"""Rough pre-flight token estimate for a task.

The estimate is advisory: it only decides whether the orchestrator emits an
informational or warning event before the first model turn.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolbridge.core.context.counter import TokenCounter

TOKEN_OVERHEAD = 20_000
MAX_MULTIPLIER = 5
SEQUENCE_KEYWORDS = ("then", "after", "next", "also", "finally")

_KEYWORD_RE = re.compile(r"\b(?:" + "|".join(SEQUENCE_KEYWORDS) + r")\b", re.IGNORECASE)


@dataclass(frozen=True)
class TokenEstimate:
    user_tokens: int
    system_tokens: int
    overhead: int
    multiplier: int
    total: int


def count_sequence_keywords(text: str) -> int:
    """Count whole-word sequencing keywords, case-insensitively."""
    return len(_KEYWORD_RE.findall(text))


def estimate_task_tokens(
    user_text: str,
    system_prompt: str,
    counter: TokenCounter | None = None,
    *,
    overhead: int = TOKEN_OVERHEAD,
    max_multiplier: int = MAX_MULTIPLIER,
) -> TokenEstimate:
    """Estimate the tokens a task will consume.

    Without a *counter* the base is ``ceil((len(user) + len(system)) / 4)``.
    The base plus *overhead* is multiplied by one more than the number of
    sequencing keywords in *user_text*, capped at *max_multiplier*.
    """
    if counter is None:
        user_tokens = math.ceil(len(user_text) / 4)
        system_tokens = math.ceil(len(system_prompt) / 4)
        base = math.ceil((len(user_text) + len(system_prompt)) / 4)
    else:
        user_tokens = counter.count_text(user_text)
        system_tokens = counter.count_text(system_prompt)
        base = user_tokens + system_tokens

    multiplier = max(1, min(1 + count_sequence_keywords(user_text), max_multiplier))
    return TokenEstimate(
        user_tokens=user_tokens,
        system_tokens=system_tokens,
        overhead=overhead,
        multiplier=multiplier,
        total=(base + overhead) * multiplier,
    )
