"""Token counting — protocol and implementations for measuring token usage.

Provides accurate counting via tiktoken (for OpenAI-family models) and a
character-based estimator as a universal fallback.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import tiktoken

if TYPE_CHECKING:
    from toolbridge.core.interface.config import ModelConfig


@runtime_checkable
class TokenCounter(Protocol):
    """Protocol for counting tokens in prompt text."""

    def count_text(self, text: str) -> int:
        """Return the token count for a bare string."""
        ...


# ---------------------------------------------------------------------------
# Tiktoken-based counter (accurate for OpenAI models)
# ---------------------------------------------------------------------------


class TiktokenCounter:
    """Token counter using tiktoken encodings.

    Falls back to ``cl100k_base`` when the model's encoding is unknown.
    """

    def __init__(self, model: str) -> None:
        # LiteLLM strings carry a provider prefix tiktoken does not know.
        name = model.split("/", 1)[-1]
        try:
            self._enc = tiktoken.encoding_for_model(name)
        except KeyError:
            self._enc = tiktoken.get_encoding("cl100k_base")

    def count_text(self, text: str) -> int:
        return len(self._enc.encode(text))


# ---------------------------------------------------------------------------
# Estimating counter (universal fallback)
# ---------------------------------------------------------------------------

CHARS_PER_TOKEN = 4


class EstimatingCounter:
    """Fallback token counter that estimates ~4 characters per token."""

    def count_text(self, text: str) -> int:
        return math.ceil(len(text) / CHARS_PER_TOKEN)


# Providers whose tokenization is well-served by tiktoken.
_TIKTOKEN_PROVIDERS = frozenset({"openai", "azure", "azure_ai"})


def get_counter(config: ModelConfig | None) -> TokenCounter:
    """Return tiktoken for OpenAI-family models, the estimator otherwise."""
    if config is not None and config.provider in _TIKTOKEN_PROVIDERS:
        return TiktokenCounter(config.model)
    return EstimatingCounter()
