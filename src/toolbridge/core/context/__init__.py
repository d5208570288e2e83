"""Token counting for prompt-size estimates."""

from toolbridge.core.context.counter import (
    EstimatingCounter,
    TiktokenCounter,
    TokenCounter,
    get_counter,
)

__all__ = [
    "EstimatingCounter",
    "TiktokenCounter",
    "TokenCounter",
    "get_counter",
]
