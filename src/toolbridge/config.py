"""Runtime configuration — pydantic settings models and the YAML loader."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from toolbridge.agent.workflow import (
    DEFAULT_CONTEXT_MUTATING_TOOLS,
    DEFAULT_DISCOVERY_TOOLS,
    DEFAULT_INTERACTIVE_TOOLS,
    DEFAULT_NAVIGATION_TOOLS,
    WorkflowPolicy,
)
from toolbridge.core.interface.config import ModelConfig
from toolbridge.protocols.mcp.models import ServerSettings

ConcurrencyPolicy = Literal["reject", "preempt"]
ToolErrorPolicy = Literal["continue", "abort"]


class ConfigValidationError(Exception):
    """Raised when a config file fails parsing or validation."""


class OrchestratorConfig(BaseModel):
    """Knobs of the agent loop.

    Token thresholds apply to the pre-flight estimate: above
    ``large_task_threshold`` an ``info`` event is emitted, above
    ``very_large_task_threshold`` a ``warning`` event.
    """

    max_iterations: int = Field(default=20, ge=1)
    large_task_threshold: int = 50_000
    very_large_task_threshold: int = 100_000
    token_overhead: int = 20_000
    max_multiplier: int = Field(default=5, ge=1)
    discovery_window: int = Field(default=5, ge=0)
    interactive_tools: list[str] = Field(default_factory=lambda: sorted(DEFAULT_INTERACTIVE_TOOLS))
    discovery_tools: list[str] = Field(default_factory=lambda: sorted(DEFAULT_DISCOVERY_TOOLS))
    navigation_tools: list[str] = Field(default_factory=lambda: sorted(DEFAULT_NAVIGATION_TOOLS))
    context_mutating_tools: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_CONTEXT_MUTATING_TOOLS)
    )
    concurrency_policy: ConcurrencyPolicy = "reject"
    tool_error_policy: ToolErrorPolicy = "continue"
    memory_pattern_limit: int = Field(default=3, ge=0)
    memory_failure_limit: int = Field(default=2, ge=0)
    instructions: str | None = None

    def workflow_policy(self) -> WorkflowPolicy:
        return WorkflowPolicy.from_names(
            interactive=self.interactive_tools,
            discovery=self.discovery_tools,
            navigation=self.navigation_tools,
            window=self.discovery_window,
        )


class MemorySettings(BaseModel):
    """``path`` set → JSON files under that directory; unset → in-memory only."""

    path: str | None = None
    max_tokens: int = 200_000


class TelemetrySettings(BaseModel):
    enabled: bool = False
    export_to_console: bool = False
    otlp_endpoint: str | None = None


class RuntimeConfig(BaseModel):
    """Top-level config file schema."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    model: ModelConfig = Field(default_factory=ModelConfig)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"


class ConfigLoader:
    """Load and validate a YAML config file into a :class:`RuntimeConfig`."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    def load(self) -> RuntimeConfig:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing. An empty file
        yields the defaults.

        Raises:
            ConfigValidationError: On read errors, YAML parse errors or schema
                validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigValidationError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigValidationError("Config YAML must be a mapping")

        try:
            return RuntimeConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigValidationError(str(exc)) from exc
