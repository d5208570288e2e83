"""Shared CLI helpers: catalog import, config loading and logging setup."""

from __future__ import annotations

import importlib
import logging
import sys
from pathlib import Path

from toolbridge.catalog.catalog import ToolCatalog
from toolbridge.config import ConfigLoader, RuntimeConfig


class CatalogLoadError(Exception):
    """A ``module:attribute`` reference did not resolve to a ToolCatalog."""


def load_catalog(ref: str) -> ToolCatalog:
    """Import ``module:attribute``; the attribute is a catalog or a factory for one."""
    module_name, _, attr = ref.partition(":")
    if not module_name or not attr:
        raise CatalogLoadError(f"Expected 'module:attribute', got {ref!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise CatalogLoadError(f"Cannot import {module_name}: {exc}") from exc

    try:
        target = getattr(module, attr)
    except AttributeError as exc:
        raise CatalogLoadError(f"{module_name} has no attribute {attr!r}") from exc

    if callable(target) and not isinstance(target, ToolCatalog):
        target = target()
    if not isinstance(target, ToolCatalog):
        raise CatalogLoadError(f"{ref} is not a ToolCatalog (got {type(target).__name__})")
    return target


def load_config(path: str | None) -> RuntimeConfig:
    """Load *path* if given, else the defaults. Raises ConfigValidationError."""
    if path is None:
        return RuntimeConfig()
    return ConfigLoader(Path(path)).load()


def setup_logging(level: str) -> None:
    """Log to stderr; stdout carries protocol or user-facing output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def setup_telemetry(config: RuntimeConfig, *, stdout_free: bool = True) -> None:
    """Configure tracing when enabled; *stdout_free* False suppresses console export."""
    from toolbridge.utils.telemetry import configure_telemetry

    configure_telemetry(
        config.telemetry, service_name=config.server.name, stdout_free=stdout_free
    )
