"""Fixtures for CLI tests: an importable catalog module on sys.path."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

CATALOG_MODULE = '''
from toolbridge.catalog import ParamSpec, ToolCatalog, ToolDescriptor, ToolResult

catalog = ToolCatalog()


@catalog.tool(
    "echo",
    "Echo text back",
    [
        ParamSpec(name="text", type="string"),
        ParamSpec(name="loud", type="boolean", required=False),
    ],
)
def echo(args, ctx):
    text = args["text"]
    return ToolResult.ok(message=text.upper() if args.get("loud") else text)


@catalog.tool("wipe", "Clear the page", category="danger", requires_confirmation=True)
def wipe(args, ctx):
    return ToolResult.ok(message="wiped")


def empty():
    return ToolCatalog()


not_a_catalog = 42
'''


@pytest.fixture
def catalog_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Name of a module exposing ``catalog``, ``empty`` and ``not_a_catalog``."""
    name = "cli_demo_tools"
    (tmp_path / f"{name}.py").write_text(CATALOG_MODULE)
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.delitem(sys.modules, name, raising=False)
    return name
