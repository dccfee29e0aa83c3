"""Pytest configuration for ralph-tools tests.

This conftest overrides the root-level fixture that depends on ralph_runtime,
allowing the tools package tests to run independently, and provides a
local-directory sandbox for tool tests.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from ralph_tools.context import ToolContext, ToolLimits
from ralph_tools.sandbox.local import LocalSandbox


@pytest.fixture(autouse=True)
def stub_langchain_chat_models(monkeypatch: pytest.MonkeyPatch) -> None:
    """No-op override of the root conftest's LLM stubbing fixture.

    The ralph-tools package does not depend on ralph_runtime, so we provide a
    no-op fixture to allow tests to run independently.
    """
    pass


@pytest.fixture
def local_sandbox(tmp_path: Path) -> LocalSandbox:
    return LocalSandbox(tmp_path / "project")


@pytest.fixture
def tool_context(local_sandbox: LocalSandbox) -> ToolContext:
    return ToolContext(sandbox=local_sandbox, limits=ToolLimits(server_start_delay=0))
