"""
Configuration schema for the Ralph iteration loop.

``LoopConfig`` gathers every tunable of a run: which models play the worker
and judge roles, the iteration and step ceilings, the judge's no-verdict
policy, where the JSONL run log goes, the tool output limits and the context
budget. Every field has a default taken from long-running use of the loop;
``from_environment`` overrides them from ``RALPH_*`` variables and silently
keeps the default for any value that does not parse.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal, Optional

from ralph_tools.context import ToolLimits

NoVerdictPolicy = Literal["approve", "reject"]


def _int(name: str, default: int) -> int:
    """Safely parses an integer from an environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _bool(name: str, default: bool) -> bool:
    """Safely parses a boolean from an environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class ContextBudgetConfig:
    """
    Bounds on how much iteration history and file content the worker sees.

    Attributes:
        max_context_tokens: Total token budget for the rendered history.
        recent_iterations_to_keep: Most recent iterations always kept verbatim.
        change_log_budget: Token allotment for the decision log of summarized iterations.
        file_context_budget: Token allotment for open-file content carried past summarization.
        enable_summarization: When False, history is never collapsed.
        max_tool_output_chars: Per-invocation cap on tool output inside retained iterations.
    """

    max_context_tokens: int = 180_000
    recent_iterations_to_keep: int = 2
    change_log_budget: int = 8_000
    file_context_budget: int = 60_000
    enable_summarization: bool = True
    max_tool_output_chars: int = 4_096

    @classmethod
    def from_environment(cls) -> "ContextBudgetConfig":
        base = cls()
        base.max_context_tokens = _int("RALPH_MAX_CONTEXT_TOKENS", base.max_context_tokens)
        base.recent_iterations_to_keep = max(
            _int("RALPH_RECENT_ITERATIONS", base.recent_iterations_to_keep), 0
        )
        base.change_log_budget = _int("RALPH_CHANGE_LOG_BUDGET", base.change_log_budget)
        base.file_context_budget = _int("RALPH_FILE_CONTEXT_BUDGET", base.file_context_budget)
        base.enable_summarization = _bool("RALPH_ENABLE_SUMMARIZATION", base.enable_summarization)
        return base


@dataclass(slots=True)
class LoopConfig:
    """
    Top-level configuration for one loop run.

    ``judge_model`` falls back to ``model`` when unset. ``judge_default_verdict``
    decides what happens when the judge exhausts its steps without calling a
    verdict tool.
    """

    model: str = "anthropic:claude-opus-4-5"
    judge_model: Optional[str] = None
    max_iterations: int = 20
    worker_step_limit: int = 20
    judge_step_limit: int = 10
    judge_default_verdict: NoVerdictPolicy = "approve"
    judge_prompt_chars: int = 3_000
    judge_files_listed: int = 20
    run_log_dir: Optional[str] = None
    propagate_deletions: bool = True
    command_allowlist: Optional[str] = None
    docker_image: Optional[str] = None
    server_port: int = 3000
    tools: ToolLimits = field(default_factory=ToolLimits)
    context: ContextBudgetConfig = field(default_factory=ContextBudgetConfig)

    @property
    def resolved_judge_model(self) -> str:
        return self.judge_model or self.model

    @classmethod
    def from_environment(cls) -> "LoopConfig":
        """
        Creates a `LoopConfig` with values overridden by environment variables.

        Returns:
            A `LoopConfig` instance.
        """
        base = cls()
        base.model = os.environ.get("RALPH_MODEL", base.model) or base.model
        base.judge_model = os.environ.get("RALPH_JUDGE_MODEL") or base.judge_model
        base.max_iterations = max(_int("RALPH_MAX_ITERATIONS", base.max_iterations), 1)
        base.worker_step_limit = max(_int("RALPH_WORKER_STEP_LIMIT", base.worker_step_limit), 1)
        base.judge_step_limit = max(_int("RALPH_JUDGE_STEP_LIMIT", base.judge_step_limit), 1)

        policy = os.environ.get("RALPH_JUDGE_DEFAULT_VERDICT", base.judge_default_verdict).strip().lower()
        if policy in {"approve", "reject"}:
            base.judge_default_verdict = policy  # type: ignore[assignment]

        base.run_log_dir = os.environ.get("RALPH_RUN_LOG_DIR") or base.run_log_dir
        base.propagate_deletions = _bool("RALPH_PROPAGATE_DELETIONS", base.propagate_deletions)
        base.command_allowlist = os.environ.get("RALPH_COMMAND_ALLOWLIST") or base.command_allowlist
        base.docker_image = os.environ.get("RALPH_DOCKER_IMAGE") or base.docker_image
        base.server_port = _int("RALPH_SERVER_PORT", base.server_port)
        base.tools = ToolLimits.from_environment()
        base.context = ContextBudgetConfig.from_environment()
        return base


__all__ = ["ContextBudgetConfig", "LoopConfig", "NoVerdictPolicy"]
