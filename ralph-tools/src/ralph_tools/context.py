"""Shared inputs for building tool surfaces: the sandbox, limits and command policy."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from ralph_contracts import CommandResult

from .policy import AllowAllPolicy, CommandPolicy
from .sandbox.base import Sandbox


@dataclass(slots=True)
class ToolLimits:
    """Output ceilings and timings used by the tool surfaces."""

    # Worker file reads
    max_file_chars: int = 30_000
    max_file_lines_preview: int = 400

    # Judge file reads
    judge_max_file_chars: int = 15_000

    # Command and network output
    command_output_chars: int = 8_000
    judge_command_output_chars: int = 5_000
    curl_response_chars: int = 5_000
    browser_output_chars: int = 8_000
    list_files_limit: int = 100

    # Dev server
    server_log_path: str = "/tmp/server.log"
    server_start_delay: float = 3.0

    # Browser automation; unset means rely on the sandbox defaults
    browser_node_path: Optional[str] = None
    playwright_browsers_path: Optional[str] = None

    command_timeout: Optional[float] = None

    @classmethod
    def from_environment(cls) -> "ToolLimits":
        """Defaults overridden by ``RALPH_*`` environment variables; bad values are ignored."""

        def _int(name: str, default: int) -> int:
            raw = os.environ.get(name)
            if raw is None:
                return default
            try:
                return int(raw)
            except (TypeError, ValueError):
                return default

        def _float(name: str, default: float) -> float:
            raw = os.environ.get(name)
            if raw is None:
                return default
            try:
                return float(raw)
            except (TypeError, ValueError):
                return default

        base = cls()
        base.max_file_chars = _int("RALPH_MAX_FILE_CHARS", base.max_file_chars)
        base.max_file_lines_preview = _int("RALPH_MAX_FILE_LINES_PREVIEW", base.max_file_lines_preview)
        base.command_output_chars = _int("RALPH_COMMAND_OUTPUT_CHARS", base.command_output_chars)
        base.server_start_delay = _float("RALPH_SERVER_START_DELAY", base.server_start_delay)
        base.browser_node_path = os.environ.get("RALPH_BROWSER_NODE_PATH") or None
        base.playwright_browsers_path = os.environ.get("RALPH_PLAYWRIGHT_BROWSERS_PATH") or None
        timeout = _float("RALPH_COMMAND_TIMEOUT", 0.0)
        base.command_timeout = timeout if timeout > 0 else None
        return base


@dataclass(slots=True)
class ToolContext:
    """
    Pass-through references every tool closes over. Holds no per-call state.

    Attributes:
        sandbox: Where files live and commands run.
        limits: Output ceilings and timings.
        policy: Decides which shell commands may run; see ``ralph_tools.policy``.
    """

    sandbox: Sandbox
    limits: ToolLimits = field(default_factory=ToolLimits)
    policy: CommandPolicy = field(default_factory=AllowAllPolicy)

    def execute(self, command: str) -> CommandResult:
        """
        Runs a command that a model chose or shaped, once the policy accepts it.

        Every tool that forwards or builds a shell command from model input
        goes through here, so a restrictive policy covers the whole tool
        surface rather than ``run_command`` alone.

        Raises:
            CommandRejected: The policy refused ``command``.
            ExecutionFailure: The sandbox could not run it at all.
        """
        self.policy.check(command)
        return self.sandbox.execute(command, timeout=self.limits.command_timeout)


__all__ = ["ToolContext", "ToolLimits"]
