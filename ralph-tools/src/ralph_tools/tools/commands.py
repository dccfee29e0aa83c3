"""
Command, dev-server and HTTP request tools.

``run_command`` reports a command's exit status transparently: a non-zero
exit is a ``success: false`` payload carrying the exit code and output, not
an invocation failure. Invocation failures (the sandbox could not run the
command, or the command policy refused it) carry an ``error_type``.
"""
from __future__ import annotations

import json
import logging
import shlex
import time
from typing import List, Literal, Optional

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from ralph_contracts import NoStartCommandError

from ..context import ToolContext
from ..sandbox.base import Sandbox
from ..truncation import truncate_text
from .payloads import json_exit_status, json_success, tool_boundary

LOGGER = logging.getLogger(__name__)


class RunCommandRequest(BaseModel):
    command: str = Field(..., min_length=1, description="The shell command to run in the project root.")


class StartDevServerRequest(BaseModel):
    command: Optional[str] = Field(
        default=None,
        description="Custom start command (auto-detected from package.json scripts if omitted).",
    )


class CurlRequest(BaseModel):
    url: str = Field(
        ...,
        min_length=1,
        description="URL to request (localhost:<dev-server port> is rewritten to the sandbox URL).",
    )
    method: Literal["GET", "POST", "PUT", "DELETE"] = Field(default="GET", description="HTTP method.")


class JudgeCurlRequest(BaseModel):
    path: Optional[str] = Field(default=None, description='Path to request, e.g. "/api/health".')


def detect_start_command(sandbox: Sandbox) -> Optional[str]:
    """
    Reads ``package.json`` and returns ``npm run dev`` or ``npm run start``.

    ``dev`` wins over ``start``. Returns ``None`` when the manifest is missing,
    unparseable, or declares neither script.
    """
    raw = sandbox.read_file("package.json")
    if raw is None:
        return None
    try:
        manifest = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        LOGGER.warning("Could not parse package.json: %s", exc)
        return None
    scripts = manifest.get("scripts") if isinstance(manifest, dict) else None
    if not isinstance(scripts, dict):
        return None
    if scripts.get("dev"):
        return "npm run dev"
    if scripts.get("start"):
        return "npm run start"
    return None


def _run_checked(ctx: ToolContext, command: str, cap: int, *, label_stderr: bool) -> str:
    LOGGER.info("Running: %s", command)
    result = ctx.execute(command)
    if result.ok:
        LOGGER.info("Command completed in %.1fs", result.duration_seconds)
    else:
        LOGGER.warning("Command failed (exit %d): %s", result.exit_code, command)
    output = truncate_text(result.merged_output(label_stderr=label_stderr), cap)
    return json_exit_status(result.exit_code, output=output.text, truncated=output.truncated)


def build_worker_command_tools(ctx: ToolContext) -> List[BaseTool]:
    """
    Builds the worker's command tools: ``run_command``, ``start_dev_server`` and ``curl``.

    Model-supplied commands (including a custom dev-server command and the
    generated ``curl`` line) are checked by ``ctx.policy`` before they run.
    ``start_dev_server`` frees the dev-server port through
    ``Sandbox.release_port``, starts the command with ``nohup`` so it outlives
    the call, and waits ``limits.server_start_delay`` seconds.

    Args:
        ctx: The sandbox, limits and command policy the tools close over.

    Returns:
        The three tools, bound to ``ctx``.
    """
    limits = ctx.limits
    sandbox = ctx.sandbox

    @tool("run_command", args_schema=RunCommandRequest)
    @tool_boundary
    def run_command(command: str) -> str:
        """Run a shell command in the sandbox. Returns merged output and the exit code."""
        return _run_checked(ctx, command, limits.command_output_chars, label_stderr=True)

    @tool("start_dev_server", args_schema=StartDevServerRequest)
    @tool_boundary
    def start_dev_server(command: Optional[str] = None) -> str:
        """Start a development server in the background. Returns the URL where the app is reachable."""
        start_command = command or detect_start_command(sandbox)
        if not start_command:
            raise NoStartCommandError()
        ctx.policy.check(start_command)
        sandbox.release_port()
        # Only the start command is model input; the nohup wrapper around it is fixed.
        sandbox.execute(
            f"nohup sh -c {shlex.quote(start_command)} > {shlex.quote(limits.server_log_path)} 2>&1 &"
        )
        if limits.server_start_delay > 0:
            time.sleep(limits.server_start_delay)
        LOGGER.info("Dev server starting at %s (%s)", sandbox.public_url, start_command)
        return json_success(url=sandbox.public_url, command=start_command, log_file=limits.server_log_path)

    @tool("curl", args_schema=CurlRequest)
    @tool_boundary
    def curl(url: str, method: str = "GET") -> str:
        """Make an HTTP request, e.g. to test the dev server."""
        resolved = url.replace(f"localhost:{sandbox.port}", sandbox.domain)
        result = ctx.execute(f"curl -s -X {method} {shlex.quote(resolved)}")
        response = truncate_text(result.stdout, limits.curl_response_chars)
        return json_success(url=resolved, response=response.text, exit_code=result.exit_code)

    return [run_command, start_dev_server, curl]


def build_judge_command_tools(ctx: ToolContext) -> List[BaseTool]:
    """
    Builds the judge's ``run_command`` (stdout and stderr merged without a
    label, judge output cap) and a ``curl`` that only reaches paths on the
    sandbox's public URL.

    Args:
        ctx: The sandbox, limits and command policy the tools close over.
    """
    limits = ctx.limits
    sandbox = ctx.sandbox

    @tool("run_command", args_schema=RunCommandRequest)
    @tool_boundary
    def run_command(command: str) -> str:
        """Run a command to verify the work (e.g. tests, type-check, build, lint)."""
        return _run_checked(ctx, command, limits.judge_command_output_chars, label_stderr=False)

    @tool("curl", args_schema=JudgeCurlRequest)
    @tool_boundary
    def curl(path: Optional[str] = None) -> str:
        """Request a path from the running dev server."""
        target = path or "/"
        if not target.startswith("/"):
            target = f"/{target}"
        url = f"{sandbox.public_url.rstrip('/')}{target}"
        result = ctx.execute(f"curl -s {shlex.quote(url)}")
        response = truncate_text(result.stdout, limits.curl_response_chars)
        return json_success(url=url, response=response.text, exit_code=result.exit_code)

    return [run_command, curl]


__all__ = [
    "RunCommandRequest",
    "StartDevServerRequest",
    "CurlRequest",
    "JudgeCurlRequest",
    "build_judge_command_tools",
    "build_worker_command_tools",
    "detect_start_command",
]
