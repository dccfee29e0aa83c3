"""
Command-line entry point: ``ralph <target-dir> [prompt-or-file]``.

Copies the target project into a fresh sandbox, resolves the task prompt,
runs the worker/judge loop and copies the results back. Exit codes: 0 when
the judge approved, 1 on failure, 2 when the iteration budget ran out and
130 when interrupted.
"""
from __future__ import annotations

import argparse
import logging
import shutil
import sys
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from ralph_contracts import LoopResult, LoopStatus, RalphError
from ralph_tools.sandbox import DockerSandbox, LocalSandbox, Sandbox

from .config import LoopConfig
from .controller import LoopHooks, create_controller
from .generation import ModelInvocationError
from .logging_utils import configure_logging
from .sync import ResultSync
from .task import TaskPromptError, resolve_task_prompt

LOGGER = logging.getLogger(__name__)

PREVIEW_CHARS = 500
EXIT_CODES = {
    LoopStatus.APPROVED: 0,
    LoopStatus.FAILED: 1,
    LoopStatus.EXHAUSTED: 2,
}
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Command line parser for ``ralph TARGET [PROMPT]``."""
    parser = argparse.ArgumentParser(
        prog="ralph",
        description="Run an autonomous coding agent in a sandbox until a judge approves the work.",
    )
    parser.add_argument("target", help="Local project directory (created if missing)")
    parser.add_argument(
        "prompt",
        nargs="?",
        help="Task prompt, or a path to a .md file containing it (defaults to PROMPT.md in the project)",
    )
    parser.add_argument(
        "--sandbox",
        choices=["docker", "local"],
        default="docker",
        help=(
            "Sandbox backend. 'local' runs commands on this host in a scratch copy of the "
            "project, with no isolation; it never kills processes on the dev-server port"
        ),
    )
    parser.add_argument("--model", help="Worker model, e.g. anthropic:claude-opus-4-5")
    parser.add_argument("--judge-model", help="Judge model (defaults to the worker model)")
    parser.add_argument("--max-iterations", type=int, help="Iteration ceiling")
    parser.add_argument("--no-browser", action="store_true", help="Do not give the worker Playwright tools")
    parser.add_argument("--log-level", help="Log level (overrides RALPH_LOG_LEVEL)")
    parser.add_argument("--yes", "-y", action="store_true", help="Start without asking for confirmation")
    return parser


def apply_overrides(config: LoopConfig, args: argparse.Namespace) -> LoopConfig:
    """Applies command line flags on top of the environment configuration, in place."""
    if args.model:
        config.model = args.model
    if args.judge_model:
        config.judge_model = args.judge_model
    if args.max_iterations is not None:
        config.max_iterations = max(args.max_iterations, 1)
    return config


def prompt_preview(prompt: str, limit: int = PREVIEW_CHARS) -> str:
    return f"{prompt[:limit]}..." if len(prompt) > limit else prompt


def create_sandbox(kind: str, config: LoopConfig) -> Tuple[Sandbox, Optional[Path]]:
    """Returns the sandbox and, for the local backend, its scratch directory."""
    timeout = config.tools.command_timeout
    if kind == "local":
        scratch = Path(tempfile.mkdtemp(prefix="ralph-sandbox-"))
        return LocalSandbox(scratch, port=config.server_port, default_timeout=timeout), scratch
    sandbox = DockerSandbox.create(image=config.docker_image, port=config.server_port, default_timeout=timeout)
    return sandbox, None


def _confirm(question: str) -> bool:
    try:
        answer = input(f"{question} [Y/n] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"", "y", "yes"}


def print_result(result: LoopResult) -> None:
    """Prints the final status, iteration count, summary, notes and sync outcome."""
    print()
    print("=== Result ===")
    print(f"Status: {result.status.value}")
    print(f"Iterations: {result.iterations}")
    print(f"Total time: {round(result.elapsed_seconds)}s")
    if result.reason:
        print()
        print("=== Summary ===")
        print(result.reason)
    print()
    print("=== Final Notes ===")
    print(result.text)
    if result.sync is not None:
        print()
        print(f"Copied {len(result.sync.copied)} files back ({len(result.sync.deleted)} deleted)")
    if result.sync_error:
        print(f"Result sync failed: {result.sync_error}")


def _log_iteration_start(iteration: int, instruction: str) -> None:
    print(f"\n=== Iteration {iteration} ===")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point of the ``ralph`` command.

    Args:
        argv: Arguments without the program name; defaults to ``sys.argv[1:]``.

    Returns:
        0 when the judge approved the work or the user cancelled, 1 when setup
        or the run failed, 2 when the iteration limit was reached, 130 on Ctrl-C.
    """
    load_dotenv()
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)

    config = apply_overrides(LoopConfig.from_environment(), args)
    target = Path(args.target).expanduser().resolve()
    if not target.exists():
        target.mkdir(parents=True)
        LOGGER.info("Created %s", target)

    print(f"Local target: {target}")
    print("All code runs in an isolated sandbox; changes are copied back when the run ends.")

    try:
        sandbox, scratch = create_sandbox(args.sandbox, config)
    except RalphError as exc:
        print(f"Could not create sandbox: {exc}", file=sys.stderr)
        return 1

    try:
        ResultSync(sandbox, target).push()
        try:
            prompt = resolve_task_prompt(args.prompt, sandbox, base_dir=target)
        except TaskPromptError as exc:
            print(str(exc), file=sys.stderr)
            return 1

        print("\n=== Task ===")
        print(prompt_preview(prompt))
        if not args.yes and not _confirm("Start the agent?"):
            print("Cancelled.")
            return 0

        controller = create_controller(
            config,
            sandbox,
            local_dir=target,
            hooks=LoopHooks(on_iteration_start=_log_iteration_start),
            include_browser=not args.no_browser,
        )
        print(f"Dev server URL: {sandbox.public_url}")
        result = controller.run(prompt)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except (RalphError, ModelInvocationError) as exc:
        LOGGER.error("Run failed: %s", exc, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        sandbox.close()
        if scratch is not None:
            shutil.rmtree(scratch, ignore_errors=True)

    print_result(result)
    return EXIT_CODES.get(result.status, 1)


__all__ = ["apply_overrides", "build_parser", "create_sandbox", "main", "prompt_preview"]
