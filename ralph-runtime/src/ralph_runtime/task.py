"""Task prompt resolution and per-run project facts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Optional

from ralph_tools.sandbox import Sandbox

LOGGER = logging.getLogger(__name__)

PROMPT_FILE = "PROMPT.md"
AGENTS_FILE = "AGENTS.md"


class TaskPromptError(RuntimeError):
    """No task prompt was given and the project has no PROMPT.md."""


def _decode(raw: Optional[bytes]) -> Optional[str]:
    if raw is None:
        return None
    text = raw.decode("utf-8", errors="replace").strip()
    return text or None


def resolve_task_prompt(argument: Optional[str], sandbox: Sandbox, *, base_dir: Optional[Path] = None) -> str:
    """
    Resolves the task prompt for a run.

    A command-line argument ending in ``.md`` that names an existing file is
    read from disk; any other argument is taken literally. Without an
    argument, ``PROMPT.md`` in the sandbox project root is used.

    Raises:
        TaskPromptError: if nothing yields a non-empty prompt.
    """
    if argument and argument.strip():
        candidate = Path(argument).expanduser()
        if not candidate.is_absolute() and base_dir is not None and not candidate.exists():
            candidate = base_dir / candidate
        if argument.endswith(".md") and candidate.is_file():
            LOGGER.info("Reading task prompt from %s", candidate)
            text = candidate.read_text(encoding="utf-8").strip()
            if not text:
                raise TaskPromptError(f"Prompt file is empty: {candidate}")
            return text
        return argument.strip()

    prompt = _decode(sandbox.read_file(PROMPT_FILE))
    if prompt:
        LOGGER.info("Using %s from the project", PROMPT_FILE)
        return prompt
    raise TaskPromptError(
        f"No task prompt given and no {PROMPT_FILE} found in the project. "
        "Pass a prompt string or a path to a .md file."
    )


@dataclass
class ProjectContext:
    """
    Project facts computed once per run and passed to whoever needs them.

    Each property reads the sandbox on first access only.
    """

    sandbox: Sandbox

    @cached_property
    def agents_md(self) -> Optional[str]:
        text = _decode(self.sandbox.read_file(AGENTS_FILE))
        if text:
            LOGGER.info("Found %s, appending project instructions", AGENTS_FILE)
        return text


__all__ = ["AGENTS_FILE", "PROMPT_FILE", "ProjectContext", "TaskPromptError", "resolve_task_prompt"]
