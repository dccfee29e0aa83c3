"""
Prompt templates for the two agent roles and the instructions the controller
sends the worker between iterations.

The worker prompt establishes the explore, plan, change, verify rhythm and
points at the tools that keep context small (``edit_file``, ranged
``read_file``). The judge prompt pushes the judge to gather its own evidence
by running verification commands before ruling, and to always finish with a
verdict tool.
"""
from __future__ import annotations

from typing import Optional, Sequence

WORKER_BASE_PROMPT = """You are an expert software engineer. Your task is to complete coding tasks autonomously.

All your work happens in an isolated sandbox environment. You have full access to modify files and run commands.

## Guidelines:
1. First, explore the codebase to understand its structure (list files, read key files like package.json, README, etc.)
2. Plan your approach before making changes
3. Make incremental changes - modify one file at a time
4. After making changes, verify they work (run tests, type-check, lint, etc.)
5. When the task is complete and verified, use mark_complete to finish

## CRITICAL - Package Versions:
Before adding ANY new dependency, you MUST check the latest version using:
  npm view <package-name> version

Then use that exact version. NEVER guess or use outdated versions.

## Best Practices:
- Always read a file before modifying it
- For SMALL CHANGES (fixing imports, renaming, type errors), use edit_file instead of write_file
- edit_file is more token-efficient and prevents full file rewrites
- For LARGE FILES, use line_start/line_end in read_file to read specific sections
- Run tests frequently to catch issues early
- Be thorough but efficient
- You can start a dev server with start_dev_server and test it with curl

Sandbox dev server URL: {sandbox_url}"""

PROJECT_INSTRUCTIONS_HEADING = "## Project-Specific Instructions (from AGENTS.md)"

JUDGE_SYSTEM_PROMPT = """You are a code review judge. Your job is to verify that a coding task has been completed correctly.

## Your Process:
1. Run verification commands (type-check, build, tests) FIRST
2. If all verifications pass, use approve_task immediately
3. Only use request_changes if there are actual failures

## IMPORTANT:
- If type-check passes AND build passes, you should APPROVE
- Don't read every file - trust the verification commands
- Be efficient - run checks, then give verdict
- You MUST end with either approve_task or request_changes"""

JUDGE_REQUEST_TEMPLATE = """## Task Requirements:
{task}

## Work Summary from Coding Agent:
{summary}

## Files Modified:
{files}
{observed}
Run verification commands (type-check, build) and give your verdict."""

CONTINUE_INSTRUCTION = "Continue working on the task. Use mark_complete when finished and verified."

REJECTION_INSTRUCTION = (
    "The judge reviewed your work and requested changes:\n\n"
    "{feedback}\n\n"
    "Please address these issues and use mark_complete again when done."
)

APPROVAL_REASON = "Task complete: {summary}\n\nJudge verdict: {feedback}"

NO_VERDICT_APPROVAL = (
    "Judge completed review without explicit verdict. Auto-approving based on successful verification."
)
NO_VERDICT_REJECTION = (
    "Judge completed review without explicit verdict. Re-run the verification commands, "
    "fix any failures and use mark_complete again."
)
JUDGE_ERROR_APPROVAL = "Judge encountered an error. Auto-approving."


def build_worker_prompt(sandbox_url: str, agents_md: Optional[str] = None) -> str:
    """
    System prompt for the worker.

    Args:
        sandbox_url: Public URL of the dev server, quoted so the worker can test against it.
        agents_md: Contents of the project's ``AGENTS.md``; appended under its own heading when not blank.
    """
    prompt = WORKER_BASE_PROMPT.format(sandbox_url=sandbox_url)
    if agents_md and agents_md.strip():
        return f"{prompt}\n\n{PROJECT_INSTRUCTIONS_HEADING}\n\n{agents_md.strip()}"
    return prompt


def _file_block(paths: Sequence[str], limit: int) -> str:
    return "\n".join(list(paths)[:limit]) or "None reported"


def build_judge_request(
    task_prompt: str,
    summary: str,
    files_modified: Sequence[str],
    *,
    observed_files: Sequence[str] = (),
    prompt_chars: int = 3000,
    files_listed: int = 20,
) -> str:
    """
    Renders the judge's user message.

    The task excerpt and both file lists are capped; the observed list is
    only included when the controller saw files the claim does not mention.
    """
    observed = ""
    unreported = [path for path in observed_files if path not in set(files_modified)]
    if unreported:
        observed = f"\n## Files Touched but Not Reported:\n{_file_block(unreported, files_listed)}\n"
    return JUDGE_REQUEST_TEMPLATE.format(
        task=task_prompt[:prompt_chars],
        summary=summary,
        files=_file_block(files_modified, files_listed),
        observed=observed,
    )


__all__ = [
    "APPROVAL_REASON",
    "CONTINUE_INSTRUCTION",
    "JUDGE_ERROR_APPROVAL",
    "JUDGE_SYSTEM_PROMPT",
    "NO_VERDICT_APPROVAL",
    "NO_VERDICT_REJECTION",
    "REJECTION_INSTRUCTION",
    "WORKER_BASE_PROMPT",
    "build_judge_request",
    "build_worker_prompt",
]
