"""
The judge session: an independent, short-lived reviewer of completion claims.

Each review starts from a fresh conversation with a read-mostly tool surface
and the two verdict tools. The model is bound with ``tool_choice="any"`` so
every step is a tool call, and the review stops as soon as a verdict tool
returns. Nothing from one review is carried into the next.

Two policies decide what happens when the judge does not produce a verdict:

- the step budget runs out first: ``no_verdict_policy`` (approve by default)
- the session itself errors: approve with a note, logged as a judge error
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from langchain_core.messages import HumanMessage
from langchain_core.tools import BaseTool

from ralph_contracts import CompletionClaim, JudgeError, ToolInvocationRecord, Verdict
from ralph_tools import ToolContext, get_judge_tools
from ralph_tools.tools.completion import APPROVE_TASK, REQUEST_CHANGES, VERDICT_TOOLS

from .config import NoVerdictPolicy
from .generation import ModelGenerator
from .prompts import (
    JUDGE_ERROR_APPROVAL,
    JUDGE_SYSTEM_PROMPT,
    NO_VERDICT_APPROVAL,
    NO_VERDICT_REJECTION,
    build_judge_request,
)

LOGGER = logging.getLogger(__name__)


def _is_verdict(records: List[ToolInvocationRecord]) -> bool:
    return any(record.tool_name in VERDICT_TOOLS and record.succeeded for record in records)


def verdict_from_results(results: Iterable[ToolInvocationRecord]) -> Optional[Verdict]:
    """The first verdict tool result, converted to a `Verdict`."""
    for record in results:
        if not record.succeeded:
            continue
        output = record.output
        if record.tool_name == APPROVE_TASK:
            return Verdict.approve(str(output.get("reason", "")))
        if record.tool_name == REQUEST_CHANGES:
            return Verdict.reject(
                [str(issue) for issue in output.get("issues") or []],
                [str(suggestion) for suggestion in output.get("suggestions") or []],
            )
    return None


class JudgeSession:
    """
    Runs the judge agent against a worker's completion claim.

    The judge gets read-only tools plus the two verdict tools and a bounded
    number of model steps. If it never records a verdict the session falls
    back to ``no_verdict_policy``.

    Args:
        generator: Model used for every judge step.
        tools: Inspection and verdict tools bound to the judged sandbox.
        step_limit: Maximum model steps per review.
        no_verdict_policy: ``"approve"`` or ``"reject"`` when no verdict tool was called.
        prompt_chars: Characters of the task prompt quoted in the review request.
        files_listed: Claimed files listed in the review request.
    """

    def __init__(
        self,
        generator: ModelGenerator,
        tools: Sequence[BaseTool],
        *,
        step_limit: int = 10,
        no_verdict_policy: NoVerdictPolicy = "approve",
        prompt_chars: int = 3000,
        files_listed: int = 20,
    ) -> None:
        self.generator = generator
        self.tools: List[BaseTool] = list(tools)
        self.step_limit = step_limit
        self.no_verdict_policy = no_verdict_policy
        self.prompt_chars = prompt_chars
        self.files_listed = files_listed

    @classmethod
    def for_context(cls, generator: ModelGenerator, ctx: ToolContext, **kwargs) -> "JudgeSession":
        """Builds a session whose tools operate on ``ctx``; ``kwargs`` go to the constructor."""
        return cls(generator, get_judge_tools(ctx), **kwargs)

    def _default_verdict(self) -> Verdict:
        if self.no_verdict_policy == "reject":
            return Verdict.reject([NO_VERDICT_REJECTION], explicit=False)
        return Verdict.approve(NO_VERDICT_APPROVAL, explicit=False)

    def review(
        self,
        task_prompt: str,
        claim: CompletionClaim,
        observed_files: Sequence[str] = (),
    ) -> Verdict:
        """
        Runs one review of ``claim`` and returns exactly one verdict.

        Never raises: a failing judge session is reported as a non-explicit
        approval so the run keeps moving.
        """
        request = build_judge_request(
            task_prompt,
            claim.summary,
            claim.files_modified,
            observed_files=observed_files,
            prompt_chars=self.prompt_chars,
            files_listed=self.files_listed,
        )
        LOGGER.info("Judge reviewing (%d files claimed)", len(claim.files_modified))
        try:
            result = self.generator.generate(
                JUDGE_SYSTEM_PROMPT,
                [HumanMessage(content=request)],
                self.tools,
                self.step_limit,
                require_tool=True,
                stop_when=_is_verdict,
            )
        except Exception as exc:  # noqa: BLE001 - a broken judge must not end the run
            error = JudgeError(f"Judge session failed: {exc}")
            LOGGER.error("%s", error, exc_info=True)
            return Verdict.approve(JUDGE_ERROR_APPROVAL, explicit=False)

        records = result.tool_results()
        LOGGER.info("Judge made %d steps", len(result.steps))
        for record in records:
            LOGGER.debug("Judge called %s", record.tool_name)

        verdict = verdict_from_results(records)
        if verdict is None:
            LOGGER.warning(
                "Judge did not call %s or %s; applying %r policy", APPROVE_TASK, REQUEST_CHANGES, self.no_verdict_policy
            )
            return self._default_verdict()
        if verdict.approved:
            LOGGER.info("Judge APPROVED: %s", verdict.reason[:100])
        else:
            LOGGER.info("Judge REQUESTED CHANGES (%d issues)", len(verdict.issues))
        return verdict


__all__ = ["JudgeSession", "verdict_from_results"]
