"""The worker session: the model-driven role that edits the project and declares completion."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from langchain_core.messages import AnyMessage
from langchain_core.tools import BaseTool

from ralph_contracts import CompletionClaim, ToolInvocationRecord
from ralph_tools import ToolContext, get_worker_tools
from ralph_tools.tools.completion import MARK_COMPLETE

from .generation import GenerationResult, ModelGenerator
from .prompts import build_worker_prompt
from .task import ProjectContext

LOGGER = logging.getLogger(__name__)


def extract_claim(results: Iterable[ToolInvocationRecord]) -> Optional[CompletionClaim]:
    """The last successful ``mark_complete`` payload among ``results``, as a claim."""
    claim: Optional[CompletionClaim] = None
    for record in results:
        if record.tool_name != MARK_COMPLETE:
            continue
        candidate = CompletionClaim.from_payload(record.output)
        if candidate is not None:
            claim = candidate
    return claim


class WorkerSession:
    """
    Holds the worker's instructions and tool surface for one loop run.

    The session keeps no conversation state: every iteration is driven by
    the message list the controller renders from its own history.
    """

    def __init__(
        self,
        generator: ModelGenerator,
        tools: Sequence[BaseTool],
        system_prompt: str,
        *,
        step_limit: int = 20,
    ) -> None:
        self.generator = generator
        self.tools: List[BaseTool] = list(tools)
        self.system_prompt = system_prompt
        self.step_limit = step_limit

    @classmethod
    def for_context(
        cls,
        generator: ModelGenerator,
        ctx: ToolContext,
        project: ProjectContext,
        *,
        step_limit: int = 20,
        include_browser: bool = True,
    ) -> "WorkerSession":
        """
        Builds a session for the sandbox behind ``ctx``.

        Args:
            generator: Model used for every worker step.
            ctx: Tool context bound to the sandbox being edited.
            project: Project files whose ``AGENTS.md`` is appended to the system prompt.
            step_limit: Maximum model steps per iteration.
            include_browser: Whether the Playwright tools are offered.
        """
        prompt = build_worker_prompt(ctx.sandbox.public_url, project.agents_md)
        return cls(
            generator,
            get_worker_tools(ctx, include_browser=include_browser),
            prompt,
            step_limit=step_limit,
        )

    def run_iteration(self, messages: Sequence[AnyMessage]) -> GenerationResult:
        """Runs one worker iteration over ``messages`` and returns every step it took."""
        result = self.generator.generate(self.system_prompt, messages, self.tools, self.step_limit)
        LOGGER.info(
            "Worker finished after %d steps (%d tool calls)", len(result.steps), len(result.tool_results())
        )
        return result


__all__ = ["WorkerSession", "extract_claim"]
