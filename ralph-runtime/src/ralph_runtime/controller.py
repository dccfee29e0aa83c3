"""
This module provides the `IterationController`, the state machine that drives
one Ralph loop run from the task prompt to a terminal `LoopResult`.

The controller is compiled as a LangGraph `StateGraph` with three nodes:

- ``iterate``: one worker iteration over the budgeted history. A completion
  claim routes to ``judge``; reaching the iteration ceiling routes to
  ``exhausted``; otherwise the graph loops back to ``iterate``.
- ``judge``: one judge review of the pending claim. Approval ends the run.
  A rejection becomes the worker's next instruction and the loop continues,
  unless the ceiling has been reached.
- ``exhausted``: records the budget-exhausted outcome.

A fault of the model-invocation collaborator ends the run in the ``failed``
state. Whatever the terminal state, and also when the run is interrupted,
result sync runs exactly once before `run` returns or re-raises.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypedDict

from langgraph.graph import END, START, StateGraph

from ralph_contracts import (
    BudgetExhausted,
    CompletionClaim,
    FileAction,
    IterationRecord,
    LoopResult,
    LoopStatus,
    RalphError,
    SyncReport,
    ToolInvocationRecord,
    Verdict,
)
from ralph_tools import ToolContext, policy_from_allowlist
from ralph_tools.sandbox import Sandbox

from .budget import ContextBudgeter, SummaryEvent
from .config import LoopConfig
from .generation import ChatModelGenerator, ModelGenerator, ModelInvocationError
from .judge import JudgeSession
from .prompts import APPROVAL_REASON, CONTINUE_INSTRUCTION, REJECTION_INSTRUCTION
from .run_log import RunEventLog, preview_text
from .sync import ResultSync
from .task import ProjectContext
from .worker import WorkerSession, extract_claim

LOGGER = logging.getLogger(__name__)

_FILE_ACTIONS: Dict[str, FileAction] = {
    "write_file": FileAction.WRITE,
    "edit_file": FileAction.EDIT,
    "delete_file": FileAction.DELETE,
}


class LoopState(TypedDict, total=False):
    """Graph state carried between the worker and judge nodes."""

    iteration: int
    instruction: str
    status: LoopStatus
    claim: Optional[CompletionClaim]
    last_claim: Optional[CompletionClaim]
    verdict: Optional[Verdict]
    reason: str
    text: str


@dataclass
class LoopHooks:
    """Optional callbacks fired as the loop progresses. Hook errors propagate."""

    on_iteration_start: Optional[Callable[[int, str], None]] = None
    on_iteration_end: Optional[Callable[[IterationRecord], None]] = None
    on_context_summarized: Optional[Callable[[SummaryEvent], None]] = None


def normalize_path(path: str) -> str:
    """Strips whitespace and leading ``./`` so equal paths compare equal."""
    normalized = path.strip()
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def track_touched_files(results: List[ToolInvocationRecord], touched: Dict[str, FileAction]) -> None:
    """Records the last successful file mutation per path into ``touched``."""
    for record in results:
        action = _FILE_ACTIONS.get(record.tool_name)
        if action is None or not record.succeeded:
            continue
        path = record.arguments.get("file_path")
        if isinstance(path, str) and path.strip():
            touched[normalize_path(path)] = action


class IterationController:
    """
    Runs the worker/judge loop for one task.

    The controller exclusively owns the iteration history (through its
    `ContextBudgeter`), the pending completion claim and the touched-file
    map. Worker and judge sessions share nothing but the sandbox.
    """

    def __init__(
        self,
        worker: WorkerSession,
        judge: JudgeSession,
        *,
        max_iterations: int = 20,
        budgeter: Optional[ContextBudgeter] = None,
        sync: Optional[ResultSync] = None,
        hooks: Optional[LoopHooks] = None,
        run_log: Optional[RunEventLog] = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.worker = worker
        self.judge = judge
        self.max_iterations = max_iterations
        self.budgeter = budgeter or ContextBudgeter(LoopConfig().context)
        self.sync = sync
        self.hooks = hooks or LoopHooks()
        self.run_log = run_log
        self.touched_files: Dict[str, FileAction] = {}
        self._task_prompt = ""
        self._graph = self._build_graph()

    def _build_graph(self):
        workflow = StateGraph(LoopState)
        workflow.add_node("iterate", self._iterate)
        workflow.add_node("judge", self._judge)
        workflow.add_node("exhausted", self._exhausted)

        workflow.add_edge(START, "iterate")
        workflow.add_conditional_edges(
            "iterate",
            self._route_after_iterate,
            {"judge": "judge", "iterate": "iterate", "exhausted": "exhausted", END: END},
        )
        workflow.add_conditional_edges(
            "judge",
            self._route_after_judge,
            {"iterate": "iterate", "exhausted": "exhausted", END: END},
        )
        workflow.add_edge("exhausted", END)
        return workflow.compile()

    @property
    def recursion_limit(self) -> int:
        return self.max_iterations * 3 + 5

    def _record_event(self, event: str, payload: Dict[str, Any]) -> None:
        if self.run_log is not None:
            self.run_log.record(event, payload)

    def _iterate(self, state: LoopState) -> Dict[str, Any]:
        index = state.get("iteration", 0) + 1
        instruction = state.get("instruction") or self._task_prompt
        LOGGER.info("Iteration %d/%d", index, self.max_iterations)
        if self.hooks.on_iteration_start:
            self.hooks.on_iteration_start(index, instruction)

        summary = self.budgeter.ensure_within_budget(self._task_prompt, instruction)
        if summary is not None:
            self._record_event(
                "context_summarized",
                {
                    "iteration": summary.iteration,
                    "summarized_iterations": summary.summarized_iterations,
                    "tokens_saved": summary.tokens_saved,
                    "tokens_available": summary.tokens_available,
                },
            )
            if self.hooks.on_context_summarized:
                self.hooks.on_context_summarized(summary)

        messages = self.budgeter.render(self._task_prompt, instruction)
        started = time.monotonic()
        try:
            result = self.worker.run_iteration(messages)
        except ModelInvocationError as exc:
            LOGGER.error("Iteration %d failed: %s", index, exc)
            return {
                "iteration": index,
                "status": LoopStatus.FAILED,
                "reason": f"Model invocation failed during iteration {index}: {exc}",
            }

        tool_results = result.tool_results()
        claim = extract_claim(tool_results)
        record = IterationRecord(
            index=index,
            instruction=instruction,
            text=result.text,
            tool_results=tool_results,
            duration_seconds=time.monotonic() - started,
            claimed_completion=claim is not None,
        )
        self.budgeter.record(record)
        track_touched_files(tool_results, self.touched_files)
        LOGGER.info("Iteration %d took %.1fs (%d tool calls)", index, record.duration_seconds, len(tool_results))
        self._record_event(
            "iteration_end",
            {
                "iteration": index,
                "duration_seconds": round(record.duration_seconds, 3),
                "tools": [item.tool_name for item in tool_results],
                "claimed_completion": record.claimed_completion,
                "text": preview_text(result.text),
            },
        )
        if self.hooks.on_iteration_end:
            self.hooks.on_iteration_end(record)

        update: Dict[str, Any] = {
            "iteration": index,
            "text": result.text,
            "claim": claim,
            "instruction": CONTINUE_INSTRUCTION,
            "status": LoopStatus.AWAITING_JUDGE if claim else LoopStatus.RUNNING,
        }
        if claim is not None:
            update["last_claim"] = claim
        return update

    def _route_after_iterate(self, state: LoopState) -> str:
        if state.get("status") is LoopStatus.FAILED:
            return END
        if state.get("claim") is not None:
            return "judge"
        if state.get("iteration", 0) >= self.max_iterations:
            return "exhausted"
        return "iterate"

    def _judge(self, state: LoopState) -> Dict[str, Any]:
        claim = state["claim"]
        verdict = self.judge.review(self._task_prompt, claim, observed_files=sorted(self.touched_files))
        feedback = verdict.feedback()
        self._record_event(
            "judge_verdict",
            {
                "iteration": state.get("iteration", 0),
                "approved": verdict.approved,
                "explicit": verdict.explicit,
                "feedback": preview_text(feedback),
            },
        )
        if verdict.approved:
            LOGGER.info("Task approved by judge")
            return {
                "claim": None,
                "verdict": verdict,
                "status": LoopStatus.APPROVED,
                "reason": APPROVAL_REASON.format(summary=claim.summary, feedback=feedback),
            }
        LOGGER.info("Sending judge feedback to the worker: %s", preview_text(feedback, 150))
        return {
            "claim": None,
            "verdict": verdict,
            "status": LoopStatus.RUNNING,
            "instruction": REJECTION_INSTRUCTION.format(feedback=feedback),
        }

    def _route_after_judge(self, state: LoopState) -> str:
        if state.get("status") is LoopStatus.APPROVED:
            return END
        if state.get("iteration", 0) >= self.max_iterations:
            return "exhausted"
        return "iterate"

    def _exhausted(self, state: LoopState) -> Dict[str, Any]:
        error = BudgetExhausted(self.max_iterations)
        LOGGER.warning("%s", error)
        return {"status": LoopStatus.EXHAUSTED, "reason": str(error)}

    def _finish_sync(self) -> tuple[Optional[SyncReport], Optional[str]]:
        if self.sync is None:
            return None, None
        deleted = [path for path, action in self.touched_files.items() if action is FileAction.DELETE]
        try:
            return self.sync.pull(deleted), None
        except (RalphError, OSError) as exc:
            LOGGER.error("Result sync failed: %s", exc)
            return None, str(exc)

    def run(self, task_prompt: str) -> LoopResult:
        """
        Runs the loop to a terminal state and returns its `LoopResult`.

        ``KeyboardInterrupt`` propagates, after result sync has run.
        """
        self._task_prompt = task_prompt
        self.budgeter.reset()
        self.touched_files = {}
        started = time.monotonic()
        initial: LoopState = {"iteration": 0, "instruction": task_prompt, "status": LoopStatus.RUNNING}
        final: Dict[str, Any] = {}
        sync_report: Optional[SyncReport] = None
        sync_error: Optional[str] = None
        try:
            final = self._graph.invoke(initial, config={"recursion_limit": self.recursion_limit})
        except KeyboardInterrupt:
            LOGGER.warning("Interrupted; syncing results before exit")
            self._record_event("loop_interrupted", {"iterations": len(self.budgeter.history)})
            raise
        finally:
            sync_report, sync_error = self._finish_sync()

        status = final.get("status", LoopStatus.FAILED)
        loop_result = LoopResult(
            status=status,
            iterations=final.get("iteration", 0),
            elapsed_seconds=time.monotonic() - started,
            reason=final.get("reason", ""),
            text=final.get("text", ""),
            claim=final.get("last_claim"),
            verdict=final.get("verdict"),
            touched_files=dict(self.touched_files),
            sync=sync_report,
            sync_error=sync_error,
        )
        self._record_event(
            "loop_finished",
            {
                "status": loop_result.status.value,
                "iterations": loop_result.iterations,
                "elapsed_seconds": round(loop_result.elapsed_seconds, 3),
                "reason": preview_text(loop_result.reason),
            },
        )
        LOGGER.info("Loop finished: %s after %d iterations", loop_result.status.value, loop_result.iterations)
        return loop_result


def create_controller(
    config: LoopConfig,
    sandbox: Sandbox,
    *,
    local_dir: Optional[Path] = None,
    project: Optional[ProjectContext] = None,
    worker_generator: Optional[ModelGenerator] = None,
    judge_generator: Optional[ModelGenerator] = None,
    hooks: Optional[LoopHooks] = None,
    include_browser: bool = True,
) -> IterationController:
    """Wires sessions, budgeter, sync and run log from a `LoopConfig`."""
    ctx = ToolContext(sandbox=sandbox, limits=config.tools, policy=policy_from_allowlist(config.command_allowlist))
    project = project or ProjectContext(sandbox)
    worker_generator = worker_generator or ChatModelGenerator.from_model_name(config.model)
    if judge_generator is None:
        if config.resolved_judge_model == config.model and isinstance(worker_generator, ChatModelGenerator):
            judge_generator = worker_generator
        else:
            judge_generator = ChatModelGenerator.from_model_name(config.resolved_judge_model)

    worker = WorkerSession.for_context(
        worker_generator,
        ctx,
        project,
        step_limit=config.worker_step_limit,
        include_browser=include_browser,
    )
    judge = JudgeSession.for_context(
        judge_generator,
        ctx,
        step_limit=config.judge_step_limit,
        no_verdict_policy=config.judge_default_verdict,
        prompt_chars=config.judge_prompt_chars,
        files_listed=config.judge_files_listed,
    )
    sync = (
        ResultSync(sandbox, local_dir, propagate_deletions=config.propagate_deletions)
        if local_dir is not None
        else None
    )
    run_log = RunEventLog(config.run_log_dir) if config.run_log_dir else None
    return IterationController(
        worker,
        judge,
        max_iterations=config.max_iterations,
        budgeter=ContextBudgeter(config.context),
        sync=sync,
        hooks=hooks,
        run_log=run_log,
    )


__all__ = [
    "IterationController",
    "LoopHooks",
    "LoopState",
    "create_controller",
    "normalize_path",
    "track_touched_files",
]
