"""
This module provides the `ContextBudgeter`, which decides how much of a run's
iteration history the worker model sees on its next iteration.

The budgeter keeps every `IterationRecord` the controller hands it, but only
renders the most recent ones verbatim. When the rendered history would exceed
the token budget, iterations older than the retained window are collapsed into
a decision log (files touched, commands run, outcomes) and a small set of
"open files" whose content the worker last saw. Raw tool payloads of collapsed
iterations are discarded. The process is lossy: boundedness wins over
precision, and every collapse is reported as a `SummaryEvent`.
"""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, List, Optional

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage

from ralph_contracts import IterationRecord, ToolInvocationRecord
from ralph_tools.truncation import truncate_text

from .config import ContextBudgetConfig
from .run_log import preview_text

LOGGER = logging.getLogger(__name__)

_HISTORY_HINT = "Re-run the tool to see the full output"


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token, rounded up."""
    return (len(text or "") + 3) // 4


@dataclass(slots=True)
class ContextBudgetState:
    """
    Running bookkeeping for one loop run.

    Attributes:
        estimated_tokens: Estimate of the last rendered history.
        summarized_iterations: Iterations collapsed into the decision log so far.
        retained_iterations: Iterations currently rendered verbatim.
    """

    estimated_tokens: int = 0
    summarized_iterations: int = 0
    retained_iterations: int = 0

    def reset(self) -> None:
        self.estimated_tokens = 0
        self.summarized_iterations = 0
        self.retained_iterations = 0


@dataclass(frozen=True, slots=True)
class SummaryEvent:
    """Emitted when older iterations were collapsed into the summary block."""

    iteration: int
    summarized_iterations: int
    tokens_saved: int
    tokens_available: int


def _is_whole_file(output: Any) -> bool:
    """True when a ``read_file`` payload holds the complete file rather than a line range or preview."""
    return isinstance(output, dict) and not output.get("truncated") and "line_range" not in output


def _describe(result: ToolInvocationRecord) -> str:
    output = result.output if isinstance(result.output, dict) else {}
    args = result.arguments
    name = result.tool_name
    path = args.get("file_path") or output.get("file_path")
    if name == "run_command":
        exit_code = output.get("exit_code", "?")
        return f"ran `{preview_text(str(args.get('command', '')), 120)}` (exit {exit_code})"
    if not result.succeeded:
        error = output.get("error") or preview_text(str(result.output), 120)
        target = f" {path}" if path else ""
        return f"{name}{target} failed: {preview_text(str(error), 160)}"
    if name == "write_file":
        return f"wrote {path}"
    if name == "edit_file":
        return f"edited {path}"
    if name == "delete_file":
        return f"deleted {path}"
    if name == "read_file":
        return f"read {path}"
    if name == "mark_complete":
        return f"claimed completion: {preview_text(str(output.get('summary', '')), 200)}"
    if name == "start_dev_server":
        return f"started dev server ({output.get('command', '')})"
    if name == "curl":
        return f"requested {output.get('url', '')}"
    return f"{name} ok"


class ContextBudgeter:
    """
    Owns iteration history and the context budget state for one loop run.

    `record` appends a finished iteration. `ensure_within_budget` collapses old
    iterations when the next rendering would not fit, and `render` produces
    the message list for the next worker call.
    """

    def __init__(self, config: ContextBudgetConfig) -> None:
        self.config = config
        self.state = ContextBudgetState()
        self._history: List[IterationRecord] = []
        self._summarized = 0
        self._decision_log: List[str] = []
        self._dropped_log_entries = 0
        self._open_files: "OrderedDict[str, str]" = OrderedDict()

    @property
    def history(self) -> List[IterationRecord]:
        return list(self._history)

    @property
    def decision_log(self) -> List[str]:
        return list(self._decision_log)

    @property
    def open_files(self) -> List[str]:
        return list(self._open_files)

    def reset(self) -> None:
        self.state.reset()
        self._history.clear()
        self._summarized = 0
        self._decision_log.clear()
        self._dropped_log_entries = 0
        self._open_files.clear()

    def record(self, iteration: IterationRecord) -> None:
        """
        Appends a finished iteration to the history.

        Raises:
            ValueError: ``iteration.index`` does not directly follow the last recorded one.
        """
        if self._history and iteration.index != self._history[-1].index + 1:
            raise ValueError(
                f"Iteration {iteration.index} does not follow iteration {self._history[-1].index}"
            )
        self._history.append(iteration)
        self.state.retained_iterations = len(self._retained())

    def _retained(self) -> List[IterationRecord]:
        return self._history[self._summarized:]

    def estimate(self, task_prompt: str, instruction: str) -> int:
        """Estimated tokens of the messages ``render`` would produce right now."""
        return sum(estimate_tokens(str(message.content)) for message in self.render(task_prompt, instruction))

    def ensure_within_budget(self, task_prompt: str, instruction: str) -> Optional[SummaryEvent]:
        """
        Collapses iterations outside the retained window if the next rendering
        would exceed ``max_context_tokens``.

        Returns the `SummaryEvent` when a collapse happened, otherwise ``None``.
        The most recent ``recent_iterations_to_keep`` iterations are never
        collapsed, so the estimate may stay over budget.
        """
        before = self.estimate(task_prompt, instruction)
        self.state.estimated_tokens = before
        if before <= self.config.max_context_tokens or not self.config.enable_summarization:
            return None

        retained = self._retained()
        keep = max(self.config.recent_iterations_to_keep, 0)
        collapsible = retained[: len(retained) - keep] if keep else list(retained)
        if not collapsible:
            LOGGER.warning(
                "Context estimate %d exceeds budget %d but only the recent window remains",
                before,
                self.config.max_context_tokens,
            )
            return None

        for record in collapsible:
            self._absorb(record)
        self._summarized += len(collapsible)
        self._trim_decision_log()
        self._trim_open_files()

        after = self.estimate(task_prompt, instruction)
        self.state.estimated_tokens = after
        self.state.summarized_iterations = self._summarized
        self.state.retained_iterations = len(self._retained())
        event = SummaryEvent(
            iteration=self._history[-1].index + 1,
            summarized_iterations=len(collapsible),
            tokens_saved=max(before - after, 0),
            tokens_available=max(self.config.max_context_tokens - after, 0),
        )
        LOGGER.info(
            "Context summarized: %d iterations compressed, %d tokens saved, %d tokens available",
            event.summarized_iterations,
            event.tokens_saved,
            event.tokens_available,
        )
        return event

    def _absorb(self, record: IterationRecord) -> None:
        actions: List[str] = []
        for result in record.tool_results:
            actions.append(_describe(result))
            if not result.succeeded:
                continue
            path = result.arguments.get("file_path")
            if not path:
                continue
            if result.tool_name == "write_file":
                self._remember(path, str(result.arguments.get("content", "")))
            elif result.tool_name == "read_file":
                # Ranged and truncated reads are excerpts, not the file.
                if _is_whole_file(result.output):
                    self._remember(path, str(result.output.get("content", "")))
            elif result.tool_name in {"edit_file", "delete_file"}:
                self._open_files.pop(path, None)
        entry = f"Iteration {record.index}: " + ("; ".join(actions) if actions else "no tool calls")
        self._decision_log.append(entry)

    def _remember(self, path: str, content: str) -> None:
        self._open_files[path] = content
        self._open_files.move_to_end(path)

    def _trim_decision_log(self) -> None:
        budget = self.config.change_log_budget
        while len(self._decision_log) > 1 and estimate_tokens("\n".join(self._decision_log)) > budget:
            self._decision_log.pop(0)
            self._dropped_log_entries += 1

    def _trim_open_files(self) -> None:
        budget = self.config.file_context_budget
        while self._open_files and sum(estimate_tokens(text) for text in self._open_files.values()) > budget:
            path, _ = self._open_files.popitem(last=False)
            LOGGER.debug("Evicted %s from open-file context", path)

    def _header(self, task_prompt: str) -> str:
        sections = [task_prompt]
        if self._decision_log:
            lines = list(self._decision_log)
            if self._dropped_log_entries:
                lines.insert(0, f"({self._dropped_log_entries} earlier iterations omitted)")
            sections.append(
                f"## Progress so far (iterations 1-{self._summarized}, summarized):\n" + "\n".join(lines)
            )
        if self._open_files:
            blocks = [f"### {path}\n```\n{content}\n```" for path, content in self._open_files.items()]
            sections.append("## Open files (last known content):\n\n" + "\n\n".join(blocks))
        return "\n\n".join(sections)

    def _transcript(self, record: IterationRecord) -> str:
        cap = self.config.max_tool_output_chars
        parts: List[str] = []
        if record.text.strip():
            parts.append(record.text.strip())
        for result in record.tool_results:
            arguments = json.dumps(result.arguments, ensure_ascii=False, default=str)
            output = result.output if isinstance(result.output, str) else json.dumps(result.output, default=str)
            capped = truncate_text(output, cap, hint=_HISTORY_HINT)
            parts.append(f"[{result.tool_name}] {preview_text(arguments, 300)}\n-> {capped.text}")
        return "\n\n".join(parts) or f"(iteration {record.index} produced no output)"

    def render(self, task_prompt: str, instruction: str) -> List[AnyMessage]:
        """
        Message list for the next worker call.

        The first human message carries the task prompt, the decision log and
        open files. Retained iterations follow as assistant transcripts, each
        preceded by the instruction it answered; ``instruction`` closes the list.
        """
        header = self._header(task_prompt)
        if not self._history:
            return [HumanMessage(content=header)]

        retained = self._retained()
        if not retained:
            return [HumanMessage(content=f"{header}\n\n{instruction}")]

        messages: List[AnyMessage] = []
        for position, record in enumerate(retained):
            if position == 0:
                opening = header if record.index == 1 else f"{header}\n\n{record.instruction}"
                messages.append(HumanMessage(content=opening))
            else:
                messages.append(HumanMessage(content=record.instruction))
            messages.append(AIMessage(content=self._transcript(record)))
        messages.append(HumanMessage(content=instruction))
        return messages


__all__ = ["ContextBudgetState", "ContextBudgeter", "SummaryEvent", "estimate_tokens"]
