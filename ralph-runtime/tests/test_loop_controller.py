from __future__ import annotations

from pathlib import Path
from typing import List
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage

from ralph_contracts import FileAction, IterationRecord, LoopStatus, ToolInvocationRecord
from ralph_runtime.budget import SummaryEvent
from ralph_runtime.config import ContextBudgetConfig
from ralph_runtime.controller import LoopHooks, track_touched_files
from ralph_runtime.prompts import CONTINUE_INSTRUCTION
from ralph_runtime.run_log import RunEventLog
from ralph_runtime.sync import ResultSync
from tests.conftest import build_controller, scripted, tool_call


def test_continue_instruction_follows_an_iteration_without_claim(sandbox) -> None:
    starts: List[tuple] = []
    worker = scripted(AIMessage(content="exploring"), AIMessage(content="still exploring"))
    controller = build_controller(
        sandbox,
        worker,
        scripted(),
        max_iterations=2,
        hooks=LoopHooks(on_iteration_start=lambda index, instruction: starts.append((index, instruction))),
    )

    result = controller.run("Build it")

    assert result.status is LoopStatus.EXHAUSTED
    assert starts == [(1, "Build it"), (2, CONTINUE_INSTRUCTION)]
    assert result.text == "still exploring"


def test_iteration_end_hook_receives_records_in_order(sandbox) -> None:
    records: List[IterationRecord] = []
    worker = scripted(
        tool_call("write_file", {"file_path": "a.txt", "content": "hi"}),
        AIMessage(content="wrote a"),
        AIMessage(content="idle"),
    )
    controller = build_controller(
        sandbox,
        worker,
        scripted(),
        max_iterations=2,
        hooks=LoopHooks(on_iteration_end=records.append),
    )

    controller.run("task")

    assert [record.index for record in records] == [1, 2]
    assert records[0].invocations("write_file")[0].succeeded
    assert records[0].duration_seconds >= 0
    assert records[1].tool_results == []


def test_rejection_on_final_slot_ends_exhausted(sandbox) -> None:
    worker = scripted(tool_call("mark_complete", {"summary": "done"}), AIMessage(content="done"))
    judge = scripted(tool_call("request_changes", {"issues": ["Build fails"]}))
    controller = build_controller(sandbox, worker, judge, max_iterations=1)

    result = controller.run("task")

    assert result.status is LoopStatus.EXHAUSTED
    assert result.iterations == 1
    assert result.verdict is not None and result.verdict.approved is False
    assert result.claim is not None and result.claim.summary == "done"
    assert result.reason == "Reached max iterations (1) without approved completion"


def test_last_claim_in_an_iteration_wins(sandbox) -> None:
    worker = scripted(
        tool_call("mark_complete", {"summary": "first"}),
        tool_call("mark_complete", {"summary": "second", "files_modified": ["b.ts"]}),
        AIMessage(content="done"),
    )
    judge = scripted(tool_call("approve_task", {"reason": "ok"}))
    controller = build_controller(sandbox, worker, judge)

    result = controller.run("task")

    assert result.approved
    assert result.claim.summary == "second"
    assert "Files Modified:\nb.ts" in judge.received[0][1].content


def test_touched_files_track_last_successful_action(sandbox) -> None:
    sandbox.write_file("old.txt", b"bye")
    worker = scripted(
        tool_call("write_file", {"file_path": "./a.txt", "content": "one"}),
        tool_call("edit_file", {"file_path": "a.txt", "old_string": "one", "new_string": "two"}),
        tool_call("delete_file", {"file_path": "old.txt"}),
        tool_call("edit_file", {"file_path": "missing.txt", "old_string": "x", "new_string": "y"}),
        AIMessage(content="done"),
    )
    controller = build_controller(sandbox, worker, scripted(), max_iterations=1)

    result = controller.run("task")

    assert result.touched_files == {"a.txt": FileAction.EDIT, "old.txt": FileAction.DELETE}


def test_track_touched_files_ignores_failures() -> None:
    touched = {}
    track_touched_files(
        [
            ToolInvocationRecord(
                tool_name="write_file",
                arguments={"file_path": "x"},
                output={"success": False, "error": "denied"},
            ),
            ToolInvocationRecord(tool_name="read_file", arguments={"file_path": "y"}, output={"success": True}),
        ],
        touched,
    )

    assert touched == {}


def test_run_log_records_loop_events(sandbox, tmp_path: Path) -> None:
    run_log = RunEventLog(tmp_path / "logs", run_id="test-run")
    worker = scripted(tool_call("mark_complete", {"summary": "done"}), AIMessage(content="done"))
    judge = scripted(tool_call("approve_task", {"reason": "ok"}))
    controller = build_controller(sandbox, worker, judge, run_log=run_log)

    controller.run("task")

    events = [entry["event"] for entry in run_log.read()]
    assert events == ["iteration_end", "judge_verdict", "loop_finished"]
    assert run_log.read()[-1]["status"] == "approved"


def test_context_summarized_hook_fires(sandbox) -> None:
    events: List[SummaryEvent] = []
    worker = scripted(*[AIMessage(content="x" * 400) for _ in range(3)])
    controller = build_controller(
        sandbox,
        worker,
        scripted(),
        max_iterations=3,
        context=ContextBudgetConfig(max_context_tokens=10, recent_iterations_to_keep=1),
        hooks=LoopHooks(on_context_summarized=events.append),
    )

    controller.run("task")

    assert len(events) == 1
    assert events[0].iteration == 3
    assert events[0].summarized_iterations == 1


def test_interrupt_still_syncs_results(sandbox, project_dir: Path) -> None:
    sync = ResultSync(sandbox, project_dir)
    sync.pull = MagicMock(wraps=sync.pull)
    controller = build_controller(sandbox, scripted(), scripted(), sync=sync)
    controller._graph = MagicMock()
    controller._graph.invoke.side_effect = KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        controller.run("task")

    sync.pull.assert_called_once()


def test_sync_error_is_reported_not_raised(sandbox) -> None:
    sync = MagicMock()
    sync.pull.side_effect = OSError("disk full")
    controller = build_controller(sandbox, scripted(AIMessage(content="hi")), scripted(), max_iterations=1, sync=sync)

    result = controller.run("task")

    assert result.status is LoopStatus.EXHAUSTED
    assert result.sync is None
    assert result.sync_error == "disk full"


def test_max_iterations_must_be_positive(sandbox) -> None:
    with pytest.raises(ValueError):
        build_controller(sandbox, scripted(), scripted(), max_iterations=0)
