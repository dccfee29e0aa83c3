"""
End-to-end runs of the worker/judge loop against a local sandbox with
scripted worker and judge models.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Tuple
from unittest.mock import MagicMock

from langchain_core.messages import AIMessage, HumanMessage

from ralph_contracts import IterationRecord, LoopStatus
from ralph_runtime.controller import LoopHooks
from ralph_runtime.prompts import NO_VERDICT_APPROVAL
from ralph_runtime.sync import ResultSync
from tests.conftest import FailingChatModel, build_controller, scripted, tool_call


def _spy_sync(sandbox, project_dir: Path) -> ResultSync:
    sync = ResultSync(sandbox, project_dir)
    sync.pull = MagicMock(wraps=sync.pull)
    return sync


def test_ambiguous_edit_is_reported_as_failure(sandbox, project_dir: Path) -> None:
    sandbox.write_file("src/app.ts", b"const foo = 1;\nconst foo = 1;\n")
    records: List[IterationRecord] = []
    worker = scripted(
        tool_call(
            "edit_file",
            {"file_path": "src/app.ts", "old_string": "const foo = 1;", "new_string": "const foo = 2;"},
        ),
        AIMessage(content="The edit was ambiguous."),
    )
    controller = build_controller(
        sandbox,
        worker,
        scripted(),
        max_iterations=1,
        hooks=LoopHooks(on_iteration_end=records.append),
    )

    controller.run("Change foo to 2")

    output = records[0].tool_results[0].output
    assert output["success"] is False
    assert output["error_type"] == "ambiguous"
    assert "2 times" in output["error"]
    assert sandbox.read_file("src/app.ts") == b"const foo = 1;\nconst foo = 1;\n"


def test_claim_verified_and_approved(sandbox, project_dir: Path) -> None:
    sync = _spy_sync(sandbox, project_dir)
    worker = scripted(
        tool_call("write_file", {"file_path": "src/index.ts", "content": "export const ok = true;\n"}),
        tool_call("mark_complete", {"summary": "Created src/index.ts", "files_modified": ["src/index.ts"]}),
        AIMessage(content="Finished."),
    )
    judge = scripted(
        tool_call("run_command", {"command": "test -f src/index.ts && echo built"}),
        tool_call("approve_task", {"reason": "Build passes"}),
    )
    controller = build_controller(sandbox, worker, judge, sync=sync)

    result = controller.run("Create src/index.ts")

    assert result.status is LoopStatus.APPROVED
    assert result.iterations == 1
    assert result.reason == "Task complete: Created src/index.ts\n\nJudge verdict: Build passes"
    assert result.text == "Finished."
    sync.pull.assert_called_once()
    assert (project_dir / "src" / "index.ts").read_text() == "export const ok = true;\n"
    assert result.sync is not None and result.sync.copied == ["src/index.ts"]

    judge_tool_messages = [m for m in judge.received[1] if m.type == "tool"]
    assert '"exit_code": 0' in judge_tool_messages[0].content


def test_rejection_feeds_issues_into_next_iteration(sandbox, project_dir: Path) -> None:
    issues = ["Missing unit tests for add()", "npm run build fails with TS2304"]
    starts: List[Tuple[int, str]] = []
    worker = scripted(
        tool_call("mark_complete", {"summary": "Added add()"}),
        AIMessage(content="Done, I think."),
        AIMessage(content="Working on the judge feedback."),
    )
    judge = scripted(tool_call("request_changes", {"issues": issues, "suggestions": ["Add add.test.ts"]}))
    controller = build_controller(
        sandbox,
        worker,
        judge,
        max_iterations=2,
        hooks=LoopHooks(on_iteration_start=lambda index, instruction: starts.append((index, instruction))),
    )

    result = controller.run("Add an add() helper")

    assert [index for index, _ in starts] == [1, 2]
    next_instruction = starts[1][1]
    for issue in issues:
        assert issue in next_instruction
    assert next_instruction.startswith("The judge reviewed your work and requested changes:")

    last_message = worker.received[-1][-1]
    assert isinstance(last_message, HumanMessage)
    assert all(issue in last_message.content for issue in issues)
    assert result.status is LoopStatus.EXHAUSTED
    assert result.iterations == 2


def test_iteration_ceiling_exhausts_and_still_syncs(sandbox, project_dir: Path) -> None:
    sync = _spy_sync(sandbox, project_dir)
    worker = scripted(*[AIMessage(content=f"pass {n}") for n in range(1, 4)])
    judge = scripted()
    starts: List[int] = []
    controller = build_controller(
        sandbox,
        worker,
        judge,
        max_iterations=3,
        sync=sync,
        hooks=LoopHooks(on_iteration_start=lambda index, _instruction: starts.append(index)),
    )

    result = controller.run("Never finishes")

    assert result.status is LoopStatus.EXHAUSTED
    assert result.iterations == 3
    assert starts == [1, 2, 3]
    assert len(worker.received) == 3
    assert judge.received == []
    sync.pull.assert_called_once()
    assert result.reason == "Reached max iterations (3) without approved completion"


def test_judge_without_verdict_approves_with_note(sandbox, project_dir: Path) -> None:
    worker = scripted(tool_call("mark_complete", {"summary": "All done"}), AIMessage(content="done"))
    judge = scripted(*[tool_call("list_files", {"pattern": "src"}) for _ in range(3)])
    controller = build_controller(sandbox, worker, judge, judge_step_limit=3)

    result = controller.run("task")

    assert result.status is LoopStatus.APPROVED
    assert result.verdict is not None and result.verdict.explicit is False
    assert NO_VERDICT_APPROVAL in result.reason


def test_model_fault_fails_the_run_and_still_syncs(sandbox, project_dir: Path) -> None:
    sync = _spy_sync(sandbox, project_dir)
    sandbox.write_file("partial.txt", b"work in progress")
    controller = build_controller(sandbox, FailingChatModel(messages=iter([])), scripted(), sync=sync)

    result = controller.run("task")

    assert result.status is LoopStatus.FAILED
    assert result.iterations == 1
    assert "iteration 1" in result.reason
    sync.pull.assert_called_once()
    assert (project_dir / "partial.txt").read_bytes() == b"work in progress"


def test_worker_deletion_is_propagated_to_the_target(sandbox, project_dir: Path) -> None:
    (project_dir / "legacy.js").write_text("old", encoding="utf-8")
    sync = _spy_sync(sandbox, project_dir)
    sync.push()
    worker = scripted(
        tool_call("delete_file", {"file_path": "legacy.js"}),
        tool_call("mark_complete", {"summary": "Removed legacy.js", "files_modified": ["legacy.js"]}),
        AIMessage(content="done"),
    )
    judge = scripted(tool_call("approve_task", {"reason": "Removed"}))
    controller = build_controller(sandbox, worker, judge, sync=sync)

    result = controller.run("Remove legacy.js")

    assert result.approved
    assert result.sync is not None and result.sync.deleted == ["legacy.js"]
    assert not (project_dir / "legacy.js").exists()
