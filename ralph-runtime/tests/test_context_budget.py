from __future__ import annotations

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from ralph_contracts import IterationRecord, ToolInvocationRecord
from ralph_runtime.budget import ContextBudgeter, estimate_tokens
from ralph_runtime.config import ContextBudgetConfig
from ralph_tools.truncation import parse_truncation_marker

TASK = "Build a todo app"


def _write(path: str, content: str) -> ToolInvocationRecord:
    return ToolInvocationRecord(
        tool_name="write_file",
        arguments={"file_path": path, "content": content},
        output={"success": True, "file_path": path, "bytes_written": len(content)},
    )


def _read(path: str, content: str) -> ToolInvocationRecord:
    return ToolInvocationRecord(
        tool_name="read_file",
        arguments={"file_path": path},
        output={"success": True, "file_path": path, "content": content, "total_lines": 1},
    )


def _edit(path: str) -> ToolInvocationRecord:
    return ToolInvocationRecord(
        tool_name="edit_file",
        arguments={"file_path": path, "old_string": "a", "new_string": "b"},
        output={"success": True, "file_path": path, "line": 1},
    )


def _command(command: str, exit_code: int, output: str = "") -> ToolInvocationRecord:
    return ToolInvocationRecord(
        tool_name="run_command",
        arguments={"command": command},
        output={"success": exit_code == 0, "exit_code": exit_code, "output": output},
    )


def _record(index: int, *results: ToolInvocationRecord, text: str = "") -> IterationRecord:
    instruction = TASK if index == 1 else f"instruction {index}"
    return IterationRecord(index=index, instruction=instruction, text=text, tool_results=list(results))


def test_estimate_tokens_rounds_up() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_first_iteration_sees_only_the_task() -> None:
    budgeter = ContextBudgeter(ContextBudgetConfig())

    messages = budgeter.render(TASK, TASK)

    assert len(messages) == 1
    assert isinstance(messages[0], HumanMessage)
    assert messages[0].content == TASK


def test_retained_iterations_alternate_with_their_instructions() -> None:
    budgeter = ContextBudgeter(ContextBudgetConfig())
    budgeter.record(_record(1, _write("a.ts", "x"), text="Wrote a"))
    budgeter.record(_record(2, _command("npm test", 1, "1 failing")))

    messages = budgeter.render(TASK, "instruction 3")

    assert [type(message) for message in messages] == [HumanMessage, AIMessage, HumanMessage, AIMessage, HumanMessage]
    assert messages[0].content == TASK
    assert "Wrote a" in messages[1].content
    assert messages[2].content == "instruction 2"
    assert "1 failing" in messages[3].content
    assert messages[4].content == "instruction 3"


def test_record_rejects_out_of_order_iterations() -> None:
    budgeter = ContextBudgeter(ContextBudgetConfig())
    budgeter.record(_record(1))

    with pytest.raises(ValueError):
        budgeter.record(_record(3))


def test_within_budget_nothing_is_summarized() -> None:
    budgeter = ContextBudgeter(ContextBudgetConfig())
    budgeter.record(_record(1, _write("a.ts", "x")))

    assert budgeter.ensure_within_budget(TASK, "next") is None
    assert budgeter.state.summarized_iterations == 0
    assert budgeter.state.estimated_tokens > 0


def test_over_budget_collapses_iterations_outside_the_recent_window() -> None:
    config = ContextBudgetConfig(max_context_tokens=200, recent_iterations_to_keep=1, file_context_budget=0)
    budgeter = ContextBudgeter(config)
    budgeter.record(_record(1, _write("src/a.ts", "a" * 1000)))
    budgeter.record(_record(2, _command("npm run build", 2, "e" * 1000)))
    budgeter.record(_record(3, _write("src/b.ts", "b" * 1000)))

    event = budgeter.ensure_within_budget(TASK, "instruction 4")

    assert event is not None
    assert event.summarized_iterations == 2
    assert event.iteration == 4
    assert event.tokens_saved > 0
    assert budgeter.state.summarized_iterations == 2
    assert budgeter.state.retained_iterations == 1

    messages = budgeter.render(TASK, "instruction 4")
    header = messages[0].content
    assert "Iteration 1: wrote src/a.ts" in header
    assert "Iteration 2: ran `npm run build` (exit 2)" in header
    assert "e" * 200 not in header
    assert header.endswith("instruction 3")
    assert len(messages) == 3


def test_recent_window_is_never_collapsed() -> None:
    config = ContextBudgetConfig(max_context_tokens=1, recent_iterations_to_keep=2)
    budgeter = ContextBudgeter(config)
    budgeter.record(_record(1, _write("a.ts", "x" * 100)))
    budgeter.record(_record(2, _write("b.ts", "y" * 100)))

    assert budgeter.ensure_within_budget(TASK, "next") is None
    assert budgeter.state.summarized_iterations == 0


def test_summarization_can_be_disabled() -> None:
    config = ContextBudgetConfig(max_context_tokens=1, recent_iterations_to_keep=0, enable_summarization=False)
    budgeter = ContextBudgeter(config)
    budgeter.record(_record(1, _write("a.ts", "x" * 100)))

    assert budgeter.ensure_within_budget(TASK, "next") is None


def test_open_files_keep_latest_content_and_drop_edited_paths() -> None:
    config = ContextBudgetConfig(max_context_tokens=1, recent_iterations_to_keep=1)
    budgeter = ContextBudgeter(config)
    budgeter.record(_record(1, _write("a.ts", "const a = 1;"), _read("b.ts", "export const b = 2;")))
    budgeter.record(_record(2, _edit("a.ts")))
    budgeter.record(_record(3))

    budgeter.ensure_within_budget(TASK, "next")

    assert budgeter.open_files == ["b.ts"]
    header = budgeter.render(TASK, "next")[0].content
    assert "### b.ts" in header
    assert "export const b = 2;" in header
    assert "const a = 1;" not in header


def test_partial_reads_are_not_kept_as_file_content() -> None:
    ranged = ToolInvocationRecord(
        tool_name="read_file",
        arguments={"file_path": "a.py", "line_start": 5, "line_end": 5},
        output={
            "success": True,
            "file_path": "a.py",
            "content": "     5| x = 1",
            "total_lines": 40,
            "line_range": {"start": 5, "end": 5},
            "truncated": False,
        },
    )
    preview = ToolInvocationRecord(
        tool_name="read_file",
        arguments={"file_path": "big.py"},
        output={
            "success": True,
            "file_path": "big.py",
            "content": "     1| import os",
            "total_lines": 5000,
            "truncated": True,
            "line_range": {"start": 1, "end": 400},
        },
    )
    config = ContextBudgetConfig(max_context_tokens=1, recent_iterations_to_keep=1)
    budgeter = ContextBudgeter(config)
    budgeter.record(_record(1, _read("a.py", "x = 0\n")))
    budgeter.record(_record(2, ranged, preview))
    budgeter.record(_record(3))

    budgeter.ensure_within_budget(TASK, "next")

    assert budgeter.open_files == ["a.py"]
    header = budgeter.render(TASK, "next")[0].content
    assert "x = 0" in header
    assert "     5| x = 1" not in header.split("## Open files")[1]
    assert "### big.py" not in header


def test_decision_log_is_trimmed_oldest_first() -> None:
    config = ContextBudgetConfig(max_context_tokens=1, recent_iterations_to_keep=0, change_log_budget=12)
    budgeter = ContextBudgeter(config)
    for index in range(1, 6):
        budgeter.record(_record(index, _write(f"file_{index}.ts", "x")))

    budgeter.ensure_within_budget(TASK, "next")

    assert budgeter.decision_log == ["Iteration 5: wrote file_5.ts"]
    header = budgeter.render(TASK, "next")[0].content
    assert "(4 earlier iterations omitted)" in header


def test_tool_output_in_history_is_capped_with_marker() -> None:
    config = ContextBudgetConfig(max_tool_output_chars=100)
    budgeter = ContextBudgeter(config)
    budgeter.record(_record(1, _command("cat big.log", 0, "z" * 5000)))

    transcript = budgeter.render(TASK, "next")[1].content

    assert "z" * 101 not in transcript
    info = parse_truncation_marker(transcript)
    assert info is not None
    assert info.total_chars > 5000


def test_reset_clears_history_and_state() -> None:
    config = ContextBudgetConfig(max_context_tokens=1, recent_iterations_to_keep=0)
    budgeter = ContextBudgeter(config)
    budgeter.record(_record(1, _write("a.ts", "x")))
    budgeter.ensure_within_budget(TASK, "next")

    budgeter.reset()

    assert budgeter.history == []
    assert budgeter.decision_log == []
    assert budgeter.state.summarized_iterations == 0
    budgeter.record(_record(1))
