from __future__ import annotations

import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import tool

from ralph_runtime import generation
from ralph_runtime.generation import ChatModelGenerator, ModelInvocationError, message_text
from tests.conftest import FailingChatModel, scripted, tool_call, tool_calls


@tool
def echo(text: str) -> str:
    """Echo text back."""
    return json.dumps({"success": True, "text": text})


@tool
def explode(reason: str) -> str:
    """Always raises."""
    raise RuntimeError(reason)


def _run(model, *, step_limit: int = 5, **kwargs):
    generator = ChatModelGenerator(model)
    return generator.generate("system", [HumanMessage(content="go")], [echo, explode], step_limit, **kwargs)


def test_tool_calls_run_in_order_and_results_are_fed_back() -> None:
    model = scripted(
        tool_calls(("echo", {"text": "a"}), ("echo", {"text": "b"})),
        AIMessage(content="all done"),
    )

    result = _run(model)

    assert result.text == "all done"
    assert len(result.steps) == 2
    assert [record.output["text"] for record in result.steps[0].tool_results] == ["a", "b"]
    assert result.steps[1].tool_results == []

    second_call = model.received[1]
    assert isinstance(second_call[0], SystemMessage)
    tool_messages = [message for message in second_call if isinstance(message, ToolMessage)]
    assert [json.loads(message.content)["text"] for message in tool_messages] == ["a", "b"]
    assert tool_messages[0].tool_call_id != tool_messages[1].tool_call_id


def test_unknown_tool_becomes_invalid_arguments_failure() -> None:
    model = scripted(tool_call("missing_tool", {}), AIMessage(content="ok"))

    result = _run(model)

    output = result.tool_results()[0].output
    assert output["success"] is False
    assert output["error_type"] == "invalid_arguments"
    assert "missing_tool" in output["error"]


def test_schema_violation_becomes_invalid_arguments_failure() -> None:
    model = scripted(tool_call("echo", {"wrong": 1}), AIMessage(content="ok"))

    result = _run(model)

    output = result.tool_results()[0].output
    assert output["success"] is False
    assert output["error_type"] == "invalid_arguments"


def test_tool_exception_is_reported_not_raised() -> None:
    model = scripted(tool_call("explode", {"reason": "boom"}), AIMessage(content="ok"))

    result = _run(model)

    output = result.tool_results()[0].output
    assert output["success"] is False
    assert output["error_type"] == "execution_failure"
    assert "boom" in output["error"]


def test_step_limit_bounds_model_calls() -> None:
    model = scripted(*[tool_call("echo", {"text": str(n)}) for n in range(5)])

    result = _run(model, step_limit=2)

    assert len(model.received) == 2
    assert len(result.steps) == 2


def test_stop_condition_ends_generation_early() -> None:
    model = scripted(tool_call("echo", {"text": "stop"}), tool_call("echo", {"text": "never"}))

    result = _run(model, stop_when=lambda records: any(r.output.get("text") == "stop" for r in records))

    assert len(model.received) == 1
    assert [record.output["text"] for record in result.tool_results()] == ["stop"]


def test_require_tool_binds_with_any_tool_choice() -> None:
    model = scripted(AIMessage(content="fine"))

    _run(model, require_tool=True)

    assert model.tool_choices == ["any"]


def test_provider_fault_raises_model_invocation_error() -> None:
    model = FailingChatModel(messages=iter([]))

    with pytest.raises(ModelInvocationError) as excinfo:
        _run(model)

    assert "step 1" in str(excinfo.value)
    assert "provider unreachable" in str(excinfo.value)


def test_from_model_name_uses_init_chat_model(monkeypatch: pytest.MonkeyPatch) -> None:
    seen = {}

    def _factory(name, **kwargs):
        seen["name"] = name
        return scripted(AIMessage(content="hi"))

    monkeypatch.setattr(generation, "init_chat_model", _factory)

    generator = ChatModelGenerator.from_model_name("anthropic:claude-test")

    assert seen["name"] == "anthropic:claude-test"
    assert generator.generate("s", [HumanMessage(content="x")], [], 1).text == "hi"


def test_message_text_ignores_tool_use_blocks() -> None:
    message = AIMessage(
        content=[
            {"type": "text", "text": "Reading "},
            {"type": "tool_use", "id": "t1", "name": "read_file", "input": {}},
            {"type": "text", "text": "the file"},
        ]
    )

    assert message_text(message) == "Reading the file"
