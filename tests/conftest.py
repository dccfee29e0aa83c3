"""Pytest configuration for shared fixtures."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pytest
from dotenv import load_dotenv
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, BaseMessage
from pydantic import Field

from ralph_runtime.budget import ContextBudgeter
from ralph_runtime.config import ContextBudgetConfig
from ralph_runtime.controller import IterationController
from ralph_runtime.generation import ChatModelGenerator
from ralph_runtime.judge import JudgeSession
from ralph_runtime.worker import WorkerSession
from ralph_tools import ToolContext, ToolLimits, get_worker_tools
from ralph_tools.sandbox.local import LocalSandbox


def _load_env_files(paths: Iterable[Path]) -> None:
    """Load local dotenv files without overriding any pre-set environment vars."""
    for env_path in paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)


_REPO_ROOT = Path(__file__).resolve().parent.parent
_load_env_files((_REPO_ROOT / ".env",))


class ScriptedChatModel(GenericFakeChatModel):
    """
    Fake chat model that replays scripted responses and records every
    message list it is invoked with.

    ``bind_tools`` returns the model itself so it can stand in for a real
    provider inside the tool-calling loop.
    """

    received: List[List[BaseMessage]] = Field(default_factory=list)
    tool_choices: List[Optional[str]] = Field(default_factory=list)

    def bind_tools(self, tools: Sequence[Any], *, tool_choice: Optional[str] = None, **kwargs: Any):
        self.tool_choices.append(tool_choice)
        return self

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        self.received.append(list(messages))
        return super()._generate(messages, stop=stop, run_manager=run_manager, **kwargs)


class FailingChatModel(GenericFakeChatModel):
    """Chat model whose provider is unreachable."""

    def bind_tools(self, tools: Sequence[Any], **kwargs: Any):
        return self

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        raise ConnectionError("provider unreachable")


_CALL_IDS = itertools.count(1)


def tool_call(name: str, args: Optional[Dict[str, Any]] = None, *, text: str = "") -> AIMessage:
    """An assistant message requesting one tool call."""
    return tool_calls((name, args or {}), text=text)


def tool_calls(*calls: Any, text: str = "") -> AIMessage:
    """An assistant message requesting several tool calls, in order."""
    return AIMessage(
        content=text,
        tool_calls=[
            {"name": name, "args": dict(args), "id": f"call_{next(_CALL_IDS)}"} for name, args in calls
        ],
    )


def scripted(*responses: Any) -> ScriptedChatModel:
    return ScriptedChatModel(messages=iter(list(responses)))


def build_controller(
    sandbox: LocalSandbox,
    worker_model: GenericFakeChatModel,
    judge_model: GenericFakeChatModel,
    *,
    max_iterations: int = 5,
    judge_step_limit: int = 3,
    context: Optional[ContextBudgetConfig] = None,
    **kwargs: Any,
) -> IterationController:
    """Controller over a local sandbox with scripted worker and judge models."""
    ctx = ToolContext(sandbox=sandbox, limits=ToolLimits(server_start_delay=0))
    worker = WorkerSession(
        ChatModelGenerator(worker_model),
        get_worker_tools(ctx, include_browser=False),
        "You are a test worker.",
        step_limit=10,
    )
    judge = JudgeSession.for_context(ChatModelGenerator(judge_model), ctx, step_limit=judge_step_limit)
    return IterationController(
        worker,
        judge,
        max_iterations=max_iterations,
        budgeter=ContextBudgeter(context or ContextBudgetConfig()),
        **kwargs,
    )


@pytest.fixture(autouse=True)
def stub_langchain_chat_models(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Prevent external LLM calls during tests by stubbing LangChain chat model factory.
    """

    def _factory(model_name: str, *_, **__) -> ScriptedChatModel:
        return ScriptedChatModel(messages=itertools.repeat(AIMessage(content=f"[stub:{model_name}]")))

    monkeypatch.setattr(
        "ralph_runtime.generation.init_chat_model",
        _factory,
        raising=True,
    )


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "target"
    directory.mkdir()
    return directory


@pytest.fixture
def sandbox(tmp_path: Path) -> LocalSandbox:
    return LocalSandbox(tmp_path / "sandbox")
