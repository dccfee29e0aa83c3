"""
Model invocation layer shared by the worker and the judge.

``ChatModelGenerator`` runs a bounded tool-calling loop over any LangChain
chat model: bind the tools, invoke, execute every requested tool call in
order against the shared sandbox, feed the results back as ``ToolMessage``s
and repeat until the model answers without tool calls or the step limit is
reached. Tool calls inside one step never run concurrently.

Every tool output is decoded from its JSON payload into a
``ToolInvocationRecord`` so the controller can inspect what happened without
re-parsing strings. Malformed arguments and unknown tool names become
``invalid_arguments`` failure payloads returned to the model; only faults of
the chat model itself escape, as ``ModelInvocationError``.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from langchain.chat_models import init_chat_model
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, AnyMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool
from pydantic import ValidationError

from ralph_contracts import ErrorKind, ToolInvocationRecord
from ralph_tools.tools.payloads import json_failure

LOGGER = logging.getLogger(__name__)

StopCondition = Callable[[List[ToolInvocationRecord]], bool]


class ModelInvocationError(RuntimeError):
    """The chat model could not be invoked (provider unreachable, auth, quota)."""


@dataclass(slots=True)
class GenerationStep:
    """One model turn: its text and the tools it called, in call order."""

    text: str = ""
    tool_results: List[ToolInvocationRecord] = field(default_factory=list)


@dataclass(slots=True)
class GenerationResult:
    """Final text of a generate call plus every step it took."""

    text: str = ""
    steps: List[GenerationStep] = field(default_factory=list)
    messages: List[AnyMessage] = field(default_factory=list)

    def tool_results(self) -> List[ToolInvocationRecord]:
        return [record for step in self.steps for record in step.tool_results]


class ModelGenerator(Protocol):
    def generate(
        self,
        system_prompt: str,
        messages: Sequence[AnyMessage],
        tools: Sequence[BaseTool],
        step_limit: int,
        *,
        require_tool: bool = False,
        stop_when: Optional[StopCondition] = None,
    ) -> GenerationResult:
        """
        Runs a bounded tool-calling exchange.

        Args:
            system_prompt: System message placed before ``messages``.
            messages: Conversation so far; not mutated.
            tools: Tools the model may call. Each call is executed before the next step.
            step_limit: Maximum number of model invocations.
            require_tool: Force a tool call on every step.
            stop_when: Called with each step's tool results; returning True ends the exchange.

        Returns:
            The final text, every step, and the full message list.

        Raises:
            ModelInvocationError: The chat model itself failed.
        """


def message_text(message: AnyMessage) -> str:
    """Plain text of a message, ignoring tool-use content blocks."""
    content = message.content
    if isinstance(content, str):
        return content
    parts: List[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


def decode_tool_output(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class ChatModelGenerator:
    """Bounded tool-calling loop over a LangChain chat model."""

    def __init__(self, model: BaseChatModel) -> None:
        self.model = model

    @classmethod
    def from_model_name(cls, name: str, **kwargs: Any) -> "ChatModelGenerator":
        """Resolves ``name`` (e.g. ``anthropic:claude-opus-4-5``) with ``init_chat_model``."""
        return cls(init_chat_model(name, **kwargs))

    def _bind(self, tools: Sequence[BaseTool], require_tool: bool):
        if not tools:
            return self.model
        if require_tool:
            return self.model.bind_tools(list(tools), tool_choice="any")
        return self.model.bind_tools(list(tools))

    def generate(
        self,
        system_prompt: str,
        messages: Sequence[AnyMessage],
        tools: Sequence[BaseTool],
        step_limit: int,
        *,
        require_tool: bool = False,
        stop_when: Optional[StopCondition] = None,
    ) -> GenerationResult:
        """Implements ``ModelGenerator.generate``; tool calls run sequentially in the order requested."""
        tool_map: Dict[str, BaseTool] = {tool.name: tool for tool in tools}
        bound = self._bind(tools, require_tool)
        conversation: List[AnyMessage] = [SystemMessage(content=system_prompt), *messages]
        result = GenerationResult()

        for step_index in range(1, max(step_limit, 1) + 1):
            try:
                response = bound.invoke(conversation)
            except Exception as exc:  # noqa: BLE001 - provider faults surface as one error type
                raise ModelInvocationError(f"Model invocation failed at step {step_index}: {exc}") from exc

            conversation.append(response)
            text = message_text(response)
            result.text = text
            calls = list(getattr(response, "tool_calls", None) or [])
            if not calls:
                result.steps.append(GenerationStep(text=text))
                break

            records: List[ToolInvocationRecord] = []
            for call in calls:
                record, tool_message = _execute_call(call, tool_map)
                records.append(record)
                conversation.append(tool_message)
            result.steps.append(GenerationStep(text=text, tool_results=records))
            LOGGER.debug(
                "Step %d/%d ran %s", step_index, step_limit, ", ".join(record.tool_name for record in records)
            )
            if stop_when is not None and stop_when(records):
                break
        else:
            LOGGER.info("Step limit (%d) reached", step_limit)

        result.messages = conversation[1:]
        return result


def _execute_call(call: Dict[str, Any], tool_map: Dict[str, BaseTool]) -> tuple[ToolInvocationRecord, ToolMessage]:
    name = str(call.get("name") or "")
    arguments = call.get("args") or {}
    call_id = call.get("id") or f"call_{uuid.uuid4().hex[:12]}"
    tool = tool_map.get(name)

    if tool is None:
        LOGGER.warning("Model requested unknown tool %r", name)
        raw = json_failure(f"Unknown tool: {name}", ErrorKind.INVALID_ARGUMENTS)
    else:
        try:
            raw = tool.invoke(arguments)
        except ValidationError as exc:
            LOGGER.warning("Invalid arguments for %s: %s", name, exc)
            raw = json_failure(f"Invalid arguments for {name}: {exc}", ErrorKind.INVALID_ARGUMENTS)
        except Exception as exc:  # noqa: BLE001 - tool faults are reported to the model
            LOGGER.warning("Tool %s raised: %s", name, exc, exc_info=True)
            raw = json_failure(str(exc) or exc.__class__.__name__, ErrorKind.EXECUTION_FAILURE)

    content = raw if isinstance(raw, str) else json.dumps(raw, default=str)
    record = ToolInvocationRecord(
        tool_name=name,
        tool_call_id=call_id,
        arguments=dict(arguments) if isinstance(arguments, dict) else {},
        output=decode_tool_output(raw),
    )
    return record, ToolMessage(content=content, tool_call_id=call_id, name=name)


__all__ = [
    "ChatModelGenerator",
    "GenerationResult",
    "GenerationStep",
    "ModelGenerator",
    "ModelInvocationError",
    "StopCondition",
    "decode_tool_output",
    "message_text",
]
