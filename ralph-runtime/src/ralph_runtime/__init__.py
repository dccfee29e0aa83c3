"""
Runtime for the Ralph coding loop: configuration, model invocation, the
context budgeter, worker and judge sessions, the iteration controller, result
sync and the CLI.

Public names are loaded lazily through ``__getattr__`` so importing the
package does not pull in LangGraph or a chat model provider until they are
actually used.
"""

from importlib import import_module
from typing import Any, Dict, Tuple

__all__ = [
    "ChatModelGenerator",
    "ContextBudgetConfig",
    "ContextBudgeter",
    "IterationController",
    "JudgeSession",
    "LoopConfig",
    "LoopHooks",
    "ModelInvocationError",
    "ProjectContext",
    "ResultSync",
    "TaskPromptError",
    "WorkerSession",
    "configure_logging",
    "create_controller",
    "resolve_task_prompt",
]


_ATTR_MODULE_MAP: Dict[str, Tuple[str, str]] = {
    "ChatModelGenerator": ("generation", "ChatModelGenerator"),
    "ContextBudgetConfig": ("config", "ContextBudgetConfig"),
    "ContextBudgeter": ("budget", "ContextBudgeter"),
    "IterationController": ("controller", "IterationController"),
    "JudgeSession": ("judge", "JudgeSession"),
    "LoopConfig": ("config", "LoopConfig"),
    "LoopHooks": ("controller", "LoopHooks"),
    "ModelInvocationError": ("generation", "ModelInvocationError"),
    "ProjectContext": ("task", "ProjectContext"),
    "ResultSync": ("sync", "ResultSync"),
    "TaskPromptError": ("task", "TaskPromptError"),
    "WorkerSession": ("worker", "WorkerSession"),
    "configure_logging": ("logging_utils", "configure_logging"),
    "create_controller": ("controller", "create_controller"),
    "resolve_task_prompt": ("task", "resolve_task_prompt"),
}


def __getattr__(name: str) -> Any:
    try:
        module_name, attribute = _ATTR_MODULE_MAP[name]
    except KeyError as exc:  # pragma: no cover - guard against typos
        raise AttributeError(f"module 'ralph_runtime' has no attribute {name!r}") from exc
    module = import_module(f".{module_name}", __name__)
    value = getattr(module, attribute)
    globals()[name] = value
    return value
