"""
Shared data contracts for the Ralph coding loop.

This package is the single source of truth for the values exchanged between
the tool surface (``ralph_tools``) and the iteration runtime
(``ralph_runtime``): sandbox descriptors and command results, completion
claims and judge verdicts, iteration records, loop results and the error
taxonomy every tool failure maps onto.
"""
from .completion import CompletionClaim, Verdict
from .errors import (
    AmbiguousMatchError,
    BudgetExhausted,
    CommandRejected,
    ErrorKind,
    ExecutionFailure,
    JudgeError,
    NoStartCommandError,
    NotFoundError,
    RalphError,
    WriteError,
)
from .iteration import (
    FileAction,
    IterationRecord,
    LoopResult,
    LoopStatus,
    SyncReport,
    ToolInvocationRecord,
)
from .sandbox import (
    DEFAULT_SANDBOX_ROOT,
    DEFAULT_SERVER_PORT,
    CommandResult,
    SandboxDescriptor,
    normalize_sandbox_name,
)

__all__ = [
    "CompletionClaim",
    "Verdict",
    "AmbiguousMatchError",
    "BudgetExhausted",
    "CommandRejected",
    "ErrorKind",
    "ExecutionFailure",
    "JudgeError",
    "NoStartCommandError",
    "NotFoundError",
    "RalphError",
    "WriteError",
    "FileAction",
    "IterationRecord",
    "LoopResult",
    "LoopStatus",
    "SyncReport",
    "ToolInvocationRecord",
    "DEFAULT_SANDBOX_ROOT",
    "DEFAULT_SERVER_PORT",
    "CommandResult",
    "SandboxDescriptor",
    "normalize_sandbox_name",
]
