"""
Error taxonomy shared by the Ralph tool surface and the iteration runtime.

Every failure a tool can report maps onto one ``ErrorKind``. Tools raise the
matching ``RalphError`` subclass internally and the tool boundary converts it
into a structured failure payload (``{"success": false, "error_type": ...}``),
so the deciding agent sees a stable, machine-readable category alongside the
human-readable reason.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable failure categories reported in tool payloads."""

    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    NO_START_COMMAND = "no_start_command"
    EXECUTION_FAILURE = "execution_failure"
    INVALID_ARGUMENTS = "invalid_arguments"
    COMMAND_REJECTED = "command_rejected"
    WRITE_ERROR = "write_error"
    BUDGET_EXHAUSTED = "budget_exhausted"
    JUDGE_ERROR = "judge_error"


class RalphError(RuntimeError):
    """Base class for recoverable Ralph failures."""

    kind: ErrorKind = ErrorKind.EXECUTION_FAILURE


class NotFoundError(RalphError):
    """A file or resource the caller referenced does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"File not found: {path}")


class AmbiguousMatchError(RalphError):
    """An edit's search text matched zero or several locations."""

    kind = ErrorKind.AMBIGUOUS

    def __init__(self, count: int) -> None:
        self.count = count
        if count == 0:
            message = (
                "old_string not found in file. Make sure it matches exactly "
                "(including whitespace)."
            )
        else:
            message = (
                f"old_string found {count} times - must be unique. "
                "Add more surrounding context to make it unique."
            )
        super().__init__(message)


class NoStartCommandError(RalphError):
    """No dev-server command was given and none could be detected."""

    kind = ErrorKind.NO_START_COMMAND

    def __init__(self, message: str = "Could not detect start command. Please provide one.") -> None:
        super().__init__(message)


class ExecutionFailure(RalphError):
    """The sandbox collaborator could not carry out a request."""

    kind = ErrorKind.EXECUTION_FAILURE


class WriteError(RalphError):
    """Persisting content into the sandbox failed."""

    kind = ErrorKind.WRITE_ERROR


class CommandRejected(RalphError):
    """A command was refused by the configured command policy."""

    kind = ErrorKind.COMMAND_REJECTED


class BudgetExhausted(RalphError):
    """The iteration ceiling was reached without an approved completion."""

    kind = ErrorKind.BUDGET_EXHAUSTED

    def __init__(self, iterations: int) -> None:
        self.iterations = iterations
        super().__init__(f"Reached max iterations ({iterations}) without approved completion")


class JudgeError(RalphError):
    """The judge session itself failed; callers treat this as non-fatal."""

    kind = ErrorKind.JUDGE_ERROR


__all__ = [
    "ErrorKind",
    "RalphError",
    "NotFoundError",
    "AmbiguousMatchError",
    "NoStartCommandError",
    "ExecutionFailure",
    "WriteError",
    "CommandRejected",
    "BudgetExhausted",
    "JudgeError",
]
