"""JSON payload helpers and the exception boundary shared by every tool."""
from __future__ import annotations

import functools
import json
import logging
from typing import Any, Callable, TypeVar, Union

from ralph_contracts import ErrorKind, RalphError

LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., str])


def json_success(**payload: Any) -> str:
    """Serializes ``payload`` with ``"success": true`` for a tool result."""
    return json.dumps({"success": True, **payload}, indent=2, default=str)


def json_failure(message: str, kind: Union[ErrorKind, str], **payload: Any) -> str:
    """
    Serializes a failed tool result.

    Args:
        message: Human readable error, returned to the model as ``error``.
        kind: Error taxonomy entry (or its string value) reported as ``error_type``.
        **payload: Extra fields merged into the body.

    Returns:
        The JSON string with ``"success": false``.
    """
    error_type = kind.value if isinstance(kind, ErrorKind) else str(kind)
    body = {"success": False, "error": message, "error_type": error_type, **payload}
    return json.dumps(body, indent=2, default=str)


def json_exit_status(exit_code: int, **payload: Any) -> str:
    """Payload for commands that ran: ``success`` mirrors a zero exit code."""
    return json.dumps({"success": exit_code == 0, "exit_code": exit_code, **payload}, indent=2, default=str)


def tool_boundary(func: F) -> F:
    """
    Converts exceptions escaping a tool function into failure payloads.

    ``RalphError`` subclasses keep their taxonomy kind; anything else is
    reported as an execution failure. Tool functions never raise past this.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> str:
        try:
            return func(*args, **kwargs)
        except RalphError as exc:
            LOGGER.warning("%s failed (%s): %s", func.__name__, exc.kind.value, exc)
            return json_failure(str(exc), exc.kind)
        except Exception as exc:  # noqa: BLE001 - every failure becomes a payload
            LOGGER.warning("%s failed: %s", func.__name__, exc, exc_info=True)
            return json_failure(str(exc) or exc.__class__.__name__, ErrorKind.EXECUTION_FAILURE)

    return wrapper  # type: ignore[return-value]


__all__ = ["json_success", "json_failure", "json_exit_status", "tool_boundary"]
