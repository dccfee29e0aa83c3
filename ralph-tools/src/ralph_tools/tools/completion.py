"""
Completion and verdict tools.

``mark_complete`` is the worker's only way to declare the task done; its
payload becomes the completion claim. ``approve_task`` and
``request_changes`` are the judge's two verdict tools; exactly one of them
ends every review. None of these tools touch the sandbox: they echo their
arguments in a shape the runtime recognises.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from .payloads import json_success, tool_boundary

LOGGER = logging.getLogger(__name__)

MARK_COMPLETE = "mark_complete"
APPROVE_TASK = "approve_task"
REQUEST_CHANGES = "request_changes"
VERDICT_TOOLS = frozenset({APPROVE_TASK, REQUEST_CHANGES})


class MarkCompleteRequest(BaseModel):
    summary: str = Field(..., min_length=1, description="Summary of what was accomplished.")
    files_modified: List[str] = Field(
        default_factory=list,
        description="Files that were created, modified or deleted.",
    )


class ApproveTaskRequest(BaseModel):
    reason: str = Field(..., min_length=1, description="Why the task is complete and meets all criteria.")


class RequestChangesRequest(BaseModel):
    issues: List[str] = Field(..., min_length=1, description="Specific issues that must be fixed.")
    suggestions: List[str] = Field(
        default_factory=list,
        description="Concrete suggestions for the coding agent.",
    )


@tool(MARK_COMPLETE, args_schema=MarkCompleteRequest)
@tool_boundary
def mark_complete(summary: str, files_modified: Optional[List[str]] = None) -> str:
    """Mark the task as complete with a summary of what was done. Only call this once the work
    is finished and verified; an independent reviewer will check it."""
    files = list(files_modified or [])
    LOGGER.info("Task marked complete (%d files reported)", len(files))
    return json_success(complete=True, summary=summary, files_modified=files)


@tool(APPROVE_TASK, args_schema=ApproveTaskRequest)
@tool_boundary
def approve_task(reason: str) -> str:
    """Approve the task as complete: all success criteria are met."""
    return json_success(approved=True, reason=reason)


@tool(REQUEST_CHANGES, args_schema=RequestChangesRequest)
@tool_boundary
def request_changes(issues: List[str], suggestions: Optional[List[str]] = None) -> str:
    """Request changes: the task is NOT complete or has issues."""
    return json_success(approved=False, issues=list(issues), suggestions=list(suggestions or []))


def verdict_tools() -> List[BaseTool]:
    """The two tools a judge must end its review with."""
    return [approve_task, request_changes]


__all__ = [
    "MARK_COMPLETE",
    "APPROVE_TASK",
    "REQUEST_CHANGES",
    "VERDICT_TOOLS",
    "MarkCompleteRequest",
    "ApproveTaskRequest",
    "RequestChangesRequest",
    "approve_task",
    "mark_complete",
    "request_changes",
    "verdict_tools",
]
