"""
Contracts describing the iteration history and final outcome of a loop run.

An ``IterationRecord`` is one append-only entry of history: the instruction
the worker received, what it said, every tool invocation it made (with the
decoded tool payload) and how long it took. The controller owns the list of
records; the context budgeter reads it to decide what the model sees next.
``LoopResult`` is what the outer caller (the CLI) receives when the run ends.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .completion import CompletionClaim, Verdict


class LoopStatus(str, Enum):
    """States of the iteration controller; the last three are terminal."""

    RUNNING = "running"
    AWAITING_JUDGE = "awaiting_judge"
    APPROVED = "approved"
    EXHAUSTED = "exhausted"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in {LoopStatus.APPROVED, LoopStatus.EXHAUSTED, LoopStatus.FAILED}


class FileAction(str, Enum):
    """Mutation a worker applied to a sandbox path."""

    WRITE = "write"
    EDIT = "edit"
    DELETE = "delete"


class ToolInvocationRecord(BaseModel):
    """One tool call made by an agent and the payload it returned."""

    model_config = ConfigDict(extra="ignore")

    tool_name: str
    tool_call_id: Optional[str] = None
    arguments: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None

    @property
    def succeeded(self) -> bool:
        return isinstance(self.output, dict) and bool(self.output.get("success"))


class IterationRecord(BaseModel):
    """One full worker cycle."""

    index: int = Field(..., ge=1)
    instruction: str
    text: str = ""
    tool_results: List[ToolInvocationRecord] = Field(default_factory=list)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    claimed_completion: bool = False

    def invocations(self, tool_name: str) -> List[ToolInvocationRecord]:
        return [record for record in self.tool_results if record.tool_name == tool_name]


class SyncReport(BaseModel):
    """Outcome of reconciling sandbox files back to durable storage."""

    copied: List[str] = Field(default_factory=list)
    unchanged: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.copied) + len(self.unchanged)


class LoopResult(BaseModel):
    """Terminal report of one loop run."""

    status: LoopStatus
    iterations: int = Field(..., ge=0)
    elapsed_seconds: float = Field(default=0.0, ge=0.0)
    reason: str = ""
    text: str = ""
    claim: Optional[CompletionClaim] = None
    verdict: Optional[Verdict] = None
    touched_files: Dict[str, FileAction] = Field(default_factory=dict)
    sync: Optional[SyncReport] = None
    sync_error: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.status is LoopStatus.APPROVED


__all__ = [
    "LoopStatus",
    "FileAction",
    "ToolInvocationRecord",
    "IterationRecord",
    "SyncReport",
    "LoopResult",
]
