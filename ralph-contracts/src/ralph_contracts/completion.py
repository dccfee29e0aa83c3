"""
Contracts for the completion-and-verification handshake between the worker
and the judge.

The worker declares it is done by producing a ``CompletionClaim``. The judge
answers every claim with exactly one ``Verdict``: an approval carrying a
reason, or a rejection carrying concrete issues and suggestions. Rejections
are rendered into the feedback text that becomes the worker's next
instruction, so the rendering format is part of the contract.
"""
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class CompletionClaim(BaseModel):
    """A worker's declaration that the task is finished, pending judge review."""

    model_config = ConfigDict(extra="ignore")

    summary: str = Field(..., description="What the worker says it accomplished.")
    files_modified: List[str] = Field(
        default_factory=list,
        description="Sandbox-relative paths the worker reports having changed.",
    )

    @field_validator("files_modified")
    @classmethod
    def _drop_blank_paths(cls, value: List[str]) -> List[str]:
        return [path.strip() for path in value if isinstance(path, str) and path.strip()]

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["CompletionClaim"]:
        """
        Builds a claim from a ``mark_complete`` tool payload.

        Returns ``None`` for anything that is not a successful completion
        payload, so callers can feed every tool output through this method.
        """
        if not isinstance(payload, dict) or not payload.get("complete"):
            return None
        try:
            return cls(
                summary=str(payload.get("summary", "")),
                files_modified=list(payload.get("files_modified") or []),
            )
        except ValidationError:
            return None


class Verdict(BaseModel):
    """
    The judge's ruling on a completion claim.

    ``explicit`` is False when the verdict was not produced by a verdict tool
    (step budget exhausted, or the judge session failed) and a default policy
    decided instead.
    """

    approved: bool
    reason: str = ""
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    explicit: bool = True

    @classmethod
    def approve(cls, reason: str, *, explicit: bool = True) -> "Verdict":
        return cls(approved=True, reason=reason, explicit=explicit)

    @classmethod
    def reject(
        cls,
        issues: List[str],
        suggestions: Optional[List[str]] = None,
        *,
        reason: str = "",
        explicit: bool = True,
    ) -> "Verdict":
        return cls(
            approved=False,
            reason=reason,
            issues=list(issues),
            suggestions=list(suggestions or []),
            explicit=explicit,
        )

    def feedback(self) -> str:
        """
        Human-readable feedback text.

        Approvals return their reason. Rejections list every issue and
        suggestion verbatim, one per bullet, under fixed headings.
        """
        if self.approved:
            return self.reason
        lines = ["Issues found:"]
        lines.extend(f"- {issue}" for issue in self.issues)
        lines.append("")
        lines.append("Suggestions:")
        lines.extend(f"- {suggestion}" for suggestion in self.suggestions)
        if self.reason:
            lines.append("")
            lines.append(self.reason)
        return "\n".join(lines)


__all__ = ["CompletionClaim", "Verdict"]
