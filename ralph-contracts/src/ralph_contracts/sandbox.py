"""
Pydantic contracts describing sandboxes and the results of work done in them.

A sandbox is the ephemeral, isolated environment in which the worker and the
judge run commands and edit files. The tool surface and the runtime only ever
talk to a sandbox through the small collaborator interface in
``ralph_tools.sandbox``; the models here are the values that cross that
boundary: the descriptor of a provisioned sandbox and the captured outcome of
a single command.
"""
from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


DEFAULT_SANDBOX_ROOT = "/workspace"
DEFAULT_SERVER_PORT = 3000
_SAFE_NAME_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")


def normalize_sandbox_name(identifier: str) -> str:
    """
    Generates a Docker-safe resource name from a sandbox identifier.

    Spaces become dashes, unsafe characters are collapsed into dashes, leading
    and trailing separators are stripped and the result is lowercased.

    Args:
        identifier: The raw sandbox identifier (usually the target directory name).

    Returns:
        A sanitized, Docker-safe name.

    Raises:
        ValueError: If the identifier is empty or sanitizes to nothing.
    """
    slug = identifier.strip()
    if not slug:
        raise ValueError("sandbox identifier cannot be empty")
    slug = slug.replace(" ", "-")
    slug = _SAFE_NAME_PATTERN.sub("-", slug)
    slug = slug.strip("-._")
    if not slug:
        raise ValueError("sandbox identifier produced empty slug")
    return slug.lower()


class SandboxDescriptor(BaseModel):
    """
    Describes a provisioned sandbox.

    ``public_url`` is the externally reachable address of the single
    pre-declared network port (the dev-server port); it is what ``curl``
    rewrites ``localhost:<port>`` to and what the worker reports to the user.
    """

    sandbox_id: str = Field(..., description="Stable sandbox identifier.")
    backend: str = Field(..., description="Backend implementation, e.g. 'docker' or 'local'.")
    root: str = Field(
        default=DEFAULT_SANDBOX_ROOT,
        description="Working directory inside the sandbox where the project lives.",
    )
    port: int = Field(default=DEFAULT_SERVER_PORT, ge=1, le=65535)
    public_url: str = Field(..., description="Reachable URL for the pre-declared port.")

    model_config = ConfigDict(extra="allow")

    @field_validator("sandbox_id", "backend", "public_url")
    @classmethod
    def _require_non_empty(cls, value: str, info: ValidationInfo) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"{info.field_name} must be a non-empty string")
        return value

    @property
    def domain(self) -> str:
        """Host portion of ``public_url`` (no scheme, no trailing slash)."""
        url = self.public_url.split("://", 1)[-1]
        return url.rstrip("/")


class CommandResult(BaseModel):
    """
    Captured outcome of one command executed in a sandbox.

    A non-zero ``exit_code`` is a normal result, not an exception: callers
    decide what it means.
    """

    command: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int
    duration_seconds: float = Field(default=0.0, ge=0.0)
    working_dir: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def merged_output(self, *, label_stderr: bool = True) -> str:
        """stdout followed by stderr; stderr is prefixed with ``STDERR:`` when labelled."""
        if not self.stderr:
            return self.stdout
        if label_stderr:
            return f"{self.stdout}\nSTDERR: {self.stderr}"
        return f"{self.stdout}{self.stderr}"


__all__ = [
    "DEFAULT_SANDBOX_ROOT",
    "DEFAULT_SERVER_PORT",
    "SandboxDescriptor",
    "CommandResult",
    "normalize_sandbox_name",
]
