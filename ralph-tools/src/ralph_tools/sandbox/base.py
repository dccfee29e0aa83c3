"""
The sandbox collaborator interface.

Everything the tool surface and the runtime do to a project goes through this
interface: run a shell command and capture its output, read a file, write a
file, and know the one externally reachable URL of the dev-server port. Paths
are relative to the sandbox's project root.
"""
from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from ralph_contracts import CommandResult, ExecutionFailure, SandboxDescriptor

EXCLUDED_DIRS: Tuple[str, ...] = ("node_modules", ".git")


class Sandbox(ABC):
    """Abstract sandbox. Subclasses provide command execution and file I/O."""

    def __init__(self, descriptor: SandboxDescriptor) -> None:
        self._descriptor = descriptor

    @property
    def descriptor(self) -> SandboxDescriptor:
        return self._descriptor

    @property
    def public_url(self) -> str:
        return self._descriptor.public_url

    @property
    def domain(self) -> str:
        return self._descriptor.domain

    @property
    def port(self) -> int:
        return self._descriptor.port

    @abstractmethod
    def execute(self, command: str, *, timeout: Optional[float] = None) -> CommandResult:
        """Runs ``command`` through a shell in the project root.

        Raises ``ExecutionFailure`` when the sandbox cannot run the command at
        all; a command that runs and exits non-zero is a normal result.
        """

    @abstractmethod
    def read_file(self, path: str) -> Optional[bytes]:
        """Returns the file's bytes, or ``None`` when it does not exist."""

    @abstractmethod
    def write_file(self, path: str, content: bytes) -> None:
        """Creates or replaces ``path``, creating parent directories as needed."""

    def write_files(self, files: Iterable[Tuple[str, bytes]]) -> None:
        for path, content in files:
            self.write_file(path, content)

    def delete_file(self, path: str) -> None:
        result = self.execute(f"rm -f {shlex.quote(path)}")
        if not result.ok:
            raise ExecutionFailure(f"Failed to delete {path}: {result.stderr.strip()}")

    def list_files(self) -> List[str]:
        """All regular files under the root, excluding dependency and VCS directories."""
        excludes = " ".join(f"-not -path './{name}/*'" for name in EXCLUDED_DIRS)
        result = self.execute(f"find . -type f {excludes}")
        if not result.ok:
            raise ExecutionFailure(f"Failed to list sandbox files: {result.stderr.strip()}")
        return sorted(_strip_dot_slash(line) for line in result.stdout.splitlines() if line.strip())

    def release_port(self) -> None:
        """
        Stops whatever listens on the dev-server port so a new server can bind it.

        Runs ``fuser -k`` inside the sandbox. Backends that share the host's
        process table override this so unrelated host processes are left alone.
        """
        self.execute(f"fuser -k {self.port}/tcp 2>/dev/null || true")

    def close(self) -> None:
        """Releases sandbox resources. Idempotent."""

    def __enter__(self) -> "Sandbox":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _strip_dot_slash(path: str) -> str:
    path = path.strip()
    return path[2:] if path.startswith("./") else path


__all__ = ["EXCLUDED_DIRS", "Sandbox"]
