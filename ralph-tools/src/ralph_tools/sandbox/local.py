"""A sandbox backed by a scratch directory on the host."""
from __future__ import annotations

import logging
import os
import subprocess
import time
from pathlib import Path
from typing import List, Optional, Union

from ralph_contracts import (
    DEFAULT_SERVER_PORT,
    CommandResult,
    ExecutionFailure,
    SandboxDescriptor,
    WriteError,
)

from .base import EXCLUDED_DIRS, Sandbox

LOGGER = logging.getLogger(__name__)


class LocalSandbox(Sandbox):
    """
    Runs commands with ``sh -c`` inside ``root`` on the host.

    There is no isolation beyond path checks on file operations: paths that
    resolve outside ``root`` are refused. Intended for local runs against a
    throwaway copy of a project and for tests.
    """

    def __init__(
        self,
        root: Union[str, Path],
        *,
        port: int = DEFAULT_SERVER_PORT,
        public_url: Optional[str] = None,
        default_timeout: Optional[float] = None,
    ) -> None:
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._default_timeout = default_timeout
        super().__init__(
            SandboxDescriptor(
                sandbox_id=self._root.name or "local",
                backend="local",
                root=str(self._root),
                port=port,
                public_url=public_url or f"http://localhost:{port}",
            )
        )

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        candidate = (self._root / path).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise ExecutionFailure(f"Path escapes sandbox root: {path}")
        return candidate

    def execute(self, command: str, *, timeout: Optional[float] = None) -> CommandResult:
        started = time.monotonic()
        try:
            completed = subprocess.run(
                ["sh", "-c", command],
                cwd=self._root,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout or self._default_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ExecutionFailure(f"Command timed out after {exc.timeout}s: {command}") from exc
        except OSError as exc:
            raise ExecutionFailure(f"Failed to run command: {exc}") from exc
        return CommandResult(
            command=command,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            exit_code=completed.returncode,
            duration_seconds=time.monotonic() - started,
            working_dir=str(self._root),
        )

    def read_file(self, path: str) -> Optional[bytes]:
        target = self._resolve(path)
        if not target.is_file():
            return None
        return target.read_bytes()

    def write_file(self, path: str, content: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise WriteError(f"Failed to write {path}: {exc}") from exc

    def delete_file(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_file() or target.is_symlink():
            target.unlink(missing_ok=True)

    def list_files(self) -> List[str]:
        found: List[str] = []
        for current, dirnames, filenames in os.walk(self._root):
            dirnames[:] = [name for name in dirnames if name not in EXCLUDED_DIRS]
            for filename in filenames:
                found.append((Path(current) / filename).relative_to(self._root).as_posix())
        return sorted(found)

    def release_port(self) -> None:
        """
        Leaves the port alone: commands run on the host, where the listener may
        be any unrelated process. A dev server started earlier in the run keeps
        the port until it exits.
        """
        LOGGER.info("Local sandbox: not freeing host port %d before starting the dev server", self.port)


__all__ = ["LocalSandbox"]
