"""
A sandbox backed by a long-running Docker container and a named volume.

The container runs ``sleep infinity`` with the project volume mounted at
``/workspace`` and the dev-server port published on the host. Commands run
through ``docker exec ... bash -lc "set -o pipefail; <cmd>"``; files are read
with ``cat`` and written by piping bytes into ``docker exec -i``. Batched
uploads are streamed as a single tar archive.
"""
from __future__ import annotations

import io
import logging
import os
import subprocess
import tarfile
import time
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

from ralph_contracts import (
    DEFAULT_SANDBOX_ROOT,
    DEFAULT_SERVER_PORT,
    CommandResult,
    ExecutionFailure,
    SandboxDescriptor,
    WriteError,
    normalize_sandbox_name,
)

from .base import Sandbox

LOGGER = logging.getLogger(__name__)

DOCKER_BIN = os.environ.get("RALPH_DOCKER_BIN", "docker")
DEFAULT_IMAGE = os.environ.get("RALPH_DOCKER_IMAGE", "node:22-bookworm")

# Exit codes docker itself uses when it could not run the requested command.
_DOCKER_FAULT_CODES = {125, 126, 127}
_WRITE_SCRIPT = 'mkdir -p "$(dirname "$1")" && cat > "$1"'


@dataclass(frozen=True)
class SandboxResources:
    """Docker names derived from one sandbox id."""

    sandbox_id: str
    slug: str
    volume: str
    container: str


def _sandbox_resources(sandbox_id: str) -> SandboxResources:
    slug = normalize_sandbox_name(sandbox_id)
    volume = f"ralph-sbx-{slug}"
    container = f"{volume}-ctr"
    return SandboxResources(sandbox_id=sandbox_id, slug=slug, volume=volume, container=container)


def _run_docker(
    args: Sequence[str],
    *,
    timeout: Optional[float] = None,
    input: Optional[bytes] = None,
    text: bool = True,
) -> subprocess.CompletedProcess:
    command = [DOCKER_BIN, *args]
    try:
        return subprocess.run(
            command,
            capture_output=True,
            text=text,
            input=input if not text else None,
            check=False,
            timeout=timeout,
        )
    except FileNotFoundError as exc:  # pragma: no cover - depends on environment
        raise ExecutionFailure(f"Docker binary not found at '{DOCKER_BIN}'") from exc
    except subprocess.TimeoutExpired as exc:
        raise ExecutionFailure(f"Docker command timed out: {' '.join(command)}") from exc


def _stderr_text(result: subprocess.CompletedProcess) -> str:
    stderr = result.stderr
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    return (stderr or "").strip() or "unknown docker error"


class DockerSandbox(Sandbox):
    """Sandbox living in a Docker container; create one with :meth:`create`."""

    def __init__(
        self,
        resources: SandboxResources,
        *,
        image: str,
        port: int = DEFAULT_SERVER_PORT,
        host_port: Optional[int] = None,
        public_url: Optional[str] = None,
        keep_volume: bool = False,
        default_timeout: Optional[float] = None,
    ) -> None:
        self._resources = resources
        self._image = image
        self._keep_volume = keep_volume
        self._default_timeout = default_timeout
        self._closed = False
        exposed = host_port or port
        super().__init__(
            SandboxDescriptor(
                sandbox_id=resources.sandbox_id,
                backend="docker",
                root=DEFAULT_SANDBOX_ROOT,
                port=port,
                public_url=public_url or f"http://localhost:{exposed}",
                container=resources.container,
                volume=resources.volume,
                image=image,
            )
        )

    @classmethod
    def create(
        cls,
        sandbox_id: Optional[str] = None,
        *,
        image: Optional[str] = None,
        port: int = DEFAULT_SERVER_PORT,
        host_port: Optional[int] = None,
        public_url: Optional[str] = None,
        keep_volume: bool = False,
        default_timeout: Optional[float] = None,
    ) -> "DockerSandbox":
        """Provisions the volume and container and returns a ready sandbox."""
        resources = _sandbox_resources(sandbox_id or f"run-{uuid.uuid4().hex[:8]}")
        selected_image = image or DEFAULT_IMAGE
        exposed = host_port or port

        result = _run_docker(["volume", "create", resources.volume])
        if result.returncode != 0:
            raise ExecutionFailure(f"Failed to create volume {resources.volume}: {_stderr_text(result)}")

        command = [
            "run",
            "-d",
            "--name",
            resources.container,
            "--mount",
            f"type=volume,source={resources.volume},target={DEFAULT_SANDBOX_ROOT}",
            "-w",
            DEFAULT_SANDBOX_ROOT,
            "-p",
            f"{exposed}:{port}",
            "-e",
            f"SANDBOX_ID={resources.sandbox_id}",
            selected_image,
            "sleep",
            "infinity",
        ]
        result = _run_docker(command)
        if result.returncode != 0:
            raise ExecutionFailure(f"Failed to start sandbox container: {_stderr_text(result)}")
        LOGGER.info("Started sandbox container %s from %s", resources.container, selected_image)
        return cls(
            resources,
            image=selected_image,
            port=port,
            host_port=host_port,
            public_url=public_url,
            keep_volume=keep_volume,
            default_timeout=default_timeout,
        )

    @property
    def container(self) -> str:
        return self._resources.container

    def execute(self, command: str, *, timeout: Optional[float] = None) -> CommandResult:
        started = time.monotonic()
        result = _run_docker(
            ["exec", "-w", DEFAULT_SANDBOX_ROOT, self.container, "bash", "-lc", f"set -o pipefail; {command}"],
            timeout=timeout or self._default_timeout,
        )
        if result.returncode in _DOCKER_FAULT_CODES:
            stderr = _stderr_text(result)
            if "No such container" in stderr or "is not running" in stderr:
                raise ExecutionFailure(f"Sandbox container unavailable: {stderr}")
        return CommandResult(
            command=command,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            exit_code=result.returncode,
            duration_seconds=time.monotonic() - started,
            working_dir=DEFAULT_SANDBOX_ROOT,
        )

    def read_file(self, path: str) -> Optional[bytes]:
        result = _run_docker(
            ["exec", "-w", DEFAULT_SANDBOX_ROOT, self.container, "cat", "--", path],
            text=False,
        )
        if result.returncode == 0:
            return result.stdout
        if result.returncode in _DOCKER_FAULT_CODES:
            raise ExecutionFailure(f"Failed to read {path}: {_stderr_text(result)}")
        return None

    def write_file(self, path: str, content: bytes) -> None:
        result = _run_docker(
            ["exec", "-i", "-w", DEFAULT_SANDBOX_ROOT, self.container, "sh", "-c", _WRITE_SCRIPT, "sh", path],
            input=content,
            text=False,
        )
        if result.returncode != 0:
            raise WriteError(f"Failed to write {path}: {_stderr_text(result)}")

    def write_files(self, files: Iterable[Tuple[str, bytes]]) -> None:
        archive = _tar_archive(files)
        result = _run_docker(
            ["exec", "-i", "-w", DEFAULT_SANDBOX_ROOT, self.container, "tar", "-xf", "-"],
            input=archive,
            text=False,
        )
        if result.returncode != 0:
            raise WriteError(f"Failed to upload files: {_stderr_text(result)}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        result = _run_docker(["rm", "-f", self.container])
        if result.returncode != 0:
            LOGGER.warning("Failed to remove container %s: %s", self.container, _stderr_text(result))
        if not self._keep_volume:
            result = _run_docker(["volume", "rm", self._resources.volume])
            if result.returncode != 0:
                LOGGER.warning(
                    "Failed to remove volume %s: %s", self._resources.volume, _stderr_text(result)
                )
        LOGGER.info("Closed sandbox %s", self._resources.sandbox_id)


def _tar_archive(files: Iterable[Tuple[str, Union[bytes, bytearray]]]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        for path, content in files:
            info = tarfile.TarInfo(name=path)
            info.size = len(content)
            info.mtime = int(time.time())
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(bytes(content)))
    return buffer.getvalue()


__all__ = ["DEFAULT_IMAGE", "DockerSandbox", "SandboxResources"]
