"""
Moves project files between the local target directory and the sandbox.

``push`` seeds the sandbox once at the start of a run. ``pull`` reconciles the
sandbox back into the local directory when the run ends, whatever its
outcome: partial work is still worth keeping.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Tuple

from ralph_contracts import RalphError, SyncReport
from ralph_tools.sandbox import Sandbox

LOGGER = logging.getLogger(__name__)

SKIP_DIRS = frozenset({"node_modules", ".git", "dist", ".next", "build", ".cache", ".ralph"})
MAX_UPLOAD_BYTES = 1024 * 1024
UPLOAD_BATCH_SIZE = 50


class ResultSync:
    """
    Moves project files between a local directory and a sandbox.

    ``push`` seeds the sandbox before a run, ``pull`` copies the result back.
    Dependency and build directories are never transferred.

    Args:
        sandbox: Sandbox holding the working copy.
        local_dir: Project directory on this host.
        propagate_deletions: Remove local files the worker deleted.
        batch_size: Files per sandbox upload call.
        max_file_bytes: Files at or above this size are skipped on upload.
    """

    def __init__(
        self,
        sandbox: Sandbox,
        local_dir: str | Path,
        *,
        propagate_deletions: bool = True,
        batch_size: int = UPLOAD_BATCH_SIZE,
        max_file_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self.sandbox = sandbox
        self.local_dir = Path(local_dir).expanduser().resolve()
        self.propagate_deletions = propagate_deletions
        self.batch_size = max(batch_size, 1)
        self.max_file_bytes = max_file_bytes

    def _local_path(self, relative: str) -> Path:
        target = (self.local_dir / relative).resolve()
        if target != self.local_dir and self.local_dir not in target.parents:
            raise ValueError(f"Path escapes target directory: {relative}")
        return target

    def _collect_local(self) -> List[Tuple[str, bytes]]:
        files: List[Tuple[str, bytes]] = []
        if not self.local_dir.is_dir():
            return files
        for current, dirnames, filenames in os.walk(self.local_dir):
            dirnames[:] = sorted(name for name in dirnames if name not in SKIP_DIRS)
            for filename in sorted(filenames):
                path = Path(current) / filename
                try:
                    content = path.read_bytes()
                except OSError as exc:
                    LOGGER.debug("Skipping unreadable %s: %s", path, exc)
                    continue
                if len(content) >= self.max_file_bytes:
                    LOGGER.info("Skipping %s (%d bytes)", path, len(content))
                    continue
                files.append((path.relative_to(self.local_dir).as_posix(), content))
        return files

    def push(self) -> int:
        """Uploads the local project to the sandbox in batches; returns the file count."""
        files = self._collect_local()
        if not files:
            LOGGER.info("Starting with an empty sandbox (new project)")
            return 0
        for start in range(0, len(files), self.batch_size):
            self.sandbox.write_files(files[start : start + self.batch_size])
        LOGGER.info("Copied %d files to the sandbox", len(files))
        return len(files)

    def pull(self, deleted_paths: Iterable[str] = ()) -> SyncReport:
        """
        Copies sandbox files back to the local directory.

        Files whose content already matches are left alone. Paths in
        ``deleted_paths`` that are gone from the sandbox are removed locally
        when deletion propagation is on. A file that cannot be read or written
        is reported in ``failed`` and does not stop the sync.
        """
        report = SyncReport()
        remote_files = self.sandbox.list_files()
        for relative in remote_files:
            try:
                content = self.sandbox.read_file(relative)
                if content is None:
                    report.failed.append(relative)
                    continue
                target = self._local_path(relative)
                if target.is_file() and target.read_bytes() == content:
                    report.unchanged.append(relative)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(content)
                report.copied.append(relative)
            except (RalphError, OSError, ValueError) as exc:
                LOGGER.warning("Could not copy %s back: %s", relative, exc)
                report.failed.append(relative)

        if self.propagate_deletions:
            present = set(remote_files)
            for relative in deleted_paths:
                if relative in present:
                    continue
                try:
                    target = self._local_path(relative)
                    if target.is_file():
                        target.unlink()
                        report.deleted.append(relative)
                except (OSError, ValueError) as exc:
                    LOGGER.warning("Could not delete %s locally: %s", relative, exc)
                    report.failed.append(relative)

        LOGGER.info(
            "Copied %d files back (%d unchanged, %d deleted, %d failed)",
            len(report.copied),
            len(report.unchanged),
            len(report.deleted),
            len(report.failed),
        )
        return report


__all__ = ["MAX_UPLOAD_BYTES", "SKIP_DIRS", "ResultSync", "UPLOAD_BATCH_SIZE"]
