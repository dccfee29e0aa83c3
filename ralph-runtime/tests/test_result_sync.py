from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

from ralph_runtime.sync import ResultSync
from ralph_tools.sandbox.local import LocalSandbox


def _populate(directory: Path, files: dict) -> None:
    for relative, content in files.items():
        path = directory / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


def test_push_skips_dependency_dirs_and_large_files(project_dir: Path, sandbox: LocalSandbox) -> None:
    _populate(
        project_dir,
        {
            "package.json": b"{}",
            "src/index.ts": b"export {};",
            "node_modules/left-pad/index.js": b"module.exports = 1;",
            ".git/HEAD": b"ref: refs/heads/main",
            "dist/bundle.js": b"compiled",
            "assets/huge.bin": b"0" * (1024 * 1024),
        },
    )

    copied = ResultSync(sandbox, project_dir).push()

    assert copied == 2
    assert sorted(sandbox.list_files()) == ["package.json", "src/index.ts"]


def test_push_writes_in_batches(project_dir: Path) -> None:
    _populate(project_dir, {f"file_{n:03}.txt": b"x" for n in range(120)})
    sandbox = MagicMock()

    copied = ResultSync(sandbox, project_dir).push()

    assert copied == 120
    assert [len(call.args[0]) for call in sandbox.write_files.call_args_list] == [50, 50, 20]


def test_push_of_empty_project_copies_nothing(project_dir: Path, sandbox: LocalSandbox) -> None:
    assert ResultSync(sandbox, project_dir).push() == 0


def test_pull_copies_changed_files_and_skips_unchanged(project_dir: Path, sandbox: LocalSandbox) -> None:
    _populate(project_dir, {"same.txt": b"same", "changed.txt": b"old"})
    sandbox.write_file("same.txt", b"same")
    sandbox.write_file("changed.txt", b"new")
    sandbox.write_file("src/new.ts", b"export const x = 1;")
    sandbox.write_file("node_modules/pkg/index.js", b"ignored")

    report = ResultSync(sandbox, project_dir).pull()

    assert sorted(report.copied) == ["changed.txt", "src/new.ts"]
    assert report.unchanged == ["same.txt"]
    assert (project_dir / "changed.txt").read_bytes() == b"new"
    assert (project_dir / "src/new.ts").exists()
    assert not (project_dir / "node_modules").exists()


def test_pull_propagates_worker_deletions(project_dir: Path, sandbox: LocalSandbox) -> None:
    _populate(project_dir, {"obsolete.ts": b"old", "keep.ts": b"keep"})
    sandbox.write_file("keep.ts", b"keep")

    report = ResultSync(sandbox, project_dir).pull(["obsolete.ts", "keep.ts"])

    assert report.deleted == ["obsolete.ts"]
    assert not (project_dir / "obsolete.ts").exists()
    assert (project_dir / "keep.ts").exists()


def test_pull_can_leave_deleted_files_alone(project_dir: Path, sandbox: LocalSandbox) -> None:
    _populate(project_dir, {"obsolete.ts": b"old"})

    report = ResultSync(sandbox, project_dir, propagate_deletions=False).pull(["obsolete.ts"])

    assert report.deleted == []
    assert (project_dir / "obsolete.ts").exists()


def test_unreadable_files_are_reported_and_do_not_stop_the_sync(project_dir: Path) -> None:
    sandbox = MagicMock()
    sandbox.list_files.return_value = ["gone.txt", "ok.txt"]
    sandbox.read_file.side_effect = lambda path: None if path == "gone.txt" else b"ok"

    report = ResultSync(sandbox, project_dir).pull()

    assert report.failed == ["gone.txt"]
    assert report.copied == ["ok.txt"]
    assert report.total == 1
