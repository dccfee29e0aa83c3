"""
File tools for the worker and the judge.

Every tool here works on sandbox-relative paths through the sandbox
collaborator. Reads pass through the truncation policy so a single large file
cannot flood the model's context: the worker gets a numbered preview of the
head plus a marker stating the true size, and can then page through the file
with ``line_start``/``line_end``. Edits go through the unique-match editor.
"""
from __future__ import annotations

import logging
import shlex
from typing import List, Optional

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from ralph_contracts import NotFoundError

from ..context import ToolContext
from ..editor import edit_file as apply_edit
from ..sandbox.base import EXCLUDED_DIRS
from ..truncation import FILE_HINT, preview_file, slice_lines, truncate_text
from .payloads import json_success, tool_boundary

LOGGER = logging.getLogger(__name__)


class ListFilesRequest(BaseModel):
    pattern: str = Field(
        ...,
        min_length=1,
        description='Path fragment or glob to match, e.g. "src/" or "*.ts".',
    )


class ReadFileRequest(BaseModel):
    file_path: str = Field(..., min_length=1, description="Path to the file, relative to the project root.")
    line_start: Optional[int] = Field(
        default=None,
        ge=1,
        description="First line to read (1-indexed). Use for large files.",
    )
    line_end: Optional[int] = Field(
        default=None,
        ge=1,
        description="Last line to read (inclusive). Use for large files.",
    )


class WriteFileRequest(BaseModel):
    file_path: str = Field(..., min_length=1, description="Path to the file, relative to the project root.")
    content: str = Field(..., description="Complete new file content.")


class EditFileRequest(BaseModel):
    file_path: str = Field(..., min_length=1, description="Path to the file, relative to the project root.")
    old_string: str = Field(
        ...,
        min_length=1,
        description="Exact text to replace. Must appear exactly once; include surrounding lines if needed.",
    )
    new_string: str = Field(..., description="Replacement text.")


class DeleteFileRequest(BaseModel):
    file_path: str = Field(..., min_length=1, description="Path to the file, relative to the project root.")


def find_files(ctx: ToolContext, pattern: str) -> List[str]:
    """Sandbox-relative paths containing ``pattern``, dependency and VCS dirs excluded."""
    excludes = " ".join(f"-not -path '*/{name}/*'" for name in EXCLUDED_DIRS)
    command = f"find . -type f -path {shlex.quote(f'*{pattern}*')} {excludes}"
    result = ctx.sandbox.execute(command, timeout=ctx.limits.command_timeout)
    files: List[str] = []
    for line in result.stdout.splitlines():
        line = line.strip()
        if not line:
            continue
        files.append(line[2:] if line.startswith("./") else line)
        if len(files) >= ctx.limits.list_files_limit:
            break
    return files


def _read_text(ctx: ToolContext, file_path: str) -> str:
    raw = ctx.sandbox.read_file(file_path)
    if raw is None:
        raise NotFoundError(file_path)
    return raw.decode("utf-8", errors="replace")


def _list_files_tool(ctx: ToolContext) -> BaseTool:
    @tool("list_files", args_schema=ListFilesRequest)
    @tool_boundary
    def list_files(pattern: str) -> str:
        """List files in the sandbox whose path contains a pattern (at most 100 results)."""
        files = find_files(ctx, pattern)
        LOGGER.debug("Found %d files matching %r", len(files), pattern)
        return json_success(files=files, count=len(files))

    return list_files


def build_worker_file_tools(ctx: ToolContext) -> List[BaseTool]:
    """File tools for the worker: list, read, write, edit and delete."""
    limits = ctx.limits

    @tool("read_file", args_schema=ReadFileRequest)
    @tool_boundary
    def read_file(file_path: str, line_start: Optional[int] = None, line_end: Optional[int] = None) -> str:
        """Read a file. Large files are truncated to a numbered preview; use line_start/line_end
        to read specific sections (returned with line numbers)."""
        content = _read_text(ctx, file_path)
        if line_start is not None or line_end is not None:
            section = slice_lines(content, line_start, line_end)
            capped = truncate_text(section.text, limits.max_file_chars, hint=FILE_HINT)
            LOGGER.debug(
                "Read %s lines %s-%s of %s", file_path, section.line_start, section.line_end, section.total_lines
            )
            return json_success(
                file_path=file_path,
                content=capped.text,
                total_lines=section.total_lines,
                line_range={"start": section.line_start, "end": section.line_end},
                truncated=capped.truncated,
            )

        preview = preview_file(
            content,
            max_chars=limits.max_file_chars,
            max_lines=limits.max_file_lines_preview,
        )
        if preview.truncated:
            LOGGER.warning(
                "Read %s truncated: %d lines, showing %d-%d",
                file_path,
                preview.total_lines,
                preview.line_start,
                preview.line_end,
            )
            return json_success(
                file_path=file_path,
                content=preview.text,
                total_lines=preview.total_lines,
                truncated=True,
                line_range={"start": preview.line_start, "end": preview.line_end},
            )
        LOGGER.debug("Read %s (%d chars)", file_path, preview.total_chars)
        return json_success(file_path=file_path, content=content, total_lines=preview.total_lines)

    @tool("write_file", args_schema=WriteFileRequest)
    @tool_boundary
    def write_file(file_path: str, content: str) -> str:
        """Create or overwrite a file with the given content. Prefer edit_file for small changes."""
        data = content.encode("utf-8")
        ctx.sandbox.write_file(file_path, data)
        LOGGER.info("Wrote %s (%d bytes)", file_path, len(data))
        return json_success(file_path=file_path, bytes_written=len(data))

    @tool("edit_file", args_schema=EditFileRequest)
    @tool_boundary
    def edit_file(file_path: str, old_string: str, new_string: str) -> str:
        """Replace one exact, unique occurrence of old_string with new_string. Fails if old_string
        is missing or appears more than once; add surrounding context to make it unique."""
        outcome = apply_edit(ctx.sandbox, file_path, old_string, new_string)
        return json_success(
            file_path=outcome.path,
            line=outcome.line,
            replaced=outcome.replaced,
            **{"with": outcome.inserted},
        )

    @tool("delete_file", args_schema=DeleteFileRequest)
    @tool_boundary
    def delete_file(file_path: str) -> str:
        """Delete a file. Deleting a file that does not exist is not an error."""
        ctx.sandbox.delete_file(file_path)
        LOGGER.info("Deleted %s", file_path)
        return json_success(file_path=file_path)

    return [_list_files_tool(ctx), read_file, write_file, edit_file, delete_file]


def build_judge_file_tools(ctx: ToolContext) -> List[BaseTool]:
    """Read-only file tools for the judge: list and read."""
    limits = ctx.limits

    @tool("read_file", args_schema=ReadFileRequest)
    @tool_boundary
    def read_file(file_path: str, line_start: Optional[int] = None, line_end: Optional[int] = None) -> str:
        """Read a file to review changes. Use line_start/line_end for large files."""
        content = _read_text(ctx, file_path)
        if line_start is not None or line_end is not None:
            section = slice_lines(content, line_start, line_end, numbered=False)
            capped = truncate_text(section.text, limits.judge_max_file_chars, hint=FILE_HINT)
            return json_success(
                file_path=file_path,
                content=capped.text,
                total_lines=section.total_lines,
                truncated=capped.truncated,
            )
        capped = truncate_text(content, limits.judge_max_file_chars, hint=FILE_HINT)
        return json_success(
            file_path=file_path,
            content=capped.text,
            total_lines=capped.total_lines,
            truncated=capped.truncated,
        )

    return [_list_files_tool(ctx), read_file]


__all__ = [
    "ListFilesRequest",
    "ReadFileRequest",
    "WriteFileRequest",
    "EditFileRequest",
    "DeleteFileRequest",
    "build_judge_file_tools",
    "build_worker_file_tools",
    "find_files",
]
