"""
Deterministic truncation of file content and command output.

Anything that can grow without bound (file reads, command output, HTTP
responses) passes through this module before it reaches a model. Oversized
text is cut to a configured ceiling and followed by an explicit marker that
states the true size and how to ask for more, so nothing is ever dropped
silently. The marker is machine-readable: ``parse_truncation_marker`` recovers
the original character and line counts from any truncated text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

FILE_HINT = "Use line_start/line_end to read specific sections"
OUTPUT_HINT = "Narrow the command (e.g. pipe through head, tail or grep) to see more"

_MARKER_TEMPLATE = "\n\n... [TRUNCATED: {chars} chars, {lines} lines total; showing {what}. {hint}] ..."
_MARKER_PATTERN = re.compile(
    r"\.\.\. \[TRUNCATED: (?P<chars>\d+) chars, (?P<lines>\d+) lines total; "
    r"showing (?P<what>[^.\]]+)\. (?P<hint>[^\]]*)\] \.\.\."
)


@dataclass(frozen=True)
class TruncationInfo:
    """Sizes recovered from a truncation marker."""

    total_chars: int
    total_lines: int
    showing: str


@dataclass(frozen=True)
class TruncatedText:
    """Result of passing text through a truncation policy."""

    text: str
    truncated: bool
    total_chars: int
    total_lines: int
    line_start: Optional[int] = None
    line_end: Optional[int] = None


def count_lines(text: str) -> int:
    """Number of lines as produced by splitting on newlines."""
    return text.count("\n") + 1


def truncation_marker(total_chars: int, total_lines: int, what: str, hint: str = FILE_HINT) -> str:
    """Note appended to cut output, stating the full size and how to see the rest."""
    return _MARKER_TEMPLATE.format(chars=total_chars, lines=total_lines, what=what, hint=hint)


def parse_truncation_marker(text: str) -> Optional[TruncationInfo]:
    """Returns the sizes stated by the last truncation marker in ``text``, if any."""
    matches = list(_MARKER_PATTERN.finditer(text))
    if not matches:
        return None
    match = matches[-1]
    return TruncationInfo(
        total_chars=int(match.group("chars")),
        total_lines=int(match.group("lines")),
        showing=match.group("what").strip(),
    )


def number_lines(lines: List[str], start: int = 1) -> str:
    """Prefixes each line with its right-aligned 1-indexed line number."""
    return "\n".join(f"{start + offset:>6}| {line}" for offset, line in enumerate(lines))


def truncate_text(text: str, limit: int, *, hint: str = OUTPUT_HINT) -> TruncatedText:
    """
    Caps ``text`` at ``limit`` characters.

    When the text is longer than the limit, the first ``limit`` characters are
    kept and a marker stating the full size is appended. The result is never
    longer than ``limit`` plus the marker.
    """
    total_chars = len(text)
    total_lines = count_lines(text)
    if total_chars <= limit:
        return TruncatedText(text=text, truncated=False, total_chars=total_chars, total_lines=total_lines)
    body = text[: max(limit, 0)]
    marker = truncation_marker(total_chars, total_lines, f"first {len(body)} chars", hint)
    return TruncatedText(
        text=body + marker,
        truncated=True,
        total_chars=total_chars,
        total_lines=total_lines,
    )


def preview_file(content: str, *, max_chars: int, max_lines: int) -> TruncatedText:
    """
    Returns a file's content, or a numbered preview of its head when it is too large.

    Files at or under ``max_chars`` come back verbatim. Larger files are shown
    as whole numbered lines from the top, stopping at ``max_lines`` lines or
    once the numbered preview would exceed ``max_chars``. A first line longer
    than the ceiling is cut mid-line so the preview is never empty.
    """
    total_chars = len(content)
    lines = content.split("\n")
    total_lines = len(lines)
    if total_chars <= max_chars:
        return TruncatedText(text=content, truncated=False, total_chars=total_chars, total_lines=total_lines)

    kept: List[str] = []
    used = 0
    for number, line in enumerate(lines[:max_lines], start=1):
        rendered = f"{number:>6}| {line}"
        cost = len(rendered) + (1 if kept else 0)
        if used + cost > max_chars:
            if not kept:
                kept.append(rendered[:max_chars])
            break
        kept.append(rendered)
        used += cost

    shown = len(kept)
    marker = truncation_marker(total_chars, total_lines, f"lines 1-{shown}", FILE_HINT)
    return TruncatedText(
        text="\n".join(kept) + marker,
        truncated=True,
        total_chars=total_chars,
        total_lines=total_lines,
        line_start=1,
        line_end=shown,
    )


def slice_lines(
    content: str,
    line_start: Optional[int],
    line_end: Optional[int],
    *,
    numbered: bool = True,
) -> TruncatedText:
    """
    Extracts an inclusive, 1-indexed line range.

    Bounds are clamped to the file; a range that starts past the end yields
    empty text.
    """
    lines = content.split("\n")
    total_lines = len(lines)
    start = max(1, line_start or 1)
    end = min(total_lines, line_end or total_lines)
    selected = lines[start - 1 : end] if start <= end else []
    text = number_lines(selected, start) if numbered else "\n".join(selected)
    return TruncatedText(
        text=text,
        truncated=False,
        total_chars=len(content),
        total_lines=total_lines,
        line_start=start,
        line_end=end,
    )


__all__ = [
    "FILE_HINT",
    "OUTPUT_HINT",
    "TruncatedText",
    "TruncationInfo",
    "count_lines",
    "number_lines",
    "parse_truncation_marker",
    "preview_file",
    "slice_lines",
    "truncate_text",
    "truncation_marker",
]
