"""
Unique-match text substitution.

An edit names an exact search string and its replacement. The edit applies
only when the search string occurs exactly once in the file; zero matches and
multiple matches are both failures that leave the file untouched. This forces
the caller to supply enough surrounding context to pin down one location
instead of letting the editor guess.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ralph_contracts import AmbiguousMatchError, NotFoundError

from .sandbox.base import Sandbox

LOGGER = logging.getLogger(__name__)

ECHO_PREVIEW_CHARS = 100


@dataclass(frozen=True)
class EditOutcome:
    """Result of a single replacement; ``offset`` is a character index, ``line`` is 1-based."""

    path: str
    replaced: str
    inserted: str
    offset: int
    line: int


def echo_preview(text: str, limit: int = ECHO_PREVIEW_CHARS) -> str:
    """Shortens ``text`` to ``limit`` characters followed by ``...`` when longer."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def apply_unique_edit(content: str, old: str, new: str) -> str:
    """
    Replaces the single occurrence of ``old`` in ``content`` with ``new``.

    Occurrences are counted non-overlapping. Raises ``AmbiguousMatchError``
    carrying the match count when it is anything other than one.
    """
    if not old:
        raise ValueError("old_string must not be empty")
    count = content.count(old)
    if count != 1:
        raise AmbiguousMatchError(count)
    return content.replace(old, new, 1)


def edit_file(sandbox: Sandbox, path: str, old: str, new: str) -> EditOutcome:
    """Applies a unique-match edit to ``path`` inside the sandbox and persists it."""
    raw = sandbox.read_file(path)
    if raw is None:
        raise NotFoundError(path)
    content = raw.decode("utf-8")
    updated = apply_unique_edit(content, old, new)
    sandbox.write_file(path, updated.encode("utf-8"))
    offset = content.index(old)
    line = content.count("\n", 0, offset) + 1
    LOGGER.info("Edited %s at line %d", path, line)
    return EditOutcome(
        path=path,
        replaced=echo_preview(old),
        inserted=echo_preview(new),
        offset=offset,
        line=line,
    )


__all__ = ["ECHO_PREVIEW_CHARS", "EditOutcome", "apply_unique_edit", "echo_preview", "edit_file"]
