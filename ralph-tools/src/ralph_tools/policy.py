"""
Command policies: the hook that decides whether an agent-chosen shell string
may run in the sandbox.

Commands are free-form strings chosen by a model. The default policy trusts
the sandbox to contain them; deployments that cannot make that assumption
configure an allow-list of executables instead.

``PrefixAllowListPolicy`` only reasons about the command line it is given. It
tokenizes the command the way a POSIX shell splits operators, requires every
simple command in it to start with an allow-listed executable, and refuses the
shell features that would run or write something the tokens do not show:

- command substitution (``$(...)`` and backticks) and process substitution
  (``<(...)``, ``>(...)``), anywhere in the string, quoted or not;
- redirections to or from files (``>``, ``>>``, ``<``, ``<<``, ``&>``), while
  file-descriptor duplication such as ``2>&1`` stays allowed;
- subshells and groups (``( ... )``, ``{ ...; }``), which have no executable
  of their own.

An allow-listed executable can of course still do anything it is able to do
(``npm run`` executes package scripts, ``node -e`` runs code). Choose the list
accordingly.

Example:
    >>> policy = PrefixAllowListPolicy(["npm", "grep"])
    >>> policy.check("npm run build 2>&1 | grep error")
    >>> policy.check("npm test > /etc/passwd")
    Traceback (most recent call last):
    ...
    ralph_contracts.errors.CommandRejected: Command not allowed: redirection '>' is not permitted
"""
from __future__ import annotations

import logging
import shlex
from typing import Iterable, List, Optional, Protocol

from ralph_contracts import CommandRejected

LOGGER = logging.getLogger(__name__)

_OPERATOR_CHARS = "();<>|&\n"
_SEPARATOR_CHARS = frozenset("|&;\n")
_SUBSTITUTIONS = ("$(", "`", "<(", ">(")
_FD_DUPLICATIONS = frozenset({">&", "<&"})


class CommandPolicy(Protocol):
    def check(self, command: str) -> None:
        """Raises ``CommandRejected`` when ``command`` must not run."""


class AllowAllPolicy:
    """Accepts every command."""

    def check(self, command: str) -> None:
        return None


class PrefixAllowListPolicy:
    """
    Accepts a command only when every simple command in it starts with an
    allow-listed executable and it uses no substitution, file redirection or
    subshell.

    Simple commands are separated by ``&&``, ``||``, ``;``, ``|``, ``&`` and
    newlines. Leading ``VAR=value`` assignments are skipped when finding the
    executable. A bare executable name must be in the list; a path such as
    ``./bin/npm`` must appear in the list verbatim.

    Args:
        allowed: Executable names (or exact paths) that may start a command.
    """

    def __init__(self, allowed: Iterable[str]) -> None:
        self._allowed = frozenset(name.strip() for name in allowed if name and name.strip())

    @property
    def allowed(self) -> frozenset:
        return self._allowed

    def check(self, command: str) -> None:
        """
        Validates ``command`` against the allow-list.

        Raises:
            CommandRejected: naming the first offending executable or shell
                construct.
        """
        for marker in _SUBSTITUTIONS:
            if marker in command:
                raise _rejection(command, f"substitution '{marker}' is not permitted")
        try:
            tokens = _tokenize(command)
        except ValueError as exc:
            raise _rejection(command, f"could not parse command ({exc})") from exc
        for segment in _segments(command, tokens):
            executable = _executable(segment)
            if executable is None:
                continue
            if executable not in self._allowed:
                raise _rejection(command, f"'{executable}' is not in the allow-list")


def _tokenize(command: str) -> List[str]:
    lexer = shlex.shlex(command, posix=True, punctuation_chars=_OPERATOR_CHARS)
    lexer.whitespace = " \t\r"
    lexer.whitespace_split = True
    # '#' inside a word is literal to the shell; shlex would drop the rest of the line.
    lexer.commenters = ""
    return list(lexer)


def _is_operator(token: str) -> bool:
    return bool(token) and all(char in _OPERATOR_CHARS for char in token)


def _segments(command: str, tokens: List[str]) -> List[List[str]]:
    segments: List[List[str]] = [[]]
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if not _is_operator(token):
            segments[-1].append(token)
        elif "(" in token or ")" in token:
            raise _rejection(command, "subshells are not permitted")
        elif "<" in token or ">" in token:
            following = tokens[index + 1] if index + 1 < len(tokens) else ""
            if token not in _FD_DUPLICATIONS or not (following.isdigit() or following == "-"):
                raise _rejection(command, f"redirection '{token}' is not permitted")
            index += 1
        elif set(token) <= _SEPARATOR_CHARS:
            segments.append([])
        index += 1
    return [segment for segment in segments if segment]


def _rejection(command: str, reason: str) -> CommandRejected:
    LOGGER.warning("Rejected command %r: %s", command, reason)
    return CommandRejected(f"Command not allowed: {reason}")


def _executable(words: List[str]) -> Optional[str]:
    for word in words:
        if "=" in word and not word.startswith("="):
            name = word.split("=", 1)[0]
            if name.isidentifier():
                continue
        return word
    return None


def policy_from_allowlist(raw: Optional[str]) -> CommandPolicy:
    """Builds a policy from a comma-separated allow-list; empty means allow all."""
    names = [name for name in (raw or "").split(",") if name.strip()]
    if not names:
        return AllowAllPolicy()
    return PrefixAllowListPolicy(names)


__all__ = ["CommandPolicy", "AllowAllPolicy", "PrefixAllowListPolicy", "policy_from_allowlist"]
