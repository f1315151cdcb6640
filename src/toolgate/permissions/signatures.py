"""Derive argument signatures from raw tool calls and suggest rules for them.

A signature is the text rule patterns are matched against.  Shell commands
are split into a command prefix and the remaining arguments, joined with a
colon: ``git log --oneline`` becomes ``git log:--oneline`` so that the rule
``Bash(git log:*)`` covers every ``git log`` invocation.

A command line holding several commands (``&&``, ``||``, ``;``, ``|``, ``&``,
newlines, subshells) is split, and each simple command gets its own
signature in :attr:`ToolInvocationRequest.subcommands`.  Lines using command
or process substitution, or with unterminated quotes, are not split; their
signature is the raw command text.
"""

from __future__ import annotations

import re
import shlex
from typing import Any
from urllib.parse import urlparse

from toolgate.permissions.patterns import (
    SEGMENT_SEPARATOR,
    WILDCARD,
    InvalidPatternError,
    compile_pattern,
)
from toolgate.types.permissions import ToolInvocationRequest

SHELL_TOOL = "Bash"

# Argument holding the path for each file-oriented tool
PATH_ARGS: dict[str, str] = {
    "Read": "file_path",
    "Write": "file_path",
    "Edit": "file_path",
    "MultiEdit": "file_path",
    "NotebookRead": "notebook_path",
    "NotebookEdit": "notebook_path",
    "Glob": "path",
    "Grep": "path",
    "LS": "path",
}

_SUBCOMMAND_RE = re.compile(r"^[A-Za-z][\w-]*$")
_SUBSTITUTION_RE = re.compile(r"\$\(|`|[<>]\(")
_COMPOUND_RE = re.compile(r"[;|&\n()`]|\$\(")
_PUNCTUATION = "();<>|&\n"
_SEPARATOR_CHARS = frozenset("();|&\n")


def has_substitution(command: str) -> bool:
    """True if *command* runs other commands through ``$(...)``, backticks or ``<(...)``."""
    return bool(_SUBSTITUTION_RE.search(command))


def is_compound_command(signature: str) -> bool:
    """True if a shell signature may chain, pipe or substitute commands.

    Quoting is not taken into account, so a quoted ``;`` also counts.
    """
    return bool(_COMPOUND_RE.search(signature))


def split_command(command: str) -> list[list[str]]:
    """Split a command line into the words of each simple command.

    Raises ``ValueError`` on unterminated quotes.
    """
    lexer = shlex.shlex(command, posix=True, punctuation_chars=_PUNCTUATION)
    lexer.whitespace = " \t\r"
    lexer.whitespace_split = True
    lexer.commenters = ""

    commands: list[list[str]] = []
    words: list[str] = []
    for token in lexer:
        if token and all(ch in _SEPARATOR_CHARS for ch in token):
            if words:
                commands.append(words)
                words = []
        else:
            words.append(token)
    if words:
        commands.append(words)
    return commands


def _words_signature(words: list[str]) -> str:
    prefix_len = 2 if len(words) > 1 and _SUBCOMMAND_RE.match(words[1]) else 1
    prefix = " ".join(words[:prefix_len])
    rest = " ".join(words[prefix_len:])
    if not rest:
        return prefix
    return f"{prefix}{SEGMENT_SEPARATOR}{rest}"


def command_signatures(command: str) -> tuple[str, ...]:
    """Signature of each simple command in *command*.

    Empty when the line cannot be split safely.
    """
    if has_substitution(command):
        return ()
    try:
        commands = split_command(command)
    except ValueError:
        return ()
    return tuple(_words_signature(words) for words in commands)


def command_signature(command: str) -> str:
    """Turn a shell command into a ``prefix:rest`` signature.

    A line holding more than one command, or one that cannot be split, keeps
    its raw text.
    """
    signatures = command_signatures(command)
    if len(signatures) == 1:
        return signatures[0]
    return command.strip()


def target_path(tool_name: str, args: dict[str, Any]) -> str | None:
    """Return the filesystem path a tool call touches, if any."""
    key = PATH_ARGS.get(tool_name)
    if key is None:
        return None
    value = args.get(key)
    if value is None or value == "":
        return None
    return str(value)


def arg_signature(tool_name: str, args: dict[str, Any]) -> str:
    """Build the signature rule patterns are matched against."""
    if tool_name == SHELL_TOOL:
        return command_signature(str(args.get("command", "")))
    if tool_name in PATH_ARGS:
        return target_path(tool_name, args) or ""
    if tool_name == "WebFetch" and "url" in args:
        host = urlparse(str(args["url"])).hostname or ""
        return f"domain{SEGMENT_SEPARATOR}{host}"
    return ""


def build_request(tool_name: str, args: dict[str, Any] | None = None) -> ToolInvocationRequest:
    """Build a :class:`ToolInvocationRequest` from a raw tool call."""
    args = args or {}
    subcommands: tuple[str, ...] = ()
    if tool_name == SHELL_TOOL:
        subcommands = command_signatures(str(args.get("command", "")))
    return ToolInvocationRequest(
        tool_name=tool_name,
        arg_signature=arg_signature(tool_name, args),
        target_path=target_path(tool_name, args),
        subcommands=subcommands,
    )


def _shell_rule(signature: str) -> str | None:
    prefix = signature.split(SEGMENT_SEPARATOR, 1)[0]
    if prefix and WILDCARD not in prefix and "(" not in prefix and ")" not in prefix:
        return f"{SHELL_TOOL}({prefix}{SEGMENT_SEPARATOR}{WILDCARD})"
    if WILDCARD in signature:
        return None
    pattern = f"{SHELL_TOOL}({signature})"
    try:
        compile_pattern(pattern)
    except InvalidPatternError:
        return None
    return pattern


def suggest_rules(request: ToolInvocationRequest) -> list[str]:
    """Suggest "always allow" patterns covering *request*.

    Each shell command gets a prefix rule (``Bash(npm run:*)``), or the exact
    command when its prefix cannot be written as a pattern.  A shell request
    that cannot be covered this way gets no suggestions; every other tool
    gets its bare name.
    """
    if request.tool_name != SHELL_TOOL:
        return [request.tool_name]

    signature = request.arg_signature
    parts = request.subcommands
    if not parts and signature and not is_compound_command(signature):
        parts = (signature,)

    suggestions: list[str] = []
    for part in parts:
        rule = _shell_rule(part)
        if rule is None:
            return []
        if rule not in suggestions:
            suggestions.append(rule)
    return suggestions
