"""Rule pattern compilation.

A rule pattern names a tool and optionally constrains its argument signature:

- ``Bash`` matches every ``Bash`` call.
- ``mcp__github__*`` matches every tool of the ``github`` MCP server, and so
  does the bare server form ``mcp__github``.
- ``Bash(git log:*)`` matches ``Bash`` calls whose signature is ``git log`` or
  starts with ``git log:``.

The wildcard ``*`` may only appear once, at the very end of the pattern's
final segment.  Patterns are compiled eagerly so malformed rules are rejected
when settings load rather than at evaluation time.
"""

from __future__ import annotations

from dataclasses import dataclass

MCP_PREFIX = "mcp__"
WILDCARD = "*"
SEGMENT_SEPARATOR = ":"


class InvalidPatternError(ValueError):
    """Raised when a rule pattern cannot be compiled."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid rule pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


@dataclass(frozen=True, slots=True)
class Matcher:
    """A compiled rule pattern."""

    pattern: str
    tool_name: str
    arg_glob: str | None = None

    @property
    def is_tool_wildcard(self) -> bool:
        return self.tool_name.endswith(WILDCARD)

    @property
    def has_arg_wildcard(self) -> bool:
        return self.arg_glob is not None and self.arg_glob.endswith(WILDCARD)

    @property
    def is_server_rule(self) -> bool:
        """True for the bare ``mcp__<server>`` form."""
        if self.arg_glob is not None or not self.tool_name.startswith(MCP_PREFIX):
            return False
        return "__" not in self.tool_name[len(MCP_PREFIX):]

    def matches(self, tool_name: str, arg_signature: str = "") -> bool:
        """Check whether a concrete invocation matches this pattern."""
        if not self._matches_tool(tool_name):
            return False
        if self.arg_glob is None:
            return True
        return _matches_glob(self.arg_glob, arg_signature)

    def _matches_tool(self, tool_name: str) -> bool:
        if self.is_tool_wildcard:
            prefix = self.tool_name[:-1]
            return tool_name.startswith(prefix) and len(tool_name) > len(prefix)
        if self.is_server_rule:
            prefix = self.tool_name + "__"
            return tool_name.startswith(prefix) and len(tool_name) > len(prefix)
        return tool_name == self.tool_name


def _matches_glob(glob: str, signature: str) -> bool:
    if not glob.endswith(WILDCARD):
        return signature == glob
    stem = glob[:-1]
    if stem.endswith(SEGMENT_SEPARATOR):
        # "git log:*" also covers the bare "git log" with no trailing segment.
        return signature == stem[:-1] or signature.startswith(stem)
    if SEGMENT_SEPARATOR in stem:
        return signature.startswith(stem)
    # A "*" in the command prefix does not reach past the separator.
    return signature.startswith(stem) and SEGMENT_SEPARATOR not in signature[len(stem):]


def split_pattern(pattern: str) -> tuple[str, str | None]:
    """Split ``Tool(args)`` into ``("Tool", "args")``.

    ``Tool`` and ``Tool()`` both yield ``("Tool", None)``.  Raises
    :class:`InvalidPatternError` on unbalanced parentheses.
    """
    open_idx = pattern.find("(")
    if open_idx == -1:
        if ")" in pattern:
            raise InvalidPatternError(pattern, "unbalanced parentheses")
        return pattern, None

    if not pattern.endswith(")"):
        raise InvalidPatternError(pattern, "unbalanced parentheses")

    tool_name = pattern[:open_idx]
    inner = pattern[open_idx + 1:-1]
    depth = 0
    for ch in inner:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise InvalidPatternError(pattern, "unbalanced parentheses")
    if depth != 0:
        raise InvalidPatternError(pattern, "unbalanced parentheses")

    return tool_name, inner or None


def compile_pattern(pattern: str) -> Matcher:
    """Compile a rule pattern into a :class:`Matcher`.

    Raises :class:`InvalidPatternError` for an empty tool name, unbalanced
    parentheses, or a misplaced wildcard.
    """
    text = pattern.strip()
    if not text:
        raise InvalidPatternError(pattern, "empty tool name")

    tool_name, arg_glob = split_pattern(text)
    if not tool_name:
        raise InvalidPatternError(pattern, "empty tool name")

    _validate_tool_name(pattern, tool_name, has_args=arg_glob is not None)
    if arg_glob is not None:
        _validate_glob(pattern, arg_glob)

    return Matcher(pattern=text, tool_name=tool_name, arg_glob=arg_glob)


def _validate_tool_name(pattern: str, tool_name: str, *, has_args: bool) -> None:
    if WILDCARD not in tool_name:
        return
    server = tool_name[len(MCP_PREFIX):-len("__*")]
    if (
        not tool_name.startswith(MCP_PREFIX)
        or not tool_name.endswith("__" + WILDCARD)
        or tool_name.count(WILDCARD) != 1
        or not server
        or "__" in server
    ):
        raise InvalidPatternError(
            pattern, "wildcard in tool name is only allowed as mcp__<server>__*",
        )
    if has_args:
        raise InvalidPatternError(
            pattern, "argument pattern not allowed on a wildcard tool name",
        )


def _validate_glob(pattern: str, glob: str) -> None:
    count = glob.count(WILDCARD)
    if count == 0:
        return
    if count > 1 or not glob.endswith(WILDCARD):
        raise InvalidPatternError(
            pattern, "wildcard '*' is only allowed at the end of the final segment",
        )
