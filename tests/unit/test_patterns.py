"""Tests for rule pattern compilation and matching."""

from __future__ import annotations

import pytest

from toolgate.permissions.patterns import (
    InvalidPatternError,
    compile_pattern,
    split_pattern,
)

# --- split_pattern ---


class TestSplitPattern:
    def test_bare_name(self):
        assert split_pattern("Bash") == ("Bash", None)

    def test_with_args(self):
        assert split_pattern("Bash(git log:*)") == ("Bash", "git log:*")

    def test_empty_parens(self):
        assert split_pattern("Bash()") == ("Bash", None)

    def test_nested_parens(self):
        assert split_pattern("Bash(echo (hi))") == ("Bash", "echo (hi)")

    @pytest.mark.parametrize("pattern", ["Bash(git", "Bash)", "Bash(git)x", "Bash(a))(", "Bash((a)"])
    def test_unbalanced(self, pattern):
        with pytest.raises(InvalidPatternError, match="unbalanced"):
            split_pattern(pattern)


# --- compile_pattern ---


class TestCompileBareTool:
    def test_matches_any_arguments(self):
        m = compile_pattern("Bash")
        assert m.tool_name == "Bash"
        assert m.arg_glob is None
        assert m.matches("Bash", "rm:-rf /")
        assert m.matches("Bash", "")

    def test_does_not_match_other_tools(self):
        m = compile_pattern("Bash")
        assert not m.matches("Read")
        assert not m.matches("BashOutput")

    def test_empty_parens_equivalent_to_bare(self):
        assert compile_pattern("Bash()").arg_glob is None
        assert compile_pattern("Bash()").matches("Bash", "anything")

    def test_surrounding_whitespace_stripped(self):
        m = compile_pattern("  Bash(git log:*) ")
        assert m.pattern == "Bash(git log:*)"
        assert m.matches("Bash", "git log")


class TestCompileScoped:
    def test_prefix_rule_matches_final_segment(self):
        m = compile_pattern("Bash(git log:*)")
        assert m.matches("Bash", "git log:--oneline")
        assert m.matches("Bash", "git log:-n 5 --stat")

    def test_prefix_rule_matches_empty_final_segment(self):
        assert compile_pattern("Bash(git log:*)").matches("Bash", "git log")

    def test_prefix_rule_rejects_other_commands(self):
        m = compile_pattern("Bash(git log:*)")
        assert not m.matches("Bash", "git push:origin")
        assert not m.matches("Bash", "git logs")
        assert not m.matches("Bash", "")

    def test_prefix_rule_only_for_named_tool(self):
        assert not compile_pattern("Bash(git log:*)").matches("Read", "git log")

    def test_exact_signature(self):
        m = compile_pattern("Bash(npm test)")
        assert m.matches("Bash", "npm test")
        assert not m.matches("Bash", "npm test:--watch")

    def test_trailing_wildcard_without_separator(self):
        m = compile_pattern("WebFetch(domain:docs.*)")
        assert m.matches("WebFetch", "domain:docs.python.org")
        assert not m.matches("WebFetch", "domain:example.com")

    def test_nested_parens_match_literally(self):
        assert compile_pattern("Bash(echo (hi))").matches("Bash", "echo (hi)")

    def test_wildcard_stays_in_command_prefix(self):
        m = compile_pattern("Bash(git*)")
        assert m.matches("Bash", "git")
        assert m.matches("Bash", "gitk")
        assert m.matches("Bash", "git status")
        assert not m.matches("Bash", "git push:--force origin main")
        assert not m.matches("Bash", "gitk:--all")

    def test_wildcard_in_final_segment_spans_colons(self):
        m = compile_pattern("Bash(git log:--format=*)")
        assert m.matches("Bash", "git log:--format=%H:%s")
        assert not m.matches("Bash", "git log:--oneline")

    def test_has_arg_wildcard(self):
        assert compile_pattern("Bash(git log:*)").has_arg_wildcard
        assert not compile_pattern("Bash(npm test)").has_arg_wildcard
        assert not compile_pattern("Bash").has_arg_wildcard


class TestEveryPatternIsMeaningful:
    """Each accepted pattern shape matches some call and rejects another."""

    @pytest.mark.parametrize("pattern,matching,other", [
        ("Bash", ("Bash", "rm:-rf /"), ("Read", "")),
        ("Bash()", ("Bash", ""), ("BashOutput", "")),
        ("Bash(npm test)", ("Bash", "npm test"), ("Bash", "npm test:--watch")),
        ("Bash(git log:*)", ("Bash", "git log:-n 3"), ("Bash", "git push:origin")),
        ("Bash(git*)", ("Bash", "gitk"), ("Bash", "git push:--force")),
        ("mcp__github__*", ("mcp__github__create_issue", ""), ("mcp__gitlab__create_issue", "")),
        ("mcp__github", ("mcp__github__list_prs", ""), ("mcp__githubx__list_prs", "")),
    ])
    def test_matches_and_rejects(self, pattern, matching, other):
        m = compile_pattern(pattern)
        assert m.matches(*matching)
        assert not m.matches(*other)


class TestCompileMcp:
    def test_server_wildcard(self):
        m = compile_pattern("mcp__github__*")
        assert m.is_tool_wildcard
        assert m.matches("mcp__github__create_issue")
        assert not m.matches("mcp__gitlab__create_issue")
        assert not m.matches("mcp__github__")

    def test_bare_server_rule(self):
        m = compile_pattern("mcp__github")
        assert m.is_server_rule
        assert m.matches("mcp__github__list_prs")
        assert not m.matches("mcp__githubx__list_prs")

    def test_single_mcp_tool(self):
        m = compile_pattern("mcp__github__create_issue")
        assert not m.is_server_rule
        assert m.matches("mcp__github__create_issue")
        assert not m.matches("mcp__github__delete_repo")


class TestInvalidPatterns:
    @pytest.mark.parametrize("pattern", ["", "   ", "(git log)"])
    def test_empty_tool_name(self, pattern):
        with pytest.raises(InvalidPatternError, match="empty tool name"):
            compile_pattern(pattern)

    @pytest.mark.parametrize("pattern", ["Bash(git", "Bash(git)extra"])
    def test_unbalanced(self, pattern):
        with pytest.raises(InvalidPatternError, match="unbalanced"):
            compile_pattern(pattern)

    @pytest.mark.parametrize("pattern", ["Bash(*:x)", "Bash(a*b)", "Bash(a**)", "Bash(git *:push)"])
    def test_misplaced_wildcard_in_args(self, pattern):
        with pytest.raises(InvalidPatternError, match="only allowed at the end"):
            compile_pattern(pattern)

    @pytest.mark.parametrize("pattern", ["Ba*sh", "*", "mcp__*", "mcp____*", "mcp__a__b__*", "mcp__*__x"])
    def test_wildcard_in_tool_name(self, pattern):
        with pytest.raises(InvalidPatternError, match="mcp__<server>__"):
            compile_pattern(pattern)

    def test_args_on_wildcard_tool(self):
        with pytest.raises(InvalidPatternError, match="not allowed on a wildcard"):
            compile_pattern("mcp__github__*(x)")

    def test_error_is_value_error_with_details(self):
        with pytest.raises(ValueError) as exc_info:
            compile_pattern("Bash(a*b)")
        err = exc_info.value
        assert isinstance(err, InvalidPatternError)
        assert err.pattern == "Bash(a*b)"
        assert "wildcard" in err.reason
