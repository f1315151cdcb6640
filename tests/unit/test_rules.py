"""Tests for Rule, RuleSet and RuleStoreSnapshot."""

from __future__ import annotations

import pytest

from toolgate.permissions.patterns import InvalidPatternError
from toolgate.permissions.rules import (
    ALLOW_KEY,
    DENY_KEY,
    EMPTY_RULE_SET,
    Rule,
    RuleAction,
    RuleSet,
    RuleStoreSnapshot,
)
from toolgate.types.config import RuleSource

LOCAL = RuleSource.LOCAL_SETTINGS
POLICY = RuleSource.POLICY_SETTINGS
USER = RuleSource.USER_SETTINGS


def allow(pattern: str, source: RuleSource = LOCAL) -> Rule:
    return Rule.parse(pattern, RuleAction.ALLOW, source)


def deny(pattern: str, source: RuleSource = LOCAL) -> Rule:
    return Rule.parse(pattern, RuleAction.DENY, source)


class TestRuleAction:
    def test_settings_keys(self):
        assert RuleAction.ALLOW.settings_key == ALLOW_KEY == "alwaysAllowRules"
        assert RuleAction.DENY.settings_key == DENY_KEY == "alwaysDenyRules"


class TestRule:
    def test_parse_scoped(self):
        rule = allow("Bash(git log:*)")
        assert rule.tool_name == "Bash"
        assert rule.arg_pattern == "git log:*"
        assert rule.pattern == "Bash(git log:*)"
        assert rule.matches("Bash", "git log:--oneline")

    def test_parse_bare(self):
        rule = deny("WebSearch")
        assert rule.arg_pattern is None
        assert rule.pattern == "WebSearch"

    def test_empty_arg_pattern_normalized(self):
        rule = Rule("Bash", "", RuleAction.ALLOW, LOCAL)
        assert rule.arg_pattern is None
        assert rule == allow("Bash()")

    def test_direct_construction_compiles(self):
        rule = Rule("Bash", "npm run:*", RuleAction.ALLOW, LOCAL)
        assert rule.matches("Bash", "npm run:build")

    def test_invalid_pattern_raises(self):
        with pytest.raises(InvalidPatternError):
            allow("Bash(a*b)")
        with pytest.raises(InvalidPatternError):
            Rule("Bash", "a*b", RuleAction.ALLOW, LOCAL)

    def test_equality_includes_source_and_action(self):
        assert allow("Read") == allow("Read")
        assert allow("Read") != deny("Read")
        assert allow("Read", LOCAL) != allow("Read", USER)

    def test_hashable(self):
        assert len({allow("Read"), allow("Read"), deny("Read")}) == 2

    def test_frozen(self):
        rule = allow("Read")
        with pytest.raises(AttributeError):
            rule.tool_name = "Write"  # type: ignore[misc]


class TestRuleSet:
    def test_from_rules_buckets_by_tool_and_action(self):
        rs = RuleSet.from_rules([allow("Bash(git log:*)"), allow("Bash(npm test)"), deny("Bash(rm:*)")])
        assert [r.pattern for r in rs.always_allow_rules["Bash"]] == ["Bash(git log:*)", "Bash(npm test)"]
        assert [r.pattern for r in rs.always_deny_rules["Bash"]] == ["Bash(rm:*)"]

    def test_from_rules_deduplicates(self):
        rs = RuleSet.from_rules([allow("Read"), allow("Read")])
        assert len(rs) == 1

    def test_iteration_yields_deny_first(self):
        rs = RuleSet.from_rules([allow("Read"), deny("Bash")])
        assert [r.action for r in rs] == [RuleAction.DENY, RuleAction.ALLOW]

    def test_contains(self):
        rs = RuleSet.from_rules([allow("Read")])
        assert allow("Read") in rs
        assert deny("Read") not in rs
        assert "Read" not in rs

    def test_with_rule_returns_new_set(self):
        rs = RuleSet.from_rules([allow("Read")])
        grown = rs.with_rule(allow("Glob"))
        assert len(rs) == 1
        assert len(grown) == 2

    def test_with_existing_rule_is_identity(self):
        rs = RuleSet.from_rules([allow("Read")])
        assert rs.with_rule(allow("Read")) is rs

    def test_without_rule(self):
        rs = RuleSet.from_rules([allow("Read"), allow("Glob")])
        shrunk = rs.without_rule(allow("Read"))
        assert allow("Read") not in shrunk
        assert "Read" not in shrunk.always_allow_rules
        assert len(rs) == 2

    def test_buckets_are_read_only(self):
        rs = RuleSet.from_rules([allow("Read")])
        with pytest.raises(TypeError):
            rs.always_allow_rules["Glob"] = ()  # type: ignore[index]

    def test_to_raw(self):
        rs = RuleSet.from_rules([allow("Bash(git log:*)"), deny("mcp__fs__*")])
        assert rs.to_raw() == {
            "alwaysAllowRules": {"Bash": ["Bash(git log:*)"]},
            "alwaysDenyRules": {"mcp__fs__*": ["mcp__fs__*"]},
        }

    def test_empty(self):
        assert len(EMPTY_RULE_SET) == 0
        assert EMPTY_RULE_SET.to_raw() == {ALLOW_KEY: {}, DENY_KEY: {}}


class TestRuleStoreSnapshot:
    def test_flattened_in_precedence_order(self):
        snap = RuleStoreSnapshot.build(1, {
            USER: RuleSet.from_rules([deny("Bash", USER)]),
            POLICY: RuleSet.from_rules([deny("Bash(rm:*)", POLICY)]),
            LOCAL: RuleSet.from_rules([deny("WebFetch", LOCAL), allow("Read", LOCAL)]),
        })
        assert [r.source for r in snap.always_deny_rules] == [POLICY, LOCAL, USER]
        assert [r.pattern for r in snap.always_allow_rules] == ["Read"]

    def test_custom_precedence(self):
        order = (USER, LOCAL, POLICY, RuleSource.CLI_ARG, RuleSource.PROJECT_SETTINGS)
        snap = RuleStoreSnapshot.build(1, {
            POLICY: RuleSet.from_rules([allow("Read", POLICY)]),
            USER: RuleSet.from_rules([allow("Glob", USER)]),
        }, order)
        assert [r.source for r in snap.always_allow_rules] == [USER, POLICY]

    def test_missing_source_is_empty(self):
        snap = RuleStoreSnapshot.build(0, {})
        assert snap.rule_set(LOCAL) is EMPTY_RULE_SET

    def test_to_dict(self):
        snap = RuleStoreSnapshot.build(3, {LOCAL: RuleSet.from_rules([allow("Read", LOCAL)])})
        data = snap.to_dict()
        assert data["version"] == 3
        assert data["sources"]["localSettings"][ALLOW_KEY] == {"Read": ["Read"]}
        assert list(data["sources"]) == [
            "policySettings", "cliArg", "localSettings", "projectSettings", "userSettings",
        ]

    def test_rule_sets_read_only(self):
        snap = RuleStoreSnapshot.build(0, {})
        with pytest.raises(TypeError):
            snap.rule_sets[LOCAL] = EMPTY_RULE_SET  # type: ignore[index]
