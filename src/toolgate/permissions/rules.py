"""Permission rules, per-source rule sets and merged snapshots."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, TypedDict, cast

from toolgate.permissions.patterns import Matcher, compile_pattern
from toolgate.types.config import SOURCE_PRECEDENCE, RuleSource

ALLOW_KEY = "alwaysAllowRules"
DENY_KEY = "alwaysDenyRules"


class RuleAction(Enum):
    """What a matching rule does."""

    ALLOW = "allow"
    DENY = "deny"

    @property
    def settings_key(self) -> str:
        return ALLOW_KEY if self is RuleAction.ALLOW else DENY_KEY


class RawRules(TypedDict, total=False):
    """Rules as stored in a settings document: tool name -> pattern strings."""

    alwaysAllowRules: dict[str, list[str]]
    alwaysDenyRules: dict[str, list[str]]


@dataclass(frozen=True, slots=True)
class Rule:
    """A single allow/deny pattern bound to a tool name and source.

    The matcher is compiled on construction, so building a Rule from a bad
    pattern raises :class:`~toolgate.permissions.patterns.InvalidPatternError`.
    """

    tool_name: str
    arg_pattern: str | None
    action: RuleAction
    source: RuleSource
    _matcher: Matcher | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.arg_pattern == "":
            object.__setattr__(self, "arg_pattern", None)
        if self._matcher is None:
            object.__setattr__(self, "_matcher", compile_pattern(self.pattern))

    @classmethod
    def parse(cls, pattern: str, action: RuleAction, source: RuleSource) -> Rule:
        """Build a Rule from pattern text such as ``Bash(git log:*)``."""
        matcher = compile_pattern(pattern)
        return cls(
            tool_name=matcher.tool_name,
            arg_pattern=matcher.arg_glob,
            action=action,
            source=source,
            _matcher=matcher,
        )

    @property
    def pattern(self) -> str:
        """The rule rendered back to pattern text."""
        if self.arg_pattern is None:
            return self.tool_name
        return f"{self.tool_name}({self.arg_pattern})"

    @property
    def matcher(self) -> Matcher:
        return cast(Matcher, self._matcher)

    def matches(self, tool_name: str, arg_signature: str = "") -> bool:
        return self.matcher.matches(tool_name, arg_signature)


def _freeze(buckets: Mapping[str, tuple[Rule, ...]]) -> Mapping[str, tuple[Rule, ...]]:
    return MappingProxyType({k: v for k, v in buckets.items() if v})


@dataclass(frozen=True, slots=True)
class RuleSet:
    """Allow and deny rules from one source, keyed by tool name."""

    always_allow_rules: Mapping[str, tuple[Rule, ...]] = field(
        default_factory=lambda: MappingProxyType({}),
    )
    always_deny_rules: Mapping[str, tuple[Rule, ...]] = field(
        default_factory=lambda: MappingProxyType({}),
    )

    @classmethod
    def from_rules(cls, rules: list[Rule]) -> RuleSet:
        allow: dict[str, tuple[Rule, ...]] = {}
        deny: dict[str, tuple[Rule, ...]] = {}
        for rule in rules:
            bucket = allow if rule.action is RuleAction.ALLOW else deny
            existing = bucket.get(rule.tool_name, ())
            if rule not in existing:
                bucket[rule.tool_name] = existing + (rule,)
        return cls(always_allow_rules=_freeze(allow), always_deny_rules=_freeze(deny))

    def rules(self, action: RuleAction) -> Mapping[str, tuple[Rule, ...]]:
        if action is RuleAction.ALLOW:
            return self.always_allow_rules
        return self.always_deny_rules

    def __iter__(self) -> Iterator[Rule]:
        for bucket in self.always_deny_rules.values():
            yield from bucket
        for bucket in self.always_allow_rules.values():
            yield from bucket

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __contains__(self, rule: object) -> bool:
        if not isinstance(rule, Rule):
            return False
        return rule in self.rules(rule.action).get(rule.tool_name, ())

    def with_rule(self, rule: Rule) -> RuleSet:
        """Return a new RuleSet with *rule* appended (no-op if present)."""
        if rule in self:
            return self
        return RuleSet.from_rules([*self, rule])

    def without_rule(self, rule: Rule) -> RuleSet:
        """Return a new RuleSet with *rule* removed."""
        return RuleSet.from_rules([r for r in self if r != rule])

    def to_raw(self) -> RawRules:
        """Serialize back to the settings-document shape."""
        return {
            ALLOW_KEY: {k: [r.pattern for r in v] for k, v in self.always_allow_rules.items()},
            DENY_KEY: {k: [r.pattern for r in v] for k, v in self.always_deny_rules.items()},
        }


EMPTY_RULE_SET = RuleSet()


@dataclass(frozen=True, slots=True)
class RuleStoreSnapshot:
    """Immutable merged view of every source at one point in time.

    ``always_allow_rules`` and ``always_deny_rules`` are flattened in source
    precedence order, so scanning them front to back consults higher
    authority sources first.
    """

    version: int
    rule_sets: Mapping[RuleSource, RuleSet]
    precedence: tuple[RuleSource, ...] = SOURCE_PRECEDENCE
    always_allow_rules: tuple[Rule, ...] = ()
    always_deny_rules: tuple[Rule, ...] = ()

    @classmethod
    def build(
        cls,
        version: int,
        rule_sets: Mapping[RuleSource, RuleSet],
        precedence: tuple[RuleSource, ...] = SOURCE_PRECEDENCE,
    ) -> RuleStoreSnapshot:
        allow: list[Rule] = []
        deny: list[Rule] = []
        for source in precedence:
            rule_set = rule_sets.get(source, EMPTY_RULE_SET)
            for bucket in rule_set.always_allow_rules.values():
                allow.extend(bucket)
            for bucket in rule_set.always_deny_rules.values():
                deny.extend(bucket)
        return cls(
            version=version,
            rule_sets=MappingProxyType(dict(rule_sets)),
            precedence=precedence,
            always_allow_rules=tuple(allow),
            always_deny_rules=tuple(deny),
        )

    def rule_set(self, source: RuleSource) -> RuleSet:
        return self.rule_sets.get(source, EMPTY_RULE_SET)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "sources": {
                source.value: dict(self.rule_set(source).to_raw())
                for source in self.precedence
            },
        }
