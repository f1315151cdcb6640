"""RuleStore — loads per-source rule sets and issues immutable snapshots."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

from toolgate.permissions.patterns import InvalidPatternError
from toolgate.permissions.rules import (
    EMPTY_RULE_SET,
    RawRules,
    Rule,
    RuleAction,
    RuleSet,
    RuleStoreSnapshot,
)
from toolgate.types.config import SOURCE_PRECEDENCE, RuleSource
from toolgate.types.permissions import LoadWarning, WarningKind

logger = logging.getLogger(__name__)


class RuleStore:
    """Owns one RuleSet per source and the current merged snapshot.

    Loading tolerates partial failure: a bad pattern drops only that rule, a
    malformed or unreadable source drops only that source.  Problems are
    logged and kept in :attr:`warnings`.

    Snapshots are never mutated.  ``upsert`` and ``remove`` build a new
    snapshot and swap the reference, so a caller holding an older snapshot
    keeps seeing the older state.
    """

    def __init__(self, precedence: tuple[RuleSource, ...] = SOURCE_PRECEDENCE) -> None:
        if sorted(s.value for s in precedence) != sorted(s.value for s in RuleSource):
            raise ValueError("precedence must list every RuleSource exactly once")
        self._precedence = tuple(precedence)
        self._lock = threading.Lock()
        self._rule_sets: dict[RuleSource, RuleSet] = {s: EMPTY_RULE_SET for s in RuleSource}
        self._warnings: dict[RuleSource, tuple[LoadWarning, ...]] = {}
        self._version = 0
        self._snapshot = RuleStoreSnapshot.build(0, self._rule_sets, self._precedence)

    @property
    def precedence(self) -> tuple[RuleSource, ...]:
        return self._precedence

    @property
    def warnings(self) -> tuple[LoadWarning, ...]:
        """Warnings from the most recent load of each source, in precedence order."""
        collected: list[LoadWarning] = []
        for source in self._precedence:
            collected.extend(self._warnings.get(source, ()))
        return tuple(collected)

    def snapshot(self) -> RuleStoreSnapshot:
        """Return the current merged view. Lock-free."""
        return self._snapshot

    def load(self, sources: Mapping[RuleSource, RawRules | None]) -> RuleStoreSnapshot:
        """Replace every source's rules.

        A ``None`` value marks a source that could not be read; sources absent
        from *sources* load empty.
        """
        parsed: dict[RuleSource, tuple[RuleSet, tuple[LoadWarning, ...]]] = {}
        for source in RuleSource:
            parsed[source] = _parse_source(source, sources.get(source, {}))

        with self._lock:
            for source, (rule_set, warnings) in parsed.items():
                self._rule_sets[source] = rule_set
                self._warnings[source] = warnings
            return self._publish()

    def reload_source(self, source: RuleSource, raw: RawRules | None) -> RuleStoreSnapshot:
        """Re-parse a single source, leaving the others untouched."""
        rule_set, warnings = _parse_source(source, raw)
        with self._lock:
            self._rule_sets[source] = rule_set
            self._warnings[source] = warnings
            return self._publish()

    def upsert(self, source: RuleSource, rule: Rule) -> RuleStoreSnapshot:
        """Add an ad-hoc rule to *source* and return the new snapshot.

        The rule is re-bound to *source* if it was built for another one.
        Adding a rule that is already present leaves the rules unchanged.
        """
        if rule.source is not source:
            rule = Rule(rule.tool_name, rule.arg_pattern, rule.action, source, rule.matcher)
        with self._lock:
            current = self._rule_sets[source]
            if rule in current:
                return self._snapshot
            self._rule_sets[source] = current.with_rule(rule)
            logger.info("Added %s rule %s to %s", rule.action.value, rule.pattern, source.value)
            return self._publish()

    def remove(self, source: RuleSource, rule: Rule) -> RuleStoreSnapshot:
        """Delete a rule from *source*. Removing an absent rule is a no-op."""
        if rule.source is not source:
            rule = Rule(rule.tool_name, rule.arg_pattern, rule.action, source, rule.matcher)
        with self._lock:
            current = self._rule_sets[source]
            if rule not in current:
                return self._snapshot
            self._rule_sets[source] = current.without_rule(rule)
            logger.info("Removed %s rule %s from %s", rule.action.value, rule.pattern, source.value)
            return self._publish()

    def raw_rules(self, source: RuleSource) -> RawRules:
        """Serialize *source*'s current rules for persistence."""
        return self._snapshot.rule_set(source).to_raw()

    def _publish(self) -> RuleStoreSnapshot:
        # Caller holds self._lock.
        self._version += 1
        self._snapshot = RuleStoreSnapshot.build(
            self._version, self._rule_sets, self._precedence,
        )
        return self._snapshot


def _parse_source(
    source: RuleSource, raw: RawRules | Mapping[str, Any] | None,
) -> tuple[RuleSet, tuple[LoadWarning, ...]]:
    """Parse one source's raw rules into a RuleSet plus warnings."""
    if raw is None:
        warning = LoadWarning(
            source=source,
            kind=WarningKind.SOURCE_UNAVAILABLE,
            message="settings source could not be loaded; using no rules",
        )
        logger.warning("%s", warning)
        return EMPTY_RULE_SET, (warning,)

    if not isinstance(raw, Mapping):
        return _invalid_source(source, f"expected an object, got {type(raw).__name__}")

    warnings: list[LoadWarning] = []
    rules: list[Rule] = []
    for action in RuleAction:
        section = raw.get(action.settings_key)
        if section is None:
            continue
        if not isinstance(section, Mapping):
            return _invalid_source(source, f"{action.settings_key} must be an object")
        for tool_name, patterns in section.items():
            if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
                return _invalid_source(
                    source, f"{action.settings_key}[{tool_name!r}] must be a list of strings",
                )
            for pattern in patterns:
                rule = _parse_rule(source, action, str(tool_name), pattern, warnings)
                if rule is not None:
                    rules.append(rule)

    return RuleSet.from_rules(rules), tuple(warnings)


def _parse_rule(
    source: RuleSource,
    action: RuleAction,
    tool_name: str,
    pattern: str,
    warnings: list[LoadWarning],
) -> Rule | None:
    try:
        rule = Rule.parse(pattern, action, source)
    except InvalidPatternError as exc:
        message = f"skipping {action.value} rule: {exc}"
    else:
        if rule.tool_name == tool_name:
            return rule
        message = (
            f"skipping {action.value} rule {pattern!r}: "
            f"tool name does not match key {tool_name!r}"
        )

    warning = LoadWarning(
        source=source,
        kind=WarningKind.INVALID_PATTERN,
        message=message,
        tool_name=tool_name,
        pattern=pattern,
    )
    logger.warning("%s", warning)
    warnings.append(warning)
    return None


def _invalid_source(source: RuleSource, reason: str) -> tuple[RuleSet, tuple[LoadWarning, ...]]:
    warning = LoadWarning(
        source=source,
        kind=WarningKind.INVALID_SOURCE,
        message=f"ignoring malformed settings: {reason}",
    )
    logger.warning("%s", warning)
    return EMPTY_RULE_SET, (warning,)

