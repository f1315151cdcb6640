"""Permission evaluation engine.

Evaluation order (first decisive step wins):

1. Malformed request -> deny
2. Deny rules, highest-precedence source first -> deny (in every mode)
3. Target path outside the working-directory scope -> deny
4. BYPASS mode -> allow
5. Allow rules, highest-precedence source first -> allow
   (a split shell command needs an allow rule for every command in it;
   wildcard rules never cover an unsplit shell line that chains commands)
6. Mode overrides:
   - PLAN: read-only tools allowed, everything else denied
   - ACCEPT_EDITS: edit tools allowed
7. Ask the user
"""

from __future__ import annotations

import logging

from toolgate.observability import record_decision, span
from toolgate.permissions.capabilities import CapabilityRegistry
from toolgate.permissions.routes import Route, SessionRouteTree
from toolgate.permissions.rules import Rule
from toolgate.permissions.scope import WorkingDirectoryScope, normalize_path
from toolgate.permissions.signatures import SHELL_TOOL, is_compound_command
from toolgate.types.config import PermissionMode, ToolCapability
from toolgate.types.permissions import (
    Decision,
    Outcome,
    ReasonCode,
    ToolInvocationRequest,
)

logger = logging.getLogger(__name__)


def _decision(outcome: Outcome, reason: ReasonCode, rule: Rule | None = None) -> Decision:
    return Decision(outcome=outcome, matched_rule=rule, reason=reason)


class PermissionResolver:
    """Decides whether a tool call is allowed, denied, or needs approval.

    ``resolve`` is a pure function of its inputs: it reads one immutable
    snapshot and never mutates shared state, so it is safe to call from
    many threads at once.
    """

    def __init__(
        self,
        tree: SessionRouteTree,
        capabilities: CapabilityRegistry | None = None,
    ) -> None:
        self._tree = tree
        self._capabilities = capabilities or CapabilityRegistry()

    @property
    def capabilities(self) -> CapabilityRegistry:
        return self._capabilities

    def resolve(
        self,
        request: ToolInvocationRequest,
        route: Route | None,
        mode: PermissionMode,
        scope: WorkingDirectoryScope,
    ) -> Decision:
        """Resolve a request. Never raises; malformed input is denied."""
        with span("toolgate.resolve", {"tool": request.tool_name or "", "mode": mode.value}) as s:
            decision = self._evaluate(request, route, mode, scope)
            s.set_attribute("outcome", decision.outcome.value)
            s.set_attribute("reason", decision.reason.value)

        record_decision(decision.outcome.value, decision.reason.value, mode.value)
        logger.debug(
            "%s %r -> %s (%s)",
            request.tool_name, request.arg_signature,
            decision.outcome.value, decision.reason.value,
        )
        return decision

    def _evaluate(
        self,
        request: ToolInvocationRequest,
        route: Route | None,
        mode: PermissionMode,
        scope: WorkingDirectoryScope,
    ) -> Decision:
        tool_name = request.tool_name
        if not tool_name or not isinstance(tool_name, str):
            return _decision(Outcome.DENY, ReasonCode.INVALID_REQUEST)
        signature = request.arg_signature or ""
        subcommands = request.subcommands or ()
        if (
            not isinstance(signature, str)
            or not isinstance(subcommands, tuple)
            or not all(isinstance(s, str) for s in subcommands)
        ):
            return _decision(Outcome.DENY, ReasonCode.INVALID_REQUEST)

        target = None
        if request.target_path is not None:
            if not isinstance(request.target_path, str):
                return _decision(Outcome.DENY, ReasonCode.INVALID_REQUEST)
            try:
                target = normalize_path(request.target_path, scope.base)
            except (ValueError, OSError):
                return _decision(Outcome.DENY, ReasonCode.INVALID_REQUEST)

        rules = self._tree.effective_rules(route)

        # 2. Deny rules apply in every mode
        for rule in rules.always_deny_rules:
            if any(rule.matches(tool_name, s) for s in (signature, *subcommands)):
                return _decision(Outcome.DENY, ReasonCode.EXPLICIT_DENY, rule)

        # 3. Path scope stays active in bypass mode
        if target is not None and not scope.contains(target):
            return _decision(Outcome.DENY, ReasonCode.PATH_OUT_OF_SCOPE)

        if mode is PermissionMode.BYPASS:
            return _decision(Outcome.ALLOW, ReasonCode.BYPASS_MODE)

        # 5. Allow rules
        rule = _covering_allow_rule(rules.always_allow_rules, tool_name, signature, subcommands)
        if rule is not None:
            return _decision(Outcome.ALLOW, ReasonCode.EXPLICIT_ALLOW, rule)

        # 6-7. Mode overrides, else ask
        return self._mode_default(tool_name, mode)

    def _mode_default(self, tool_name: str, mode: PermissionMode) -> Decision:
        """Apply mode-based default permission."""
        capability = self._capabilities.classify(tool_name)
        match mode:
            case PermissionMode.PLAN:
                if capability is ToolCapability.READONLY:
                    return _decision(Outcome.ALLOW, ReasonCode.PLAN_MODE_READONLY_TOOL)
                return _decision(Outcome.DENY, ReasonCode.PLAN_MODE_READONLY)

            case PermissionMode.ACCEPT_EDITS:
                if capability is ToolCapability.EDIT:
                    return _decision(Outcome.ALLOW, ReasonCode.ACCEPT_EDITS_MODE)
                return _decision(Outcome.ASK, ReasonCode.NEEDS_APPROVAL)

            case _:
                return _decision(Outcome.ASK, ReasonCode.NEEDS_APPROVAL)


def _first_allow_rule(
    allow_rules: tuple[Rule, ...],
    tool_name: str,
    signature: str,
    *,
    exact_only: bool = False,
) -> Rule | None:
    for rule in allow_rules:
        if exact_only and rule.matcher.has_arg_wildcard:
            continue
        if rule.matches(tool_name, signature):
            return rule
    return None


def _covering_allow_rule(
    allow_rules: tuple[Rule, ...],
    tool_name: str,
    signature: str,
    subcommands: tuple[str, ...],
) -> Rule | None:
    """The allow rule that decides the request, or None.

    Every command of a split shell line must be allowed on its own; the rule
    reported is the one matching the first command.
    """
    if not subcommands:
        exact_only = tool_name == SHELL_TOOL and is_compound_command(signature)
        return _first_allow_rule(allow_rules, tool_name, signature, exact_only=exact_only)

    first: Rule | None = None
    for part in subcommands:
        rule = _first_allow_rule(allow_rules, tool_name, part)
        if rule is None:
            return None
        first = first or rule
    return first
