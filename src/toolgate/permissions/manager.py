"""Session-level permission facade.

:class:`PermissionManager` owns the pieces one agent session needs: the rule
store, the route tree, the current mode and the working-directory scope.
It resolves tool calls through :class:`PermissionResolver` and applies what
the user answers to approval prompts:

- "yes" allows this one call;
- "always" adds allow rules to a settings source (or, for file edits,
  switches the session to ACCEPT_EDITS);
- "no" denies the call.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol

from toolgate.audit import AuditLogger
from toolgate.observability import record_load_warning, record_rule_change
from toolgate.permissions.approval import ApprovalCallback, describe_request
from toolgate.permissions.capabilities import CapabilityRegistry
from toolgate.permissions.resolver import PermissionResolver
from toolgate.permissions.routes import Route, RouteType, SessionRouteTree
from toolgate.permissions.rules import RawRules, Rule, RuleAction, RuleStoreSnapshot
from toolgate.permissions.scope import WorkingDirectoryScope
from toolgate.permissions.signatures import build_request, suggest_rules
from toolgate.permissions.store import RuleStore
from toolgate.types.config import EDITABLE_SOURCES, PermissionMode, RuleSource, ToolCapability
from toolgate.types.permissions import (
    ApprovalResponse,
    Decision,
    LoadWarning,
    ToolInvocationRequest,
    WarningKind,
)

logger = logging.getLogger(__name__)


class RuleWriter(Protocol):
    """Persists a source's rules after a runtime change."""

    def write_rules(self, source: RuleSource, raw: RawRules) -> Any:
        ...


class PermissionManager:
    """Evaluates tool calls for one session and records the user's grants.

    ``check`` may be called from many threads; mode and scope changes swap
    immutable values under a lock, so a check always sees one consistent
    mode and scope.
    """

    def __init__(
        self,
        store: RuleStore | None = None,
        *,
        mode: PermissionMode = PermissionMode.DEFAULT,
        scope: WorkingDirectoryScope | None = None,
        capabilities: CapabilityRegistry | None = None,
        rule_writer: RuleWriter | None = None,
        audit_logger: AuditLogger | None = None,
        ignore_path: Callable[[str], bool] | None = None,
    ) -> None:
        self._store = store or RuleStore()
        self._tree = SessionRouteTree(self._store)
        self._resolver = PermissionResolver(self._tree, capabilities)
        self._mode = mode
        self._scope = scope or WorkingDirectoryScope.create()
        self._rule_writer = rule_writer
        self._audit = audit_logger
        self._ignore_path = ignore_path
        self._lock = threading.Lock()
        self._root = self._tree.new_root(path=str(self._scope.base))
        self._report_warnings(self._store.warnings)

    @classmethod
    def from_settings(
        cls,
        cwd: str | Path | None = None,
        *,
        mode: PermissionMode | None = None,
        cli_allow: tuple[str, ...] | list[str] = (),
        cli_deny: tuple[str, ...] | list[str] = (),
        additional_directories: tuple[str, ...] | list[str] = (),
        capabilities: CapabilityRegistry | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> PermissionManager:
        """Build a manager from the JSON settings files of a project.

        Mode precedence: explicit *mode*, then ``TOOLGATE_MODE``, then the
        highest-precedence ``defaultMode`` setting, then DEFAULT.
        """
        from toolgate.config import JsonSettingsStore, load_env_config, load_settings

        bundle = load_settings(cwd, cli_allow=cli_allow, cli_deny=cli_deny)
        store = RuleStore()
        store.load(bundle.raw_rules)

        if mode is None:
            env_mode = load_env_config().get("mode")
            if env_mode:
                try:
                    mode = PermissionMode.parse(env_mode)
                except ValueError:
                    logger.warning("Ignoring unknown TOOLGATE_MODE %r", env_mode)
        if mode is None:
            mode = bundle.default_mode or PermissionMode.DEFAULT

        scope = WorkingDirectoryScope.create(
            cwd, [*bundle.additional_directories, *additional_directories],
        )
        return cls(
            store,
            mode=mode,
            scope=scope,
            capabilities=capabilities,
            rule_writer=JsonSettingsStore(cwd),
            audit_logger=audit_logger,
        )

    # -- Properties -------------------------------------------------------

    @property
    def mode(self) -> PermissionMode:
        return self._mode

    @property
    def scope(self) -> WorkingDirectoryScope:
        return self._scope

    @property
    def store(self) -> RuleStore:
        return self._store

    @property
    def tree(self) -> SessionRouteTree:
        return self._tree

    @property
    def resolver(self) -> PermissionResolver:
        return self._resolver

    @property
    def root(self) -> Route:
        return self._root

    @property
    def warnings(self) -> tuple[LoadWarning, ...]:
        return self._store.warnings

    @property
    def policy_unavailable(self) -> bool:
        """True when the managed policy file could not be loaded.

        Callers should treat this as an escalation: without policy rules the
        administrator's deny list is not being enforced.
        """
        return any(
            w.source is RuleSource.POLICY_SETTINGS and w.kind is not WarningKind.INVALID_PATTERN
            for w in self._store.warnings
        )

    # -- Evaluation -------------------------------------------------------

    def check(self, request: ToolInvocationRequest, route: Route | None = None) -> Decision:
        """Resolve *request* in *route* (the session root by default)."""
        route = route or self._root
        with self._lock:
            mode, scope = self._mode, self._scope
        decision = self._resolver.resolve(request, route, mode, scope)
        if self._audit is not None:
            self._audit.log_permission_decision(
                request.tool_name,
                decision.outcome.value,
                decision.reason.value,
                mode.value,
                rule=decision.matched_rule.pattern if decision.matched_rule else None,
                route_id=route.id,
                nested=self.is_nested(route),
            )
        return decision

    def check_tool_call(
        self,
        tool_name: str,
        args: dict[str, Any] | None = None,
        route: Route | None = None,
    ) -> Decision:
        """Resolve a raw tool call (``{"command": ...}``, ``{"file_path": ...}``)."""
        return self.check(build_request(tool_name, args), route)

    def is_nested(self, route: Route) -> bool:
        """True when *route* runs inside an automated (sub-agent or tool) context."""
        return self._tree.has_non_user_ancestor_without_ignored_path(route, self._ignore_path)

    # -- Routes -----------------------------------------------------------

    def begin_invocation(
        self,
        parent: Route | None = None,
        route_type: RouteType = RouteType.TOOL,
        *,
        path: str | None = None,
        lock: bool = True,
    ) -> Route:
        """Open a nested route, locked on the current rules by default."""
        route = self._tree.new_route(parent or self._root, route_type, path=path)
        if lock:
            self._tree.lock(route)
        return route

    def end_invocation(self, route: Route) -> None:
        self._tree.close(route)

    @contextmanager
    def invocation(
        self,
        parent: Route | None = None,
        route_type: RouteType = RouteType.TOOL,
        *,
        path: str | None = None,
    ) -> Iterator[Route]:
        """Context manager around :meth:`begin_invocation`/:meth:`end_invocation`."""
        route = self.begin_invocation(parent, route_type, path=path)
        try:
            yield route
        finally:
            self.end_invocation(route)

    # -- Session state ----------------------------------------------------

    def set_mode(self, mode: PermissionMode) -> None:
        with self._lock:
            old, self._mode = self._mode, mode
        if old is not mode:
            logger.info("Permission mode changed: %s -> %s", old.value, mode.value)
            if self._audit is not None:
                self._audit.log_mode_changed(old.value, mode.value)

    def add_directory(self, path: str | Path) -> WorkingDirectoryScope:
        """Grant access to another directory for the rest of the session."""
        with self._lock:
            before = self._scope
            self._scope = before.with_directory(path)
            scope = self._scope
        if scope is not before:
            logger.info("Added working directory %s", path)
            if self._audit is not None:
                self._audit.log_directory_added(str(path))
        return scope

    def reload(self, sources: Mapping[RuleSource, RawRules | None]) -> RuleStoreSnapshot:
        """Reload every source, e.g. after a settings file changed on disk."""
        snapshot = self._store.load(sources)
        self._report_warnings(self._store.warnings)
        return snapshot

    # -- Rule changes -----------------------------------------------------

    def add_rule(
        self,
        pattern: str,
        action: RuleAction = RuleAction.ALLOW,
        destination: RuleSource = RuleSource.LOCAL_SETTINGS,
    ) -> RuleStoreSnapshot:
        """Add a rule to an editable source and persist it. Adding a present rule is a no-op."""
        self._check_destination(destination)
        rule = Rule.parse(pattern, action, destination)
        before = self._store.snapshot()
        snapshot = self._store.upsert(destination, rule)
        if snapshot is before:
            return snapshot
        self._persist(destination)
        record_rule_change("added", destination.value)
        if self._audit is not None:
            self._audit.log_rule_added(rule.pattern, action.value, destination.value)
        return snapshot

    def remove_rule(
        self,
        pattern: str,
        action: RuleAction,
        source: RuleSource,
    ) -> RuleStoreSnapshot:
        """Remove a rule from an editable source and persist the change."""
        self._check_destination(source)
        rule = Rule.parse(pattern, action, source)
        before = self._store.snapshot()
        snapshot = self._store.remove(source, rule)
        if snapshot is before:
            return snapshot
        self._persist(source)
        record_rule_change("removed", source.value)
        if self._audit is not None:
            self._audit.log_rule_removed(rule.pattern, action.value, source.value)
        return snapshot

    def grant(
        self,
        request: ToolInvocationRequest,
        destination: RuleSource = RuleSource.LOCAL_SETTINGS,
        patterns: list[str] | None = None,
    ) -> RuleStoreSnapshot:
        """Record an "always allow" answer for *request*."""
        self._check_destination(destination)
        snapshot = self._store.snapshot()
        for pattern in patterns or suggest_rules(request):
            snapshot = self.add_rule(pattern, RuleAction.ALLOW, destination)
        return snapshot

    def apply_approval(
        self,
        request: ToolInvocationRequest,
        response: ApprovalResponse,
        destination: RuleSource = RuleSource.LOCAL_SETTINGS,
    ) -> bool:
        """Apply the user's answer and return whether the call may run."""
        if self._audit is not None:
            self._audit.log_approval(request.tool_name, response.value)

        match response:
            case ApprovalResponse.ALLOW_ONCE:
                return True
            case ApprovalResponse.ALLOW_ALWAYS:
                capability = self._resolver.capabilities.classify(request.tool_name)
                if capability is ToolCapability.EDIT and self._mode is PermissionMode.DEFAULT:
                    self.set_mode(PermissionMode.ACCEPT_EDITS)
                else:
                    self.grant(request, destination)
                return True
            case _:
                return False

    async def authorize(
        self,
        request: ToolInvocationRequest,
        route: Route | None = None,
        callback: ApprovalCallback | None = None,
        destination: RuleSource = RuleSource.LOCAL_SETTINGS,
    ) -> bool:
        """Check *request* and, if needed, ask the user through *callback*.

        Without a callback an ASK outcome is treated as a denial.
        """
        decision = self.check(request, route)
        if not decision.needs_approval:
            return decision.allowed
        if callback is None:
            return False
        response = await callback.request_approval(
            request, describe_request(request), suggest_rules(request),
        )
        return self.apply_approval(request, response, destination)

    # -- Internals --------------------------------------------------------

    @staticmethod
    def _check_destination(source: RuleSource) -> None:
        if source not in EDITABLE_SOURCES:
            raise ValueError(f"Rules cannot be written to {source.value}")

    def _persist(self, source: RuleSource) -> None:
        if self._rule_writer is not None:
            self._rule_writer.write_rules(source, self._store.raw_rules(source))

    def _report_warnings(self, warnings: tuple[LoadWarning, ...]) -> None:
        for warning in warnings:
            record_load_warning(warning.kind.value, warning.source.value)
            if self._audit is not None:
                self._audit.log_load_warning(
                    warning.source.value, warning.kind.value, warning.message,
                )
        if self.policy_unavailable:
            logger.error(
                "Managed policy settings could not be loaded; "
                "administrator deny rules are not in effect",
            )
