"""toolgate — permission resolution for agent tool calls.

Usage:
    import toolgate

    manager = toolgate.PermissionManager.from_settings(".")
    request = toolgate.build_request("Bash", {"command": "git log --oneline"})
    match manager.check(request).outcome:
        case toolgate.Outcome.ALLOW:
            ...
        case toolgate.Outcome.ASK:
            allowed = await manager.authorize(request, callback=prompt)
"""

from toolgate.permissions.approval import ApprovalCallback, StdinApprovalCallback
from toolgate.permissions.capabilities import CapabilityRegistry
from toolgate.permissions.manager import PermissionManager
from toolgate.permissions.patterns import InvalidPatternError, Matcher, compile_pattern
from toolgate.permissions.resolver import PermissionResolver
from toolgate.permissions.routes import Route, RouteType, SessionRouteTree
from toolgate.permissions.rules import Rule, RuleAction, RuleSet, RuleStoreSnapshot
from toolgate.permissions.scope import WorkingDirectoryScope
from toolgate.permissions.signatures import build_request, suggest_rules
from toolgate.permissions.store import RuleStore
from toolgate.types.config import SOURCE_PRECEDENCE, PermissionMode, RuleSource, ToolCapability
from toolgate.types.permissions import (
    ApprovalResponse,
    Decision,
    LoadWarning,
    Outcome,
    ReasonCode,
    ToolInvocationRequest,
    WarningKind,
)

__version__ = "0.3.0"

__all__ = [
    # Session facade
    "PermissionManager",
    # Engine
    "PermissionResolver",
    "Route",
    "RouteType",
    "RuleStore",
    "SessionRouteTree",
    # Rules and patterns
    "InvalidPatternError",
    "Matcher",
    "Rule",
    "RuleAction",
    "RuleSet",
    "RuleStoreSnapshot",
    "compile_pattern",
    # Requests and decisions
    "ApprovalResponse",
    "Decision",
    "LoadWarning",
    "Outcome",
    "ReasonCode",
    "ToolInvocationRequest",
    "WarningKind",
    "build_request",
    "suggest_rules",
    # Configuration
    "SOURCE_PRECEDENCE",
    "CapabilityRegistry",
    "PermissionMode",
    "RuleSource",
    "ToolCapability",
    "WorkingDirectoryScope",
    # Approval
    "ApprovalCallback",
    "StdinApprovalCallback",
]
