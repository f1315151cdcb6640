"""Type definitions for toolgate."""

from toolgate.types.config import (
    EDITABLE_SOURCES,
    SOURCE_PRECEDENCE,
    PermissionMode,
    RuleSource,
    ToolCapability,
)
from toolgate.types.permissions import (
    ApprovalResponse,
    Decision,
    LoadWarning,
    Outcome,
    ReasonCode,
    ToolInvocationRequest,
    WarningKind,
)

__all__ = [
    "EDITABLE_SOURCES",
    "SOURCE_PRECEDENCE",
    "ApprovalResponse",
    "Decision",
    "LoadWarning",
    "Outcome",
    "PermissionMode",
    "ReasonCode",
    "RuleSource",
    "ToolCapability",
    "ToolInvocationRequest",
    "WarningKind",
]
