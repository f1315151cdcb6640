"""Request, decision and diagnostic types for permission evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from toolgate.types.config import RuleSource

if TYPE_CHECKING:
    from toolgate.permissions.rules import Rule


class Outcome(Enum):
    """Result of a permission check."""

    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class ReasonCode(Enum):
    """Why a decision was reached, for callers to explain it."""

    EXPLICIT_DENY = "explicit_deny"
    BYPASS_MODE = "bypass_mode"
    PATH_OUT_OF_SCOPE = "path_out_of_scope"
    EXPLICIT_ALLOW = "explicit_allow"
    PLAN_MODE_READONLY = "plan_mode_readonly"
    PLAN_MODE_READONLY_TOOL = "plan_mode_readonly_tool"
    ACCEPT_EDITS_MODE = "accept_edits_mode"
    NEEDS_APPROVAL = "needs_approval"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True, slots=True)
class ToolInvocationRequest:
    """One tool call awaiting a permission decision.

    ``subcommands`` holds the signature of each simple command of a shell
    command line that was split; it is empty when the line was not split.
    """

    tool_name: str
    arg_signature: str = ""
    target_path: str | None = None
    subcommands: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of resolving a single request."""

    outcome: Outcome
    matched_rule: Rule | None
    reason: ReasonCode

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW

    @property
    def denied(self) -> bool:
        return self.outcome is Outcome.DENY

    @property
    def needs_approval(self) -> bool:
        return self.outcome is Outcome.ASK

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason.value,
            "rule": self.matched_rule.pattern if self.matched_rule else None,
            "source": self.matched_rule.source.value if self.matched_rule else None,
        }


class WarningKind(Enum):
    """Categories of recoverable settings problems."""

    INVALID_PATTERN = "invalid_pattern"
    INVALID_SOURCE = "invalid_source"
    SOURCE_UNAVAILABLE = "source_unavailable"


@dataclass(frozen=True, slots=True)
class LoadWarning:
    """A problem found while loading rules; the offending part was skipped."""

    source: RuleSource
    kind: WarningKind
    message: str
    tool_name: str | None = None
    pattern: str | None = None

    def __str__(self) -> str:
        return f"[{self.source.value}] {self.message}"


class ApprovalResponse(Enum):
    """User answer to an approval prompt."""

    ALLOW_ONCE = "allow_once"
    ALLOW_ALWAYS = "allow_always"
    DENY = "deny"
