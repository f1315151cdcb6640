"""Configuration types for toolgate."""

from __future__ import annotations

from enum import Enum


class PermissionMode(Enum):
    """Session-wide operating modes controlling what runs without asking."""

    DEFAULT = "default"  # Ask unless a rule decides
    PLAN = "plan"  # Read-only mode
    ACCEPT_EDITS = "acceptEdits"  # Auto-approve file edits
    BYPASS = "bypassPermissions"  # Auto-approve everything not denied

    @classmethod
    def parse(cls, value: str) -> PermissionMode:
        """Parse a mode name, accepting both camelCase and snake_case spellings."""
        normalized = value.strip().replace("_", "").replace("-", "").lower()
        for mode in cls:
            if mode.value.lower() == normalized:
                return mode
        if normalized == "bypass":
            return cls.BYPASS
        raise ValueError(f"Unknown permission mode: {value!r}")


class RuleSource(Enum):
    """Configuration sources rules are loaded from."""

    POLICY_SETTINGS = "policySettings"
    CLI_ARG = "cliArg"
    LOCAL_SETTINGS = "localSettings"
    PROJECT_SETTINGS = "projectSettings"
    USER_SETTINGS = "userSettings"


# Highest authority first. Resolver scans rules in this order.
SOURCE_PRECEDENCE: tuple[RuleSource, ...] = (
    RuleSource.POLICY_SETTINGS,
    RuleSource.CLI_ARG,
    RuleSource.LOCAL_SETTINGS,
    RuleSource.PROJECT_SETTINGS,
    RuleSource.USER_SETTINGS,
)

# Sources an interactive grant may be written back to.
EDITABLE_SOURCES = frozenset({
    RuleSource.LOCAL_SETTINGS,
    RuleSource.PROJECT_SETTINGS,
    RuleSource.USER_SETTINGS,
})


class ToolCapability(Enum):
    """Static capability tag of a tool, used by mode overrides."""

    READONLY = "readonly"
    MUTATING = "mutating"
    EDIT = "edit"
