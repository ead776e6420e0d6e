"""Configuration enums shared by every permission component."""

from __future__ import annotations

from enum import Enum


class PermissionMode(Enum):
    """Default posture applied before explicit allow rules are consulted."""

    DEFAULT = "default"  # Reads inside working directories only
    ACCEPT_EDITS = "acceptEdits"  # Also auto-approve edits inside working directories
    PLAN = "plan"  # Read-only planning
    BYPASS = "bypassPermissions"  # Auto-approve everything not denied


class RuleSource(Enum):
    """Configuration layer a permission rule comes from."""

    CLI_ARGUMENT = "cliArgument"
    LOCAL_SETTINGS = "localSettings"
    USER_SETTINGS = "userSettings"
    PROJECT_SETTINGS = "projectSettings"
    MANAGED_POLICY = "managedPolicy"  # Administrator-provisioned, read-only

    @property
    def editable(self) -> bool:
        return self is not RuleSource.MANAGED_POLICY


# First match wins, in this order.
SOURCE_PRECEDENCE: tuple[RuleSource, ...] = (
    RuleSource.MANAGED_POLICY,
    RuleSource.CLI_ARGUMENT,
    RuleSource.PROJECT_SETTINGS,
    RuleSource.LOCAL_SETTINGS,
    RuleSource.USER_SETTINGS,
)


class RuleBehavior(Enum):
    """Whether a rule grants or refuses a match."""

    ALLOW = "allow"
    DENY = "deny"


class PermissionBehavior(Enum):
    """Outcome of a permission evaluation."""

    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class ActionKind(Enum):
    """Action class a tool call is evaluated as."""

    READ = "read"
    EDIT = "edit"
    EXECUTE = "execute"
    TOOL = "tool"  # Any other tool, matched by name
