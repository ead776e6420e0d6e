"""Type definitions for toolgate."""

from toolgate.types.config import (
    SOURCE_PRECEDENCE,
    ActionKind,
    PermissionBehavior,
    PermissionMode,
    RuleBehavior,
    RuleSource,
)

__all__ = [
    "SOURCE_PRECEDENCE",
    "ActionKind",
    "PermissionBehavior",
    "PermissionMode",
    "RuleBehavior",
    "RuleSource",
]
