"""Exceptions raised by the permission core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from toolgate.permissions.rules import PermissionRule


class ToolgateError(Exception):
    """Base class for toolgate errors."""


class MalformedRuleError(ToolgateError, ValueError):
    """Raised when a stored rule string does not follow ``Tool`` / ``Tool(pattern)``."""

    def __init__(self, message: str, rule_string: str) -> None:
        super().__init__(message)
        self.rule_string = rule_string


class ManagedPolicyImmutable(ToolgateError):
    """Raised when a mutation targets the administrator-managed policy."""

    def __init__(self, rule: PermissionRule | None = None) -> None:
        if rule is None:
            target = "The managed policy"
        else:
            target = f"Rule {rule.serialize()} belongs to the managed policy and"
        super().__init__(
            f"{target} cannot be changed at runtime; re-provision the policy file instead."
        )
        self.rule = rule


class SettingsError(ToolgateError):
    """Raised when a settings file cannot be read or has an invalid shape."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path
