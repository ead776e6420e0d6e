"""Pure mutations of a PermissionContext.

Every function returns a new context and performs no I/O. Installing the new
context and persisting it to the matching settings layer is the caller's job.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from toolgate.permissions.context import PermissionContext, normalize_directory
from toolgate.permissions.errors import ManagedPolicyImmutable
from toolgate.permissions.rules import PermissionRule, canonical_form
from toolgate.types.config import PermissionMode

logger = logging.getLogger(__name__)


def _ensure_editable(rule: PermissionRule) -> None:
    if not rule.source.editable:
        raise ManagedPolicyImmutable(rule)


def grant_rule(rule: PermissionRule, context: PermissionContext) -> PermissionContext:
    """Append *rule* to its source's list. Granting an existing rule is a no-op."""
    _ensure_editable(rule)
    current = context.rules(rule.behavior).get(rule.source, ())
    key = rule.serialize()
    if any(canonical_form(entry) == key for entry in current):
        logger.debug("Rule %s already present in %s", key, rule.source.value)
        return context
    return context.with_rules(rule.behavior, rule.source, (*current, key))


def revoke_rule(rule: PermissionRule, context: PermissionContext) -> PermissionContext:
    """Remove every entry equal to *rule* from its source's list."""
    _ensure_editable(rule)
    current = context.rules(rule.behavior).get(rule.source, ())
    key = rule.serialize()
    remaining = tuple(entry for entry in current if canonical_form(entry) != key)
    if len(remaining) == len(current):
        logger.debug("Rule %s not present in %s", key, rule.source.value)
        return context
    return context.with_rules(rule.behavior, rule.source, remaining)


def set_mode(context: PermissionContext, mode: PermissionMode) -> PermissionContext:
    if context.mode is mode:
        return context
    return replace(context, mode=mode)


def add_directories(context: PermissionContext, *directories: str) -> PermissionContext:
    """Add working directories, skipping ones already present."""
    existing = list(context.additional_directories)
    for directory in directories:
        normalized = normalize_directory(directory, context.cwd)
        if normalized != context.cwd and normalized not in existing:
            existing.append(normalized)
    if len(existing) == len(context.additional_directories):
        return context
    return replace(context, additional_directories=tuple(existing))
