"""Owner of the live PermissionContext.

The engine and the store are pure; this class is the single writer that
installs each new context. Readers take the current snapshot reference
without locking, so an evaluation always sees one consistent context.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from toolgate.permissions import store
from toolgate.permissions.context import PermissionContext
from toolgate.permissions.decision import PermissionDecision
from toolgate.permissions.engine import evaluate_request
from toolgate.permissions.engine import evaluate as evaluate_action
from toolgate.permissions.rules import PermissionRule
from toolgate.permissions.tools import classify_tool_call
from toolgate.types.config import ActionKind, PermissionMode, RuleSource

if TYPE_CHECKING:
    from toolgate.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

# Called with the source whose rule list changed and the new context.
ChangeCallback = Callable[[RuleSource, PermissionContext], None]


class PermissionContextManager:
    """Evaluates tool calls against the current context and applies mutations.

    Args:
        context: Initial snapshot. Defaults to an empty context in the
            process working directory.
        on_change: Invoked after every rule mutation that changed a list,
            typically to persist that source's settings file.
        audit: Optional audit logger receiving every decision and mutation.
    """

    def __init__(
        self,
        context: PermissionContext | None = None,
        *,
        on_change: ChangeCallback | None = None,
        audit: AuditLogger | None = None,
    ) -> None:
        self._context = context or PermissionContext()
        self._on_change = on_change
        self._audit = audit
        self._lock = threading.Lock()

    @property
    def context(self) -> PermissionContext:
        return self._context

    @property
    def mode(self) -> PermissionMode:
        return self._context.mode

    # -- Evaluation -------------------------------------------------------

    def check(self, tool_name: str, args: dict[str, Any] | None = None) -> PermissionDecision:
        """Classify and evaluate one tool call."""
        context = self._context
        request = classify_tool_call(tool_name, args)
        decision = evaluate_request(request, context)
        self._record(tool_name, decision, context, args)
        return decision

    def evaluate(
        self, action: ActionKind | str, resource: str | None, **options: Any,
    ) -> PermissionDecision:
        """Evaluate an action directly, bypassing tool-call classification."""
        context = self._context
        decision = evaluate_action(action, resource, context, **options)
        kind = action if isinstance(action, ActionKind) else ActionKind(action)
        self._record(options.get("tool_name") or kind.value, decision, context, None)
        return decision

    def _record(
        self,
        tool_name: str,
        decision: PermissionDecision,
        context: PermissionContext,
        args: dict[str, Any] | None,
    ) -> None:
        if self._audit is not None:
            self._audit.log_permission_decision(tool_name, decision, context.mode, args)

    # -- Mutation ---------------------------------------------------------

    def grant_rule(self, rule: PermissionRule) -> PermissionContext:
        """Add *rule* to its source. Raises ``ManagedPolicyImmutable`` for managed rules."""
        with self._lock:
            updated = store.grant_rule(rule, self._context)
            if updated is self._context:
                return updated
            self._install(updated)
            logger.info("Granted %s rule %s in %s", rule.behavior.value, rule, rule.source.value)
            if self._audit is not None:
                self._audit.log_rule_granted(rule)
            self._notify(rule.source, updated)
            return updated

    def grant_rules(self, rules: Iterable[PermissionRule]) -> PermissionContext:
        context = self._context
        for rule in rules:
            context = self.grant_rule(rule)
        return context

    def revoke_rule(self, rule: PermissionRule) -> PermissionContext:
        """Remove *rule* from its source. Raises ``ManagedPolicyImmutable`` for managed rules."""
        with self._lock:
            updated = store.revoke_rule(rule, self._context)
            if updated is self._context:
                return updated
            self._install(updated)
            logger.info("Revoked %s rule %s from %s", rule.behavior.value, rule, rule.source.value)
            if self._audit is not None:
                self._audit.log_rule_revoked(rule)
            self._notify(rule.source, updated)
            return updated

    def set_mode(self, mode: PermissionMode) -> PermissionContext:
        with self._lock:
            previous = self._context.mode
            updated = store.set_mode(self._context, mode)
            if updated is not self._context:
                self._install(updated)
                logger.info("Permission mode changed from %s to %s", previous.value, mode.value)
                if self._audit is not None:
                    self._audit.log_mode_changed(previous, mode)
            return updated

    def add_directories(self, *directories: str) -> PermissionContext:
        with self._lock:
            updated = store.add_directories(self._context, *directories)
            self._install(updated)
            return updated

    def close(self) -> None:
        """Close the attached audit logger, if any."""
        if self._audit is not None:
            self._audit.close()

    def _install(self, context: PermissionContext) -> None:
        self._context = context

    def _notify(self, source: RuleSource, context: PermissionContext) -> None:
        if self._on_change is not None:
            self._on_change(source, context)
