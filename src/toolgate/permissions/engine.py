"""Permission decision engine.

Every action class is evaluated with the same precedence, stopping at the
first step that decides:

1. Capability check: an unresolvable target asks. For shell commands the
   safety scan runs here and an unsafe command is denied outright.
2. Shortcut allow for the action class (always-safe tools, renames inside an
   approved directory).
3. Deny rules.
4. Mode-based allow.
5. Allow rules.
6. Ask, with the minimal rule that would grant access next time.

Deny rules always beat the mode, and the mode is reported in preference to a
matching allow rule. Only steps 1 and 2 differ between action classes; they
live on one policy object per ``ActionKind``.
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Any

from toolgate.permissions.context import PermissionContext
from toolgate.permissions.decision import (
    DecisionReason,
    ModeReason,
    OtherReason,
    PermissionDecision,
    RuleReason,
)
from toolgate.permissions.matcher import is_within, match_rule, normalize_identifier
from toolgate.permissions.rules import PermissionRule
from toolgate.permissions.shell import exact_pattern, find_violation
from toolgate.types.config import (
    ActionKind,
    PermissionBehavior,
    PermissionMode,
    RuleBehavior,
    RuleSource,
)

logger = logging.getLogger(__name__)

# Suggested rules go where "don't ask again" answers are stored.
SUGGESTION_SOURCE = RuleSource.LOCAL_SETTINGS

_PATH_GLOB_RE = re.compile(r"([*?\[\]\\])")


@dataclass(frozen=True, slots=True)
class PermissionRequest:
    """One action to authorize."""

    action: ActionKind
    resource: str | None = None  # Path, command text, or tool-specific target
    tool_name: str | None = None  # Defaults to the action's own tool
    rename_from: str | None = None  # Edit only: source path of a pure rename
    always_safe: bool = False  # Tool only: tool declares itself side-effect free
    tool_input: Any = None  # Passed back as ``updated_input`` on allow


def _unusable(text: str | None) -> bool:
    return text is None or not text.strip() or "\x00" in text


def _escape_path(path: str) -> str:
    return _PATH_GLOB_RE.sub(r"\\\1", path)


def _path_rule_pattern(path: str, cwd: str) -> str:
    """Exact-file pattern: ``/rel`` inside the project, ``//abs`` outside."""
    if cwd != "/" and path != cwd and is_within(path, cwd):
        return "/" + _escape_path(path[len(cwd) + 1:])
    return "/" + _escape_path(path)


def _in_working_directory(path: str, context: PermissionContext) -> bool:
    return any(is_within(path, d) for d in context.working_directories)


class _ActionPolicy:
    """Per-action-class steps of the shared precedence."""

    kind: ActionKind
    default_tool: str
    verb: str

    def tool_label(self, request: PermissionRequest) -> str:
        return request.tool_name or self.default_tool

    def rule_tools(self, request: PermissionRequest, behavior: RuleBehavior) -> tuple[str, ...]:
        return (self.default_tool,)

    def capable(self, request: PermissionRequest) -> bool:
        return not _unusable(request.resource)

    def identify(self, request: PermissionRequest, context: PermissionContext) -> str | None:
        if request.resource is None:
            return None
        return normalize_identifier(request.resource, self.kind, context.cwd)

    def describe(self, request: PermissionRequest, identifier: str | None) -> str:
        return f"{self.verb} {identifier}"

    def precheck(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> PermissionDecision | None:
        return None

    def shortcut(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> PermissionDecision | None:
        return None

    def mode_allows(self, identifier: str | None, context: PermissionContext) -> bool:
        return context.mode is PermissionMode.BYPASS

    def suggestions(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> tuple[PermissionRule, ...] | None:
        return None


class _ReadPolicy(_ActionPolicy):
    kind = ActionKind.READ
    default_tool = "Read"
    verb = "read"

    def rule_tools(self, request: PermissionRequest, behavior: RuleBehavior) -> tuple[str, ...]:
        # Edit access implies read access, but an Edit deny does not block reads.
        if behavior is RuleBehavior.ALLOW:
            return ("Read", "Edit")
        return ("Read",)

    def mode_allows(self, identifier: str | None, context: PermissionContext) -> bool:
        match context.mode:
            case PermissionMode.BYPASS:
                return True
            case PermissionMode.DEFAULT | PermissionMode.ACCEPT_EDITS | PermissionMode.PLAN:
                return identifier is not None and _in_working_directory(identifier, context)

    def suggestions(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> tuple[PermissionRule, ...] | None:
        if identifier is None:
            return None
        pattern = _path_rule_pattern(identifier, context.cwd)
        return (PermissionRule(SUGGESTION_SOURCE, RuleBehavior.ALLOW, "Read", pattern),)


class _EditPolicy(_ActionPolicy):
    kind = ActionKind.EDIT
    default_tool = "Edit"
    verb = "edit"

    def capable(self, request: PermissionRequest) -> bool:
        if request.rename_from is not None and _unusable(request.rename_from):
            return False
        return super().capable(request)

    def describe(self, request: PermissionRequest, identifier: str | None) -> str:
        if request.rename_from is not None:
            return f"rename {request.rename_from} to {identifier}"
        return super().describe(request, identifier)

    def shortcut(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> PermissionDecision | None:
        if request.rename_from is None or identifier is None:
            return None
        source = normalize_identifier(request.rename_from, self.kind, context.cwd)
        parent = posixpath.dirname(identifier)
        if posixpath.dirname(source) != parent:
            return None
        if not any(is_within(parent, d) for d in context.additional_directories):
            return None
        return PermissionDecision(
            behavior=PermissionBehavior.ALLOW,
            message=f"Renaming {source} to {identifier} is allowed inside approved directory {parent}.",
            reason=OtherReason("rename within an approved directory"),
            updated_input=request.tool_input,
        )

    def mode_allows(self, identifier: str | None, context: PermissionContext) -> bool:
        match context.mode:
            case PermissionMode.BYPASS:
                return True
            case PermissionMode.ACCEPT_EDITS:
                return identifier is not None and _in_working_directory(identifier, context)
            case PermissionMode.DEFAULT | PermissionMode.PLAN:
                return False

    def suggestions(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> tuple[PermissionRule, ...] | None:
        if identifier is None:
            return None
        pattern = _path_rule_pattern(identifier, context.cwd)
        return (PermissionRule(SUGGESTION_SOURCE, RuleBehavior.ALLOW, "Edit", pattern),)


class _ExecutePolicy(_ActionPolicy):
    kind = ActionKind.EXECUTE
    default_tool = "Bash"
    verb = "run"

    def capable(self, request: PermissionRequest) -> bool:
        # Control characters are left to the safety scan, which denies them.
        return request.resource is not None and bool(request.resource.strip())

    def describe(self, request: PermissionRequest, identifier: str | None) -> str:
        return f"run `{identifier}`"

    def precheck(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> PermissionDecision | None:
        # Scan the command as written; the normalized identifier drops comments.
        command = (request.resource or "").strip()
        violation = find_violation(command)
        if violation is None:
            return None
        return PermissionDecision(
            behavior=PermissionBehavior.DENY,
            message=f"Command `{command}` was blocked because {violation}.",
            reason=OtherReason(f"unsafe command: {violation}"),
        )

    def suggestions(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> tuple[PermissionRule, ...] | None:
        if not identifier or identifier.startswith("!"):
            return None
        pattern = exact_pattern(request.resource or identifier)
        return (PermissionRule(SUGGESTION_SOURCE, RuleBehavior.ALLOW, "Bash", pattern),)


class _ToolPolicy(_ActionPolicy):
    kind = ActionKind.TOOL
    default_tool = ""
    verb = "use"

    def rule_tools(self, request: PermissionRequest, behavior: RuleBehavior) -> tuple[str, ...]:
        return (self.tool_label(request),)

    def capable(self, request: PermissionRequest) -> bool:
        return not _unusable(request.tool_name)

    def describe(self, request: PermissionRequest, identifier: str | None) -> str:
        if identifier:
            return f"use {request.tool_name} on {identifier}"
        return f"use {request.tool_name}"

    def shortcut(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> PermissionDecision | None:
        if not request.always_safe:
            return None
        return PermissionDecision(
            behavior=PermissionBehavior.ALLOW,
            message=f"{request.tool_name} is marked as always safe.",
            reason=OtherReason("tool is marked always safe"),
            updated_input=request.tool_input,
        )

    def suggestions(
        self, request: PermissionRequest, identifier: str | None, context: PermissionContext,
    ) -> tuple[PermissionRule, ...] | None:
        return (PermissionRule(SUGGESTION_SOURCE, RuleBehavior.ALLOW, self.tool_label(request)),)


_POLICIES: dict[ActionKind, _ActionPolicy] = {
    ActionKind.READ: _ReadPolicy(),
    ActionKind.EDIT: _EditPolicy(),
    ActionKind.EXECUTE: _ExecutePolicy(),
    ActionKind.TOOL: _ToolPolicy(),
}


def _decided(
    request: PermissionRequest,
    step: str,
    behavior: PermissionBehavior,
    message: str,
    reason: DecisionReason | None = None,
    suggestions: tuple[PermissionRule, ...] | None = None,
) -> PermissionDecision:
    logger.debug("%s %r -> %s (%s)", request.action.value, request.resource, behavior.value, step)
    return PermissionDecision(
        behavior=behavior,
        message=message,
        reason=reason,
        updated_input=request.tool_input if behavior is PermissionBehavior.ALLOW else None,
        rule_suggestions=suggestions,
    )


def evaluate_request(request: PermissionRequest, context: PermissionContext) -> PermissionDecision:
    """Classify *request* against *context*. Pure: no I/O, no state."""
    policy = _POLICIES[request.action]
    tool = policy.tool_label(request)

    if not policy.capable(request):
        return _decided(
            request, "capability", PermissionBehavior.ASK,
            f"Requested permission to use {tool or 'an unnamed tool'}, but it has not been "
            "granted yet: the target could not be resolved.",
            OtherReason("unresolvable resource"),
        )

    identifier = policy.identify(request, context)
    blocked = policy.precheck(request, identifier, context)
    if blocked is not None:
        logger.debug("%s %r -> deny (safety)", request.action.value, request.resource)
        return blocked

    shortcut = policy.shortcut(request, identifier, context)
    if shortcut is not None:
        logger.debug("%s %r -> allow (shortcut)", request.action.value, request.resource)
        return shortcut

    label = policy.describe(request, identifier)

    rule = match_rule(
        identifier, context, policy.rule_tools(request, RuleBehavior.DENY),
        RuleBehavior.DENY, policy.kind,
    )
    if rule is not None:
        return _decided(
            request, "deny rule", PermissionBehavior.DENY,
            f"Permission to {label} has been denied by rule {rule} from {rule.source.value}.",
            RuleReason(rule),
        )

    if policy.mode_allows(identifier, context):
        return _decided(
            request, "mode", PermissionBehavior.ALLOW,
            f"Permission to {label} is allowed by {context.mode.value} mode.",
            ModeReason(context.mode),
        )

    rule = match_rule(
        identifier, context, policy.rule_tools(request, RuleBehavior.ALLOW),
        RuleBehavior.ALLOW, policy.kind,
    )
    if rule is not None:
        return _decided(
            request, "allow rule", PermissionBehavior.ALLOW,
            f"Permission to {label} is allowed by rule {rule} from {rule.source.value}.",
            RuleReason(rule),
        )

    return _decided(
        request, "fallback", PermissionBehavior.ASK,
        f"Requested permission to {label} with {tool}, but it has not been granted yet.",
        suggestions=policy.suggestions(request, identifier, context),
    )


def evaluate(
    action: ActionKind | str,
    resource: str | None,
    context: PermissionContext,
    *,
    tool_name: str | None = None,
    rename_from: str | None = None,
    always_safe: bool = False,
    tool_input: Any = None,
) -> PermissionDecision:
    """Evaluate one action (``read``, ``edit``, ``execute`` or ``tool``) against *context*."""
    kind = action if isinstance(action, ActionKind) else ActionKind(action)
    request = PermissionRequest(
        action=kind,
        resource=resource,
        tool_name=tool_name,
        rename_from=rename_from,
        always_safe=always_safe,
        tool_input=tool_input,
    )
    return evaluate_request(request, context)
