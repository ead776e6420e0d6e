"""toolgate: allow / deny / ask gate for an agent's tool calls.

Usage:
    from toolgate import PermissionBehavior, PermissionContext, PermissionMode, evaluate

    context = PermissionContext(
        mode=PermissionMode.DEFAULT,
        allow_rules={"localSettings": ["Bash(npm test)"]},
        deny_rules={"projectSettings": ["Read(.env)"]},
        cwd="/work/app",
    )
    decision = evaluate("execute", "npm test", context)
    match decision.behavior:
        case PermissionBehavior.ALLOW:
            ...
"""

from toolgate.permissions.approval import ApprovalCallback, ApprovalChoice, authorize
from toolgate.permissions.context import PermissionContext
from toolgate.permissions.decision import (
    ModeReason,
    OtherReason,
    PermissionDecision,
    RuleReason,
)
from toolgate.permissions.engine import PermissionRequest, evaluate, evaluate_request
from toolgate.permissions.errors import (
    MalformedRuleError,
    ManagedPolicyImmutable,
    SettingsError,
    ToolgateError,
)
from toolgate.permissions.manager import PermissionContextManager
from toolgate.permissions.rules import PermissionRule, format_rule, parse_rule
from toolgate.permissions.settings import load_context, save_rules
from toolgate.permissions.store import add_directories, grant_rule, revoke_rule, set_mode
from toolgate.permissions.tools import classify_tool_call
from toolgate.types.config import (
    SOURCE_PRECEDENCE,
    ActionKind,
    PermissionBehavior,
    PermissionMode,
    RuleBehavior,
    RuleSource,
)

__version__ = "0.1.0"

__all__ = [
    # Evaluation
    "evaluate",
    "evaluate_request",
    "classify_tool_call",
    "PermissionRequest",
    "PermissionDecision",
    "RuleReason",
    "ModeReason",
    "OtherReason",
    # Context and rules
    "PermissionContext",
    "PermissionContextManager",
    "PermissionRule",
    "format_rule",
    "parse_rule",
    "grant_rule",
    "revoke_rule",
    "set_mode",
    "add_directories",
    # Settings
    "load_context",
    "save_rules",
    # Ask flow
    "ApprovalCallback",
    "ApprovalChoice",
    "authorize",
    # Enums
    "SOURCE_PRECEDENCE",
    "ActionKind",
    "PermissionBehavior",
    "PermissionMode",
    "RuleBehavior",
    "RuleSource",
    # Errors
    "MalformedRuleError",
    "ManagedPolicyImmutable",
    "SettingsError",
    "ToolgateError",
]
