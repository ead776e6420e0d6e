"""Permission rules and their canonical string form.

A rule is stored as ``ToolName`` (applies to the whole tool) or
``ToolName(pattern)``. The pattern starts after the first ``(`` and ends at
the final ``)``, so it may itself contain parentheses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from toolgate.permissions.errors import MalformedRuleError
from toolgate.types.config import RuleBehavior, RuleSource

_TOOL_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_.\-]*")
_RULE_RE = re.compile(r"(?P<tool>[A-Za-z_][A-Za-z0-9_.\-]*)(?:\((?P<pattern>.+)\))?", re.DOTALL)


@dataclass(frozen=True, slots=True)
class PermissionRule:
    """A single allow or deny entry scoped to a tool and an optional pattern."""

    source: RuleSource
    behavior: RuleBehavior
    tool_name: str
    pattern: str | None = None  # None applies to every call of the tool

    def __post_init__(self) -> None:
        if not _TOOL_NAME_RE.fullmatch(self.tool_name):
            raise MalformedRuleError(f"Invalid tool name: {self.tool_name!r}", self.tool_name)
        if self.pattern is not None and not self.pattern:
            raise MalformedRuleError(
                f"Empty pattern for {self.tool_name}; omit the parentheses to match the whole tool",
                f"{self.tool_name}()",
            )

    def serialize(self) -> str:
        return format_rule(self)

    def __str__(self) -> str:
        return self.serialize()


def format_rule(rule: PermissionRule) -> str:
    """Serialize a rule to ``ToolName`` or ``ToolName(pattern)``."""
    if rule.pattern is None:
        return rule.tool_name
    return f"{rule.tool_name}({rule.pattern})"


def parse_rule(text: str, source: RuleSource, behavior: RuleBehavior) -> PermissionRule:
    """Parse a stored rule string.

    Raises ``MalformedRuleError`` when *text* does not follow the grammar.
    """
    match = _RULE_RE.fullmatch(text.strip())
    if match is None:
        raise MalformedRuleError(f"Malformed permission rule: {text!r}", text)
    return PermissionRule(
        source=source,
        behavior=behavior,
        tool_name=match.group("tool"),
        pattern=match.group("pattern"),
    )


def canonical_form(text: str) -> str:
    """Return the canonical serialized form of *text*, or *text* itself if malformed."""
    try:
        return parse_rule(text, RuleSource.CLI_ARGUMENT, RuleBehavior.ALLOW).serialize()
    except MalformedRuleError:
        return text
