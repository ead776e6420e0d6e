"""Decision objects returned by a permission evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from toolgate.permissions.rules import PermissionRule
from toolgate.types.config import PermissionBehavior, PermissionMode


@dataclass(frozen=True, slots=True)
class RuleReason:
    """An explicit allow or deny rule produced the decision."""

    type: ClassVar[str] = "rule"
    rule: PermissionRule


@dataclass(frozen=True, slots=True)
class ModeReason:
    """The active permission mode produced the decision."""

    type: ClassVar[str] = "mode"
    mode: PermissionMode


@dataclass(frozen=True, slots=True)
class OtherReason:
    """A capability check, safety scan, shortcut or user answer produced it."""

    type: ClassVar[str] = "other"
    reason: str


DecisionReason = RuleReason | ModeReason | OtherReason


@dataclass(frozen=True, slots=True)
class PermissionDecision:
    """Outcome of one evaluation. Created fresh per call and never mutated."""

    behavior: PermissionBehavior
    message: str
    reason: DecisionReason | None = None
    updated_input: Any = None
    rule_suggestions: tuple[PermissionRule, ...] | None = None

    @property
    def allowed(self) -> bool:
        return self.behavior is PermissionBehavior.ALLOW

    def to_dict(self) -> dict[str, Any]:
        """Telemetry form: behaviour and reason, without rule pattern internals."""
        data: dict[str, Any] = {
            "behavior": self.behavior.value,
            "message": self.message,
        }
        match self.reason:
            case RuleReason(rule=rule):
                data["decision_reason"] = {
                    "type": RuleReason.type,
                    "source": rule.source.value,
                    "behavior": rule.behavior.value,
                }
            case ModeReason(mode=mode):
                data["decision_reason"] = {"type": ModeReason.type, "mode": mode.value}
            case OtherReason(reason=reason):
                data["decision_reason"] = {"type": OtherReason.type, "reason": reason}
        if self.rule_suggestions:
            data["rule_suggestions"] = [r.serialize() for r in self.rule_suggestions]
        return data
