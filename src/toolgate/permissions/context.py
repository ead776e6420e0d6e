"""Immutable per-evaluation snapshot of rules, mode and working directories."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from toolgate.types.config import (
    SOURCE_PRECEDENCE,
    PermissionMode,
    RuleBehavior,
    RuleSource,
)


def _freeze_rules(rules: Mapping[Any, Iterable[str]] | None) -> Mapping[RuleSource, tuple[str, ...]]:
    frozen: dict[RuleSource, tuple[str, ...]] = {}
    for key, values in (rules or {}).items():
        source = key if isinstance(key, RuleSource) else RuleSource(key)
        entries = tuple(values)
        if entries:
            frozen[source] = entries
    return MappingProxyType(frozen)


def normalize_directory(path: str, cwd: str) -> str:
    """Absolute, ``/``-separated form of *path* without touching the filesystem."""
    expanded = os.path.expanduser(path)
    if not os.path.isabs(expanded):
        expanded = os.path.join(cwd, expanded)
    return os.path.normpath(expanded).replace(os.sep, "/")


@dataclass(frozen=True, slots=True)
class PermissionContext:
    """Rules per source and behaviour, plus the active mode.

    Rule lists hold serialized rule strings exactly as the settings layers
    store them. Instances are never mutated; the store module returns new
    contexts.
    """

    mode: PermissionMode = PermissionMode.DEFAULT
    allow_rules: Mapping[RuleSource, tuple[str, ...]] = field(default_factory=dict)
    deny_rules: Mapping[RuleSource, tuple[str, ...]] = field(default_factory=dict)
    cwd: str = ""
    additional_directories: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        cwd = normalize_directory(self.cwd or ".", os.getcwd())
        object.__setattr__(self, "cwd", cwd)
        object.__setattr__(self, "allow_rules", _freeze_rules(self.allow_rules))
        object.__setattr__(self, "deny_rules", _freeze_rules(self.deny_rules))
        object.__setattr__(
            self,
            "additional_directories",
            tuple(normalize_directory(d, cwd) for d in self.additional_directories),
        )

    @property
    def working_directories(self) -> tuple[str, ...]:
        return (self.cwd, *self.additional_directories)

    def rules(self, behavior: RuleBehavior) -> Mapping[RuleSource, tuple[str, ...]]:
        match behavior:
            case RuleBehavior.ALLOW:
                return self.allow_rules
            case RuleBehavior.DENY:
                return self.deny_rules

    def iter_rules(self, behavior: RuleBehavior) -> Iterator[tuple[RuleSource, str]]:
        """Yield ``(source, rule_string)`` in matching order."""
        by_source = self.rules(behavior)
        for source in SOURCE_PRECEDENCE:
            for text in by_source.get(source, ()):
                yield source, text

    def with_rules(
        self, behavior: RuleBehavior, source: RuleSource, entries: Iterable[str],
    ) -> PermissionContext:
        """Copy with one source's list for *behavior* replaced."""
        updated = dict(self.rules(behavior))
        updated[source] = tuple(entries)
        match behavior:
            case RuleBehavior.ALLOW:
                return replace(self, allow_rules=updated)
            case RuleBehavior.DENY:
                return replace(self, deny_rules=updated)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "cwd": self.cwd,
            "additional_directories": list(self.additional_directories),
            "allow": {s.value: list(v) for s, v in self.allow_rules.items()},
            "deny": {s.value: list(v) for s, v in self.deny_rules.items()},
        }
