"""Plain-text rendering of decisions, tokens and rule lists."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path

import click

from toolgate.permissions.context import PermissionContext
from toolgate.permissions.decision import ModeReason, OtherReason, PermissionDecision, RuleReason
from toolgate.permissions.shell import CommandToken, TokenKind
from toolgate.types.config import SOURCE_PRECEDENCE, PermissionBehavior, RuleBehavior, RuleSource

EXIT_CODES = {
    PermissionBehavior.ALLOW: 0,
    PermissionBehavior.DENY: 1,
    PermissionBehavior.ASK: 2,
}


def exit_code(decision: PermissionDecision) -> int:
    return EXIT_CODES[decision.behavior]


def print_decision(decision: PermissionDecision, *, as_json: bool = False) -> None:
    """Print a decision as one summary line plus its reason and suggestions."""
    if as_json:
        click.echo(json.dumps(decision.to_dict(), indent=2))
        return

    click.echo(f"{decision.behavior.value.upper()}: {decision.message}")
    match decision.reason:
        case RuleReason(rule=rule):
            click.echo(f"  reason: rule {rule} ({rule.source.value} {rule.behavior.value})")
        case ModeReason(mode=mode):
            click.echo(f"  reason: {mode.value} mode")
        case OtherReason(reason=reason):
            click.echo(f"  reason: {reason}")
    if decision.rule_suggestions:
        rules = ", ".join(str(r) for r in decision.rule_suggestions)
        click.echo(f"  suggested rule: {rules}")


def print_tokens(tokens: list[CommandToken]) -> None:
    for token in tokens:
        match token.kind:
            case TokenKind.OP if token.raw is not None:
                click.echo(f"  {token.kind.value:<8} {token.value} {token.raw}")
            case _:
                click.echo(f"  {token.kind.value:<8} {token.value}")


def print_rules(context: PermissionContext, paths: Mapping[RuleSource, Path]) -> None:
    """Print every source's rules in matching order."""
    click.echo(f"Mode: {context.mode.value}")
    click.echo(f"Working directories: {', '.join(context.working_directories)}")
    for source in SOURCE_PRECEDENCE:
        allow = context.rules(RuleBehavior.ALLOW).get(source, ())
        deny = context.rules(RuleBehavior.DENY).get(source, ())
        location = f" ({paths[source]})" if source in paths else ""
        click.echo(f"\n{source.value}{location}")
        if not allow and not deny:
            click.echo("  (no rules)")
            continue
        for entry in deny:
            click.echo(f"  deny   {entry}")
        for entry in allow:
            click.echo(f"  allow  {entry}")
