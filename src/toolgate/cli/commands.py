"""CLI subcommands for toolgate (rules, audit)."""

from __future__ import annotations

from pathlib import Path

import click

from toolgate.types.config import RuleBehavior, RuleSource

# Sources a user may edit from the command line.
EDITABLE_SOURCES = [
    RuleSource.LOCAL_SETTINGS.value,
    RuleSource.PROJECT_SETTINGS.value,
    RuleSource.USER_SETTINGS.value,
]
BEHAVIOR_CHOICES = [b.value for b in RuleBehavior]


@click.group()
def rules_cmd() -> None:
    """Inspect and edit permission rules."""


@rules_cmd.command("list")
@click.option("--cwd", default=None, help="Project root (default: current directory)")
def rules_list(cwd: str | None) -> None:
    """Show every rule source in matching order."""
    from toolgate.cli.output import print_rules
    from toolgate.core.config import settings_paths
    from toolgate.permissions.errors import SettingsError
    from toolgate.permissions.settings import load_context

    paths = settings_paths(cwd)
    try:
        context = load_context(cwd, paths=paths)
    except SettingsError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    print_rules(context, paths)


def _edit_rule(rule_text: str, behavior: str, source: str, cwd: str | None, *, grant: bool) -> None:
    from toolgate.core.config import settings_paths
    from toolgate.permissions.context import PermissionContext
    from toolgate.permissions.errors import MalformedRuleError, ToolgateError
    from toolgate.permissions.manager import PermissionContextManager
    from toolgate.permissions.rules import parse_rule
    from toolgate.permissions.settings import load_context, save_rules

    rule_source = RuleSource(source)
    try:
        rule = parse_rule(rule_text, rule_source, RuleBehavior(behavior))
    except MalformedRuleError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    paths = settings_paths(cwd)
    saved: list[Path] = []

    def persist(changed: RuleSource, context: PermissionContext) -> None:
        path = save_rules(changed, context, paths)
        if path is not None:
            saved.append(path)

    try:
        manager = PermissionContextManager(load_context(cwd, paths=paths), on_change=persist)
        if grant:
            manager.grant_rule(rule)
        else:
            manager.revoke_rule(rule)
    except ToolgateError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    verb = "Added" if grant else "Removed"
    if saved:
        click.echo(f"{verb} {behavior} rule {rule} in {source} ({saved[-1]})")
    elif grant:
        click.echo(f"Rule {rule} is already in {source} {behavior} rules")
    else:
        click.echo(f"Rule {rule} is not in {source} {behavior} rules")


@rules_cmd.command("add")
@click.argument("rule")
@click.option("--behavior", type=click.Choice(BEHAVIOR_CHOICES), default="allow", help="Rule behavior")
@click.option("--source", type=click.Choice(EDITABLE_SOURCES), default="localSettings",
              help="Settings layer to write")
@click.option("--cwd", default=None, help="Project root (default: current directory)")
def rules_add(rule: str, behavior: str, source: str, cwd: str | None) -> None:
    """Add RULE (e.g. "Bash(npm test)") to a settings layer."""
    _edit_rule(rule, behavior, source, cwd, grant=True)


@rules_cmd.command("remove")
@click.argument("rule")
@click.option("--behavior", type=click.Choice(BEHAVIOR_CHOICES), default="allow", help="Rule behavior")
@click.option("--source", type=click.Choice(EDITABLE_SOURCES), default="localSettings",
              help="Settings layer to edit")
@click.option("--cwd", default=None, help="Project root (default: current directory)")
def rules_remove(rule: str, behavior: str, source: str, cwd: str | None) -> None:
    """Remove RULE from a settings layer."""
    _edit_rule(rule, behavior, source, cwd, grant=False)


@click.group()
def audit_cmd() -> None:
    """Inspect audit logs."""


@audit_cmd.command("verify")
@click.argument("log_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def audit_verify(log_path: Path) -> None:
    """Check the hash chain of an audit log."""
    from toolgate.audit.logger import AuditLogger

    valid, errors = AuditLogger.verify_chain(log_path)
    if valid:
        click.echo(f"Chain intact: {log_path}")
        return
    for error in errors:
        click.echo(error, err=True)
    raise SystemExit(1)
