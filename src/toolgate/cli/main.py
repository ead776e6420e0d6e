"""CLI entry point for toolgate."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import uuid
from functools import partial
from typing import Any

import click

from toolgate.cli.output import exit_code, print_decision, print_tokens
from toolgate.types.config import PermissionMode

MODE_CHOICES = [m.value for m in PermissionMode]

# Argument each built-in tool reads its target from.
_RESOURCE_ARGS = {
    "Read": "file_path",
    "Write": "file_path",
    "Edit": "file_path",
    "MultiEdit": "file_path",
    "NotebookEdit": "notebook_path",
    "Glob": "path",
    "Grep": "path",
    "LS": "path",
    "Bash": "command",
    "WebFetch": "url",
    "WebSearch": "query",
}


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log every evaluation step to stderr")
def cli(verbose: bool) -> None:
    """toolgate -- allow / deny / ask gate for agent tool calls.

    \b
    Usage:
      toolgate check Read src/app.py
      toolgate check Bash "npm test" --allow "Bash(npm test)"
      toolgate scan "ls -la > /dev/null"
      toolgate rules list
      toolgate rules add "Bash(npm run build)" --source localSettings
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


def _tool_args(tool: str, resource: str | None, raw_input: str | None) -> dict[str, Any]:
    if raw_input is not None:
        try:
            args = json.loads(raw_input)
        except json.JSONDecodeError as e:
            click.echo(f"Error: --input is not valid JSON: {e}", err=True)
            raise SystemExit(1)
        if not isinstance(args, dict):
            click.echo("Error: --input must be a JSON object", err=True)
            raise SystemExit(1)
        return args
    if resource is None:
        return {}
    return {_RESOURCE_ARGS.get(tool, "query"): resource}


def _load_manager(
    cwd: str | None,
    mode: str | None,
    allow: tuple[str, ...],
    deny: tuple[str, ...],
    *,
    use_settings: bool,
    persist: bool = False,
    audit: bool = False,
) -> Any:
    from toolgate.core.config import settings_paths
    from toolgate.permissions.errors import SettingsError
    from toolgate.permissions.manager import PermissionContextManager
    from toolgate.permissions.settings import load_context, save_rules

    paths = settings_paths(cwd) if use_settings else {}
    try:
        context = load_context(cwd, cli_allow=allow, cli_deny=deny, cli_mode=mode, paths=paths)
    except SettingsError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    audit_logger = None
    if audit:
        from toolgate.audit.logger import AuditLogger
        from toolgate.core.config import toolgate_home

        audit_logger = AuditLogger(uuid.uuid4().hex[:12], audit_dir=toolgate_home() / "audit")

    return PermissionContextManager(
        context,
        on_change=partial(save_rules, paths=paths) if persist and use_settings else None,
        audit=audit_logger,
    )


def _gate_options(fn: Any) -> Any:
    """Options shared by ``check`` and ``authorize``."""
    options = [
        click.argument("tool"),
        click.argument("resource", required=False),
        click.option("--input", "raw_input", default=None, help="Full tool input as a JSON object"),
        click.option("--cwd", default=None, help="Project root (default: current directory)"),
        click.option("--mode", type=click.Choice(MODE_CHOICES), default=None, help="Permission mode"),
        click.option("--allow", multiple=True, help="Extra allow rule for this invocation"),
        click.option("--deny", multiple=True, help="Extra deny rule for this invocation"),
        click.option("--settings/--no-settings", "use_settings", default=True,
                     help="Load rules from the settings files"),
        click.option("--audit", is_flag=True, help="Append decisions to the audit log"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


@cli.command("check")
@_gate_options
@click.option("--json", "as_json", is_flag=True, help="Print the decision as JSON")
def check_cmd(
    tool: str,
    resource: str | None,
    raw_input: str | None,
    cwd: str | None,
    mode: str | None,
    allow: tuple[str, ...],
    deny: tuple[str, ...],
    use_settings: bool,
    audit: bool,
    as_json: bool,
) -> None:
    """Evaluate one tool call. Exit code 0 allow, 1 deny, 2 ask."""
    args = _tool_args(tool, resource, raw_input)
    manager = _load_manager(cwd, mode, allow, deny, use_settings=use_settings, audit=audit)
    try:
        decision = manager.check(tool, args)
    finally:
        manager.close()
    print_decision(decision, as_json=as_json)
    sys.exit(exit_code(decision))


@cli.command("authorize")
@_gate_options
@click.option("--rich/--no-rich", "use_rich", default=None, help="Rich prompt (default: auto)")
def authorize_cmd(
    tool: str,
    resource: str | None,
    raw_input: str | None,
    cwd: str | None,
    mode: str | None,
    allow: tuple[str, ...],
    deny: tuple[str, ...],
    use_settings: bool,
    audit: bool,
    use_rich: bool | None,
) -> None:
    """Evaluate a tool call and prompt when it needs approval.

    "Always" answers are saved to the local settings file.
    """
    from toolgate.permissions.approval import authorize

    args = _tool_args(tool, resource, raw_input)
    manager = _load_manager(
        cwd, mode, allow, deny, use_settings=use_settings, persist=True, audit=audit,
    )
    callback = _create_approval_callback(use_rich if use_rich is not None else sys.stderr.isatty())
    try:
        decision = asyncio.run(authorize(manager, tool, args, callback))
    finally:
        manager.close()
    print_decision(decision)
    sys.exit(exit_code(decision))


def _create_approval_callback(use_rich: bool) -> Any:
    if use_rich:
        from toolgate.ui.approval import RichApprovalCallback
        return RichApprovalCallback()
    from toolgate.permissions.approval import StdinApprovalCallback
    return StdinApprovalCallback()


@cli.command("scan")
@click.argument("command")
def scan_cmd(command: str) -> None:
    """Tokenize a shell command and report whether it passes the safety scan."""
    from toolgate.permissions.shell import find_violation, tokenize

    try:
        tokens = tokenize(command)
    except ValueError as e:
        click.echo(f"Tokens: (unparseable: {e})")
    else:
        click.echo("Tokens:")
        print_tokens(tokens)

    violation = find_violation(command)
    if violation is None:
        click.echo("SAFE")
        return
    click.echo(f"UNSAFE: {violation}")
    raise SystemExit(1)


def _register_subcommands() -> None:
    """Register CLI subcommands."""
    from toolgate.cli.commands import audit_cmd, rules_cmd

    cli.add_command(rules_cmd, "rules")
    cli.add_command(audit_cmd, "audit")


_register_subcommands()


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
