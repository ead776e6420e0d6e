"""Settings layers: load every rule source into a context, persist edits back.

Each file-backed source is one settings file (JSON, YAML or TOML, chosen by
suffix) shaped like::

    {
      "permissions": {
        "allow": ["Read(src/**)", "Bash(npm test)"],
        "deny": ["Read(.env)"],
        "defaultMode": "acceptEdits",
        "additionalDirectories": ["../shared"],
        "disableBypassPermissionsMode": "disable"
      }
    }

A missing file is an empty layer. An unreadable or invalid one is logged and
treated as empty, or raises ``SettingsError`` when loading strictly.
"""

from __future__ import annotations

import json
import logging
import os
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from toolgate.core.config import load_env_config, settings_paths
from toolgate.permissions.context import PermissionContext
from toolgate.permissions.errors import ManagedPolicyImmutable, SettingsError
from toolgate.types.config import SOURCE_PRECEDENCE, PermissionMode, RuleBehavior, RuleSource

logger = logging.getLogger(__name__)

DISABLE_BYPASS = "disable"


@dataclass(frozen=True, slots=True)
class SettingsLayer:
    """The permission section of one settings file."""

    source: RuleSource
    path: Path | None = None
    allow: tuple[str, ...] = ()
    deny: tuple[str, ...] = ()
    default_mode: PermissionMode | None = None
    additional_directories: tuple[str, ...] = ()
    disable_bypass: bool = False


def _problem(message: str, path: Path, strict: bool) -> None:
    if strict:
        raise SettingsError(message, str(path))
    logger.warning("%s", message)


def _parse_file(path: Path, strict: bool) -> dict[str, Any] | None:
    """Parse a JSON, YAML or TOML settings file."""
    try:
        text = path.read_text()
    except OSError as exc:
        _problem(f"Cannot read settings file {path}: {exc}", path, strict)
        return None

    suffix = path.suffix.lower()
    try:
        if suffix in (".yml", ".yaml"):
            raw = yaml.safe_load(text)
        elif suffix == ".toml":
            raw = tomllib.loads(text)
        else:
            raw = json.loads(text) if text.strip() else {}
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        _problem(f"Failed to parse settings file {path}: {exc}", path, strict)
        return None

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        _problem(f"Settings file {path} must contain a mapping at the top level", path, strict)
        return None
    return raw


def _string_list(value: Any, key: str, path: Path, strict: bool) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        _problem(f"permissions.{key} in {path} must be a list", path, strict)
        return ()
    entries: list[str] = []
    for item in value:
        if isinstance(item, str):
            entries.append(item)
        else:
            _problem(
                f"Skipping non-string entry {item!r} in permissions.{key} of {path}", path, strict,
            )
    return tuple(entries)


def _build_layer(source: RuleSource, path: Path, raw: dict[str, Any], strict: bool) -> SettingsLayer:
    """Build a SettingsLayer from parsed file data."""
    section = raw.get("permissions") or {}
    if not isinstance(section, dict):
        _problem(f"'permissions' in {path} must be a mapping", path, strict)
        return SettingsLayer(source, path)

    default_mode = None
    if (mode_str := section.get("defaultMode")) is not None:
        try:
            default_mode = PermissionMode(mode_str)
        except ValueError:
            _problem(f"Unknown defaultMode {mode_str!r} in {path}, ignoring", path, strict)

    # Relative directories resolve against the project root in PermissionContext.
    directories = _string_list(
        section.get("additionalDirectories"), "additionalDirectories", path, strict,
    )

    return SettingsLayer(
        source=source,
        path=path,
        allow=_string_list(section.get("allow"), "allow", path, strict),
        deny=_string_list(section.get("deny"), "deny", path, strict),
        default_mode=default_mode,
        additional_directories=directories,
        disable_bypass=section.get("disableBypassPermissionsMode") == DISABLE_BYPASS,
    )


def load_layer(source: RuleSource, path: str | Path, *, strict: bool = False) -> SettingsLayer:
    """Load one settings file. A missing file is an empty layer."""
    path = Path(path).expanduser()
    if not path.exists():
        return SettingsLayer(source, path)
    raw = _parse_file(path, strict)
    if raw is None:
        return SettingsLayer(source, path)
    layer = _build_layer(source, path, raw, strict)
    logger.debug(
        "Loaded %s from %s: %d allow, %d deny",
        source.value, path, len(layer.allow), len(layer.deny),
    )
    return layer


def _resolve_mode(
    cli_mode: PermissionMode | str | None,
    layers: Mapping[RuleSource, SettingsLayer],
    strict: bool,
) -> PermissionMode:
    if cli_mode is not None:
        return cli_mode if isinstance(cli_mode, PermissionMode) else PermissionMode(cli_mode)

    if env_mode := load_env_config().get("permission_mode"):
        try:
            return PermissionMode(env_mode)
        except ValueError:
            if strict:
                raise SettingsError(f"Unknown TOOLGATE_PERMISSION_MODE {env_mode!r}") from None
            logger.warning("Ignoring unknown TOOLGATE_PERMISSION_MODE %r", env_mode)

    for source in SOURCE_PRECEDENCE:
        layer = layers.get(source)
        if layer is not None and layer.default_mode is not None:
            return layer.default_mode
    return PermissionMode.DEFAULT


def load_context(
    cwd: str | None = None,
    *,
    cli_allow: Iterable[str] = (),
    cli_deny: Iterable[str] = (),
    cli_mode: PermissionMode | str | None = None,
    paths: Mapping[RuleSource, Path] | None = None,
    strict: bool = False,
) -> PermissionContext:
    """Build a PermissionContext from every settings layer plus CLI rules.

    The mode comes from *cli_mode*, then ``TOOLGATE_PERMISSION_MODE``, then
    the first layer in precedence order that sets ``defaultMode``. A managed
    policy with ``disableBypassPermissionsMode: "disable"`` turns
    ``bypassPermissions`` into ``default``.
    """
    cwd = os.path.abspath(os.path.expanduser(cwd or os.getcwd()))
    paths = paths if paths is not None else settings_paths(cwd)

    layers = {
        source: load_layer(source, path, strict=strict)
        for source, path in paths.items()
        if source is not RuleSource.CLI_ARGUMENT
    }
    layers[RuleSource.CLI_ARGUMENT] = SettingsLayer(
        RuleSource.CLI_ARGUMENT, allow=tuple(cli_allow), deny=tuple(cli_deny),
    )

    mode = _resolve_mode(cli_mode, layers, strict)
    managed = layers.get(RuleSource.MANAGED_POLICY)
    if mode is PermissionMode.BYPASS and managed is not None and managed.disable_bypass:
        logger.warning("bypassPermissions mode is disabled by the managed policy; using default mode")
        mode = PermissionMode.DEFAULT

    directories: list[str] = []
    for source in SOURCE_PRECEDENCE:
        layer = layers.get(source)
        if layer is None:
            continue
        directories.extend(d for d in layer.additional_directories if d not in directories)

    return PermissionContext(
        mode=mode,
        allow_rules={source: layer.allow for source, layer in layers.items()},
        deny_rules={source: layer.deny for source, layer in layers.items()},
        cwd=cwd,
        additional_directories=tuple(directories),
    )


def _dump(path: Path, data: dict[str, Any]) -> None:
    suffix = path.suffix.lower()
    if suffix in (".yml", ".yaml"):
        text = yaml.safe_dump(data, sort_keys=False)
    elif suffix == ".toml":
        raise SettingsError(f"Writing TOML settings is not supported: {path}", str(path))
    else:
        text = json.dumps(data, indent=2) + "\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def save_rules(
    source: RuleSource,
    context: PermissionContext,
    paths: Mapping[RuleSource, Path] | None = None,
) -> Path | None:
    """Write *source*'s allow and deny lists from *context* to its settings file.

    Other keys in the file are preserved. ``cliArgument`` rules are session
    only, so nothing is written and None is returned.
    """
    if source is RuleSource.MANAGED_POLICY:
        raise ManagedPolicyImmutable()
    if source is RuleSource.CLI_ARGUMENT:
        logger.debug("cliArgument rules are not persisted")
        return None

    paths = paths if paths is not None else settings_paths(context.cwd)
    path = Path(paths[source]).expanduser()

    data: dict[str, Any] = {}
    if path.exists():
        # Refuse to overwrite a file that cannot be parsed.
        data = _parse_file(path, strict=True) or {}
    section = data.get("permissions")
    if not isinstance(section, dict):
        section = {}
    section["allow"] = list(context.rules(RuleBehavior.ALLOW).get(source, ()))
    section["deny"] = list(context.rules(RuleBehavior.DENY).get(source, ()))
    data["permissions"] = section

    _dump(path, data)
    logger.debug("Saved %s rules to %s", source.value, path)
    return path
