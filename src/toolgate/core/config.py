"""Configuration loading (env vars, .env, settings file locations)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from toolgate.types.config import RuleSource

# Load .env from current directory (and parents), won't override existing env vars
load_dotenv()

DEFAULT_MANAGED_SETTINGS = Path("/etc/toolgate/managed-settings.json")

SETTINGS_DIRNAME = ".toolgate"
SETTINGS_FILENAME = "settings.json"
LOCAL_SETTINGS_FILENAME = "settings.local.json"


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    if mode := os.environ.get("TOOLGATE_PERMISSION_MODE"):
        config["permission_mode"] = mode
    if managed := os.environ.get("TOOLGATE_MANAGED_SETTINGS"):
        config["managed_settings"] = managed
    if home := os.environ.get("TOOLGATE_HOME"):
        config["home"] = home

    return config


def toolgate_home() -> Path:
    """User-level configuration directory (``~/.toolgate`` unless overridden)."""
    if home := os.environ.get("TOOLGATE_HOME"):
        return Path(home).expanduser()
    return Path.home() / SETTINGS_DIRNAME


def settings_paths(cwd: str | None = None) -> dict[RuleSource, Path]:
    """Settings file of every file-backed rule source.

    ``cliArgument`` rules live only for the session and have no file.
    """
    project = Path(cwd) if cwd else Path.cwd()
    managed = os.environ.get("TOOLGATE_MANAGED_SETTINGS")
    return {
        RuleSource.MANAGED_POLICY: Path(managed).expanduser() if managed else DEFAULT_MANAGED_SETTINGS,
        RuleSource.PROJECT_SETTINGS: project / SETTINGS_DIRNAME / SETTINGS_FILENAME,
        RuleSource.LOCAL_SETTINGS: project / SETTINGS_DIRNAME / LOCAL_SETTINGS_FILENAME,
        RuleSource.USER_SETTINGS: toolgate_home() / SETTINGS_FILENAME,
    }
