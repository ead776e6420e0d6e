"""Shared fixtures: contexts rooted at a fixed project and isolated settings files."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from toolgate.permissions.context import PermissionContext
from toolgate.types.config import PermissionMode

PROJECT = "/work/app"


@pytest.fixture
def make_context() -> Callable[..., PermissionContext]:
    """Factory for contexts rooted at ``/work/app``.

    Usage:
        ctx = make_context(allow={"localSettings": ["Bash(ls)"]}, mode=PermissionMode.PLAN)
    """

    def _make(
        *,
        allow: dict[str, list[str]] | None = None,
        deny: dict[str, list[str]] | None = None,
        mode: PermissionMode = PermissionMode.DEFAULT,
        cwd: str = PROJECT,
        additional_directories: tuple[str, ...] = (),
    ) -> PermissionContext:
        return PermissionContext(
            mode=mode,
            allow_rules=allow or {},
            deny_rules=deny or {},
            cwd=cwd,
            additional_directories=additional_directories,
        )

    return _make


@pytest.fixture
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    """Point every settings layer into *tmp_path* and clear mode overrides.

    Returns the project directory and the user / managed file locations.
    """
    home = tmp_path / "home"
    project = tmp_path / "project"
    managed = tmp_path / "etc" / "managed-settings.json"
    home.mkdir()
    project.mkdir()
    monkeypatch.setenv("TOOLGATE_HOME", str(home))
    monkeypatch.setenv("TOOLGATE_MANAGED_SETTINGS", str(managed))
    monkeypatch.delenv("TOOLGATE_PERMISSION_MODE", raising=False)
    return {
        "project": project,
        "user": home / "settings.json",
        "managed": managed,
        "project_settings": project / ".toolgate" / "settings.json",
        "local_settings": project / ".toolgate" / "settings.local.json",
    }
