"""Map agent tool calls onto permission requests."""

from __future__ import annotations

from typing import Any

from toolgate.permissions.engine import PermissionRequest
from toolgate.types.config import ActionKind

# Tools that only read the filesystem.
READ_TOOLS = frozenset({"Read", "Glob", "Grep", "LS"})

# Tools that write to the filesystem.
EDIT_TOOLS = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})

# Tools whose target defaults to the working directory when no path is given.
_DIRECTORY_TOOLS = frozenset({"Glob", "Grep", "LS"})

# Tools with no side effects, allowed without consulting rules.
ALWAYS_SAFE_TOOLS = frozenset({"TodoWrite", "ToolSearch"})

_PATH_KEYS = ("file_path", "notebook_path", "path")


def _path_argument(args: dict[str, Any]) -> str | None:
    for key in _PATH_KEYS:
        value = args.get(key)
        if isinstance(value, str):
            return value
    return None


def _text(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    return value if isinstance(value, str) else None


def _string_argument(args: dict[str, Any]) -> str | None:
    """Resource for generic tools: the first of the usual target arguments present."""
    for key in ("url", "query", "pattern", "prompt"):
        value = args.get(key)
        if isinstance(value, str):
            return value
    return None


def classify_tool_call(tool_name: str, args: dict[str, Any] | None = None) -> PermissionRequest:
    """Build the ``PermissionRequest`` for one tool call."""
    args = args or {}

    if tool_name in READ_TOOLS:
        path = _path_argument(args)
        if path is None and tool_name in _DIRECTORY_TOOLS:
            path = "."
        return PermissionRequest(
            action=ActionKind.READ, resource=path, tool_name=tool_name, tool_input=args,
        )

    if tool_name in EDIT_TOOLS:
        return PermissionRequest(
            action=ActionKind.EDIT,
            resource=_path_argument(args),
            tool_name=tool_name,
            tool_input=args,
        )

    if tool_name == "Move":
        return PermissionRequest(
            action=ActionKind.EDIT,
            resource=_text(args, "destination"),
            tool_name=tool_name,
            rename_from=_text(args, "source"),
            tool_input=args,
        )

    if tool_name == "Bash":
        return PermissionRequest(
            action=ActionKind.EXECUTE,
            resource=_text(args, "command"),
            tool_name=tool_name,
            tool_input=args,
        )

    return PermissionRequest(
        action=ActionKind.TOOL,
        resource=_string_argument(args),
        tool_name=tool_name,
        always_safe=tool_name in ALWAYS_SAFE_TOOLS,
        tool_input=args,
    )
