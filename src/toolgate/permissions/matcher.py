"""Pattern matching of rules against normalized resource identifiers.

Path patterns follow gitignore semantics:

- ``//abs/path`` is anchored at the filesystem root, ``~/path`` at the home
  directory and ``/path`` (or any pattern with an inner ``/``) at the project
  root. A pattern without ``/`` matches a path component at any depth.
- ``*`` and ``?`` never cross ``/``; ``**`` spans directories.
- Matching a directory covers everything below it. A trailing ``/`` limits
  the pattern to directories.
- A leading ``!`` negates the pattern.

Command patterns are ``prefix:*`` prefix rules or globs whose ``*`` spans any
character, ``/`` and spaces included. Command and pattern are both compared
in their normalized spelling (quotes removed, escapes resolved, single
spaces between tokens).
"""

from __future__ import annotations

import fnmatch
import functools
import logging
import re
from collections.abc import Iterable

from toolgate.permissions.context import PermissionContext, normalize_directory
from toolgate.permissions.errors import MalformedRuleError
from toolgate.permissions.rules import PermissionRule, parse_rule
from toolgate.permissions.shell import normalize_command
from toolgate.types.config import ActionKind, RuleBehavior

logger = logging.getLogger(__name__)


def normalize_identifier(identifier: str, kind: ActionKind, cwd: str) -> str:
    """Normalize *identifier* for matching against rules of *kind*."""
    match kind:
        case ActionKind.READ | ActionKind.EDIT:
            return normalize_directory(identifier, cwd)
        case ActionKind.EXECUTE:
            return normalize_command(identifier)
        case ActionKind.TOOL:
            return identifier


def is_within(path: str, directory: str) -> bool:
    """True when normalized *path* equals or lies below normalized *directory*."""
    if directory == "/":
        return path.startswith("/")
    return path == directory or path.startswith(directory.rstrip("/") + "/")


def tool_name_matches(rule_tool: str, tool_name: str) -> bool:
    """Exact match, or an ``mcp__server`` rule covering every tool of that server."""
    if rule_tool == tool_name:
        return True
    return (
        rule_tool.startswith("mcp__")
        and rule_tool.count("__") == 1
        and tool_name.startswith(rule_tool + "__")
    )


# -- Path patterns -----------------------------------------------------------


@functools.lru_cache(maxsize=512)
def _glob_to_regex(body: str) -> re.Pattern[str]:
    """Translate one gitignore glob into a compiled regex."""
    parts: list[str] = []
    i, n = 0, len(body)
    while i < n:
        c = body[i]
        if c == "*":
            j = i
            while j < n and body[j] == "*":
                j += 1
            run_is_double = j - i >= 2
            at_start = i == 0 or body[i - 1] == "/"
            at_end = j == n or body[j] == "/"
            if run_is_double and at_start and at_end:
                if j < n:
                    # ``**/`` matches zero or more directories
                    parts.append("(?:.*/)?")
                    i = j + 1
                else:
                    parts.append(".*")
                    i = j
                continue
            parts.append("[^/]*")
            i = j
            continue
        if c == "?":
            parts.append("[^/]")
        elif c == "[":
            end = body.find("]", i + 2 if body[i + 1:i + 2] in ("!", "^", "]") else i + 1)
            if end == -1:
                parts.append(re.escape(c))
            else:
                content = body[i + 1:end]
                if content[:1] in ("!", "^"):
                    content = "^" + content[1:]
                parts.append("[" + content.replace("\\", "\\\\") + "]")
                i = end
        elif c == "\\" and i + 1 < n:
            parts.append(re.escape(body[i + 1]))
            i += 1
        else:
            parts.append(re.escape(c))
        i += 1
    return re.compile("".join(parts), re.DOTALL)


def _anchor(pattern: str, cwd: str) -> tuple[str | None, str]:
    """Split *pattern* into ``(base_directory, body)``; base is None when unanchored."""
    if pattern.startswith("//"):
        return "/", pattern[2:]
    if pattern.startswith("~/"):
        return normalize_directory("~", cwd), pattern[2:]
    if pattern.startswith("/"):
        return cwd, pattern[1:]
    if "/" in pattern.rstrip("/"):
        return cwd, pattern
    return None, pattern


def _relative_parts(path: str, base: str) -> list[str]:
    rel = path[len(base):] if base != "/" else path
    return [p for p in rel.split("/") if p]


def path_matches(pattern: str, path: str, cwd: str) -> bool:
    """Test normalized absolute *path* against a gitignore-style *pattern*."""
    if pattern.startswith("!"):
        return not path_matches(pattern[1:], path, cwd)
    if not pattern:
        return False

    base, body = _anchor(pattern, cwd)
    dir_only = body.endswith("/")
    body = body.rstrip("/") or "**"

    if base is None:
        # Unanchored: relative to the project when inside it, else to the root.
        scope = cwd if is_within(path, cwd) else "/"
        parts = _relative_parts(path, scope)
        regex = _glob_to_regex(body)
        candidates = parts[:-1] if dir_only else parts
        return any(regex.fullmatch(p) for p in candidates)

    if not is_within(path, base):
        return False
    parts = _relative_parts(path, base)
    regex = _glob_to_regex(body)
    last = len(parts) - 1 if dir_only else len(parts)
    # A match on any leading directory covers everything inside it.
    for i in range(1, last + 1):
        if regex.fullmatch("/".join(parts[:i])):
            return True
    return False


# -- Command and generic patterns -------------------------------------------


def command_matches(pattern: str, command: str) -> bool:
    """Test a normalized command string against a ``Bash(...)`` pattern.

    The pattern is normalized the same way as the command first.
    """
    if pattern.startswith("!"):
        return not command_matches(pattern[1:], command)
    pattern = normalize_command(pattern)
    if pattern.endswith(":*"):
        prefix = pattern[:-2]
        return command == prefix or command.startswith(prefix + " ")
    return fnmatch.fnmatchcase(command, pattern)


def pattern_matches(pattern: str, identifier: str, kind: ActionKind, cwd: str) -> bool:
    """Dispatch to the matcher for *kind*. *identifier* must already be normalized."""
    match kind:
        case ActionKind.READ | ActionKind.EDIT:
            return path_matches(pattern, identifier, cwd)
        case ActionKind.EXECUTE:
            return command_matches(pattern, identifier)
        case ActionKind.TOOL:
            if pattern.startswith("!"):
                return not fnmatch.fnmatchcase(identifier, pattern[1:])
            return fnmatch.fnmatchcase(identifier, pattern)


def match_rule(
    identifier: str | None,
    context: PermissionContext,
    tool_names: Iterable[str],
    behavior: RuleBehavior,
    kind: ActionKind,
) -> PermissionRule | None:
    """Return the first rule of *behavior* matching the identifier, or None.

    Sources are scanned in ``SOURCE_PRECEDENCE`` order and entries within a
    source in list order. Malformed rule strings are skipped.
    """
    names = tuple(tool_names)
    normalized = (
        normalize_identifier(identifier, kind, context.cwd) if identifier is not None else None
    )

    for source, text in context.iter_rules(behavior):
        try:
            rule = parse_rule(text, source, behavior)
        except MalformedRuleError:
            logger.warning("Skipping malformed %s rule in %s: %r", behavior.value, source.value, text)
            continue
        if not any(tool_name_matches(rule.tool_name, name) for name in names):
            continue
        if rule.pattern is None:
            return rule
        if normalized is None:
            continue
        if pattern_matches(rule.pattern, normalized, kind, context.cwd):
            return rule
    return None
