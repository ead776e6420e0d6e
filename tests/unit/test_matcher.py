"""Tests for path, command and tool-name pattern matching."""

from __future__ import annotations

import logging

import pytest

from toolgate.permissions.matcher import (
    command_matches,
    is_within,
    match_rule,
    normalize_identifier,
    path_matches,
    tool_name_matches,
)
from toolgate.types.config import ActionKind, RuleBehavior, RuleSource

CWD = "/work/app"


class TestNormalizeIdentifier:
    def test_relative_path_joined_to_cwd(self):
        assert normalize_identifier("src/a.py", ActionKind.READ, CWD) == "/work/app/src/a.py"

    def test_dot_segments_collapsed(self):
        assert normalize_identifier("./src/../lib/x", ActionKind.EDIT, CWD) == "/work/app/lib/x"
        assert normalize_identifier("../other/x", ActionKind.READ, CWD) == "/work/other/x"

    def test_home_expanded(self, monkeypatch):
        monkeypatch.setenv("HOME", "/home/dev")
        assert normalize_identifier("~/notes.md", ActionKind.READ, CWD) == "/home/dev/notes.md"

    def test_command_stripped(self):
        assert normalize_identifier("  ls -la \n", ActionKind.EXECUTE, CWD) == "ls -la"

    def test_command_quotes_and_escapes_resolved(self):
        assert normalize_identifier("\"git\"\tpush  \\origin", ActionKind.EXECUTE, CWD) == "git push origin"

    def test_tool_identifier_unchanged(self):
        assert normalize_identifier(" https://x.dev ", ActionKind.TOOL, CWD) == " https://x.dev "


class TestIsWithin:
    def test_same_and_nested(self):
        assert is_within("/work/app", "/work/app")
        assert is_within("/work/app/src/a.py", "/work/app")

    def test_sibling_prefix_is_not_inside(self):
        assert not is_within("/work/application/x", "/work/app")

    def test_root_contains_everything(self):
        assert is_within("/etc/passwd", "/")


class TestToolNameMatches:
    def test_exact(self):
        assert tool_name_matches("Bash", "Bash")
        assert not tool_name_matches("Bash", "BashOutput")

    def test_mcp_server_rule_covers_its_tools(self):
        assert tool_name_matches("mcp__github", "mcp__github__create_issue")
        assert not tool_name_matches("mcp__github", "mcp__githubx__create_issue")

    def test_mcp_tool_rule_is_exact(self):
        assert tool_name_matches("mcp__github__create_issue", "mcp__github__create_issue")
        assert not tool_name_matches("mcp__github__create_issue", "mcp__github__close_issue")


class TestPathMatches:
    @pytest.mark.parametrize("pattern,path,expected", [
        # Unanchored patterns match a component at any depth
        ("*.py", "/work/app/a/b.py", True),
        ("*.py", "/work/app/a.pyc", False),
        (".env", "/work/app/.env", True),
        (".env", "/work/app/config/.env", True),
        ("node_modules", "/work/app/web/node_modules/x/index.js", True),
        # Leading slash anchors at the project root
        ("/main.py", "/work/app/main.py", True),
        ("/main.py", "/work/app/sub/main.py", False),
        ("/src/**", "/work/other/src/a.py", False),
        # An inner slash also anchors at the project root
        ("src/*.py", "/work/app/src/a.py", True),
        ("src/*.py", "/work/app/lib/src/a.py", False),
        ("src/*.py", "/work/app/src/deep/a.py", False),
        # Double slash anchors at the filesystem root
        ("//etc/**", "/etc/passwd", True),
        ("//etc/**", "/work/app/etc/passwd", False),
        ("//tmp/scratch.txt", "/tmp/scratch.txt", True),
        # ** spans directories
        ("src/**", "/work/app/src/a/b/c.py", True),
        ("**/test_*.py", "/work/app/tests/unit/test_x.py", True),
        ("**/test_*.py", "/work/app/test_top.py", True),
        ("a/**/b", "/work/app/a/b", True),
        ("a/**/b", "/work/app/a/x/y/b", True),
        ("a/**/b", "/work/app/a/x/c", False),
        # Single-character and class wildcards never cross /
        ("file?.txt", "/work/app/file1.txt", True),
        ("file?.txt", "/work/app/file12.txt", False),
        ("[ab].txt", "/work/app/a.txt", True),
        ("[ab].txt", "/work/app/c.txt", False),
        ("[!ab].txt", "/work/app/c.txt", True),
        ("src/*", "/work/app/src/a/b.py", True),  # directory match covers its contents
        # Escaped metacharacters are literal
        ("/weird\\*name", "/work/app/weird*name", True),
        ("/weird\\*name", "/work/app/weirdXname", False),
    ])
    def test_patterns(self, pattern, path, expected):
        assert path_matches(pattern, path, CWD) is expected

    def test_directory_match_covers_contents(self):
        assert path_matches("/build", "/work/app/build/out/app.js", CWD)
        assert path_matches("build", "/work/app/pkg/build/x", CWD)

    def test_trailing_slash_only_matches_directories(self):
        assert path_matches("docs/", "/work/app/docs/guide.md", CWD)
        assert not path_matches("docs/", "/work/app/docs", CWD)

    def test_home_anchor(self, monkeypatch):
        monkeypatch.setenv("HOME", "/home/dev")
        assert path_matches("~/.ssh/**", "/home/dev/.ssh/id_rsa", CWD)
        assert not path_matches("~/.ssh/**", "/work/app/.ssh/id_rsa", CWD)

    def test_unanchored_outside_project(self):
        assert path_matches("*.pem", "/srv/keys/server.pem", CWD)

    def test_negation(self):
        assert path_matches("!*.py", "/work/app/notes.txt", CWD)
        assert not path_matches("!*.py", "/work/app/main.py", CWD)

    def test_project_root_pattern_covers_project(self):
        assert path_matches("/", "/work/app/anything/at/all", CWD)
        assert not path_matches("/", "/elsewhere/file", CWD)


class TestCommandMatches:
    def test_exact(self):
        assert command_matches("npm test", "npm test")
        assert not command_matches("npm test", "npm test --watch")

    def test_legacy_prefix(self):
        assert command_matches("npm run test:*", "npm run test")
        assert command_matches("npm run test:*", "npm run test --watch")
        assert not command_matches("npm run test:*", "npm run testing")

    def test_star_spans_spaces_and_slashes(self):
        assert command_matches("git *", "git log --oneline src/a.py")
        assert not command_matches("git *", "git")
        assert command_matches("*", "rm -rf /")

    def test_question_mark(self):
        assert command_matches("ls -?", "ls -a")
        assert not command_matches("ls -?", "ls -la")

    def test_negation(self):
        assert command_matches("!rm *", "ls")
        assert not command_matches("!rm *", "rm -rf build")

    def test_pattern_normalized(self):
        assert command_matches('git commit -m "x"', "git commit -m x")
        assert command_matches("rm  -rf\t*", "rm -rf build")


class TestMatchRule:
    def test_first_source_in_precedence_wins(self, make_context):
        ctx = make_context(allow={
            "userSettings": ["Bash"],
            "projectSettings": ["Bash(ls)"],
            "managedPolicy": ["Bash(ls *)"],
        })
        rule = match_rule("ls", ctx, ("Bash",), RuleBehavior.ALLOW, ActionKind.EXECUTE)
        assert rule is not None
        assert rule.source is RuleSource.PROJECT_SETTINGS
        assert rule.pattern == "ls"

        rule = match_rule("ls -la", ctx, ("Bash",), RuleBehavior.ALLOW, ActionKind.EXECUTE)
        assert rule.source is RuleSource.MANAGED_POLICY

    def test_list_order_within_source(self, make_context):
        ctx = make_context(deny={"localSettings": ["Read(*.key)", "Read(secrets/**)"]})
        rule = match_rule("secrets/a.key", ctx, ("Read",), RuleBehavior.DENY, ActionKind.READ)
        assert rule.pattern == "*.key"

    def test_no_match(self, make_context):
        ctx = make_context(allow={"localSettings": ["Bash(ls)", "Read"]})
        assert match_rule("pwd", ctx, ("Bash",), RuleBehavior.ALLOW, ActionKind.EXECUTE) is None

    def test_bare_rule_matches_missing_identifier(self, make_context):
        ctx = make_context(allow={"localSettings": ["WebFetch(*example.com*)", "WebFetch"]})
        rule = match_rule(None, ctx, ("WebFetch",), RuleBehavior.ALLOW, ActionKind.TOOL)
        assert rule is not None
        assert rule.pattern is None

    def test_malformed_rule_skipped(self, make_context, caplog):
        ctx = make_context(allow={"localSettings": ["Bash(", "Bash(ls)"]})
        with caplog.at_level(logging.WARNING, logger="toolgate.permissions.matcher"):
            rule = match_rule("ls", ctx, ("Bash",), RuleBehavior.ALLOW, ActionKind.EXECUTE)
        assert rule is not None
        assert rule.pattern == "ls"
        assert "Skipping malformed" in caplog.text

    def test_relative_identifier_normalized(self, make_context):
        ctx = make_context(deny={"localSettings": ["Read(/secrets/**)"]})
        rule = match_rule("./secrets/../secrets/a", ctx, ("Read",), RuleBehavior.DENY, ActionKind.READ)
        assert rule is not None
