"""Tests for pure context mutations and the context snapshot itself."""

from __future__ import annotations

import pytest

from toolgate.permissions.context import PermissionContext
from toolgate.permissions.errors import ManagedPolicyImmutable
from toolgate.permissions.rules import PermissionRule
from toolgate.permissions.store import add_directories, grant_rule, revoke_rule, set_mode
from toolgate.types.config import PermissionMode, RuleBehavior, RuleSource

LOCAL = RuleSource.LOCAL_SETTINGS


def _rule(tool: str, pattern: str | None = None, *, source=LOCAL, behavior=RuleBehavior.ALLOW):
    return PermissionRule(source, behavior, tool, pattern)


class TestPermissionContext:
    def test_string_source_keys_accepted(self, make_context):
        ctx = make_context(allow={"localSettings": ["Bash(ls)"]})
        assert ctx.allow_rules[LOCAL] == ("Bash(ls)",)

    def test_rule_maps_are_read_only(self, make_context):
        ctx = make_context(allow={"localSettings": ["Bash(ls)"]})
        with pytest.raises(TypeError):
            ctx.allow_rules[LOCAL] = ()  # type: ignore[index]

    def test_directories_normalized(self):
        ctx = PermissionContext(cwd="/work/app/", additional_directories=("../lib", "/tmp/x/"))
        assert ctx.cwd == "/work/app"
        assert ctx.additional_directories == ("/work/lib", "/tmp/x")
        assert ctx.working_directories == ("/work/app", "/work/lib", "/tmp/x")

    def test_iter_rules_follows_precedence(self, make_context):
        ctx = make_context(allow={
            "userSettings": ["A"],
            "localSettings": ["B"],
            "projectSettings": ["C"],
            "cliArgument": ["D"],
            "managedPolicy": ["E"],
        })
        assert [text for _, text in ctx.iter_rules(RuleBehavior.ALLOW)] == ["E", "D", "C", "B", "A"]

    def test_to_dict(self, make_context):
        ctx = make_context(deny={"projectSettings": ["Read(.env)"]})
        data = ctx.to_dict()
        assert data["mode"] == "default"
        assert data["deny"] == {"projectSettings": ["Read(.env)"]}


class TestGrantRule:
    def test_appends_to_source(self, make_context):
        ctx = make_context()
        updated = grant_rule(_rule("Bash", "npm test"), ctx)
        assert updated.allow_rules[LOCAL] == ("Bash(npm test)",)
        assert ctx.allow_rules == {}  # original untouched

    def test_idempotent(self, make_context):
        ctx = make_context()
        once = grant_rule(_rule("Bash", "npm test"), ctx)
        twice = grant_rule(_rule("Bash", "npm test"), once)
        assert twice is once
        assert twice.allow_rules[LOCAL] == ("Bash(npm test)",)

    def test_idempotent_against_non_canonical_entry(self, make_context):
        ctx = make_context(allow={"localSettings": [" Bash(npm test) "]})
        assert grant_rule(_rule("Bash", "npm test"), ctx) is ctx

    def test_deny_rule_goes_to_deny_list(self, make_context):
        updated = grant_rule(_rule("Read", ".env", behavior=RuleBehavior.DENY), make_context())
        assert updated.deny_rules[LOCAL] == ("Read(.env)",)
        assert LOCAL not in updated.allow_rules

    def test_managed_policy_refused(self, make_context):
        rule = _rule("Bash", source=RuleSource.MANAGED_POLICY)
        with pytest.raises(ManagedPolicyImmutable) as exc_info:
            grant_rule(rule, make_context())
        assert exc_info.value.rule == rule
        assert "managed policy" in str(exc_info.value)


class TestRevokeRule:
    def test_removes_every_equal_entry(self, make_context):
        ctx = make_context(allow={"localSettings": ["Bash(ls)", "Read", "Bash(ls) "]})
        updated = revoke_rule(_rule("Bash", "ls"), ctx)
        assert updated.allow_rules[LOCAL] == ("Read",)

    def test_absent_rule_is_noop(self, make_context):
        ctx = make_context(allow={"localSettings": ["Read"]})
        assert revoke_rule(_rule("Bash"), ctx) is ctx

    def test_only_touches_rule_source(self, make_context):
        ctx = make_context(allow={"localSettings": ["Bash"], "userSettings": ["Bash"]})
        updated = revoke_rule(_rule("Bash"), ctx)
        assert updated.allow_rules[RuleSource.USER_SETTINGS] == ("Bash",)

    def test_managed_policy_refused(self, make_context):
        ctx = make_context(deny={"managedPolicy": ["Bash"]})
        with pytest.raises(ManagedPolicyImmutable):
            revoke_rule(_rule("Bash", source=RuleSource.MANAGED_POLICY, behavior=RuleBehavior.DENY), ctx)


class TestModeAndDirectories:
    def test_set_mode(self, make_context):
        ctx = make_context()
        updated = set_mode(ctx, PermissionMode.ACCEPT_EDITS)
        assert updated.mode is PermissionMode.ACCEPT_EDITS
        assert ctx.mode is PermissionMode.DEFAULT
        assert set_mode(updated, PermissionMode.ACCEPT_EDITS) is updated

    def test_add_directories_dedupes(self, make_context):
        ctx = make_context(additional_directories=("/srv/shared",))
        updated = add_directories(ctx, "/srv/shared/", "../lib", "/work/app", "../lib")
        assert updated.additional_directories == ("/srv/shared", "/work/lib")

    def test_add_nothing_new_is_noop(self, make_context):
        ctx = make_context(additional_directories=("/srv/shared",))
        assert add_directories(ctx, "/srv/shared") is ctx
