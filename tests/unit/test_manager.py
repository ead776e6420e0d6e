"""Tests for the context-owning PermissionContextManager."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from toolgate.audit.logger import AuditLogger
from toolgate.permissions.errors import ManagedPolicyImmutable
from toolgate.permissions.manager import PermissionContextManager
from toolgate.permissions.rules import PermissionRule
from toolgate.types.config import (
    PermissionBehavior,
    PermissionMode,
    RuleBehavior,
    RuleSource,
)

LOCAL = RuleSource.LOCAL_SETTINGS


def _allow(tool: str, pattern: str | None = None, source=LOCAL) -> PermissionRule:
    return PermissionRule(source, RuleBehavior.ALLOW, tool, pattern)


class TestCheck:
    def test_classifies_and_evaluates(self, make_context):
        mgr = PermissionContextManager(make_context())
        assert mgr.check("Read", {"file_path": "README.md"}).behavior is PermissionBehavior.ALLOW
        assert mgr.check("Bash", {"command": "make"}).behavior is PermissionBehavior.ASK
        assert mgr.check("Bash", {"command": "make; rm -rf /"}).behavior is PermissionBehavior.DENY

    def test_updated_input_is_tool_args(self, make_context):
        mgr = PermissionContextManager(make_context())
        args = {"file_path": "README.md", "limit": 10}
        assert mgr.check("Read", args).updated_input == args

    def test_evaluate_direct(self, make_context):
        mgr = PermissionContextManager(make_context(mode=PermissionMode.BYPASS))
        assert mgr.evaluate("execute", "make").behavior is PermissionBehavior.ALLOW

    def test_default_context_uses_process_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        mgr = PermissionContextManager()
        assert mgr.context.cwd == str(tmp_path)
        assert mgr.mode is PermissionMode.DEFAULT


class TestMutations:
    def test_grant_installs_new_context(self, make_context):
        mgr = PermissionContextManager(make_context())
        before = mgr.context
        mgr.grant_rule(_allow("Bash", "make"))
        assert mgr.context is not before
        assert mgr.check("Bash", {"command": "make"}).behavior is PermissionBehavior.ALLOW
        assert before.allow_rules == {}

    def test_revoke(self, make_context):
        mgr = PermissionContextManager(make_context(allow={"localSettings": ["Bash(make)"]}))
        mgr.revoke_rule(_allow("Bash", "make"))
        assert mgr.check("Bash", {"command": "make"}).behavior is PermissionBehavior.ASK

    def test_on_change_called_with_source(self, make_context):
        calls = []
        mgr = PermissionContextManager(make_context(), on_change=lambda s, c: calls.append((s, c)))
        mgr.grant_rule(_allow("Bash", "make"))
        mgr.grant_rule(_allow("Bash", "make"))  # no-op, not reported
        assert len(calls) == 1
        assert calls[0][0] is LOCAL
        assert calls[0][1] is mgr.context

    def test_managed_mutation_refused_and_context_kept(self, make_context):
        calls = []
        ctx = make_context(deny={"managedPolicy": ["Bash"]})
        mgr = PermissionContextManager(ctx, on_change=lambda s, c: calls.append(s))
        rule = PermissionRule(RuleSource.MANAGED_POLICY, RuleBehavior.DENY, "Bash")
        with pytest.raises(ManagedPolicyImmutable):
            mgr.revoke_rule(rule)
        with pytest.raises(ManagedPolicyImmutable):
            mgr.grant_rule(_allow("Read", source=RuleSource.MANAGED_POLICY))
        assert mgr.context is ctx
        assert calls == []

    def test_set_mode(self, make_context):
        mgr = PermissionContextManager(make_context())
        mgr.set_mode(PermissionMode.ACCEPT_EDITS)
        assert mgr.mode is PermissionMode.ACCEPT_EDITS
        assert mgr.check("Edit", {"file_path": "a.py"}).behavior is PermissionBehavior.ALLOW

    def test_add_directories(self, make_context):
        mgr = PermissionContextManager(make_context())
        assert mgr.check("Read", {"file_path": "/srv/x"}).behavior is PermissionBehavior.ASK
        mgr.add_directories("/srv")
        assert mgr.check("Read", {"file_path": "/srv/x"}).behavior is PermissionBehavior.ALLOW

    def test_concurrent_grants_all_land(self, make_context):
        mgr = PermissionContextManager(make_context())
        threads = [
            threading.Thread(target=mgr.grant_rule, args=(_allow("Bash", f"job {i}"),))
            for i in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(mgr.context.allow_rules[LOCAL]) == 20


class TestAudit:
    def test_decisions_and_mutations_recorded(self, make_context, tmp_path: Path):
        with AuditLogger("s1", audit_dir=tmp_path) as audit:
            mgr = PermissionContextManager(make_context(), audit=audit)
            mgr.check("Bash", {"command": "make"})
            mgr.grant_rule(_allow("Bash", "make"))
            mgr.set_mode(PermissionMode.PLAN)
            mgr.revoke_rule(_allow("Bash", "make"))
            log_path = audit.log_path

        events = [json.loads(line) for line in log_path.read_text().splitlines()]
        assert [e["event_type"] for e in events] == [
            "permission_decision", "rule_granted", "mode_changed", "rule_revoked",
        ]
        assert events[0]["data"]["behavior"] == "ask"
        assert events[0]["data"]["tool"] == "Bash"
        assert events[1]["data"]["rule"] == "Bash(make)"
        assert events[2]["data"] == {"from": "default", "to": "plan"}
        assert AuditLogger.verify_chain(log_path) == (True, [])

    def test_close_closes_audit_logger(self, make_context, tmp_path: Path):
        audit = AuditLogger("s1", audit_dir=tmp_path)
        mgr = PermissionContextManager(make_context(), audit=audit)
        mgr.check("Bash", {"command": "make"})
        mgr.close()
        assert audit.log_mode_changed(PermissionMode.DEFAULT, PermissionMode.PLAN) is None
        assert len(audit.log_path.read_text().splitlines()) == 1

    def test_close_without_audit(self, make_context):
        PermissionContextManager(make_context()).close()
