"""AuditLogger: append-only JSONL record of permission decisions and mutations."""

from __future__ import annotations

import hashlib
import json
import time
import uuid
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from toolgate.core.config import toolgate_home

if TYPE_CHECKING:
    from toolgate.permissions.decision import PermissionDecision
    from toolgate.permissions.rules import PermissionRule
    from toolgate.types.config import PermissionMode

GENESIS_HASH = "0" * 64


class AuditEventType(Enum):
    """Types of audit events."""

    PERMISSION_DECISION = "permission_decision"
    RULE_GRANTED = "rule_granted"
    RULE_REVOKED = "rule_revoked"
    MODE_CHANGED = "mode_changed"


class AuditLogger:
    """Append-only audit logger with tamper detection via hash chaining.

    Each event stores a SHA-256 hash computed over the event without its
    ``hash`` field, and the previous event's hash as ``prev_hash``.
    :meth:`verify_chain` re-derives every hash and checks the links.

    The file handle stays open for the logger's lifetime. Call :meth:`close`
    or use the logger as a context manager.
    """

    def __init__(
        self,
        session_id: str,
        *,
        enabled: bool = True,
        log_tool_input: bool = False,
        audit_dir: Path | None = None,
    ) -> None:
        self._enabled = enabled
        self._session_id = session_id
        self._log_tool_input = log_tool_input
        self._prev_hash = GENESIS_HASH
        self._event_count = 0
        self._handle = None

        if enabled:
            self._audit_dir = audit_dir or (toolgate_home() / "audit")
            self._audit_dir.mkdir(parents=True, exist_ok=True)
            self._log_path = self._audit_dir / f"audit-{session_id}.jsonl"
            self._handle = open(self._log_path, "a")  # noqa: SIM115
        else:
            self._audit_dir = None
            self._log_path = None

    def __enter__(self) -> AuditLogger:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        """Flush and close the underlying file handle."""
        if self._handle is not None:
            self._handle.flush()
            self._handle.close()
            self._handle = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    @property
    def event_count(self) -> int:
        return self._event_count

    @staticmethod
    def _compute_hash(event: dict[str, Any]) -> str:
        payload = {k: v for k, v in event.items() if k != "hash"}
        event_json = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(event_json.encode()).hexdigest()

    def _write_event(self, event_type: AuditEventType, data: dict[str, Any]) -> str | None:
        """Write an audit event. Returns the event id, or None when disabled."""
        if not self._enabled or self._handle is None:
            return None

        event_id = uuid.uuid4().hex[:16]
        event = {
            "event_id": event_id,
            "timestamp": time.time(),
            "event_type": event_type.value,
            "session_id": self._session_id,
            "data": data,
            "prev_hash": self._prev_hash,
        }
        event["hash"] = self._compute_hash(event)
        self._prev_hash = event["hash"]
        self._event_count += 1

        self._handle.write(json.dumps(event, separators=(",", ":")) + "\n")
        self._handle.flush()
        return event_id

    @staticmethod
    def verify_chain(log_path: Path) -> tuple[bool, list[str]]:
        """Verify the integrity of an audit log file.

        Returns ``(valid, errors)`` where *errors* describes every broken hash
        or ``prev_hash`` link found, starting from the genesis hash.
        """
        errors: list[str] = []
        expected_prev = GENESIS_HASH

        with open(log_path) as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError as e:
                    errors.append(f"Line {lineno}: invalid JSON ({e})")
                    break

                stored_hash = event.get("hash", "")
                recomputed = AuditLogger._compute_hash(event)
                if recomputed != stored_hash:
                    errors.append(
                        f"Line {lineno}: hash mismatch "
                        f"(stored={stored_hash[:12]} recomputed={recomputed[:12]})"
                    )
                if event.get("prev_hash") != expected_prev:
                    errors.append(
                        f"Line {lineno}: prev_hash mismatch "
                        f"(expected={expected_prev[:12]} got={event.get('prev_hash', '')[:12]})"
                    )
                expected_prev = stored_hash

        return (len(errors) == 0, errors)

    def log_permission_decision(
        self,
        tool_name: str,
        decision: PermissionDecision,
        mode: PermissionMode,
        tool_input: dict[str, Any] | None = None,
    ) -> str | None:
        data: dict[str, Any] = {"tool": tool_name, "mode": mode.value, **decision.to_dict()}
        if self._log_tool_input and tool_input:
            data["input"] = tool_input
        return self._write_event(AuditEventType.PERMISSION_DECISION, data)

    def log_rule_granted(self, rule: PermissionRule) -> str | None:
        return self._write_event(AuditEventType.RULE_GRANTED, {
            "rule": rule.serialize(),
            "source": rule.source.value,
            "behavior": rule.behavior.value,
        })

    def log_rule_revoked(self, rule: PermissionRule) -> str | None:
        return self._write_event(AuditEventType.RULE_REVOKED, {
            "rule": rule.serialize(),
            "source": rule.source.value,
            "behavior": rule.behavior.value,
        })

    def log_mode_changed(self, previous: PermissionMode, mode: PermissionMode) -> str | None:
        return self._write_event(AuditEventType.MODE_CHANGED, {
            "from": previous.value,
            "to": mode.value,
        })
