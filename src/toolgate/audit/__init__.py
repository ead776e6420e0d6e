"""Audit trail for permission decisions."""

from toolgate.audit.logger import AuditEventType, AuditLogger

__all__ = ["AuditEventType", "AuditLogger"]
