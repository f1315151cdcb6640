"""Audit trail for permission decisions and rule changes."""

from toolgate.audit.logger import AuditEventType, AuditLogger

__all__ = ["AuditEventType", "AuditLogger"]
