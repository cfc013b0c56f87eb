"""
HemoTrack audit trail.
"""

from hemotrack.security.audit import AuditEvent, AuditEventType, AuditLogger, AuditSeverity

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
    "AuditSeverity",
]
