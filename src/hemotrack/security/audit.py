"""
Clinical Audit Logging

Audit trail for safety-relevant actions on transfusion records:
- Blood-type incompatibility overrides
- Workflow transitions
- Adverse event recording
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum
import uuid

import structlog
from pydantic import BaseModel, Field

from hemotrack.models.core import utcnow

logger = structlog.get_logger(__name__)


# =============================================================================
# Audit Event Types
# =============================================================================

class AuditEventType(str, Enum):
    """Types of audit events."""
    TRANSFUSION_CREATED = "transfusion.created"
    TRANSFUSION_STARTED = "transfusion.started"
    TRANSFUSION_COMPLETED = "transfusion.completed"
    TRANSFUSION_STOPPED = "transfusion.stopped"
    TRANSFUSION_CANCELLED = "transfusion.cancelled"

    BAG_OVERRIDE = "bag.incompatibility_override"
    COMPLICATION_RECORDED = "complication.recorded"
    COMPLICATION_RESOLVED = "complication.resolved"

    PLAN_PROGRESS_UPDATED = "plan.progress_updated"


class AuditSeverity(str, Enum):
    """Audit event severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# Audit Event Model
# =============================================================================

class AuditEvent(BaseModel):
    """A single audit event."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utcnow)

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.LOW

    # Actor (who)
    acting_user: str

    # Action (what)
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    patient_id: Optional[str] = None

    details: Dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "audit_id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "acting_user": self.acting_user,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
        }


# =============================================================================
# Audit Logger
# =============================================================================

class AuditLogger:
    """
    Append-only audit logger.

    Events are written to the structured log and kept in memory for
    retrieval by resource.
    """

    def __init__(self, max_events: int = 10_000):
        self._events: List[AuditEvent] = []
        self._max_events = max_events

    async def log(self, event: AuditEvent) -> str:
        """
        Log an audit event.

        Returns the event ID.
        """
        logger.info("audit_event", **event.to_log_dict())

        self._events.append(event)
        if len(self._events) > self._max_events:
            self._events = self._events[-self._max_events:]

        return event.id

    async def log_transfusion_action(
        self,
        event_type: AuditEventType,
        transfusion_id: str,
        patient_id: str,
        acting_user: str,
        action: str,
        severity: AuditSeverity = AuditSeverity.LOW,
        **details: Any,
    ) -> str:
        """Convenience wrapper for transfusion events."""
        return await self.log(AuditEvent(
            event_type=event_type,
            severity=severity,
            acting_user=acting_user,
            action=action,
            resource_type="transfusion",
            resource_id=transfusion_id,
            patient_id=patient_id,
            details=details,
        ))

    def get_events(
        self,
        resource_id: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Recent events, optionally filtered."""
        events = self._events
        if resource_id:
            events = [e for e in events if e.resource_id == resource_id]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events[-limit:]
