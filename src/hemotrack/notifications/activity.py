"""
Activity Feed

Best-effort side channel for user activity (transfusion started, vitals
recorded, ...). Delivery never affects the primary operation: emission
schedules background tasks and every sink failure is logged and dropped.

Sinks:
- In-process async callbacks
- Custom webhook (JSON POST)
"""

from typing import Any, Awaitable, Callable, Dict, Optional
from datetime import datetime
from enum import Enum
import asyncio
import uuid

import httpx
import structlog
from pydantic import BaseModel, Field

from hemotrack.config import get_settings
from hemotrack.models.core import utcnow

logger = structlog.get_logger(__name__)


# =============================================================================
# Activity Models
# =============================================================================

class ActivityType(str, Enum):
    """Kinds of user activity."""
    TRANSFUSION_CREATED = "transfusion_created"
    BAG_ADDED = "bag_added"
    BAG_REMOVED = "bag_removed"
    VITALS_RECORDED = "vitals_recorded"
    COMPLICATION_RECORDED = "complication_recorded"
    COMPLICATION_RESOLVED = "complication_resolved"
    TRANSFUSION_STARTED = "transfusion_started"
    TRANSFUSION_COMPLETED = "transfusion_completed"
    TRANSFUSION_STOPPED = "transfusion_stopped"
    TRANSFUSION_CANCELLED = "transfusion_cancelled"
    PLAN_PROGRESS_UPDATED = "plan_progress_updated"


class ActivityEvent(BaseModel):
    """One activity entry."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    activity_type: ActivityType
    acting_user: str
    resource_id: str
    patient_id: Optional[str] = None
    description: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utcnow)


ActivitySink = Callable[[ActivityEvent], Awaitable[None]]


# =============================================================================
# Sinks
# =============================================================================

class WebhookActivitySink:
    """POST activity events to a webhook."""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 5.0,
        headers: Dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.headers = {
            "Content-Type": "application/json",
            "User-Agent": "HemoTrack/0.1",
            **(headers or {}),
        }
        self._transport = transport

    async def __call__(self, event: ActivityEvent) -> None:
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            response = await client.post(
                self.webhook_url,
                json=event.model_dump(mode="json"),
                headers=self.headers,
            )
            response.raise_for_status()


# =============================================================================
# Emitter
# =============================================================================

class ActivityEmitter:
    """
    Fan activity events out to sinks without blocking the caller.

    Usage:
        emitter = ActivityEmitter()
        emitter.subscribe(my_async_callback)
        emitter.emit(ActivityEvent(...))
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._sinks: list[ActivitySink] = []
        self._pending: set[asyncio.Task] = set()
        self.delivered = 0
        self.failed = 0

    @classmethod
    def from_settings(cls) -> "ActivityEmitter":
        """Build an emitter with the webhook sink from settings, if configured."""
        settings = get_settings().activity
        emitter = cls(enabled=settings.enabled)
        if settings.webhook_url:
            emitter.subscribe(
                WebhookActivitySink(settings.webhook_url, timeout=settings.timeout_seconds)
            )
        return emitter

    def subscribe(self, sink: ActivitySink) -> None:
        self._sinks.append(sink)

    def emit(self, event: ActivityEvent) -> None:
        """Schedule delivery to every sink. Never raises."""
        if not self.enabled or not self._sinks:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; activity dropped", activity_id=event.id)
            return

        for sink in self._sinks:
            task = loop.create_task(self._deliver(sink, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, sink: ActivitySink, event: ActivityEvent) -> None:
        try:
            await sink(event)
            self.delivered += 1
        except Exception as e:
            self.failed += 1
            logger.warning(
                "Activity delivery failed",
                activity_id=event.id,
                activity_type=event.activity_type.value,
                error=str(e),
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
