"""
HemoTrack activity notifications.
"""

from hemotrack.notifications.activity import (
    ActivityEmitter,
    ActivityEvent,
    ActivityType,
    WebhookActivitySink,
)

__all__ = [
    "ActivityEmitter",
    "ActivityEvent",
    "ActivityType",
    "WebhookActivitySink",
]
