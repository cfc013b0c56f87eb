"""
Admission progress: length of stay, schedule variance, alerts and the
per-patient tracking view.
"""

from hemotrack.progress.engine import (
    Alert,
    AlertSeverity,
    AlertThresholds,
    AlertType,
    LengthOfStay,
    ScheduleVariance,
    format_duration,
    generate_alerts,
    length_of_stay,
    overall_progress,
    schedule_variance,
    sort_alerts,
)
from hemotrack.progress.tracking import (
    AdmissionTrackingService,
    AdmissionView,
    DashboardSummary,
    PatientAdmissionStatus,
    TreatmentPlanProgress,
)

__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertThresholds",
    "AlertType",
    "LengthOfStay",
    "ScheduleVariance",
    "format_duration",
    "generate_alerts",
    "length_of_stay",
    "overall_progress",
    "schedule_variance",
    "sort_alerts",
    "AdmissionTrackingService",
    "AdmissionView",
    "DashboardSummary",
    "PatientAdmissionStatus",
    "TreatmentPlanProgress",
]
