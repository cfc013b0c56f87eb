"""
Progress & Alert Engine

Pure derivations over admission and treatment-plan records:
- Length of stay
- Treatment-plan schedule variance
- Severity-ranked alert feed
- Overall plan progress

Every function takes ``now`` explicitly (defaulting to the current time)
so results are reproducible. Naive datetimes are treated as UTC.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional
import math

import structlog
from pydantic import BaseModel, ConfigDict

from hemotrack.config import get_settings
from hemotrack.models.admission import AdmissionRecord, AdmissionStatus, TreatmentPlanExecution
from hemotrack.models.core import utcnow

logger = structlog.get_logger(__name__)

_DAY = timedelta(days=1)
_HOUR = timedelta(hours=1)
_MINUTE = timedelta(minutes=1)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def whole_days(start: datetime, end: datetime) -> int:
    """Full days from start to end, truncated toward zero."""
    return int((_aware(end) - _aware(start)) / _DAY)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# =============================================================================
# Length of stay
# =============================================================================

class LengthOfStay(BaseModel):
    """Elapsed stay. ``hours`` is the total elapsed hours, not the remainder."""

    model_config = ConfigDict(frozen=True)

    days: int
    hours: int
    minutes: int
    formatted: str


def length_of_stay(
    admission_date: datetime,
    discharge_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> LengthOfStay:
    """
    Length of stay from admission to discharge, or to ``now`` while admitted.

    Args:
        admission_date: When the patient was admitted
        discharge_date: Actual discharge, if any
        now: Reference time for ongoing stays

    Returns:
        LengthOfStay with days = floor(hours / 24)
    """
    end = discharge_date or now or utcnow()
    elapsed = _aware(end) - _aware(admission_date)

    hours = int(elapsed / _HOUR)
    minutes = int(elapsed / _MINUTE)
    days = hours // 24 if hours >= 0 else -((-hours) // 24)

    if days > 0:
        formatted = _plural(days, "day")
        if hours % 24:
            formatted += f" {_plural(hours % 24, 'hr')}"
    elif hours > 0:
        formatted = _plural(hours, "hour")
    else:
        formatted = _plural(minutes, "minute")

    return LengthOfStay(days=days, hours=hours, minutes=minutes, formatted=formatted)


def format_duration(days: int, hours: Optional[int] = None) -> str:
    """Display form for a stay given in days and total hours."""
    if days == 0 and hours:
        return _plural(hours, "hour")

    result = _plural(days, "day")
    if hours and hours % 24:
        result += f", {_plural(hours % 24, 'hour')}"
    return result


# =============================================================================
# Schedule variance
# =============================================================================

class ScheduleVariance(BaseModel):
    """How a treatment plan is tracking against its planned end date."""

    model_config = ConfigDict(frozen=True)

    completion_percentage: float
    days_elapsed: int
    days_remaining: Optional[int] = None
    total_days: Optional[int] = None
    expected_progress: Optional[float] = None
    is_on_schedule: bool = True
    configuration_error: Optional[str] = None


def schedule_variance(plan: TreatmentPlanExecution, now: Optional[datetime] = None) -> ScheduleVariance:
    """
    Compare actual completion against elapsed time.

    Without a planned end date there is no target to miss, so the plan is on
    schedule. A non-positive planned duration is reported in
    ``configuration_error`` and does not mark the plan delayed.
    """
    now = now or utcnow()
    days_elapsed = whole_days(plan.start_date, now)
    completion = plan.completion_percentage

    if plan.planned_end_date is None:
        return ScheduleVariance(completion_percentage=completion, days_elapsed=days_elapsed)

    total_days = whole_days(plan.start_date, plan.planned_end_date)
    days_remaining = whole_days(now, plan.planned_end_date)

    if total_days <= 0:
        message = (
            f"planned duration of plan {plan.plan_id} is {total_days} day(s); "
            "planned_end_date must be after start_date"
        )
        logger.warning(
            "Treatment plan has non-positive planned duration",
            plan_id=plan.plan_id,
            patient_id=plan.patient_id,
            total_days=total_days,
        )
        return ScheduleVariance(
            completion_percentage=completion,
            days_elapsed=days_elapsed,
            days_remaining=days_remaining,
            total_days=total_days,
            configuration_error=message,
        )

    expected = days_elapsed / total_days * 100
    return ScheduleVariance(
        completion_percentage=completion,
        days_elapsed=days_elapsed,
        days_remaining=days_remaining,
        total_days=total_days,
        expected_progress=expected,
        is_on_schedule=completion >= expected,
    )


# =============================================================================
# Alerts
# =============================================================================

class AlertType(str, Enum):
    LONG_STAY = "long_stay"
    OVERDUE_STEP = "overdue_step"
    DELAYED_PLAN = "delayed_plan"
    PENDING_DISCHARGE = "pending_discharge"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Presentation order: most severe first
SEVERITY_ORDER = {
    AlertSeverity.CRITICAL: 0,
    AlertSeverity.HIGH: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.LOW: 3,
}


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: AlertType
    severity: AlertSeverity
    message: str


class AlertThresholds(BaseModel):
    """Alert cut-offs; defaults mirror AlertSettings."""

    model_config = ConfigDict(frozen=True)

    long_stay_days: int = 14
    critical_stay_days: int = 30
    overdue_high_threshold: int = 5

    @classmethod
    def from_settings(cls) -> "AlertThresholds":
        alerts = get_settings().alerts
        return cls(
            long_stay_days=alerts.long_stay_days,
            critical_stay_days=alerts.critical_stay_days,
            overdue_high_threshold=alerts.overdue_high_threshold,
        )


def sort_alerts(alerts: Iterable[Alert]) -> list[Alert]:
    """Stable sort by severity; ties keep emission order."""
    return sorted(alerts, key=lambda a: SEVERITY_ORDER[a.severity])


def generate_alerts(
    admission: Optional[AdmissionRecord],
    plans: Iterable[TreatmentPlanExecution],
    now: Optional[datetime] = None,
    thresholds: Optional[AlertThresholds] = None,
) -> list[Alert]:
    """
    Alert feed for one patient, sorted critical first.

    Emission order before sorting: long stay, overdue steps, delayed plans,
    pending discharge.
    """
    now = now or utcnow()
    thresholds = thresholds or AlertThresholds.from_settings()
    plans = list(plans)
    alerts: list[Alert] = []

    if admission is not None:
        stay = length_of_stay(admission.admission_date, admission.actual_discharge_date, now)
        if stay.days > thresholds.long_stay_days:
            alerts.append(Alert(
                type=AlertType.LONG_STAY,
                severity=(
                    AlertSeverity.CRITICAL
                    if stay.days > thresholds.critical_stay_days
                    else AlertSeverity.HIGH
                ),
                message=f"Patient has been admitted for {stay.days} days",
            ))

    overdue = sum(plan.overdue_steps for plan in plans)
    if overdue > 0:
        alerts.append(Alert(
            type=AlertType.OVERDUE_STEP,
            severity=(
                AlertSeverity.HIGH
                if overdue > thresholds.overdue_high_threshold
                else AlertSeverity.MEDIUM
            ),
            message=f"{_plural(overdue, 'treatment step')} overdue",
        ))

    delayed = sum(1 for plan in plans if not schedule_variance(plan, now).is_on_schedule)
    if delayed > 0:
        alerts.append(Alert(
            type=AlertType.DELAYED_PLAN,
            severity=AlertSeverity.MEDIUM,
            message=f"{_plural(delayed, 'treatment plan')} behind schedule",
        ))

    if admission is not None and admission.status == AdmissionStatus.PENDING_DISCHARGE:
        alerts.append(Alert(
            type=AlertType.PENDING_DISCHARGE,
            severity=AlertSeverity.LOW,
            message="Discharge pending - complete remaining tasks",
        ))

    return sort_alerts(alerts)


# =============================================================================
# Overall progress
# =============================================================================

def overall_progress(plans: Iterable[TreatmentPlanExecution]) -> int:
    """Completed steps over total steps across plans, as a whole percentage (0 if no steps)."""
    total = 0
    completed = 0
    for plan in plans:
        total += plan.total_steps
        completed += plan.completed_steps
    if total == 0:
        return 0
    return round_half_up(completed / total * 100)
