"""
Admission Tracking Service

Per-patient admission view assembled from the admission, treatment-plan and
patient collections. Reads degrade instead of failing: a lookup that errors
is logged and treated as absent, so one broken collection never blanks the
whole view.
"""

from datetime import datetime
from typing import Awaitable, Callable, Literal, Optional, TypeVar

import structlog
from pydantic import BaseModel

from hemotrack.db.locks import KeyedLock
from hemotrack.db.repositories import AdmissionRepository, PatientRepository, TreatmentPlanRepository
from hemotrack.db.store import RecordStore
from hemotrack.errors import ValidationFailedError
from hemotrack.models.admission import AdmissionRecord, AdmissionStatus, PlanStatus, TreatmentPlanExecution
from hemotrack.models.core import utcnow
from hemotrack.notifications.activity import ActivityEmitter, ActivityEvent, ActivityType
from hemotrack.progress.engine import (
    Alert,
    AlertThresholds,
    LengthOfStay,
    ScheduleVariance,
    generate_alerts,
    length_of_stay,
    overall_progress,
    schedule_variance,
)
from hemotrack.security.audit import AuditEvent, AuditEventType, AuditLogger

logger = structlog.get_logger(__name__)

R = TypeVar("R")


# =============================================================================
# Views
# =============================================================================

class AdmissionView(BaseModel):
    admission: AdmissionRecord
    length_of_stay: LengthOfStay


class TreatmentPlanProgress(BaseModel):
    plan: TreatmentPlanExecution
    variance: ScheduleVariance


class PatientAdmissionStatus(BaseModel):
    """Everything the ward dashboard shows for one patient."""
    patient_id: str
    patient_name: str = "Unknown"
    hospital_number: str = ""
    admission: Optional[AdmissionView] = None
    treatment_plans: list[TreatmentPlanProgress] = []
    current_status: Literal["admitted", "not_admitted"] = "not_admitted"
    overall_progress: int = 0
    alerts: list[Alert] = []


class DashboardSummary(BaseModel):
    total_active_admissions: int = 0
    average_los_days: float = 0.0
    long_stay_patients: int = 0
    pending_discharges: int = 0
    treatment_plans_on_track: int = 0
    treatment_plans_delayed: int = 0
    overall_completion_rate: int = 0


# =============================================================================
# Service
# =============================================================================

class AdmissionTrackingService:
    """
    Admission progress tracking.

    Features:
    - Patient admission status with length of stay and alerts
    - Active admission listing
    - Ward dashboard summary
    - Treatment-plan progress updates
    """

    def __init__(
        self,
        store: RecordStore,
        activity: ActivityEmitter | None = None,
        audit: AuditLogger | None = None,
        thresholds: AlertThresholds | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.admissions = AdmissionRepository(store)
        self.plans = TreatmentPlanRepository(store)
        self.patients = PatientRepository(store)
        self.activity = activity or ActivityEmitter()
        self.audit = audit or AuditLogger()
        self.thresholds = thresholds
        self._clock = clock
        self._locks = KeyedLock()

    async def _degraded(
        self,
        lookup: str,
        patient_id: str,
        read: Callable[[], Awaitable[R]],
        fallback: R,
    ) -> R:
        try:
            return await read()
        except Exception as e:
            logger.warning(
                "Lookup failed, continuing without it",
                lookup=lookup,
                patient_id=patient_id,
                error=str(e),
            )
            return fallback

    async def get_patient_status(
        self,
        patient_id: str,
        now: Optional[datetime] = None,
    ) -> PatientAdmissionStatus:
        """
        Assemble the admission status for a patient.

        Never raises for lookup failures; missing pieces are left empty.
        """
        now = now or self._clock()

        admission = await self._degraded(
            "admission", patient_id,
            lambda: self.admissions.latest_for_patient(patient_id), None,
        )
        plans = await self._degraded(
            "treatment_plans", patient_id,
            lambda: self.plans.list_for_patient(patient_id), [],
        )
        patient = await self._degraded(
            "patient", patient_id,
            lambda: self.patients.get(patient_id), None,
        )

        admission_view = None
        if admission is not None:
            admission_view = AdmissionView(
                admission=admission,
                length_of_stay=length_of_stay(
                    admission.admission_date, admission.actual_discharge_date, now
                ),
            )

        return PatientAdmissionStatus(
            patient_id=patient_id,
            patient_name=patient.name if patient else "Unknown",
            hospital_number=patient.hospital_number if patient else "",
            admission=admission_view,
            treatment_plans=[
                TreatmentPlanProgress(plan=plan, variance=schedule_variance(plan, now))
                for plan in plans
            ],
            current_status="admitted" if admission is not None and admission.is_active else "not_admitted",
            overall_progress=overall_progress(plans),
            alerts=generate_alerts(admission, plans, now, self.thresholds),
        )

    async def list_active_admissions(self) -> list[AdmissionRecord]:
        """Admissions not yet discharged, oldest first."""
        admissions = await self.admissions.list_active()
        admissions.sort(key=lambda a: a.admission_date)
        return admissions

    async def dashboard_summary(self, now: Optional[datetime] = None) -> DashboardSummary:
        """Ward-level summary over active admissions and their plans."""
        now = now or self._clock()
        thresholds = self.thresholds or AlertThresholds.from_settings()
        active = await self.list_active_admissions()

        if not active:
            return DashboardSummary()

        stays = [length_of_stay(a.admission_date, None, now) for a in active]

        plans: list[TreatmentPlanExecution] = []
        for patient_id in dict.fromkeys(a.patient_id for a in active):
            plans.extend(await self.plans.list_for_patient(patient_id))
        on_track = sum(1 for plan in plans if schedule_variance(plan, now).is_on_schedule)

        return DashboardSummary(
            total_active_admissions=len(active),
            average_los_days=round(sum(s.hours for s in stays) / 24 / len(stays), 1),
            long_stay_patients=sum(1 for s in stays if s.days > thresholds.long_stay_days),
            pending_discharges=sum(1 for a in active if a.status == AdmissionStatus.PENDING_DISCHARGE),
            treatment_plans_on_track=on_track,
            treatment_plans_delayed=len(plans) - on_track,
            overall_completion_rate=overall_progress(plans),
        )

    async def update_plan_progress(
        self,
        plan_id: str,
        completed_steps: int,
        acting_user: str,
    ) -> TreatmentPlanExecution:
        """
        Record progress on a treatment plan.

        Args:
            plan_id: Treatment plan execution record id
            completed_steps: New completed-step count (0..total_steps)
            acting_user: Clinician recording the progress

        Raises:
            NotFoundError: Unknown plan
            ValidationFailedError: Count out of range or missing acting_user
        """
        async with self._locks.hold(plan_id):
            plan = await self.plans.require(plan_id)

            reasons = []
            if not acting_user or not acting_user.strip():
                reasons.append("acting_user is required")
            if completed_steps < 0:
                reasons.append(f"completed_steps must not be negative, got {completed_steps}")
            elif completed_steps > plan.total_steps:
                reasons.append(
                    f"completed_steps ({completed_steps}) exceeds total_steps ({plan.total_steps})"
                )
            if reasons:
                raise ValidationFailedError("invalid plan progress", reasons=reasons)

            changes = {"completed_steps": completed_steps, "updated_by": acting_user}
            if plan.total_steps > 0 and completed_steps == plan.total_steps:
                changes["status"] = PlanStatus.COMPLETED
                changes["actual_end_date"] = plan.actual_end_date or self._clock()
            elif completed_steps > 0:
                changes["status"] = PlanStatus.IN_PROGRESS
                changes["actual_end_date"] = None
            else:
                changes["status"] = PlanStatus.NOT_STARTED
                changes["actual_end_date"] = None

            updated = plan.model_copy(update=changes)
            await self.plans.save(updated)

        logger.info(
            "Treatment plan progress updated",
            plan_id=plan_id,
            patient_id=updated.patient_id,
            completed_steps=completed_steps,
            total_steps=updated.total_steps,
            status=updated.status.value,
            acting_user=acting_user,
        )
        await self.audit.log(AuditEvent(
            event_type=AuditEventType.PLAN_PROGRESS_UPDATED,
            acting_user=acting_user,
            action="update_progress",
            resource_type="treatment_plan",
            resource_id=plan_id,
            patient_id=updated.patient_id,
            details={"completed_steps": completed_steps, "status": updated.status.value},
        ))
        self.activity.emit(ActivityEvent(
            activity_type=ActivityType.PLAN_PROGRESS_UPDATED,
            acting_user=acting_user,
            resource_id=plan_id,
            patient_id=updated.patient_id,
            description=f"{updated.title}: {completed_steps}/{updated.total_steps} steps",
        ))
        return updated
