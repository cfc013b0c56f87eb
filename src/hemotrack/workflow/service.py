"""
Transfusion Service

Serialized read-modify-write over the record store. Each transition for a
given transfusion id runs under that id's lock, so at most one transition
per record is in flight. Reads are lock-free: the store hands out
snapshots.
"""

from collections import Counter
from datetime import datetime, time
from typing import Any, Callable, TypeVar
import asyncio

import structlog
from pydantic import BaseModel, ValidationError

from hemotrack.db.locks import KeyedLock
from hemotrack.db.repositories import PatientRepository, TransfusionRepository
from hemotrack.db.store import RecordStore
from hemotrack.errors import HemotrackError, ValidationFailedError
from hemotrack.models.core import utcnow
from hemotrack.models.transfusion import (
    BloodBag,
    Complication,
    TransfusionRecord,
    TransfusionStatus,
    VitalsPhase,
    VitalsSnapshot,
)
from hemotrack.notifications.activity import ActivityEmitter, ActivityEvent, ActivityType
from hemotrack.security.audit import AuditEventType, AuditLogger, AuditSeverity
from hemotrack.workflow.engine import TransfusionWorkflow

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def build_model(model: type[M], data: Any) -> M:
    """Validate input into a model, reporting failures as ValidationFailedError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        reasons = [
            f"{'.'.join(str(p) for p in err['loc']) or model.__name__}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationFailedError(f"invalid {model.__name__}", reasons=reasons) from e


class TransfusionService:
    """
    Transfusion workflow service.

    Features:
    - Create and read transfusion records
    - Per-record serialized transitions
    - Audit of overrides and status changes
    - Best-effort activity feed
    """

    def __init__(
        self,
        store: RecordStore,
        workflow: TransfusionWorkflow | None = None,
        audit: AuditLogger | None = None,
        activity: ActivityEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.transfusions = TransfusionRepository(store)
        self.patients = PatientRepository(store)
        self.workflow = workflow or TransfusionWorkflow(clock=clock)
        self.audit = audit or AuditLogger()
        self.activity = activity or ActivityEmitter()
        self._clock = clock
        self._locks = KeyedLock()

    def _emit(
        self,
        activity_type: ActivityType,
        record: TransfusionRecord,
        acting_user: str,
        description: str,
        **details: Any,
    ) -> None:
        self.activity.emit(ActivityEvent(
            activity_type=activity_type,
            acting_user=acting_user,
            resource_id=record.id,
            patient_id=record.patient_id,
            description=description,
            details=details,
        ))

    async def _transition(
        self,
        transfusion_id: str,
        operation: str,
        acting_user: str,
        apply: Callable[[TransfusionRecord], Any],
    ) -> TransfusionRecord:
        """Fetch, apply one engine transition and persist, under the record lock."""
        async with self._locks.hold(transfusion_id):
            record = await self.transfusions.require(transfusion_id)
            try:
                updated = apply(record)
                if asyncio.iscoroutine(updated):
                    updated = await updated
            except HemotrackError as e:
                logger.info(
                    "Transfusion operation rejected",
                    operation=operation,
                    transfusion_id=transfusion_id,
                    status=record.status.value,
                    error=e.code,
                    reasons=e.reasons,
                    acting_user=acting_user,
                )
                raise
            await self.transfusions.save(updated)

        logger.info(
            "Transfusion operation applied",
            operation=operation,
            transfusion_id=transfusion_id,
            status=updated.status.value,
            total_units=updated.total_units,
            acting_user=acting_user,
        )
        return updated

    # =========================================================================
    # Records
    # =========================================================================

    async def create_transfusion(
        self,
        patient_id: str,
        indication: str,
        baseline_hb: float,
        acting_user: str,
        **fields: Any,
    ) -> TransfusionRecord:
        """
        Create a planned transfusion for a registered patient.

        Args:
            patient_id: Patient receiving the transfusion
            indication: Clinical indication
            baseline_hb: Pre-transfusion haemoglobin in g/dL
            acting_user: Clinician creating the record
            **fields: Optional TransfusionRecord fields (target_hb, urgent,
                checklist flags, previous_transfusions, ...)
        """
        patient = await self.patients.require(patient_id)

        reasons = []
        if not indication or not indication.strip():
            reasons.append("indication is empty")
        if baseline_hb is None or baseline_hb <= 0:
            reasons.append(f"baseline_hb must be positive, got {baseline_hb}")
        target_hb = fields.get("target_hb")
        if target_hb is not None and target_hb <= 0:
            reasons.append(f"target_hb must be positive, got {target_hb}")
        if not acting_user or not acting_user.strip():
            reasons.append("acting_user is required")
        if reasons:
            raise ValidationFailedError("invalid transfusion", reasons=reasons)

        # Bags, vitals, complications, status and outcomes only change through transitions.
        for managed in ("id", "status", "blood_bags", "complications", "pre_vitals",
                        "during_vitals", "post_vitals", "start_time", "end_time",
                        "duration_minutes", "post_transfusion_hb", "hb_increment",
                        "stop_reason", "cancel_reason"):
            fields.pop(managed, None)

        now = self._clock()
        record = build_model(TransfusionRecord, {
            "administered_by": acting_user,
            **fields,
            "patient_id": patient.id,
            "hospital_number": patient.hospital_number,
            "indication": indication.strip(),
            "baseline_hb": baseline_hb,
            "status": TransfusionStatus.PLANNED,
            "created_at": now,
            "created_by": acting_user,
            "updated_at": now,
            "updated_by": acting_user,
        })
        await self.transfusions.save(record)

        logger.info(
            "Transfusion created",
            transfusion_id=record.id,
            patient_id=patient.id,
            urgent=record.urgent,
            acting_user=acting_user,
        )
        await self.audit.log_transfusion_action(
            AuditEventType.TRANSFUSION_CREATED, record.id, record.patient_id,
            acting_user, action="create",
        )
        self._emit(ActivityType.TRANSFUSION_CREATED, record, acting_user,
                   f"Transfusion planned: {record.indication}")
        return record

    async def get_transfusion(self, transfusion_id: str) -> TransfusionRecord:
        return await self.transfusions.require(transfusion_id)

    async def list_patient_transfusions(self, patient_id: str) -> list[TransfusionRecord]:
        """Transfusion history, most recent first."""
        return await self.transfusions.list_for_patient(patient_id)

    # =========================================================================
    # Planning
    # =========================================================================

    async def update_checklist(
        self,
        transfusion_id: str,
        acting_user: str,
        **flags: bool,
    ) -> TransfusionRecord:
        """Set pre-transfusion checklist flags on a planned record."""
        return await self._transition(
            transfusion_id, "update_checklist", acting_user,
            lambda record: self.workflow.update_checklist(record, acting_user, **flags),
        )

    async def add_bag(
        self,
        transfusion_id: str,
        bag: BloodBag | dict,
        acting_user: str,
        override: bool = False,
    ) -> TransfusionRecord:
        """
        Add a blood bag, checking it against the patient's blood type.

        Raises IncompatibleBloodTypeError when the bag is incompatible and
        ``override`` is false.
        """
        bag = build_model(BloodBag, bag)

        async def apply(record: TransfusionRecord) -> TransfusionRecord:
            patient = await self.patients.get(record.patient_id)
            blood_type = patient.blood_type if patient else None
            return self.workflow.add_bag(
                record, bag, acting_user,
                patient_blood_type=blood_type,
                override=override,
            )

        updated = await self._transition(transfusion_id, "add_bag", acting_user, apply)
        added = updated.blood_bags[-1]

        if added.override_by:
            await self.audit.log_transfusion_action(
                AuditEventType.BAG_OVERRIDE, updated.id, updated.patient_id,
                acting_user, action="override_incompatible_bag",
                severity=AuditSeverity.HIGH,
                bag_number=added.bag_number,
                bag_blood_type=added.blood_type.value,
            )
        self._emit(ActivityType.BAG_ADDED, updated, acting_user,
                   f"Blood bag {added.bag_number} added",
                   bag_number=added.bag_number, override=bool(added.override_by))
        return updated

    async def remove_bag(self, transfusion_id: str, index: int, acting_user: str) -> TransfusionRecord:
        updated = await self._transition(
            transfusion_id, "remove_bag", acting_user,
            lambda record: self.workflow.remove_bag(record, index, acting_user),
        )
        self._emit(ActivityType.BAG_REMOVED, updated, acting_user,
                   f"Blood bag at position {index} removed")
        return updated

    # =========================================================================
    # Observations
    # =========================================================================

    async def record_vitals(
        self,
        transfusion_id: str,
        vitals: dict,
        acting_user: str,
    ) -> TransfusionRecord:
        """
        Record a vitals snapshot.

        ``vitals`` carries phase, temperature, pulse, systolic, diastolic,
        respiratory_rate, spo2 and optionally recorded_at.
        """
        def apply(record: TransfusionRecord) -> TransfusionRecord:
            self.workflow.require_open(record, "record vitals")
            snapshot = build_model(VitalsSnapshot, {
                "recorded_at": self._clock(),
                **vitals,
                "transfusion_id": record.id,
                "patient_id": record.patient_id,
                "recorded_by": acting_user,
            })
            return self.workflow.record_vitals(record, snapshot, acting_user)

        updated = await self._transition(transfusion_id, "record_vitals", acting_user, apply)
        self._emit(ActivityType.VITALS_RECORDED, updated, acting_user,
                   f"{VitalsPhase(vitals['phase']).value} vitals recorded")
        return updated

    async def record_complication(
        self,
        transfusion_id: str,
        complication: dict,
        acting_user: str,
    ) -> TransfusionRecord:
        """
        Record a complication; the record is flagged with adverse events.

        ``complication`` carries type, severity, symptoms, management and
        optionally detected_at.
        """
        def apply(record: TransfusionRecord) -> TransfusionRecord:
            self.workflow.require_open(record, "record complication")
            entry = build_model(Complication, {
                "detected_at": self._clock(),
                **complication,
                "transfusion_id": record.id,
                "patient_id": record.patient_id,
            })
            return self.workflow.record_complication(record, entry, acting_user)

        updated = await self._transition(transfusion_id, "record_complication", acting_user, apply)
        entry = updated.complications[-1]
        severity = (
            AuditSeverity.CRITICAL
            if entry.severity.value in ("severe", "life_threatening")
            else AuditSeverity.MEDIUM
        )
        await self.audit.log_transfusion_action(
            AuditEventType.COMPLICATION_RECORDED, updated.id, updated.patient_id,
            acting_user, action="record_complication", severity=severity,
            complication_id=entry.id, complication_type=entry.type.value,
        )
        self._emit(ActivityType.COMPLICATION_RECORDED, updated, acting_user,
                   f"Complication recorded: {entry.type.value}",
                   severity=entry.severity.value)
        return updated

    async def resolve_complication(
        self,
        transfusion_id: str,
        complication_id: str,
        acting_user: str,
        notes: str | None = None,
    ) -> TransfusionRecord:
        updated = await self._transition(
            transfusion_id, "resolve_complication", acting_user,
            lambda record: self.workflow.resolve_complication(
                record, complication_id, acting_user, notes=notes
            ),
        )
        await self.audit.log_transfusion_action(
            AuditEventType.COMPLICATION_RESOLVED, updated.id, updated.patient_id,
            acting_user, action="resolve_complication", complication_id=complication_id,
        )
        self._emit(ActivityType.COMPLICATION_RESOLVED, updated, acting_user,
                   "Complication resolved", complication_id=complication_id)
        return updated

    # =========================================================================
    # Transitions
    # =========================================================================

    async def start(self, transfusion_id: str, start_time: time, acting_user: str) -> TransfusionRecord:
        updated = await self._transition(
            transfusion_id, "start", acting_user,
            lambda record: self.workflow.start(record, start_time, acting_user),
        )
        await self.audit.log_transfusion_action(
            AuditEventType.TRANSFUSION_STARTED, updated.id, updated.patient_id,
            acting_user, action="start", start_time=start_time.isoformat(),
        )
        self._emit(ActivityType.TRANSFUSION_STARTED, updated, acting_user,
                   f"Transfusion started at {start_time.isoformat()}")
        return updated

    async def complete(
        self,
        transfusion_id: str,
        end_time: time,
        acting_user: str,
        post_hb: float | None = None,
    ) -> TransfusionRecord:
        updated = await self._transition(
            transfusion_id, "complete", acting_user,
            lambda record: self.workflow.complete(record, end_time, acting_user, post_hb=post_hb),
        )
        await self.audit.log_transfusion_action(
            AuditEventType.TRANSFUSION_COMPLETED, updated.id, updated.patient_id,
            acting_user, action="complete",
            duration_minutes=updated.duration_minutes,
            hb_increment=updated.hb_increment,
        )
        self._emit(ActivityType.TRANSFUSION_COMPLETED, updated, acting_user,
                   "Transfusion completed", duration_minutes=updated.duration_minutes)
        return updated

    async def stop(self, transfusion_id: str, reason: str, acting_user: str) -> TransfusionRecord:
        updated = await self._transition(
            transfusion_id, "stop", acting_user,
            lambda record: self.workflow.stop(record, reason, acting_user),
        )
        await self.audit.log_transfusion_action(
            AuditEventType.TRANSFUSION_STOPPED, updated.id, updated.patient_id,
            acting_user, action="stop", severity=AuditSeverity.HIGH,
            reason=updated.stop_reason,
        )
        self._emit(ActivityType.TRANSFUSION_STOPPED, updated, acting_user,
                   f"Transfusion stopped: {updated.stop_reason}")
        return updated

    async def cancel(self, transfusion_id: str, reason: str, acting_user: str) -> TransfusionRecord:
        updated = await self._transition(
            transfusion_id, "cancel", acting_user,
            lambda record: self.workflow.cancel(record, reason, acting_user),
        )
        await self.audit.log_transfusion_action(
            AuditEventType.TRANSFUSION_CANCELLED, updated.id, updated.patient_id,
            acting_user, action="cancel", reason=updated.cancel_reason,
        )
        self._emit(ActivityType.TRANSFUSION_CANCELLED, updated, acting_user,
                   f"Transfusion cancelled: {updated.cancel_reason}")
        return updated

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_patient_transfusion_stats(self, patient_id: str) -> dict:
        """Summary of a patient's transfusion history."""
        transfusions = await self.list_patient_transfusions(patient_id)

        indications = Counter(t.indication for t in transfusions)
        increments = [t.hb_increment for t in transfusions if t.hb_increment is not None]

        return {
            "total_transfusions": len(transfusions),
            "total_units": sum(t.total_units for t in transfusions),
            "completed": sum(1 for t in transfusions if t.status == TransfusionStatus.COMPLETED),
            "with_complications": sum(1 for t in transfusions if t.adverse_events),
            "last_transfusion": transfusions[0].transfusion_date if transfusions else None,
            # Counter keeps first-seen order on ties, i.e. the most recent indication
            "most_common_indication": indications.most_common(1)[0][0] if indications else "",
            "average_hb_increment": (
                round(sum(increments) / len(increments), 2) if increments else 0
            ),
        }
