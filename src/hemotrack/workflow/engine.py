"""
Transfusion Workflow Engine

Enforces the transfusion state machine:

    planned --start--> in_progress --complete--> completed
       |                    |
       +--cancel--> cancelled  +--stop--> stopped

Every transition is a pure function of the current record: it either
returns a new record or raises a typed error, leaving the input untouched.
Persistence and per-record serialization live in the service layer.
"""

from datetime import datetime, time
from typing import Callable

import structlog

from hemotrack.clinical.compatibility import check_compatibility
from hemotrack.errors import (
    IncompatibleBloodTypeError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    ValidationFailedError,
)
from hemotrack.models.core import BloodType, utcnow
from hemotrack.models.transfusion import (
    CHECKLIST_FLAGS,
    BloodBag,
    Complication,
    TransfusionRecord,
    TransfusionStatus,
    VitalsPhase,
    VitalsSnapshot,
)

logger = structlog.get_logger(__name__)


def minutes_between(start: time, end: time) -> int:
    """Same-day wall-clock difference in whole minutes (may be negative)."""
    start_s = start.hour * 3600 + start.minute * 60 + start.second
    end_s = end.hour * 3600 + end.minute * 60 + end.second
    return round((end_s - start_s) / 60)


def local_wall_time(at: datetime) -> time:
    """Wall-clock time of day for ``at`` in the local zone."""
    return at.astimezone().time().replace(microsecond=0)


class TransfusionWorkflow:
    """
    Stateless transition functions over TransfusionRecord.

    Usage:
        workflow = TransfusionWorkflow()
        record = workflow.add_bag(record, bag, acting_user="nurse.okafor")
        record = workflow.start(record, time(8, 0), acting_user="nurse.okafor")
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    # =========================================================================
    # Guards
    # =========================================================================

    def _require_status(
        self,
        record: TransfusionRecord,
        operation: str,
        *allowed: TransfusionStatus,
    ) -> None:
        status = record.status
        if status.is_terminal:
            raise InvalidStateError(
                f"cannot {operation}: transfusion is {status.value}",
                reasons=[f"status {status.value} is terminal"],
            )
        if allowed and status not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise InvalidStateError(
                f"cannot {operation}: transfusion is {status.value}",
                reasons=[f"status is {status.value}, expected {expected}"],
            )

    def require_open(self, record: TransfusionRecord, operation: str) -> None:
        """Raise InvalidStateError if the record is in a terminal status."""
        self._require_status(record, operation)

    def _touch(self, acting_user: str) -> dict:
        if not acting_user or not acting_user.strip():
            raise ValidationFailedError("acting_user is required")
        return {"updated_at": self._clock(), "updated_by": acting_user}

    # =========================================================================
    # Checklist
    # =========================================================================

    def update_checklist(self, record: TransfusionRecord, acting_user: str, **flags: bool) -> TransfusionRecord:
        """Set pre-transfusion safety checklist flags while planned."""
        self._require_status(record, "update checklist", TransfusionStatus.PLANNED)
        unknown = sorted(set(flags) - set(CHECKLIST_FLAGS))
        if unknown:
            raise ValidationFailedError(
                "unknown checklist flag",
                reasons=[f"{name} is not a checklist flag" for name in unknown],
            )
        if not flags:
            raise ValidationFailedError("no checklist flags supplied")
        touch = self._touch(acting_user)
        return record.model_copy(update={
            **{name: bool(value) for name, value in flags.items()},
            **touch,
        })

    # =========================================================================
    # Bags
    # =========================================================================

    def _validate_bag(self, record: TransfusionRecord, bag: BloodBag) -> None:
        reasons = []
        if not bag.bag_number or not bag.bag_number.strip():
            reasons.append("bag_number is empty")
        elif any(b.bag_number == bag.bag_number for b in record.blood_bags):
            reasons.append(f"bag_number {bag.bag_number} is already on this transfusion")
        if bag.volume_ml <= 0:
            reasons.append(f"volume_ml must be positive, got {bag.volume_ml}")
        if bag.expiry_date < bag.donation_date:
            reasons.append(
                f"expiry_date {bag.expiry_date} is before donation_date {bag.donation_date}"
            )
        if reasons:
            raise ValidationFailedError("invalid blood bag", reasons=reasons)

    def add_bag(
        self,
        record: TransfusionRecord,
        bag: BloodBag,
        acting_user: str,
        patient_blood_type: BloodType | None = None,
        override: bool = False,
    ) -> TransfusionRecord:
        """
        Append a bag to a planned transfusion.

        An incompatible bag is refused unless ``override`` is set, in which
        case the bag is stamped with the acting user who confirmed it.
        """
        self._require_status(record, "add bag", TransfusionStatus.PLANNED)
        self._validate_bag(record, bag)
        touch = self._touch(acting_user)
        # Only a confirmed override may stamp the bag.
        if bag.override_by is not None:
            bag = bag.model_copy(update={"override_by": None})

        if patient_blood_type is not None:
            result = check_compatibility(patient_blood_type, bag.blood_type)
            if not result.compatible:
                if not override:
                    raise IncompatibleBloodTypeError(
                        result.message,
                        recipient=result.recipient.value,
                        donor=result.donor.value,
                    )
                bag = bag.model_copy(update={"override_by": acting_user})
                logger.warning(
                    "Incompatible blood bag overridden",
                    transfusion_id=record.id,
                    bag_number=bag.bag_number,
                    recipient=result.recipient.value,
                    donor=result.donor.value,
                    acting_user=acting_user,
                )

        return record.model_copy(update={
            "blood_bags": record.blood_bags + (bag,),
            **touch,
        })

    def remove_bag(self, record: TransfusionRecord, index: int, acting_user: str) -> TransfusionRecord:
        """Remove the bag at ``index`` from a planned transfusion."""
        self._require_status(record, "remove bag", TransfusionStatus.PLANNED)
        if not 0 <= index < len(record.blood_bags):
            raise NotFoundError(
                f"no blood bag at index {index}",
                reasons=[f"index {index} out of range for {len(record.blood_bags)} bag(s)"],
            )
        touch = self._touch(acting_user)
        bags = record.blood_bags[:index] + record.blood_bags[index + 1:]
        return record.model_copy(update={"blood_bags": bags, **touch})

    # =========================================================================
    # Observations
    # =========================================================================

    def _validate_vitals(self, record: TransfusionRecord, snapshot: VitalsSnapshot) -> None:
        reasons = []
        if snapshot.transfusion_id != record.id:
            reasons.append("snapshot belongs to a different transfusion")
        if snapshot.patient_id != record.patient_id:
            reasons.append("snapshot belongs to a different patient")
        if snapshot.temperature <= 0:
            reasons.append("temperature must be positive")
        if snapshot.pulse <= 0:
            reasons.append("pulse must be positive")
        if snapshot.diastolic <= 0 or snapshot.systolic <= snapshot.diastolic:
            reasons.append("blood pressure must satisfy systolic > diastolic > 0")
        if snapshot.respiratory_rate <= 0:
            reasons.append("respiratory_rate must be positive")
        if not 0 <= snapshot.spo2 <= 100:
            reasons.append("spo2 must be between 0 and 100")
        if not snapshot.recorded_by:
            reasons.append("recorded_by is empty")
        if reasons:
            raise ValidationFailedError("invalid vitals snapshot", reasons=reasons)

    def record_vitals(
        self,
        record: TransfusionRecord,
        snapshot: VitalsSnapshot,
        acting_user: str,
    ) -> TransfusionRecord:
        """Store a vitals snapshot; pre/post overwrite, during accumulates."""
        self.require_open(record, "record vitals")
        self._validate_vitals(record, snapshot)
        update = self._touch(acting_user)

        if snapshot.phase == VitalsPhase.PRE:
            update["pre_vitals"] = snapshot
        elif snapshot.phase == VitalsPhase.POST:
            update["post_vitals"] = snapshot
        else:
            update["during_vitals"] = record.during_vitals + (snapshot,)

        return record.model_copy(update=update)

    def record_complication(
        self,
        record: TransfusionRecord,
        complication: Complication,
        acting_user: str,
    ) -> TransfusionRecord:
        """Append a complication; the record is flagged with adverse events from now on."""
        self.require_open(record, "record complication")
        reasons = []
        if not any(s.strip() for s in complication.symptoms):
            reasons.append("at least one symptom is required")
        if complication.transfusion_id != record.id:
            reasons.append("complication belongs to a different transfusion")
        if complication.patient_id != record.patient_id:
            reasons.append("complication belongs to a different patient")
        if reasons:
            raise ValidationFailedError("invalid complication", reasons=reasons)

        touch = self._touch(acting_user)
        symptoms = tuple(s.strip() for s in complication.symptoms if s.strip())
        complication = complication.model_copy(update={"symptoms": symptoms})
        return record.model_copy(update={
            "complications": record.complications + (complication,),
            **touch,
        })

    def resolve_complication(
        self,
        record: TransfusionRecord,
        complication_id: str,
        acting_user: str,
        at: datetime | None = None,
        notes: str | None = None,
    ) -> TransfusionRecord:
        """
        Mark a complication resolved.

        Allowed in every status: it annotates an existing entry and does not
        move the workflow. ``adverse_events`` stays true.
        """
        for index, complication in enumerate(record.complications):
            if complication.id == complication_id:
                break
        else:
            raise NotFoundError(f"complication {complication_id} not found")

        if complication.resolved:
            raise InvalidStateError(
                f"complication {complication_id} is already resolved",
                reasons=[f"resolved at {complication.resolved_at}"],
            )

        touch = self._touch(acting_user)
        resolved = complication.model_copy(update={
            "resolved": True,
            "resolved_at": at or self._clock(),
            "notes": notes if notes is not None else complication.notes,
        })
        complications = (
            record.complications[:index] + (resolved,) + record.complications[index + 1:]
        )
        return record.model_copy(update={"complications": complications, **touch})

    # =========================================================================
    # Transitions
    # =========================================================================

    def start(self, record: TransfusionRecord, start_time: time, acting_user: str) -> TransfusionRecord:
        """Begin the transfusion once every safety check passes."""
        self._require_status(record, "start", TransfusionStatus.PLANNED)

        reasons = [f"{flag} is false" for flag in record.missing_checks]
        if record.total_units < 1:
            reasons.append("no blood bags recorded")
        if reasons:
            raise PreconditionFailedError(
                "pre-transfusion checks are incomplete",
                reasons=reasons,
            )

        touch = self._touch(acting_user)
        return record.model_copy(update={
            "status": TransfusionStatus.IN_PROGRESS,
            "start_time": start_time,
            **touch,
        })

    def complete(
        self,
        record: TransfusionRecord,
        end_time: time,
        acting_user: str,
        post_hb: float | None = None,
    ) -> TransfusionRecord:
        """Finish a running transfusion and derive duration and Hb increment."""
        self._require_status(record, "complete", TransfusionStatus.IN_PROGRESS)

        reasons = []
        duration = None
        if record.start_time is not None:
            duration = minutes_between(record.start_time, end_time)
            if duration < 0:
                reasons.append(
                    f"end_time {end_time.isoformat()} is before start_time "
                    f"{record.start_time.isoformat()}"
                )
        if post_hb is not None and post_hb <= 0:
            reasons.append(f"post_hb must be positive, got {post_hb}")
        if reasons:
            raise ValidationFailedError("cannot complete transfusion", reasons=reasons)

        update = self._touch(acting_user)
        update.update({
            "status": TransfusionStatus.COMPLETED,
            "end_time": end_time,
            "duration_minutes": duration,
        })
        if post_hb is not None:
            update["post_transfusion_hb"] = post_hb
            update["hb_increment"] = round(post_hb - record.baseline_hb, 2)

        return record.model_copy(update=update)

    def stop(
        self,
        record: TransfusionRecord,
        reason: str,
        acting_user: str,
        at: datetime | None = None,
    ) -> TransfusionRecord:
        """Halt a running transfusion, e.g. on an adverse reaction."""
        self._require_status(record, "stop", TransfusionStatus.IN_PROGRESS)
        if not reason or not reason.strip():
            raise ValidationFailedError("a stop reason is required")

        update = self._touch(acting_user)
        end_time = local_wall_time(at or update["updated_at"])

        duration = None
        if record.start_time is not None:
            duration = minutes_between(record.start_time, end_time)
            if duration < 0:
                # Stopped after midnight; no same-day duration exists.
                duration = None

        update.update({
            "status": TransfusionStatus.STOPPED,
            "stop_reason": reason.strip(),
            "end_time": end_time,
            "duration_minutes": duration,
        })
        return record.model_copy(update=update)

    def cancel(self, record: TransfusionRecord, reason: str, acting_user: str) -> TransfusionRecord:
        """Cancel a transfusion that never started. The record is kept."""
        self._require_status(record, "cancel", TransfusionStatus.PLANNED)
        if not reason or not reason.strip():
            raise ValidationFailedError("a cancellation reason is required")

        touch = self._touch(acting_user)
        return record.model_copy(update={
            "status": TransfusionStatus.CANCELLED,
            "cancel_reason": reason.strip(),
            **touch,
        })
