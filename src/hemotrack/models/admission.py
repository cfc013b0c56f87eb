"""
Admission Domain Models

Raw admission and treatment-plan execution records. Length of stay and
plan progress are never stored here; the progress engine derives them at
query time.
"""

from datetime import datetime
from enum import Enum

from pydantic import Field, computed_field, model_validator

from hemotrack.models.core import BaseEntity


class AdmissionStatus(str, Enum):
    ACTIVE = "active"
    PENDING_DISCHARGE = "pending_discharge"
    DISCHARGED = "discharged"


class PlanStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"


class AdmissionRecord(BaseEntity):
    """
    Admission entity.

    Represents one inpatient stay on a ward.
    """

    patient_id: str
    admission_date: datetime
    expected_discharge_date: datetime | None = None
    actual_discharge_date: datetime | None = None
    ward_location: str = ""
    diagnosis: str = ""
    status: AdmissionStatus = AdmissionStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == AdmissionStatus.ACTIVE


class TreatmentPlanExecution(BaseEntity):
    """
    Execution progress of one treatment plan for a patient.

    Step counters come from the treatment-planning system as-is.
    """

    patient_id: str
    plan_id: str
    title: str
    total_steps: int = Field(default=0, ge=0)
    completed_steps: int = Field(default=0, ge=0)
    overdue_steps: int = Field(default=0, ge=0)
    status: PlanStatus = PlanStatus.NOT_STARTED
    start_date: datetime
    planned_end_date: datetime | None = None
    actual_end_date: datetime | None = None
    updated_by: str = ""

    @model_validator(mode="after")
    def _check_steps(self) -> "TreatmentPlanExecution":
        if self.completed_steps > self.total_steps:
            raise ValueError(
                f"completed_steps ({self.completed_steps}) exceeds total_steps ({self.total_steps})"
            )
        return self

    @computed_field
    @property
    def pending_steps(self) -> int:
        return self.total_steps - self.completed_steps

    @computed_field
    @property
    def completion_percentage(self) -> float:
        if self.total_steps == 0:
            return 0.0
        return self.completed_steps / self.total_steps * 100
