"""
HemoTrack Domain Models

Pydantic models for patients, transfusions, admissions and treatment plans.
"""

from hemotrack.models.core import BaseEntity, BloodType, Patient, generate_id, utcnow
from hemotrack.models.transfusion import (
    CHECKLIST_FLAGS,
    TERMINAL_STATUSES,
    BloodBag,
    BloodSource,
    Complication,
    ComplicationSeverity,
    ComplicationType,
    ComponentType,
    PreviousTransfusion,
    TransfusionRecord,
    TransfusionStatus,
    VitalsPhase,
    VitalsSnapshot,
)
from hemotrack.models.admission import (
    AdmissionRecord,
    AdmissionStatus,
    PlanStatus,
    TreatmentPlanExecution,
)

__all__ = [
    # Core
    "BaseEntity",
    "BloodType",
    "Patient",
    "generate_id",
    "utcnow",
    # Transfusion
    "CHECKLIST_FLAGS",
    "TERMINAL_STATUSES",
    "BloodBag",
    "BloodSource",
    "Complication",
    "ComplicationSeverity",
    "ComplicationType",
    "ComponentType",
    "PreviousTransfusion",
    "TransfusionRecord",
    "TransfusionStatus",
    "VitalsPhase",
    "VitalsSnapshot",
    # Admission
    "AdmissionRecord",
    "AdmissionStatus",
    "PlanStatus",
    "TreatmentPlanExecution",
]
